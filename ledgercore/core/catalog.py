"""
Human-readable descriptions of warning and review reason codes.
"""
from typing import Dict

from pydantic import BaseModel, ConfigDict


class WarningCatalogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    explain: str
    suggestion: str


WARNING_CATALOG: Dict[str, WarningCatalogEntry] = {
    "AMBIGUOUS_AMOUNT": WarningCatalogEntry(
        title="Ambiguous amount",
        explain="The numbers at the end of a row could not be split into amount and balance with confidence.",
        suggestion="Compare the row with the statement before trusting its amount.",
    ),
    "MISSING_DATE": WarningCatalogEntry(
        title="Date missing",
        explain="A row carried money values but no date that could be resolved.",
        suggestion="Check whether the statement period heading was extracted.",
    ),
    "UNPARSEABLE_BLOCK": WarningCatalogEntry(
        title="Row skipped",
        explain="A dated block had no money values and was not turned into a transaction.",
        suggestion="Usually a note line. Check the file if totals look wrong.",
    ),
    "AMOUNT_SIGN_UNCERTAIN": WarningCatalogEntry(
        title="Amount sign uncertain",
        explain="The parser could not confirm whether a row is a credit or a debit.",
        suggestion="Review transactions and compare balance continuity before trusting totals.",
    ),
    "AMOUNT_OUTLIER": WarningCatalogEntry(
        title="Amount outlier",
        explain="A money value above 1,000,000 was ignored as a likely extraction artefact.",
        suggestion="Usually safe to ignore unless totals look wrong.",
    ),
    "AMOUNT_INFERRED_FROM_BALANCE": WarningCatalogEntry(
        title="Amount inferred from balance",
        explain="A row only showed a balance, so the amount was taken from the change in balance.",
        suggestion="Usually correct when balance continuity is high.",
    ),
    "BALANCE_NOT_FOUND": WarningCatalogEntry(
        title="Balance not found",
        explain="A transaction row did not expose a reliable running balance.",
        suggestion="Use the warning details to inspect the affected file and parser quality.",
    ),
    "DEBIT_CREDIT_BOTH_PRESENT": WarningCatalogEntry(
        title="Debit and credit on one row",
        explain="A row had values in both the debit and the credit column.",
        suggestion="Check the row; the net of the two columns was used.",
    ),
    "PERIOD_NOT_FOUND": WarningCatalogEntry(
        title="Statement period missing",
        explain="Row dates have no year and the statement period heading was not found.",
        suggestion="Re-extract the statement text including its first page.",
    ),
    "CONTINUATION_IGNORED": WarningCatalogEntry(
        title="Continuation line ignored",
        explain="A line following a dated row was dropped because the layout does not wrap rows.",
        suggestion="Usually safe to ignore.",
    ),
    "TEMPLATE_UNKNOWN": WarningCatalogEntry(
        title="Unknown statement layout",
        explain="No registered template matched this statement.",
        suggestion="Remove the file or add a template for this layout.",
    ),
    "HEADER_NOT_FOUND": WarningCatalogEntry(
        title="Transaction table not found",
        explain="The transaction table header was missing, so the whole text was parsed.",
        suggestion="Check the file for extraction problems.",
    ),
    "TRANSACTIONS_TOO_FEW": WarningCatalogEntry(
        title="Very few transactions",
        explain="Fewer rows than expected were parsed from this statement.",
        suggestion="Compare the row count with the statement.",
    ),
    "BALANCE_CONTINUITY_LOW": WarningCatalogEntry(
        title="Low balance continuity",
        explain="Parsed balances do not line up cleanly across rows, which usually means parsing drift.",
        suggestion="Inspect the file with the debug command or remove it if it is malformed.",
    ),
    "PARSE_LOW_COVERAGE": WarningCatalogEntry(
        title="Low parse coverage",
        explain="More than one in ten dated blocks could not be turned into transactions.",
        suggestion="Inspect the file with the debug command.",
    ),
    "TEXT_MISSING": WarningCatalogEntry(
        title="No statement text",
        explain="No extracted text was available for this file.",
        suggestion="Re-run text extraction for the file.",
    ),
    "IDENTITY_HEADER_ONLY": WarningCatalogEntry(
        title="Header-only account identity",
        explain="A usable account number came from the statement header, but not a reliable account name.",
        suggestion="Usually safe.",
    ),
    "IDENTITY_MISSING": WarningCatalogEntry(
        title="Account identity missing",
        explain="No stable account number could be extracted for this statement.",
        suggestion="Pass an account id explicitly, or remove the file if the account cannot be trusted.",
    ),
    "ACCOUNT_NUMBER_HAS_BSB_PREFIX_STRIPPED": WarningCatalogEntry(
        title="BSB removed from account number",
        explain="The account number started with the BSB, which was stripped.",
        suggestion="Usually safe to ignore.",
    ),
}


def get_warning_entry(code: str) -> WarningCatalogEntry:
    """Catalog entry for a code, with a generic entry for unknown codes."""
    key = (code or '').strip()
    entry = WARNING_CATALOG.get(key)
    if entry:
        return entry
    return WarningCatalogEntry(
        title=key or "Unknown warning",
        explain="This warning code does not have a specific catalog entry yet.",
        suggestion="Use the raw warning code and file context to decide whether to keep the file.",
    )

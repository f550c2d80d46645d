"""
Tests for transaction section segmentation.
"""
import pytest

from ..core.registry import get_template
from ..core.segment import segment, segment_transaction_section


SUMMARY_EXPORT = """Some preamble
Date Transaction details Amount Balance
01 Jan 2024 Coffee -4.50 100.00
02 Jan 2024 Lunch -10.00 90.00
Any pending transactions haven't been included
Footer line
"""


class TestSegmenter:
    """Header, stop anchor and noise handling."""

    @pytest.fixture
    def manual_template(self):
        return get_template("commbank_manual_amount_balance")

    @pytest.fixture
    def auto_template(self):
        return get_template("commbank_auto_debit_credit")

    def test_header_and_stop_anchor(self, manual_template):
        result = segment_transaction_section(SUMMARY_EXPORT, manual_template)

        assert result.debug.header_found is True
        assert result.debug.start_line == 2
        assert result.debug.end_line == 5
        assert result.debug.stop_reason.startswith("ANY_PENDING_TRANSACTIONS")
        assert result.section_text == "01 Jan 2024 Coffee -4.50 100.00\n02 Jan 2024 Lunch -10.00 90.00"

    def test_crlf_line_endings(self, manual_template):
        crlf = SUMMARY_EXPORT.replace("\n", "\r\n")
        assert segment_transaction_section(crlf, manual_template) == segment_transaction_section(SUMMARY_EXPORT, manual_template)

    def test_missing_header_uses_full_text(self, manual_template):
        text = "01 Jan 2024 Coffee -4.50 100.00\n02 Jan 2024 Lunch -10.00 90.00\n"
        result = segment_transaction_section(text, manual_template)

        assert result.debug.header_found is False
        assert result.debug.start_line is None
        assert result.debug.end_line is None
        assert result.section_text == text.strip()

    def test_repeated_header_is_removed(self, manual_template):
        text = SUMMARY_EXPORT.replace(
            "02 Jan 2024 Lunch",
            "Date Transaction details Amount Balance\n02 Jan 2024 Lunch",
        )
        result = segment_transaction_section(text, manual_template)

        assert result.debug.removed_lines == 1
        assert "Transaction details" not in result.section_text
        assert result.section_text.count("\n") == 1

    def test_compacted_header_is_found(self, auto_template):
        text = "intro\nDateTransactionDebitCreditBalance\n02 Jan Shop 5.00 $95.00 CR\nCLOSING BALANCE $95.00 CR\n"
        result = segment_transaction_section(text, auto_template)

        assert result.debug.header_found is True
        assert result.debug.stop_reason == "CLOSING_BALANCE"
        assert result.section_text == "02 Jan Shop 5.00 $95.00 CR"

    def test_remove_line_patterns(self, auto_template, auto_statement):
        noisy = auto_statement.replace(
            "10 Jan Transfer",
            "Statement 3 (Page 2 of 2)\nAccount Number 06 2000 12345678\n10 Jan Transfer",
        )
        result = segment_transaction_section(noisy, auto_template)

        assert result.debug.removed_lines == 2
        assert "Statement 3" not in result.section_text
        assert result.section_text == segment_transaction_section(auto_statement, auto_template).section_text

    def test_removal_is_idempotent(self, manual_template, manual_statement):
        first = segment_transaction_section(manual_statement, manual_template)
        second = segment_transaction_section(first.section_text, manual_template)

        assert second.debug.removed_lines == 0
        assert second.section_text == first.section_text

    def test_deterministic(self, manual_statement):
        assert segment(manual_statement) == segment(manual_statement)

    def test_default_template(self, manual_statement):
        result = segment_transaction_section(manual_statement)
        assert result.debug.header_found is True
        assert result.section_text.startswith("02 Jan 2024 Salary")
        assert result.section_text.endswith("10 Jan 2024 Coffee shop -4.50 2,331.25")

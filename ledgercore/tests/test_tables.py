"""
Tests for transaction table parsing.
"""
from decimal import Decimal

import pytest

from ..core.registry import UnknownStrategyError, get_template
from ..core.segment import segment_transaction_section
from ..core.tables import TransactionTableParser, is_reference_only_line, parse_transactions
from ..models.schema import AmountSource
from ..models.template import AmountBalanceStrategy


PERIOD_TEXT = "Period 1 Jan 2024 - 31 Jan 2024"


def with_parse(template, **changes):
    return template.model_copy(update={"parse": template.parse.model_copy(update=changes)})


def reasons(result):
    return [w.reason for w in result.warnings]


class TestAmountBalanceStrategy:
    """Signed amount column followed by a running balance."""

    @pytest.fixture
    def template(self):
        return get_template("commbank_manual_amount_balance")

    def test_multiline_block(self, template):
        result = parse_transactions("03 Jan 2024\nEFTPOS STORE 123\n-45.00 1,234.56", template)

        assert len(result.transactions) == 1
        tx = result.transactions[0]
        assert tx.date == "2024-01-03"
        assert tx.date_raw == "03 Jan 2024"
        assert tx.amount == Decimal("-45.00")
        assert tx.balance == Decimal("1234.56")
        assert tx.debit == Decimal("45.00")
        assert tx.credit is None
        assert tx.description == "EFTPOS STORE 123"
        assert tx.raw_line == "03 Jan 2024\nEFTPOS STORE 123\n-45.00 1,234.56"
        assert tx.confidence == pytest.approx(0.88)
        assert tx.source.row_index == 1
        assert tx.source.line_index == 1
        assert tx.source.parser_version == "cba_v1"
        assert result.warnings == []

    def test_full_statement(self, template, manual_statement):
        section = segment_transaction_section(manual_statement, template).section_text
        result = parse_transactions(section, template)

        assert [t.amount for t in result.transactions] == [
            Decimal("2000.00"), Decimal("-45.00"), Decimal("-500.00"),
            Decimal("-120.50"), Decimal("1.25"), Decimal("-4.50"),
        ]
        assert [t.source.row_index for t in result.transactions] == [1, 2, 3, 4, 5, 6]
        assert [t.source.line_index for t in result.transactions] == [1, 2, 5, 6, 7, 8]
        assert result.transactions[0].description == "Salary ACME PTY LTD"
        assert result.transactions[0].confidence == pytest.approx(0.90)
        assert result.transactions[5].confidence == pytest.approx(0.95)
        assert result.warnings == []

    def test_keyword_sign_hint(self, template):
        result = parse_transactions("04 Jan 2024 EFTPOS Purchase Cafe 12.00 88.00", template)
        assert result.transactions[0].amount == Decimal("-12.00")

    def test_single_number_is_ambiguous(self, template):
        result = parse_transactions("04 Jan 2024 Refund STORE 10.00", template)

        tx = result.transactions[0]
        assert tx.amount == Decimal("10.00")
        assert tx.balance is None
        assert tx.confidence == pytest.approx(0.42)
        assert reasons(result) == ["AMBIGUOUS_AMOUNT", "BALANCE_NOT_FOUND"]
        assert [w.row_index for w in result.warnings] == [1, 1]

    def test_block_without_money_is_skipped(self, template):
        result = parse_transactions("05 Jan 2024 Note only\n06 Jan 2024 Shop -5.00 95.00", template)

        assert len(result.transactions) == 1
        assert result.transactions[0].source.row_index == 1
        assert reasons(result) == ["UNPARSEABLE_BLOCK"]
        assert result.warnings[0].row_index is None
        assert result.dropped_blocks == 1

    def test_money_before_first_date(self, template):
        result = parse_transactions("carried forward 12.00\nplain note\n03 Jan 2024 Shop -1.00 11.00", template)

        assert len(result.transactions) == 1
        assert reasons(result) == ["MISSING_DATE"]
        assert result.warnings[0].row_index is None
        assert result.dropped_blocks == 0

    def test_outlier_dropped(self, template):
        result = parse_transactions("03 Jan 2024 Glitch 9,999,999.00 -5.00 95.00", template)

        tx = result.transactions[0]
        assert tx.amount == Decimal("-5.00")
        assert tx.balance == Decimal("95.00")
        assert reasons(result) == ["AMOUNT_OUTLIER"]
        assert result.warnings[0].row_index == 1

    def test_reference_line_joined(self, template):
        result = parse_transactions("03 Jan 2024 Shop\n123456\n-5.00 95.00", template)
        assert result.transactions[0].description == "Shop | REF: 123456"

    def test_parentheses_and_dr_are_negative(self, template):
        result = parse_transactions("03 Jan 2024 Shop (5.00) 95.00\n04 Jan 2024 Fee 2.00 DR 93.00", template)
        assert [t.amount for t in result.transactions] == [Decimal("-5.00"), Decimal("-2.00")]

    def test_continuation_ignored_without_multiline(self, template):
        single = with_parse(template, multiline_block=False)
        result = parse_transactions("03 Jan 2024 Shop -5.00 95.00\nwrapped words", single)

        assert result.transactions[0].description == "Shop"
        assert reasons(result) == ["CONTINUATION_IGNORED"]
        assert result.warnings[0].row_index == 1

    def test_identical_rows_get_distinct_indexes(self, template):
        result = parse_transactions("03 Jan 2024 Shop -5.00 95.00\n03 Jan 2024 Shop -5.00 95.00", template)
        assert [t.source.row_index for t in result.transactions] == [1, 2]

    def test_deterministic(self, template, manual_statement):
        section = segment_transaction_section(manual_statement, template).section_text
        assert parse_transactions(section, template) == parse_transactions(section, template)


class TestDebitCreditBalanceStrategy:
    """Separate debit and credit columns."""

    @pytest.fixture
    def template(self):
        return with_parse(
            get_template("commbank_manual_amount_balance"),
            amount_balance_strategy=AmountBalanceStrategy.DEBIT_CREDIT_BALANCE,
        )

    def test_debit_column(self, template):
        tx = parse_transactions("03 Jan 2024 Groceries 45.00 0.00 955.00", template).transactions[0]

        assert tx.amount == Decimal("-45.00")
        assert tx.debit == Decimal("45.00")
        assert tx.credit is None
        assert tx.balance == Decimal("955.00")

    def test_credit_column(self, template):
        tx = parse_transactions("03 Jan 2024 Pay 0.00 100.00 1,100.00", template).transactions[0]
        assert tx.amount == Decimal("100.00")

    def test_both_columns(self, template):
        result = parse_transactions("03 Jan 2024 Mixed 10.00 25.00 1,015.00", template)

        assert result.transactions[0].amount == Decimal("15.00")
        assert reasons(result) == ["DEBIT_CREDIT_BOTH_PRESENT"]

    def test_one_column_unsigned(self, template):
        result = parse_transactions("03 Jan 2024 Misc item 10.00 990.00", template)

        assert result.transactions[0].amount == Decimal("-10.00")
        assert result.transactions[0].confidence == pytest.approx(0.73)
        assert reasons(result) == ["AMOUNT_SIGN_UNCERTAIN"]


class TestInferFromLastNumbersStrategy:
    """Balance-driven inference with year taken from the statement period."""

    @pytest.fixture
    def template(self):
        return get_template("commbank_auto_debit_credit")

    def test_full_statement(self, template, auto_statement):
        section = segment_transaction_section(auto_statement, template).section_text
        result = parse_transactions(section, template, full_text=auto_statement)

        assert result.period.start == "2024-01-01"
        assert result.period.end == "2024-01-31"
        assert [t.date for t in result.transactions] == [
            "2024-01-02", "2024-01-05", "2024-01-10", "2024-01-15", "2024-01-20", "2024-01-25",
        ]
        assert [t.amount for t in result.transactions] == [
            Decimal("-50.00"), Decimal("2000.00"), Decimal("-500.00"),
            Decimal("-60.00"), Decimal("400.00"), Decimal("-30.00"),
        ]
        assert all(t.amount_source == AmountSource.BALANCE_DIFF_INFERRED for t in result.transactions)
        assert result.transactions[0].balance == Decimal("950.00")
        assert result.transactions[0].description == "Card xx1234 WOOLWORTHS SYDNEY | Value Date: 01/01/2024"
        assert result.warnings == []

    def test_keyword_fallback_without_previous_balance(self, template):
        result = parse_transactions("02 Jan Card WOOLWORTHS 50.00 $950.00 CR", template, full_text=PERIOD_TEXT)

        tx = result.transactions[0]
        assert tx.amount == Decimal("-50.00")
        assert tx.amount_source == AmountSource.PARSED_TOKEN
        assert tx.confidence == pytest.approx(0.95)
        assert result.warnings == []

    def test_unknown_side_defaults_to_debit(self, template):
        result = parse_transactions("02 Jan Misc item 50.00 $950.00 CR", template, full_text=PERIOD_TEXT)

        assert result.transactions[0].amount == Decimal("-50.00")
        assert result.transactions[0].confidence == pytest.approx(0.73)
        assert reasons(result) == ["AMOUNT_SIGN_UNCERTAIN"]

    def test_balance_only_row(self, template):
        section = "01 Jan OPENING BALANCE $1,000.00 CR\n03 Jan Something $900.00 CR"
        result = parse_transactions(section, template, full_text=PERIOD_TEXT)

        tx = result.transactions[0]
        assert tx.amount == Decimal("-100.00")
        assert tx.amount_source == AmountSource.BALANCE_DIFF_INFERRED
        assert tx.confidence == pytest.approx(0.70)
        assert reasons(result) == ["AMOUNT_INFERRED_FROM_BALANCE"]

    def test_overdrawn_balance(self, template):
        section = "01 Jan OPENING BALANCE $20.00 CR\n03 Jan Shop 50.00 $30.00 DR"
        tx = parse_transactions(section, template, full_text=PERIOD_TEXT).transactions[0]

        assert tx.balance == Decimal("-30.00")
        assert tx.amount == Decimal("-50.00")

    def test_period_missing(self, template):
        result = parse_transactions("02 Jan Card WOOLWORTHS 50.00 $950.00 CR", template)

        assert result.transactions == []
        assert reasons(result) == ["PERIOD_NOT_FOUND", "MISSING_DATE"]
        assert result.dropped_blocks == 1
        assert result.period.start is None

    def test_period_across_year_end(self, template):
        full_text = "Period 15 Dec 2023 - 14 Jan 2024"
        section = "20 Dec Card Shop 5.00 $95.00 CR\n02 Jan Card Shop 5.00 $90.00 CR"
        result = parse_transactions(section, template, full_text=full_text)

        assert [t.date for t in result.transactions] == ["2023-12-20", "2024-01-02"]


class TestStrategyDispatch:

    def test_unknown_strategy_raises(self):
        template = with_parse(get_template("commbank_manual_amount_balance"), amount_balance_strategy="bogus")

        with pytest.raises(UnknownStrategyError):
            TransactionTableParser(template)
        with pytest.raises(ValueError):
            parse_transactions("03 Jan 2024 Shop -5.00 95.00", template)

    def test_reference_only_lines(self):
        assert is_reference_only_line("123456")
        assert is_reference_only_line("12-34/56")
        assert not is_reference_only_line("12.50")
        assert not is_reference_only_line("1,234")
        assert not is_reference_only_line("Shop 12")
        assert not is_reference_only_line("")

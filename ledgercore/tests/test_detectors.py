"""
Tests for the template registry and detector.
"""
import pytest
from pydantic import ValidationError

from ..core.anchors import find_terms_window, split_lines
from ..core.detectors import TemplateDetector, detect_template, detect_template_or_raise, validate_template_match
from ..core.registry import (
    REGISTRY,
    TemplateNotFoundError,
    TemplateRegistry,
    get_template,
    load_templates,
)
from ..models.template import AmountBalanceStrategy, YearInference


TEMPLATE_YAML = """
id: {id}
bank: testbank
priority: {priority}
header_anchors: [Date Details Amount]
parse:
  date_pattern: '^\\d{{2}}/\\d{{2}}/\\d{{4}}'
  amount_balance_strategy: amount_balance
"""


class TestTemplateRegistry:
    """Registry loading and lookup."""

    def test_packaged_templates(self):
        assert REGISTRY.list_templates() == [
            "commbank_auto_debit_credit",
            "commbank_manual_amount_balance",
        ]

        auto = get_template("commbank_auto_debit_credit")
        assert auto.parse.amount_balance_strategy == AmountBalanceStrategy.INFER_FROM_LAST_NUMBERS
        assert auto.parse.year_inference == YearInference.FROM_PERIOD

        manual = get_template("commbank_manual_amount_balance")
        assert manual.parse.amount_balance_strategy == AmountBalanceStrategy.AMOUNT_BALANCE
        assert manual.quality.continuity_threshold == 0.85
        assert manual.quality.min_continuity_checked == 5

    def test_unknown_id_raises(self):
        with pytest.raises(TemplateNotFoundError):
            get_template("no_such_template")
        # Configuration errors are ValueErrors
        with pytest.raises(ValueError):
            REGISTRY.get("no_such_template")
        assert REGISTRY.find("no_such_template") is None

    def test_templates_are_frozen(self):
        template = get_template("commbank_manual_amount_balance")
        with pytest.raises(ValidationError):
            template.priority = 1

    def test_load_sorted_by_priority(self, tmp_path):
        (tmp_path / "a.yaml").write_text(TEMPLATE_YAML.format(id="late", priority=50))
        (tmp_path / "b.yaml").write_text(TEMPLATE_YAML.format(id="early", priority=5))

        templates = load_templates(tmp_path)
        assert [t.id for t in templates] == ["early", "late"]

    def test_duplicate_ids_rejected(self, tmp_path):
        (tmp_path / "a.yaml").write_text(TEMPLATE_YAML.format(id="same", priority=1))
        (tmp_path / "b.yaml").write_text(TEMPLATE_YAML.format(id="same", priority=2))

        with pytest.raises(ValueError):
            load_templates(tmp_path)

    def test_invalid_pattern_rejected(self, tmp_path):
        bad = TEMPLATE_YAML.format(id="bad", priority=1).replace("'^\\d{2}/\\d{2}/\\d{4}'", "'(['")
        (tmp_path / "bad.yaml").write_text(bad)

        with pytest.raises(ValidationError):
            load_templates(tmp_path)

    def test_missing_directory(self, tmp_path):
        assert load_templates(tmp_path / "missing") == []


class TestTemplateDetector:
    """Anchor and keyword-window detection."""

    def test_manual_layout(self, manual_statement):
        assert detect_template(manual_statement) == "commbank_manual_amount_balance"

    def test_auto_layout(self, auto_statement):
        assert detect_template(auto_statement) == "commbank_auto_debit_credit"

    def test_collapsed_header(self):
        text = "CommBank\nDateTransactionDebitCreditBalance\n02 Jan Shop 5.00 $95.00 CR"
        assert detect_template(text) == "commbank_auto_debit_credit"

    def test_keywords_split_across_lines(self):
        text = "Transaction\nsome words\nDebit\nCredit\nBalance carried\n02 Jan Shop"
        assert detect_template(text) == "commbank_auto_debit_credit"

    def test_keywords_too_far_apart(self):
        lines = ["Transaction", "Debit"] + ["filler"] * 10 + ["Credit", "Balance"]
        assert find_terms_window(lines, ["transaction", "debit", "credit", "balance"], window_size=6) is None

    def test_fuzzy_keyword_match(self):
        lines = split_lines("Transactoin Debit Credit Balance")
        terms = ["transaction", "debit", "credit", "balance"]

        assert find_terms_window(lines, terms, fuzzy_threshold=100) is None
        assert find_terms_window(lines, terms, fuzzy_threshold=90) is not None

    def test_unknown(self):
        assert detect_template("Hello world\nnothing to see") == "unknown"
        assert detect_template("") == "unknown"
        assert detect_template("   \n  ") == "unknown"

    def test_unknown_is_hard_stop(self):
        with pytest.raises(TemplateNotFoundError):
            detect_template_or_raise("Hello world")

    def test_detect_or_raise_returns_config(self, manual_statement):
        template = detect_template_or_raise(manual_statement)
        assert template.id == "commbank_manual_amount_balance"

    def test_validate_template_match(self, manual_statement):
        assert validate_template_match(manual_statement, "commbank_manual_amount_balance") is True
        assert validate_template_match("nothing here", "commbank_manual_amount_balance") is False
        assert validate_template_match(manual_statement, "no_such_template") is False

    def test_registry_order_decides(self, tmp_path, manual_statement):
        (tmp_path / "a.yaml").write_text(
            TEMPLATE_YAML.format(id="catch_all", priority=1).replace("[Date Details Amount]", "[Transaction Summary]")
        )
        registry = TemplateRegistry(load_templates(tmp_path) + list(REGISTRY))
        detector = TemplateDetector(registry)

        assert detector.detect_template(manual_statement) == "catch_all"
        assert detector.list_templates()[0] == "catch_all"

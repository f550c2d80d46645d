"""
Tests for the balance continuity gate.
"""
import pytest

from ..core.continuity import check_continuity, chronological
from ..core.registry import get_template
from ..models.schema import ContinuityStatus
from ..models.template import QualityConfig
from .conftest import make_row


def consistent_rows():
    return [
        make_row(1, "2024-01-01", "-10.00", "100.00"),
        make_row(2, "2024-01-02", "-10.00", "90.00"),
        make_row(3, "2024-01-03", "-10.00", "80.00"),
        make_row(4, "2024-01-04", "-10.00", "70.00"),
        make_row(5, "2024-01-05", "-10.00", "60.00"),
        make_row(6, "2024-01-06", "-10.00", "50.00"),
    ]


class TestContinuityGate:
    """Adjacent balance checks and the review threshold."""

    @pytest.fixture
    def template(self):
        return get_template("commbank_manual_amount_balance")

    @pytest.fixture
    def one_break(self):
        rows = consistent_rows()
        rows[5] = make_row(6, "2024-01-06", "-10.00", "55.00")
        return rows

    def test_all_consistent(self, template):
        result = check_continuity(consistent_rows(), template)

        assert result.needs_review is False
        assert result.quality.status == ContinuityStatus.PASSED
        assert result.quality.checked == 5
        assert result.quality.consistent == 5
        assert result.quality.pass_ratio == 1.0

    def test_one_inconsistent_pair(self, template, one_break):
        result = check_continuity(one_break, template)

        assert result.quality.checked == 5
        assert result.quality.consistent == 4
        assert result.quality.pass_ratio == pytest.approx(0.8)
        assert result.quality.status == ContinuityStatus.FAILED
        assert result.needs_review is True

    def test_within_epsilon(self, template):
        rows = consistent_rows()
        rows[5] = make_row(6, "2024-01-06", "-10.00", "50.01")
        assert check_continuity(rows, template).quality.consistent == 5

    def test_too_few_pairs_is_untested(self, template, one_break):
        result = check_continuity(one_break[3:], template)

        assert result.quality.checked == 2
        assert result.quality.status == ContinuityStatus.UNTESTED
        assert result.needs_review is False

    @pytest.mark.parametrize("rows", [
        [make_row(1, "2024-01-01", "-10.00", "100.00")],
        [make_row(1, "2024-01-01", "-10.00"), make_row(2, "2024-01-02", "-10.00")],
    ])
    def test_no_checked_pairs_with_zero_minimum(self, rows):
        result = check_continuity(rows, quality=QualityConfig(min_continuity_checked=0))

        assert result.quality.checked == 0
        assert result.quality.pass_ratio is None
        assert result.quality.status == ContinuityStatus.UNTESTED
        assert result.needs_review is False

    def test_disabled(self, one_break):
        result = check_continuity(one_break, quality=QualityConfig(enable_continuity_gate=False))

        assert result.quality.status == ContinuityStatus.DISABLED
        assert result.needs_review is False

    def test_missing_balances_are_skipped(self, template):
        rows = consistent_rows()
        rows[2] = make_row(3, "2024-01-03", "-10.00", None)
        result = check_continuity(rows, template)

        assert result.quality.checked == 3
        assert result.quality.skipped == 2
        assert result.quality.skipped_reasons == {"CURR_BALANCE_MISSING": 1, "PREV_BALANCE_MISSING": 1}
        assert result.quality.total_pairs == 5

    def test_newest_first_statement(self, template, one_break):
        forward = check_continuity(one_break, template)
        backward = check_continuity(list(reversed(one_break)), template)
        assert backward.quality == forward.quality

    def test_same_day_rows_keep_order(self):
        rows = [
            make_row(1, "2024-01-02", "-5.00", "95.00"),
            make_row(2, "2024-01-01", "100.00", "100.00"),
            make_row(3, "2024-01-02", "-5.00", "90.00"),
        ]
        ordered = chronological(rows)
        assert [r.source.row_index for r in ordered] == [2, 1, 3]

    def test_lower_threshold_never_fails_more(self, one_break):
        thresholds = [1.0, 0.9, 0.85, 0.8, 0.5, 0.0]
        results = [
            check_continuity(one_break, quality=QualityConfig(continuity_threshold=t, min_continuity_checked=5))
            for t in thresholds
        ]
        flags = [r.needs_review for r in results]

        assert flags == [True, True, True, False, False, False]
        for earlier, later in zip(flags, flags[1:]):
            assert not (not earlier and later)

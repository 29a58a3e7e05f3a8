"""
Unit tests for the quality filter and its sequential accounting.
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from dataprep.core.filters import apply_filters, filter_with_summary, get_filter_summary
from dataprep.core.models import FilterConfig, SourceRecord


def _records(rows):
    return [SourceRecord(row_index=i, data=row) for i, row in enumerate(rows)]


def _config(**kwargs):
    return FilterConfig.model_validate(kwargs)


@pytest.fixture
def hundred_records():
    """30 short records, then 70 long ones of which 20 are closed."""
    short = [{"content": "too short", "status": "open"} for _ in range(30)]
    closed = [{"content": "x" * 60, "status": "closed"} for _ in range(20)]
    kept = [{"content": "y" * 60, "status": "Open"} for _ in range(50)]
    return _records(short + closed + kept)


class TestSequentialAccounting:
    """Tests for per-rule exclusion counts"""

    def test_counts_are_sequential_deltas(self, hundred_records):
        """Test each rule's count is measured against what the previous rule left"""
        config = _config(minContentLength=50, statusInclude=["open"])

        summary = get_filter_summary(hundred_records, config)

        assert summary.total_count == 100
        assert summary.filter_breakdown.by_rule == {"minContentLength": 30, "status": 20}
        assert summary.filtered_count == 50
        assert summary.excluded_count == 50
        assert [(p.rule, p.remaining) for p in summary.filter_breakdown.progressive_counts] == [
            ("minContentLength", 70),
            ("status", 50),
        ]
        assert summary.warnings == []

    def test_filter_with_summary_returns_same_records_as_apply_filters(self, hundred_records):
        """Test the summary path keeps exactly the records apply_filters keeps"""
        config = _config(minContentLength=50, statusInclude=["open"])

        kept, summary = filter_with_summary(hundred_records, config)

        assert kept == apply_filters(hundred_records, config)
        assert len(kept) == summary.filtered_count
        assert kept[0].row_index == 50

    def test_unconfigured_rules_not_reported(self, hundred_records):
        """Test rules that are not configured do not appear in the breakdown"""
        summary = get_filter_summary(hundred_records, _config(statusExclude=["closed"]))

        assert summary.filter_breakdown.by_rule == {"statusExclude": 20}

    def test_no_config_keeps_everything(self, hundred_records):
        """Test None and empty configurations filter nothing"""
        assert len(apply_filters(hundred_records, None)) == 100
        assert get_filter_summary(hundred_records, FilterConfig()).filtered_count == 100


class TestWarnings:
    """Tests for NO_RECORDS_MATCH and HIGH_EXCLUSION_RATE"""

    def test_no_records_match(self):
        """Test an empty result raises only NO_RECORDS_MATCH"""
        records = _records([{"status": "open"}] * 5)

        summary = get_filter_summary(records, _config(statusInclude=["closed"]))

        assert [w.code for w in summary.warnings] == ["NO_RECORDS_MATCH"]

    def test_high_exclusion_rate(self):
        """Test more than 90% excluded produces a rounded percentage warning"""
        records = _records([{"status": "open"}] * 1 + [{"status": "spam"}] * 10)

        summary = get_filter_summary(records, _config(statusExclude=["spam"]))

        assert [w.code for w in summary.warnings] == ["HIGH_EXCLUSION_RATE"]
        assert "91%" in summary.warnings[0].message

    def test_exactly_ninety_percent_is_not_high(self):
        """Test the threshold is strictly greater than 90%"""
        records = _records([{"status": "open"}] * 1 + [{"status": "spam"}] * 9)

        summary = get_filter_summary(records, _config(statusExclude=["spam"]))

        assert summary.warnings == []

    def test_empty_input(self):
        """Test an empty record set reports zero counts and NO_RECORDS_MATCH"""
        summary = get_filter_summary([], _config(minContentLength=5))

        assert summary.total_count == 0
        assert [w.code for w in summary.warnings] == ["NO_RECORDS_MATCH"]


class TestRules:
    """Tests for individual rule semantics"""

    def test_min_content_length_uses_first_content_field(self):
        """Test the first present content field is measured"""
        records = _records([
            {"body": "long enough body", "text": "x"},
            {"message": "tiny"},
            {"subject": "no content field at all"},
        ])

        kept = apply_filters(records, _config(minContentLength=10))

        assert [r.row_index for r in kept] == [0, 2]

    def test_status_matching_is_case_insensitive(self):
        """Test status allow-list comparison ignores case"""
        records = _records([{"state": "SOLVED"}, {"ticket_status": "open"}, {"other": 1}])

        kept = apply_filters(records, _config(statusInclude=["solved"]))

        assert [r.row_index for r in kept] == [0, 2]

    def test_min_conversation_length(self):
        """Test conversations shorter than the threshold are dropped, keyless records pass"""
        records = _records([
            {"ticket_id": "A"}, {"ticket_id": "A"}, {"ticket_id": "A"},
            {"ticket_id": "B"},
            {"body": "no key"},
            {"conversation_id": 5}, {"conversation_id": "5"},
        ])

        kept = apply_filters(records, _config(minConversationLength=2))

        assert [r.row_index for r in kept] == [0, 1, 2, 4, 5, 6]

    def test_date_range_inclusive_bounds(self):
        """Test records outside the window are dropped and undated records pass"""
        records = _records([
            {"created_at": "2023-12-31T23:59:59Z"},
            {"created_at": "2024-01-01"},
            {"date": "2024-06-15", "created_at": "1999-01-01"},
            {"timestamp": "2024-12-31T00:00:00"},
            {"timestamp": "2024-12-31T10:00:00"},
            {"created_at": "garbage"},
            {"subject": "undated"},
        ])

        kept = apply_filters(records, _config(dateRange={"start": "2024-01-01", "end": "2024-12-31"}))

        assert [r.row_index for r in kept] == [1, 2, 3, 5, 6]

    def test_open_ended_date_range(self):
        """Test a range with only a start bound"""
        records = _records([{"date": "2020-01-01"}, {"date": "2030-01-01"}])

        kept = apply_filters(records, _config(dateRange={"start": "2024-01-01"}))

        assert [r.row_index for r in kept] == [1]

    def test_date_range_ignores_yearless_values(self):
        """Test values without a year count as undated, whatever today is"""
        records = _records([{"created_at": "June 5"}, {"created_at": "12"}, {"created_at": "June 5 2020"}])

        kept = apply_filters(records, _config(dateRange={"start": "2024-01-01"}))

        assert [r.row_index for r in kept] == [0, 1]

    def test_category_include(self):
        """Test categoryInclude runs after the date rule and is reported as category"""
        records = _records([{"category": "Billing"}, {"type": "shipping"}, {"ticket_type": "billing"}, {}])

        summary = get_filter_summary(records, _config(categoryInclude=["billing"]))

        assert summary.filtered_count == 3
        assert summary.filter_breakdown.by_rule == {"category": 1}

    def test_plain_mappings_accepted(self):
        """Test the filter also works on mapped dictionaries"""
        kept = apply_filters([{"content": "abc"}, {"content": "abcdef"}], _config(minContentLength=4))

        assert kept == [{"content": "abcdef"}]

    def test_rule_order_is_fixed(self):
        """Test rules always run in the documented order regardless of config key order"""
        records = _records([{"content": "short", "status": "spam", "category": "x"}])
        config = _config(categoryInclude=["y"], statusExclude=["spam"], minContentLength=10)

        summary = get_filter_summary(records, config)

        assert [p.rule for p in summary.filter_breakdown.progressive_counts] == [
            "minContentLength",
            "statusExclude",
            "category",
        ]
        assert summary.filter_breakdown.by_rule == {"minContentLength": 1, "statusExclude": 0, "category": 0}

    @given(st.lists(st.text(max_size=30), max_size=40), st.integers(min_value=0, max_value=20))
    def test_property_counts_add_up(self, contents, threshold):
        """Property test: total = filtered + excluded and by_rule sums to excluded"""
        records = _records([{"content": c} for c in contents])

        summary = get_filter_summary(records, _config(minContentLength=threshold))

        assert summary.total_count == summary.filtered_count + summary.excluded_count
        assert sum(summary.filter_breakdown.by_rule.values()) == summary.excluded_count

"""
Tests for Industry Benchmark Lookup

Tests cover:
- Loading the packaged tables and alternative files
- Percentile matching
- "ahead of / behind" messages, including inverted metrics and flow efficiency
- Cohort messages
"""

import json

import pytest

from flowmetrics.benchmarks.industry_standard import (
    FLOW_EFFICIENCY_LABEL,
    TABLE_NAMES,
    BenchmarkTable,
    CohortBand,
    PercentileRow,
    get_benchmarks,
    get_industry_cohort_message,
    get_industry_standard_message,
    get_matching_percentile,
    load_benchmarks,
)
from flowmetrics.core.config import reset_config


@pytest.fixture(scope="module")
def benchmarks():
    """Packaged benchmark tables"""
    return load_benchmarks()


@pytest.fixture
def small_table():
    """Hand-made table for injection"""
    return BenchmarkTable(
        percentiles=(PercentileRow(10, 5), PercentileRow(60, 20), PercentileRow(90, 40)),
        cohorts=(CohortBand("Low Performers", 0, 19), CohortBand("Elite Performers", 20, 100)),
    )


class TestLoadBenchmarks:
    """Test reading benchmark tables"""

    def test_packaged_tables(self, benchmarks):
        """Test every table is present with ascending values"""
        for name in TABLE_NAMES:
            table = getattr(benchmarks, name)
            values = [row.value for row in table.percentiles]
            assert values == sorted(values)
            assert len(table.cohorts) == 4

    def test_service_level_cohorts(self, benchmarks):
        """Test the packaged service level bands"""
        bands = [(band.label, band.start) for band in benchmarks.service_level_expectation.cohorts]
        assert bands[:3] == [("Low Performers", 0), ("Medium Performers", 53), ("High Performers", 67)]

    def test_alternative_file(self, tmp_path):
        """Test tables can be loaded from another file"""
        table = {
            "percentiles": [{"percentile": 50, "value": 3}, {"percentile": 10, "value": 1}],
            "cohorts": [{"label": "Everyone", "start": 0, "end": 100}],
        }
        path = tmp_path / "benchmarks.json"
        path.write_text(json.dumps({name: table for name in TABLE_NAMES}), encoding="utf-8")

        loaded = load_benchmarks(path)

        assert [row.value for row in loaded.flow_efficiency.percentiles] == [1, 3]

    def test_missing_table_raises(self, tmp_path):
        """Test a file without every table is rejected"""
        path = tmp_path / "benchmarks.json"
        path.write_text("{}", encoding="utf-8")

        with pytest.raises(KeyError):
            load_benchmarks(path)

    def test_get_benchmarks_uses_configured_file(self, tmp_path, monkeypatch):
        """Test FLOWMETRICS_BENCHMARK_FILE replaces the packaged tables"""
        table = {"percentiles": [{"percentile": 1, "value": 1}], "cohorts": []}
        path = tmp_path / "benchmarks.json"
        path.write_text(json.dumps({name: table for name in TABLE_NAMES}), encoding="utf-8")
        monkeypatch.setenv("FLOWMETRICS_BENCHMARK_FILE", str(path))
        reset_config()
        get_benchmarks.cache_clear()

        try:
            assert get_benchmarks().lead_time_team.cohorts == ()
        finally:
            monkeypatch.delenv("FLOWMETRICS_BENCHMARK_FILE")
            reset_config()
            get_benchmarks.cache_clear()


class TestIndustryStandardMessage:
    """Test comparison messages against the packaged tables"""

    @pytest.mark.parametrize("value, percentile", [(93, 92), (90, 88), (24, 51)])
    def test_service_level(self, benchmarks, value, percentile):
        """Test higher service levels are ahead of the industry"""
        message = get_industry_standard_message(
            value, benchmarks.service_level_expectation.percentiles, "Fitness Level"
        )
        assert message == f"You are <b>ahead of {percentile}%</b> the industry for Fitness Level."

    def test_lower_half_is_behind(self, benchmarks):
        """Test values below the 50th percentile are behind"""
        message = get_industry_standard_message(
            13, benchmarks.customer_value.percentiles, "Process Value"
        )
        assert message == "You are <b>behind 91%</b> the industry for Process Value."

    def test_inverted_lead_time(self, benchmarks):
        """Test a long team lead time is behind the industry"""
        message = get_industry_standard_message(
            22, benchmarks.lead_time_team.percentiles, "Lead Time", invert_percentile=True
        )
        assert message == "You are <b>behind 51%</b> the industry for Lead Time."

    def test_inverted_short_lead_time_is_ahead(self, benchmarks):
        """Test a short team lead time is ahead of the industry"""
        message = get_industry_standard_message(
            5, benchmarks.lead_time_team.percentiles, "Lead Time", invert_percentile=True
        )
        assert message == "You are <b>ahead of 97%</b> the industry for Lead Time."

    def test_flow_efficiency(self, benchmarks):
        """Test flow efficiency always reports the share ahead"""
        message = get_industry_standard_message(
            50, benchmarks.flow_efficiency.percentiles, FLOW_EFFICIENCY_LABEL
        )
        assert message == "You are <b>ahead of 76%</b> the industry for Process Flow Efficiency."

    def test_injected_table(self, small_table):
        """Test messages work against any table"""
        assert get_matching_percentile(25, small_table.percentiles) == 60
        assert get_matching_percentile(1, small_table.percentiles) == 0


class TestIndustryCohortMessage:
    """Test cohort messages"""

    def test_elite_service_level(self, benchmarks):
        """Test a service level in the elite band"""
        message = get_industry_cohort_message(93, benchmarks.service_level_expectation.cohorts, "Fitness Level", "%")
        assert message == (
            "Your Fitness Level of <b>93</b>% matches with the industry's <b>Elite Performers</b> cohort."
        )

    def test_portfolio_lead_time(self, benchmarks):
        """Test a portfolio lead time in the high band"""
        message = get_industry_cohort_message(120, benchmarks.lead_time_portfolio.cohorts, "Lead Time", " days")
        assert "<b>120</b> days" in message
        assert "<b>High Performers</b>" in message

    def test_band_bounds_inclusive(self, small_table):
        """Test a value on a band boundary"""
        message = get_industry_cohort_message(20, small_table.cohorts, "Process Value", "%")
        assert "<b>Elite Performers</b>" in message

    def test_value_outside_bands(self, small_table):
        """Test a value matching no band gives an empty label"""
        message = get_industry_cohort_message(19.5, small_table.cohorts, "Process Value", "%")
        assert "<b></b> cohort" in message

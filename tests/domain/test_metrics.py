"""
Tests for Metric Result Models

Tests cover:
- TrendAnalysisStructure emptiness and serialization
- BoxPlot and EmptyBoxPlot as alternatives of one result type
- DistributionSummary serialization
- Constants singletons
"""

from dataclasses import FrozenInstanceError

import pytest

from flowmetrics.domain.constants import statistics_config, throughput_config, trend_config
from flowmetrics.domain.metrics import (
    EMPTY_TREND,
    BoxPlot,
    DistributionSummary,
    EmptyBoxPlot,
    TrendAnalysis,
    TrendAnalysisStructure,
)


class TestTrendAnalysisStructure:
    """Test trend comparison results"""

    def test_empty_trend(self):
        """Test the empty trend has no text"""
        assert EMPTY_TREND.is_empty
        assert not TrendAnalysisStructure(10, "more", "Up", "green").is_empty

    def test_to_dict(self):
        """Test camelCase serialization"""
        trend = TrendAnalysisStructure(10, "more compared to last week", "Up", "green")
        assert trend.to_dict() == {
            "percentage": 10,
            "text": "more compared to last week",
            "arrowDirection": "Up",
            "arrowColour": "green",
        }

    def test_trend_analysis_defaults_to_empty(self):
        """Test every comparison defaults to the empty trend"""
        data = TrendAnalysis().to_dict()
        assert data["lastWeek"] == EMPTY_TREND.to_dict()
        assert data["lastFourWeeks"]["text"] == ""


class TestBoxPlotResults:
    """Test box plot result alternatives"""

    def test_box_plot_not_empty(self):
        """Test a computed box plot reports not empty"""
        box_plot = BoxPlot(5, 2, 8, 6, -7, 17, (), (30.0,))

        assert not box_plot.is_empty
        assert box_plot.to_dict()["upperOutliers"] == [30.0]

    def test_empty_box_plot(self):
        """Test the empty alternative serializes every statistic as None"""
        data = EmptyBoxPlot().to_dict()

        assert EmptyBoxPlot().is_empty
        assert data["median"] is None
        assert data["lowerOutliers"] == []


class TestDistributionSummary:
    """Test distribution summary"""

    def test_empty_summary(self):
        """Test the default summary has no statistics"""
        data = DistributionSummary().to_dict()
        assert data["minimum"] is None
        assert data["modes"] == []

    def test_to_dict(self):
        """Test keys of a populated summary"""
        summary = DistributionSummary(minimum=1, maximum=9, modes=(3.0,), percentile_85th=8.2)
        data = summary.to_dict()
        assert data["percentile85th"] == 8.2
        assert data["modes"] == [3.0]


class TestConstants:
    """Test frozen configuration"""

    def test_variability_constants_are_distinct(self):
        """Test the lead time multiplier and throughput ratio limits"""
        assert statistics_config.HIGH_VARIABILITY_LIMIT == 5.6
        assert throughput_config.THROUGHPUT_VARIABILITY_LIMIT == 0.4
        assert throughput_config.DEFAULT_ROLLING_VARIABILITY == 0.4

    def test_display_limit(self):
        """Test the percentage cap"""
        assert trend_config.DISPLAY_PERCENTAGE_LIMIT == 9999

    def test_frozen(self):
        """Test constants cannot be changed"""
        with pytest.raises(FrozenInstanceError):
            statistics_config.HIGH_VARIABILITY_LIMIT = 3.0  # type: ignore[misc]

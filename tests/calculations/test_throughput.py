"""
Tests for Throughput Calculations

Tests cover:
- Weekly throughput run chart and delivery-rate statistics
- Throughput data and average weekly throughput
- Trend analysis from departure weeks
- Summary table by normalised demand
- Classification breakdowns of completed work
- One provider call per request
"""

from datetime import UTC, date, datetime

import pytest

from flowmetrics.calculations.breakdowns import CategoryCount
from flowmetrics.calculations.throughput import ThroughputCalculations, build_weekly_throughput
from flowmetrics.domain.metrics import BoxPlot, EmptyBoxPlot
from flowmetrics.domain.work_items import StateCategory, WorkItem
from flowmetrics.providers.filters import QueryFilters
from flowmetrics.providers.interfaces import PredefinedFilterTags


def departed(work_item_id, day, **fields):
    return WorkItem(work_item_id=work_item_id, departure_datetime=datetime(2024, 3, day, 12, tzinfo=UTC), **fields)


# ISO weeks 10 to 13 of 2024 hold 1, 2, 1 and 3 departures
COMPLETED = [
    departed("A", 5, flomatika_work_item_type_id="1", class_of_service_id="2", assigned_to="Sam"),
    departed("B", 12, flomatika_work_item_type_id="1", class_of_service_id="2"),
    departed("C", 13, flomatika_work_item_type_id="2", nature_of_work_id="1"),
    departed("D", 19, flomatika_work_item_type_id="2", value_area_id="2"),
    departed("E", 26, flomatika_work_item_type_id="2"),
    departed("F", 27, flomatika_work_item_type_id="2"),
    departed("G", 28, flomatika_work_item_type_id="1"),
]


@pytest.fixture
def state(make_state):
    return make_state(work_items={StateCategory.COMPLETED: COMPLETED})


@pytest.fixture
def calculations(state, march_filters, work_item_types, classification):
    return ThroughputCalculations(
        "org-1",
        state,
        march_filters,
        work_item_types=work_item_types,
        class_of_service=classification,
        nature_of_work=classification,
        value_area=classification,
    )


class TestBuildWeeklyThroughput:
    """Test the weekly series"""

    def test_weeks_filled_over_interval(self, march_filters):
        """Test weeks without departures are kept with no items"""
        series = build_weekly_throughput([departed("A", 5), departed("B", 27)], march_filters.date_period())

        assert [week.week_ending_on for week in series] == [
            date(2024, 3, 10),
            date(2024, 3, 17),
            date(2024, 3, 24),
            date(2024, 3, 31),
        ]
        assert [week.count for week in series] == [1, 0, 0, 1]
        assert series[3].to_dict() == {"weekEndingOn": "2024-03-31", "workItems": [{"id": "B"}]}

    def test_no_departures(self, march_filters):
        """Test an empty series without completed work"""
        assert build_weekly_throughput([WorkItem(work_item_id="A")], march_filters.date_period()) == []

    def test_client_timezone(self):
        """Test departures are assigned to weeks in the client timezone"""
        filters = QueryFilters(start="2024-03-04", end="2024-03-17", client_timezone="Australia/Sydney")
        # Sunday 22:00 UTC is Monday morning in Sydney
        item = WorkItem(work_item_id="A", departure_datetime=datetime(2024, 3, 10, 22, tzinfo=UTC))

        series = build_weekly_throughput([item], filters.date_period())

        assert [week.count for week in series] == [0, 1]


class TestDeliveryRate:
    """Test run chart and weekly delivery statistics"""

    @pytest.mark.asyncio
    async def test_run_chart(self, calculations):
        """Test weekly counts over the window"""
        run_chart = await calculations.get_throughput_run_chart_data()

        assert [week.count for week in run_chart] == [1, 2, 1, 3]

    @pytest.mark.asyncio
    async def test_statistics(self, calculations, state):
        """Test percentile, minimum, maximum and box plot share one fetch"""
        assert await calculations.get_percentile(50) == 1.5
        assert await calculations.get_minimum() == 1
        assert await calculations.get_maximum() == 3

        box_plot = await calculations.get_delivery_rate_box_plot()

        assert isinstance(box_plot, BoxPlot)
        assert box_plot.median == 1.5
        assert state.count("get_work_items") == 1

    @pytest.mark.asyncio
    async def test_empty(self, make_state, march_filters, work_item_types, classification):
        """Test statistics without completed work"""
        calculations = ThroughputCalculations(
            "org-1", make_state(), march_filters, work_item_types, classification, classification, classification
        )

        assert await calculations.get_percentile(85) == 0
        assert await calculations.get_minimum() == 0
        assert await calculations.get_maximum() == 0
        assert isinstance(await calculations.get_delivery_rate_box_plot(), EmptyBoxPlot)


class TestThroughputData:
    """Test counts and averages"""

    @pytest.mark.asyncio
    async def test_throughput_data(self, calculations):
        """Test unique count and departure span"""
        data = await calculations.get_throughput_data(COMPLETED + [COMPLETED[0]])

        assert data.count == 7
        assert data.from_date == datetime(2024, 3, 5, 12, tzinfo=UTC)
        assert data.until_date == datetime(2024, 3, 28, 12, tzinfo=UTC)
        assert data.num_days == 23

    @pytest.mark.asyncio
    async def test_throughput_data_without_departures(self, calculations):
        """Test an empty list spans no time"""
        data = await calculations.get_throughput_data([])

        assert data.count == 0
        assert data.num_days == 0

    def test_average_throughput(self, calculations):
        """Test the mean weekly count over whole weeks, rounded half up"""
        # weekly counts 1, 2, 1, 3
        assert calculations.get_average_throughput(COMPLETED) == 2

    def test_average_throughput_ignores_partial_week(self, make_state, work_item_types, classification):
        """Test a window ending mid-week stops at the previous Sunday"""
        filters = QueryFilters(start="2024-03-04", end="2024-03-27", client_timezone="UTC")
        calculations = ThroughputCalculations(
            "org-1", make_state(), filters, work_item_types, classification, classification, classification
        )

        # weeks 10 to 12 only: 1, 2 and 1
        assert calculations.get_average_throughput(COMPLETED) == 1


class TestTrendAnalysis:
    """Test throughput trends"""

    @pytest.mark.asyncio
    async def test_last_week(self, calculations):
        """Test the last complete week against the one before"""
        trend = await calculations.get_trend_analysis()

        # week 12 (1 item) against week 11 (2 items)
        assert trend.last_week.percentage == 50
        assert trend.last_week.arrow_direction == "Down"
        assert trend.last_week.text == "less compared to last week"
        assert trend.last_two_weeks.is_empty
        assert trend.last_four_weeks.is_empty


class TestSummaryTable:
    """Test the per-demand summary"""

    @pytest.mark.asyncio
    async def test_rows_per_normalised_demand(self, make_state, march_filters, work_item_types, classification):
        """Test throughput, variability and trend for each demand"""
        demand_items = [
            departed("A", 5, normalised_display_name="Features"),
            departed("B", 12, normalised_display_name="Features"),
            departed("C", 13, normalised_display_name="Features"),
            departed("D", 19, normalised_display_name="Defects"),
            departed("E", 20, normalised_display_name="Features"),
        ]
        state = make_state(normalised_work_items={(StateCategory.COMPLETED, PredefinedFilterTags.DEMAND): demand_items})
        calculations = ThroughputCalculations(
            "org-1", state, march_filters, work_item_types, classification, classification, classification
        )

        rows = await calculations.get_throughput_summary_table()

        assert [(row.item_type_name, row.throughput) for row in rows] == [("Features", 4), ("Defects", 1)]
        # features: week 11 (2 items) against week 10 (1 item)
        assert rows[0].trend_analysis_throughput.arrow_direction == "Up"
        assert rows[0].trend_analysis_throughput.percentage == 100
        assert rows[1].trend_analysis_throughput.arrow_direction == "Stable"
        assert rows[0].variability_throughput == "Low"
        assert rows[0].to_dict()["itemTypeName"] == "Features"

    @pytest.mark.asyncio
    async def test_empty(self, calculations):
        """Test no rows without normalised items"""
        assert await calculations.get_throughput_summary_table() == []


class TestBreakdowns:
    """Test classification breakdowns of completed work"""

    @pytest.mark.asyncio
    async def test_work_item_types(self, calculations):
        """Test counts per work item type name"""
        assert await calculations.get_work_item_type_analysis_data() == [
            CategoryCount("Bug", 4),
            CategoryCount("User Story", 3),
        ]

    @pytest.mark.asyncio
    async def test_class_of_service(self, calculations):
        """Test counts per class of service"""
        assert await calculations.get_class_of_service_analysis_data() == [
            CategoryCount("Expedite", 2),
            CategoryCount("Not classified", 5),
        ]

    @pytest.mark.asyncio
    async def test_planned_unplanned_and_value_area(self, calculations):
        """Test nature of work and value area counts"""
        assert CategoryCount("Standard", 1) in await calculations.get_planned_unplanned_analysis_data()
        assert await calculations.get_value_area_analysis_data() == [CategoryCount("Expedite", 1)]

    @pytest.mark.asyncio
    async def test_assignees(self, calculations):
        """Test assigned items come before unassigned ones"""
        groups = await calculations.get_assigned_to_analysis_data()

        assert groups[0].name == "Sam"
        assert groups[-1].name is None

    @pytest.mark.asyncio
    async def test_lookups_cached(self, calculations, work_item_types):
        """Test the type list is fetched once per request"""
        await calculations.get_work_item_type_analysis_data()
        await calculations.get_work_item_type_analysis_data()

        assert work_item_types.calls == ["get_types"]

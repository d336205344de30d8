"""
Tests for Work In Progress Calculations

Tests cover:
- Daily WIP and the run chart including completed items
- WIP count within the analysis window
- WIP trend colours
- Summary table with flow debt and daily-WIP variability per demand
- WIP age statistics, scatterplot and breakdowns
"""

from datetime import UTC, date, datetime

import pytest

from flowmetrics.calculations.breakdowns import CategoryCount
from flowmetrics.calculations.lead_time import PercentileByName
from flowmetrics.calculations.wip import WipCalculations, build_daily_wip, format_flow_debt, is_in_progress_on
from flowmetrics.domain.metrics import BoxPlot
from flowmetrics.domain.work_items import StateCategory, WorkItem
from flowmetrics.providers.filters import QueryFilters
from flowmetrics.providers.interfaces import PredefinedFilterTags


def at(month, day, hour=12):
    return datetime(2024, month, day, hour, tzinfo=UTC)


W1 = WorkItem(
    work_item_id="W1",
    commitment_datetime=at(2, 20),
    wip_age_in_whole_days=20,
    state="In Dev",
    flomatika_work_item_type_id="1",
    flomatika_work_item_type_level="Team",
    normalised_display_name="Features",
)
W2 = WorkItem(
    work_item_id="W2",
    commitment_datetime=at(3, 6),
    wip_age_in_whole_days=5,
    state="In Test",
    flomatika_work_item_type_id="2",
    normalised_display_name="Features",
)
W3 = WorkItem(
    work_item_id="W3",
    commitment_datetime=at(3, 8, 9),
    wip_age_in_whole_days=2,
    state="In Dev",
    flomatika_work_item_type_id="2",
    flomatika_work_item_type_level="Team",
    normalised_display_name="Defects",
)
C1 = WorkItem(
    work_item_id="C1",
    commitment_datetime=at(3, 1),
    departure_datetime=at(3, 5),
    normalised_display_name="Features",
)

DEMAND = PredefinedFilterTags.DEMAND


@pytest.fixture
def week_filters():
    """Monday 4 March to Sunday 10 March 2024, UTC"""
    return QueryFilters(start="2024-03-04", end="2024-03-10", client_timezone="UTC")


@pytest.fixture
def state(make_state):
    return make_state(
        work_items={StateCategory.IN_PROGRESS: [W1, W2, W3], StateCategory.COMPLETED: [C1]},
        normalised_work_items={
            (StateCategory.IN_PROGRESS, DEMAND): [W1, W2, W3],
            (StateCategory.COMPLETED, DEMAND): [C1],
        },
    )


@pytest.fixture
def calculations(state, week_filters, work_item_types, classification):
    return WipCalculations(
        "org-1",
        state,
        week_filters,
        work_item_types=work_item_types,
        class_of_service=classification,
        nature_of_work=classification,
        value_area=classification,
    )


class TestDailyWip:
    """Test items in progress per day"""

    def test_in_progress_through_departure_day(self, week_filters):
        """Test an item counts from its commitment day to its departure day inclusive"""
        period = week_filters.date_period()

        assert is_in_progress_on(C1, at(3, 5, 0), period)
        assert not is_in_progress_on(C1, at(3, 6, 0), period)
        assert not is_in_progress_on(WorkItem(work_item_id="X"), at(3, 6, 0), period)

    def test_build_daily_wip(self, week_filters):
        """Test one count per day of the window"""
        daily = build_daily_wip([W1, W2, W3, C1], week_filters.date_period())

        assert daily[0] == (date(2024, 3, 4), 2)
        assert [count for _, count in daily] == [2, 2, 2, 2, 3, 3, 3]

    @pytest.mark.asyncio
    async def test_run_chart_includes_completed(self, calculations):
        """Test completed items count while they were in progress"""
        run_chart = await calculations.get_wip_run_chart()

        assert [count for _, count in run_chart] == [2, 2, 2, 2, 3, 3, 3]

    @pytest.mark.asyncio
    async def test_reads_without_date_window(self, calculations, state):
        """Test WIP is fetched with date filtering off"""
        await calculations.get_wip_run_chart()

        assert {call[3].filter_by_date for call in state.calls} == {False}


class TestWipCount:
    """Test the current WIP figure"""

    @pytest.mark.asyncio
    async def test_count_and_window_span(self, calculations):
        """Test all items are counted and the span covers commitments in the window"""
        data = await calculations.get_wip_count()

        assert data.count == 3
        assert data.count_in_date == 2
        assert data.from_date == at(3, 6)
        assert data.until_date == at(3, 8, 9)
        assert data.num_days == 2
        assert data.to_dict()["countInDate"] == 2

    @pytest.mark.asyncio
    async def test_nothing_committed_in_window(self, calculations):
        """Test the span is empty when every item started earlier"""
        data = await calculations.get_wip_count([W1])

        assert (data.count, data.count_in_date, data.num_days) == (1, 0, 0)
        assert data.from_date == data.until_date


class TestWipTrend:
    """Test the WIP trend"""

    @pytest.mark.asyncio
    async def test_arrows_are_yellow(self, make_state, march_filters, work_item_types, classification):
        """Test the trend follows daily WIP and neither direction is coloured as good"""
        joined_later = WorkItem(work_item_id="W4", commitment_datetime=at(3, 13))
        state = make_state(work_items={StateCategory.IN_PROGRESS: [W1, joined_later]})
        calculations = WipCalculations(
            "org-1", state, march_filters, work_item_types, classification, classification, classification
        )

        trend = await calculations.get_trend_analysis()

        # week 12 holds 14 item-days against 12 in week 11
        assert trend.last_week.arrow_direction == "Up"
        assert trend.last_week.percentage == 17
        assert trend.last_week.arrow_colour == "yellow"


class TestSummaryTable:
    """Test per-demand WIP rows"""

    def test_flow_debt(self):
        """Test WIP age as a multiple of lead time"""
        assert format_flow_debt(18, 10) == "2x"
        assert format_flow_debt(0, 10) == "0x"
        assert format_flow_debt(5, 0) == "0x"

    @pytest.mark.asyncio
    async def test_rows(self, calculations):
        """Test age percentile, count, flow debt and average per demand"""
        rows = await calculations.get_wip_for_summary_table([PercentileByName("Features", 10)])

        assert [row.item_type_name for row in rows] == ["Features", "Defects"]
        assert rows[0].wip_age_85_percentile == 18
        assert rows[0].wip_count == 2
        assert rows[0].flow_debt == "2x"
        assert rows[0].wip_age_average == 13
        assert rows[1].flow_debt == "0x"
        assert rows[1].to_dict()["wipVariability"] == "-"

    @pytest.mark.asyncio
    async def test_no_wip(self, make_state, week_filters, work_item_types, classification):
        """Test no rows without normalised WIP"""
        calculations = WipCalculations(
            "org-1", make_state(), week_filters, work_item_types, classification, classification, classification
        )

        assert await calculations.get_wip_for_summary_table([]) == []

    @pytest.mark.asyncio
    async def test_variability(self, calculations):
        """Test daily WIP variability per demand, including completed items"""
        rows = await calculations.get_wip_variability_for_summary_table()

        assert {row.item_type_name: row.wip_variability for row in rows} == {"Features": "Low", "Defects": "High"}


class TestWipAge:
    """Test WIP age statistics and charts"""

    @pytest.mark.asyncio
    async def test_statistics(self, calculations, state):
        """Test age statistics from one fetch"""
        assert await calculations.get_minimum() == 2
        assert await calculations.get_maximum() == 20
        assert await calculations.get_average() == 9
        assert await calculations.get_modes() == [2, 5, 20]
        assert await calculations.get_percentile(50) == 5
        assert isinstance(await calculations.get_wip_age_box_plot(), BoxPlot)
        assert (await calculations.get_distribution_summary()).maximum == 20
        assert state.count("get_work_items") == 1

    @pytest.mark.asyncio
    async def test_percentile_by_level(self, calculations, state):
        """Test the level percentile reads the extended items"""
        assert await calculations.get_percentile_by_work_item_type_level(85, "Team") == 17.3
        assert state.count("get_extended_work_items") == 1

    @pytest.mark.asyncio
    async def test_histogram_and_scatterplot(self, calculations):
        """Test chart data of in-progress items"""
        histogram = await calculations.get_histogram_data()
        scatterplot = await calculations.get_scatterplot()

        assert [datum.age_in_days for datum in histogram] == [2, 5, 20]
        assert scatterplot[0].to_dict()["commitmentDateNoTime"] == "2024-02-20"
        assert scatterplot[1].state == "In Test"


class TestBreakdowns:
    """Test breakdowns of in-progress work"""

    @pytest.mark.asyncio
    async def test_states(self, calculations):
        """Test counts per state"""
        assert await calculations.get_state_analysis_data() == [CategoryCount("In Dev", 2), CategoryCount("In Test", 1)]

    @pytest.mark.asyncio
    async def test_work_item_types(self, calculations):
        """Test counts per work item type name"""
        assert await calculations.get_work_item_type_analysis_data() == [
            CategoryCount("Bug", 2),
            CategoryCount("User Story", 1),
        ]

    @pytest.mark.asyncio
    async def test_unclassified(self, calculations):
        """Test items without a class of service"""
        assert await calculations.get_class_of_service_analysis_data() == [CategoryCount("Not classified", 3)]

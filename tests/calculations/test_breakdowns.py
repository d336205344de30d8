"""
Tests for Work Item Breakdowns

Tests cover:
- Label counting and ordering
- Classification lookups (type, class of service, nature of work, value area)
- Demand classification
- State and assignee groupings
"""

import pytest

from flowmetrics.calculations.breakdowns import (
    NOT_CLASSIFIED,
    UNKNOWN_STATE,
    CategoryCount,
    DemandTypes,
    assignee_breakdown,
    class_of_service_breakdown,
    classify_demand,
    count_by_label,
    demand_breakdown,
    nature_of_work_breakdown,
    state_breakdown,
    value_area_breakdown,
    work_item_type_breakdown,
)
from flowmetrics.domain.work_items import WorkItem
from flowmetrics.providers.interfaces import ClassificationEntry

LOOKUP = [ClassificationEntry(id="1", display_name="Standard"), ClassificationEntry(id="2", display_name="Expedite")]


def requirement(work_item_id, type_id, value_area_id=None):
    return WorkItem(
        work_item_id=work_item_id,
        flomatika_work_item_type_id=type_id,
        flomatika_work_item_type_level="Requirement",
        value_area_id=value_area_id,
    )


class TestCountByLabel:
    """Test the counting helper"""

    def test_alphabetical(self):
        """Test labels are ordered alphabetically"""
        assert count_by_label(["Story", "Bug", "Story"]) == [CategoryCount("Bug", 1), CategoryCount("Story", 2)]

    def test_missing_label_first(self):
        """Test a missing label sorts as the empty string"""
        assert count_by_label(["Bug", None])[0] == CategoryCount(None, 1)

    def test_to_dict(self):
        """Test the label key is configurable"""
        assert CategoryCount("Bug", 2).to_dict("state") == {"state": "Bug", "count": 2}


class TestClassificationBreakdowns:
    """Test lookups through classification lists"""

    def test_work_item_types(self):
        """Test type ids are translated; unknown or missing ids have no label"""
        items = [
            WorkItem(work_item_id="A", flomatika_work_item_type_id="1"),
            WorkItem(work_item_id="B", flomatika_work_item_type_id="9"),
            WorkItem(work_item_id="C"),
        ]

        assert work_item_type_breakdown(items, LOOKUP) == [CategoryCount(None, 2), CategoryCount("Standard", 1)]

    def test_class_of_service(self):
        """Test unclassified items are counted as such"""
        items = [
            WorkItem(work_item_id="A", class_of_service_id="2"),
            WorkItem(work_item_id="B", class_of_service_id="2"),
            WorkItem(work_item_id="C"),
        ]

        assert class_of_service_breakdown(items, LOOKUP) == [
            CategoryCount("Expedite", 2),
            CategoryCount(NOT_CLASSIFIED, 1),
        ]

    def test_nature_of_work(self):
        """Test planned/unplanned counts"""
        items = [WorkItem(work_item_id="A", nature_of_work_id="1"), WorkItem(work_item_id="B")]

        assert nature_of_work_breakdown(items, LOOKUP) == [
            CategoryCount(NOT_CLASSIFIED, 1),
            CategoryCount("Standard", 1),
        ]

    def test_value_area_skips_unclassified(self):
        """Test items without a value area are left out"""
        items = [WorkItem(work_item_id="A", value_area_id="1"), WorkItem(work_item_id="B")]

        assert value_area_breakdown(items, LOOKUP) == [CategoryCount("Standard", 1)]


class TestDemand:
    """Test demand classification"""

    @pytest.mark.parametrize(
        "type_id, value_area_id, expected",
        [
            ("4", None, DemandTypes.FAILURE),
            ("3", None, DemandTypes.VALUE),
            ("3", "1", DemandTypes.NON_VALUE),
            ("7", None, DemandTypes.NOT_APPLICABLE),
        ],
    )
    def test_requirement_items(self, type_id, value_area_id, expected):
        """Test requirement-level items by type and value area"""
        assert classify_demand(requirement("A", type_id, value_area_id)) == expected

    def test_other_levels_ignored(self):
        """Test items outside the requirement level have no demand type"""
        item = WorkItem(work_item_id="A", flomatika_work_item_type_id="4", flomatika_work_item_type_level="Portfolio")

        assert classify_demand(item) is None

    def test_breakdown_in_first_occurrence_order(self):
        """Test demand counts keep the order types are first seen"""
        items = [
            requirement("A", "3"),
            requirement("B", "4"),
            requirement("C", "3"),
            WorkItem(work_item_id="D"),
        ]

        assert demand_breakdown(items) == [CategoryCount(DemandTypes.VALUE, 2), CategoryCount(DemandTypes.FAILURE, 1)]


class TestStateAndAssignee:
    """Test state and assignee groupings"""

    def test_states(self):
        """Test items without a state are counted as unknown"""
        items = [WorkItem(work_item_id="A", state="Done"), WorkItem(work_item_id="B")]

        assert state_breakdown(items) == [CategoryCount("Done", 1), CategoryCount(UNKNOWN_STATE, 1)]

    def test_assignees_sorted_unassigned_last(self):
        """Test groups are ordered by name with unassigned items at the end"""
        items = [
            WorkItem(work_item_id="A", assigned_to="Sam"),
            WorkItem(work_item_id="B"),
            WorkItem(work_item_id="C", assigned_to="Alex"),
            WorkItem(work_item_id="D", assigned_to="Sam"),
        ]

        groups = assignee_breakdown(items)

        assert [(group.name, group.work_item_ids) for group in groups] == [
            ("Alex", ["C"]),
            ("Sam", ["A", "D"]),
            (None, ["B"]),
        ]
        assert groups[1].to_dict() == {"name": "Sam", "workItems": [{"id": "A"}, {"id": "D"}]}

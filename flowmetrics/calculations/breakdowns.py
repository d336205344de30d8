"""
Work Item Breakdowns

Counts of work items by a classification (work item type, demand, class of
service, nature of work, value area, state, assignee), shared by the
throughput and WIP calculations.

Classification ids are translated through the lookup lists returned by the
classification services; an id missing from the lookup yields a None label.
"""

from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from flowmetrics.domain.constants import demand_config
from flowmetrics.domain.work_items import WorkItem
from flowmetrics.providers.interfaces import ClassificationEntry

NOT_CLASSIFIED = "Not classified"
UNKNOWN_STATE = "Unknown state"


class DemandTypes:
    FAILURE = "Failure Demand"
    NON_VALUE = "Non-value Demand"
    VALUE = "Value Demand"
    NOT_APPLICABLE = "N/A"


@dataclass(frozen=True)
class CategoryCount:
    label: str | None
    count: int

    def to_dict(self, label_key: str = "type") -> dict[str, Any]:
        return {label_key: self.label, "count": self.count}


@dataclass
class AssigneeGroup:
    name: str | None
    work_item_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "workItems": [{"id": item_id} for item_id in self.work_item_ids]}


def count_by_label(labels: Iterable[str | None]) -> list[CategoryCount]:
    """
    Count labels, ordered alphabetically (a missing label sorts as '').

    Example:
        >>> count_by_label(["Bug", "Story", "Bug"])
        [CategoryCount(label='Bug', count=2), CategoryCount(label='Story', count=1)]
    """
    counts = Counter(labels)
    return [
        CategoryCount(label=label, count=count)
        for label, count in sorted(counts.items(), key=lambda pair: pair[0] or "")
    ]


def _lookup(entries: Sequence[ClassificationEntry]) -> dict[str, str]:
    return {entry.id: entry.display_name for entry in entries}


def work_item_type_breakdown(
    work_items: Iterable[WorkItem], work_item_types: Sequence[ClassificationEntry]
) -> list[CategoryCount]:
    names = _lookup(work_item_types)
    return count_by_label(
        names.get(item.flomatika_work_item_type_id) if item.flomatika_work_item_type_id else None
        for item in work_items
    )


def classify_demand(work_item: WorkItem) -> str | None:
    """
    Demand type of a requirement-level item; None for other levels.

    Failure demand is type '4'. Type '3' is value demand, or non-value demand
    when its value area is '1'.
    """
    if work_item.flomatika_work_item_type_level != demand_config.REQUIREMENT_LEVEL:
        return None

    if work_item.flomatika_work_item_type_id == demand_config.FAILURE_DEMAND_TYPE_ID:
        return DemandTypes.FAILURE
    if work_item.flomatika_work_item_type_id == demand_config.VALUE_DEMAND_TYPE_ID:
        if work_item.value_area_id == demand_config.NON_VALUE_AREA_ID:
            return DemandTypes.NON_VALUE
        return DemandTypes.VALUE
    return DemandTypes.NOT_APPLICABLE


def demand_breakdown(work_items: Iterable[WorkItem]) -> list[CategoryCount]:
    """Demand type counts of requirement-level items, in order of first occurrence."""
    counts: dict[str, int] = {}
    for item in work_items:
        demand = classify_demand(item)
        if demand is None:
            continue
        counts[demand] = counts.get(demand, 0) + 1
    return [CategoryCount(label=label, count=count) for label, count in counts.items()]


def class_of_service_breakdown(
    work_items: Iterable[WorkItem], classes_of_service: Sequence[ClassificationEntry]
) -> list[CategoryCount]:
    names = _lookup(classes_of_service)
    return count_by_label(
        names.get(item.class_of_service_id) if item.class_of_service_id else NOT_CLASSIFIED
        for item in work_items
    )


def nature_of_work_breakdown(
    work_items: Iterable[WorkItem], natures_of_work: Sequence[ClassificationEntry]
) -> list[CategoryCount]:
    """Planned/unplanned counts."""
    names = _lookup(natures_of_work)
    return count_by_label(
        names.get(item.nature_of_work_id) if item.nature_of_work_id else NOT_CLASSIFIED
        for item in work_items
    )


def value_area_breakdown(
    work_items: Iterable[WorkItem], value_areas: Sequence[ClassificationEntry]
) -> list[CategoryCount]:
    """Counts of items that have a value area; unclassified items are left out."""
    names = _lookup(value_areas)
    return count_by_label(names.get(item.value_area_id) for item in work_items if item.value_area_id)


def state_breakdown(work_items: Iterable[WorkItem]) -> list[CategoryCount]:
    return count_by_label(item.state or UNKNOWN_STATE for item in work_items)


def assignee_breakdown(work_items: Iterable[WorkItem]) -> list[AssigneeGroup]:
    """
    Work item ids per assignee, ordered by assignee name.

    Unassigned items form the last group (name None).
    """
    ordered = sorted(work_items, key=lambda item: (item.assigned_to is None, item.assigned_to or ""))

    groups: list[AssigneeGroup] = []
    for item in ordered:
        if groups and groups[-1].name == item.assigned_to:
            groups[-1].work_item_ids.append(item.work_item_id)
        else:
            groups.append(AssigneeGroup(name=item.assigned_to, work_item_ids=[item.work_item_id]))
    return groups

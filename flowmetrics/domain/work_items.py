"""
Work item domain models

Represents the read-only work items the calculations consume:
    - WorkItem: one unit of delivered, in-progress or proposed work
    - StateCategory: lifecycle category the state provider filters by
    - PerspectiveProfile: which date/age fields apply to past, present or future analysis

Work items are created by ingestion and fetched per request; nothing in this
package mutates or persists them. Date adjustments produce copies.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from flowmetrics.core.logging_config import get_logger
from flowmetrics.utils.datetime_utils import parse_iso_timestamp
from flowmetrics.utils.error_handling import log_and_continue

logger = get_logger(__name__)

PERSPECTIVES = ("past", "present", "future")
PERSPECTIVE_ALIASES = {"upcoming": "future"}


class StateCategory(Enum):
    PROPOSED = "proposed"
    IN_PROGRESS = "inprogress"
    COMPLETED = "completed"
    REMOVED = "removed"


@dataclass(frozen=True)
class WorkItem:
    """
    A work item as returned by the state provider.

    Timestamps are timezone-aware datetimes (or None when the item has not
    reached that point of its lifecycle). Durations are whole days, except
    active_time and waiting_time which are the accumulated days spent in
    active and queue states.

    Example:
        item = WorkItem.from_dict({
            "workItemId": "PRJ-12",
            "flomatikaWorkItemTypeName": "User Story",
            "departureDateTime": "2024-03-08T16:00:00Z",
            "leadTimeInWholeDays": 6,
        })
        if item.is_completed:
            print(f"{item.work_item_id} took {item.lead_time_in_whole_days} days")
    """

    work_item_id: str
    title: str | None = None
    work_item_type: str | None = None
    flomatika_work_item_type_id: str | None = None
    flomatika_work_item_type_name: str | None = None
    flomatika_work_item_type_level: str | None = None
    project_id: str | None = None
    state: str | None = None
    class_of_service_id: str | None = None
    nature_of_work_id: str | None = None
    value_area_id: str | None = None
    normalised_display_name: str | None = None
    assigned_to: str | None = None

    arrival_datetime: datetime | None = None
    commitment_datetime: datetime | None = None
    departure_datetime: datetime | None = None

    lead_time_in_whole_days: float | None = None
    wip_age_in_whole_days: float | None = None
    inventory_age_in_whole_days: float | None = None
    active_time: float | None = None
    waiting_time: float | None = None

    @property
    def is_completed(self) -> bool:
        return self.departure_datetime is not None

    def get_number(self, field_name: str) -> float:
        """Numeric attribute by name, with a missing value read as 0."""
        value = getattr(self, field_name)
        return value or 0

    @classmethod
    def from_dict(cls, row: dict[str, Any]) -> "WorkItem":
        """
        Build a work item from a provider row (camelCase keys).

        Raises:
            KeyError: If workItemId is missing
            ValueError: If a timestamp cannot be parsed
        """
        return cls(
            work_item_id=str(row["workItemId"]),
            title=row.get("title"),
            work_item_type=row.get("workItemType"),
            flomatika_work_item_type_id=_optional_str(row.get("flomatikaWorkItemTypeId")),
            flomatika_work_item_type_name=row.get("flomatikaWorkItemTypeName"),
            flomatika_work_item_type_level=row.get("flomatikaWorkItemTypeLevel"),
            project_id=_optional_str(row.get("projectId")),
            state=row.get("state"),
            class_of_service_id=_optional_str(row.get("classOfServiceId")),
            nature_of_work_id=_optional_str(row.get("natureOfWorkId")),
            value_area_id=_optional_str(row.get("valueAreaId")),
            normalised_display_name=row.get("normalisedDisplayName"),
            assigned_to=row.get("assignedTo"),
            arrival_datetime=_timestamp(row, "arrivalDateTime", "arrivalDate"),
            commitment_datetime=_timestamp(row, "commitmentDateTime", "commitmentDate"),
            departure_datetime=_timestamp(row, "departureDateTime", "departureDate"),
            lead_time_in_whole_days=row.get("leadTimeInWholeDays"),
            wip_age_in_whole_days=row.get("wipAgeInWholeDays"),
            inventory_age_in_whole_days=row.get("inventoryAgeInWholeDays"),
            active_time=row.get("activeTime"),
            waiting_time=row.get("waitingTime"),
        )


def _optional_str(value: Any) -> str | None:
    return None if value is None else str(value)


def _timestamp(row: dict[str, Any], *keys: str) -> datetime | None:
    for key in keys:
        value = row.get(key)
        if isinstance(value, datetime):
            return value
        if value:
            return parse_iso_timestamp(value)
    return None


def parse_work_items(rows: list[dict[str, Any]]) -> list[WorkItem]:
    """
    Parse provider rows, skipping (and logging) malformed ones.

    Args:
        rows: Raw rows with camelCase keys

    Returns:
        Parsed work items, in input order
    """
    items = []
    for row in rows:
        try:
            items.append(WorkItem.from_dict(row))
        except (KeyError, ValueError) as e:
            log_and_continue(
                logger,
                e,
                context={"work_item_id": row.get("workItemId")},
                error_type="Work item parsing",
            )
            continue
    return items


@dataclass(frozen=True)
class PerspectiveProfile:
    """
    Fields that apply to one analysis perspective.

    Attributes:
        perspective: 'past', 'present' or 'future'
        state_category: State category fetched for this perspective
        age_field: WorkItem duration attribute measured against the SLE
        join_date_field: Date an item enters the perspective
        leave_date_field: Date an item leaves the perspective (None for past)
        historical_categories: Categories needed to reconstruct history
    """

    perspective: str
    state_category: StateCategory
    age_field: str
    join_date_field: str
    leave_date_field: str | None
    historical_categories: tuple[StateCategory, ...]


_PROFILES = {
    "past": PerspectiveProfile(
        perspective="past",
        state_category=StateCategory.COMPLETED,
        age_field="lead_time_in_whole_days",
        join_date_field="departure_datetime",
        leave_date_field=None,
        historical_categories=(StateCategory.COMPLETED,),
    ),
    "present": PerspectiveProfile(
        perspective="present",
        state_category=StateCategory.IN_PROGRESS,
        age_field="wip_age_in_whole_days",
        join_date_field="commitment_datetime",
        leave_date_field="departure_datetime",
        historical_categories=(StateCategory.IN_PROGRESS, StateCategory.COMPLETED),
    ),
    "future": PerspectiveProfile(
        perspective="future",
        state_category=StateCategory.PROPOSED,
        age_field="inventory_age_in_whole_days",
        join_date_field="arrival_datetime",
        leave_date_field="commitment_datetime",
        historical_categories=(
            StateCategory.PROPOSED,
            StateCategory.IN_PROGRESS,
            StateCategory.COMPLETED,
        ),
    ),
}


def normalise_perspective(perspective: str | None) -> str | None:
    """Canonical perspective name ('upcoming' becomes 'future'), or None when unknown."""
    if not isinstance(perspective, str):
        return None
    name = PERSPECTIVE_ALIASES.get(perspective, perspective)
    return name if name in PERSPECTIVES else None


def get_perspective_profile(perspective: str | None) -> PerspectiveProfile:
    """
    Profile for a perspective.

    Unknown perspectives fall back to the present (WIP) profile with a warning.
    """
    name = normalise_perspective(perspective)
    if name is None:
        logger.warning("Invalid perspective provided, using 'present'", extra={"perspective": perspective})
        return _PROFILES["present"]
    return _PROFILES[name]

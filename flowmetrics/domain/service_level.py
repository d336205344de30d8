"""
Service level domain models

Represents service level expectations (SLEs) and the per-group statistics
computed against them:
    - GroupKey: structured (type name, optional project) identity of a work item group
    - ServiceLevelExpectation: configured target days for a display name
    - ServiceLevelEntry / ServiceLevelData: the service-level table rows

Usage:
    from flowmetrics.domain.service_level import GroupKey, ServiceLevelExpectation

    sle = ServiceLevelExpectation(display_name="Bug", days=10, project_ids=("p1",))
    key = GroupKey(type_name="Bug", project_id="p1")
    if sle.matches(key):
        print(f"{key.type_name} must finish within {sle.days} days")
"""

from collections.abc import Iterable
from dataclasses import dataclass, replace
from typing import Any

from flowmetrics.domain.metrics import TrendAnalysisStructure


@dataclass(frozen=True)
class GroupKey:
    """
    Identity of a work item group.

    Attributes:
        type_name: Work item type (or normalised demand) display name
        project_id: Project the group is scoped to; None when the group spans all projects
    """

    type_name: str
    project_id: str | None = None


@dataclass(frozen=True)
class ServiceLevelExpectation:
    """
    Configured service level expectation.

    Attributes:
        display_name: Display name the SLE applies to
        days: Target number of days
        project_ids: Projects the SLE is restricted to; empty means every project
    """

    display_name: str
    days: float
    project_ids: tuple[str, ...] = ()

    @property
    def is_project_scoped(self) -> bool:
        return bool(self.project_ids)

    def applies_to_project(self, project_id: str | None) -> bool:
        if not self.project_ids:
            return True
        return project_id is not None and project_id in self.project_ids

    def matches(self, key: GroupKey) -> bool:
        """True when this SLE covers the group (by name, and by project when the group has one)."""
        if self.display_name != key.type_name:
            return False
        if key.project_id is None:
            return True
        return self.applies_to_project(key.project_id)


def merge_service_level_expectations(
    expectations: Iterable[ServiceLevelExpectation],
) -> list[ServiceLevelExpectation]:
    """
    Merge SLE rows sharing the same display name and target days.

    Project restrictions of merged rows accumulate. A merged row with an
    unrestricted member stays unrestricted.

    Example:
        >>> merge_service_level_expectations([
        ...     ServiceLevelExpectation("Bug", 10, ("p1",)),
        ...     ServiceLevelExpectation("Bug", 10, ("p2",)),
        ... ])
        [ServiceLevelExpectation(display_name='Bug', days=10, project_ids=('p1', 'p2'))]
    """
    merged: list[ServiceLevelExpectation] = []
    for expectation in expectations:
        index = next(
            (
                i
                for i, existing in enumerate(merged)
                if existing.display_name == expectation.display_name and existing.days == expectation.days
            ),
            None,
        )
        if index is None:
            merged.append(expectation)
            continue

        existing = merged[index]
        if not existing.project_ids or not expectation.project_ids:
            project_ids: tuple[str, ...] = ()
        else:
            extra = tuple(p for p in expectation.project_ids if p not in existing.project_ids)
            project_ids = existing.project_ids + extra
        merged[index] = replace(existing, project_ids=project_ids)

    return merged


@dataclass
class ServiceLevelEntry:
    """
    One row of the service-level table.

    Descriptive statistics are None for an empty group. target_met and
    predictability are only set for past and present analysis, and
    trend_analysis_sle only for past analysis.
    """

    display_name: str
    count: int
    service_level_expectation_in_days: float
    mode: list[int] | None = None
    median: int | None = None
    average: int | None = None
    min: int | None = None
    max: int | None = None
    percentile85: int | None = None
    tail: int | None = None
    target_met: int | None = None
    trend_analysis_sle: TrendAnalysisStructure | None = None
    predictability: str | None = None
    project_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "displayName": self.display_name,
            "count": self.count,
            "serviceLevelExpectationInDays": self.service_level_expectation_in_days,
            "mode": self.mode,
            "median": self.median,
            "average": self.average,
            "min": self.min,
            "max": self.max,
            "percentile85": self.percentile85,
            "tail": self.tail,
            "targetMet": self.target_met,
            "trendAnalysisSLE": self.trend_analysis_sle.to_dict() if self.trend_analysis_sle else None,
            "predictability": self.predictability,
        }
        if self.project_id is not None:
            data["projectId"] = self.project_id
        return data


@dataclass
class ServiceLevelData:
    normalised_demands: list[ServiceLevelEntry]
    work_item_types: list[ServiceLevelEntry]

    def to_dict(self) -> dict[str, Any]:
        return {
            "normalisedDemands": [entry.to_dict() for entry in self.normalised_demands],
            "workItemTypes": [entry.to_dict() for entry in self.work_item_types],
        }

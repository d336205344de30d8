"""
Domain Models - Type-safe data structures for flow metrics

This package contains dataclasses representing business domain concepts:
    - constants: frozen threshold and label configuration
    - work_items: WorkItem, StateCategory, PerspectiveProfile
    - metrics: TrendAnalysis, BoxPlot / EmptyBoxPlot, DistributionSummary
    - service_level: GroupKey, ServiceLevelExpectation, ServiceLevelEntry

Usage:
    from flowmetrics.domain import WorkItem, StateCategory

    item = WorkItem(work_item_id="PRJ-1", lead_time_in_whole_days=4)
    if item.is_completed:
        print(f"{item.work_item_id} is done")
"""

from .metrics import (
    EMPTY_TREND,
    BoxPlot,
    BoxPlotResult,
    DistributionSummary,
    EmptyBoxPlot,
    TrendAnalysis,
    TrendAnalysisStructure,
)
from .service_level import (
    GroupKey,
    ServiceLevelData,
    ServiceLevelEntry,
    ServiceLevelExpectation,
    merge_service_level_expectations,
)
from .work_items import PerspectiveProfile, StateCategory, WorkItem, get_perspective_profile, parse_work_items

__all__ = [
    # Work items
    "WorkItem",
    "StateCategory",
    "PerspectiveProfile",
    "get_perspective_profile",
    "parse_work_items",
    # Metric results
    "TrendAnalysis",
    "TrendAnalysisStructure",
    "EMPTY_TREND",
    "BoxPlot",
    "EmptyBoxPlot",
    "BoxPlotResult",
    "DistributionSummary",
    # Service level
    "GroupKey",
    "ServiceLevelExpectation",
    "ServiceLevelEntry",
    "ServiceLevelData",
    "merge_service_level_expectations",
]

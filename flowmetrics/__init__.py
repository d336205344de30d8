"""
Flow Metrics Engine - Aggregation and Statistics Layer

This package turns organisation-scoped work items into flow-metric dashboard payloads.

Package Structure:
    - core: Infrastructure (logging, configuration)
    - utils: Statistics primitives, date/week helpers, error handling
    - domain: Domain models (WorkItem, BoxPlot, ServiceLevelEntry) and constants
    - analysis: Trend analysis, aggregation buckets, box plots, throughput variability
    - benchmarks: Industry benchmark tables and comparison messages
    - providers: Collaborator interfaces, query filters, request-scoped cache
    - calculations: Throughput, lead time, WIP, service level, fitness criteria
"""

__version__ = "0.1.0"
__author__ = "Flow Metrics Team"

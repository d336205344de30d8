"""
Analysis building blocks: trend comparison, calendar bucketing, box plots and throughput variability.
"""

"""
Shared utilities: statistics primitives, calendar arithmetic and error-handling helpers.
"""

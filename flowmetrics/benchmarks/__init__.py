"""
Industry benchmark tables and comparison messages.
"""

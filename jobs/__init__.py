"""
Background jobs scheduled with APScheduler.
"""

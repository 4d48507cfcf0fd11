"""
Usage Tracker.

Records per-message token usage and cost for interactive assistant
sessions and reports session and period totals.
"""

__version__ = "0.1.0"

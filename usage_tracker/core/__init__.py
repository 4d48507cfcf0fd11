"""
Core modules for Usage Tracker.

This package contains pricing resolution, cost calculation, session and
period aggregation, notification triggers and report formatting.
"""

"""
Unified calendar sync.

Aggregates events from a local calendar, Google Calendar and Outlook into one
locally queryable event set and keeps it current with incremental syncs.
"""

__version__ = "0.1.0"

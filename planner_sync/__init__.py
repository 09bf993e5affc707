"""
Planner Outlook Sync.

Mirrors planner work blocks and deadline markers into a dedicated
Outlook calendar per user.
"""

__version__ = "0.1.0"

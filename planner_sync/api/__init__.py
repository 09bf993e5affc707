"""
Planner Outlook Sync API module.

Provides FastAPI HTTP endpoints for linking Outlook and triggering syncs.
"""

from planner_sync.api.main import app, run_server

__all__ = ["app", "run_server"]

"""
ASGI entry point for Planner Outlook Sync.

Re-exports the FastAPI app so servers can load `planner_sync.app:app`.
"""

from planner_sync.api.main import app

__all__ = ["app"]

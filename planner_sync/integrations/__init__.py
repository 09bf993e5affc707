"""
External service integrations for Planner Outlook Sync.
"""

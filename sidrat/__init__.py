"""
Sidrat progress engine.

Tracks a child's lesson progress, daily streak and achievement badges
for the Sidrat learning app. The presentation layer calls into
ProgressSession and renders the events it returns.
"""

from sidrat.session import ProgressSession, create_session

__all__ = ["ProgressSession", "create_session"]

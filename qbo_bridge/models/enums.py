"""
Enumeration types used across the application.
"""

from enum import Enum


class RefreshStatus(str, Enum):
    """Outcome of one token record within a refresher tick"""
    REFRESHED = "refreshed"
    SKIPPED = "skipped"
    FAILED = "failed"

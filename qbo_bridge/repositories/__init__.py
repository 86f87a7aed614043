"""
Repositories

Data access layer over SQLAlchemy async sessions.
"""

from qbo_bridge.repositories.base import BaseRepository
from qbo_bridge.repositories.qbo_tokens import QboTokenRepository

__all__ = [
    "BaseRepository",
    "QboTokenRepository",
]

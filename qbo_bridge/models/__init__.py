"""
QuickBooks token keeper models

ORM models (database tables):
    from qbo_bridge.models import QboToken

Pydantic schemas:
    from qbo_bridge.models import TokenRecord, TokenGrant
"""

from qbo_bridge.models.orm import Base, QboToken
from qbo_bridge.models.schemas import TokenGrant, TokenRecord

__all__ = [
    "Base",
    "QboToken",
    "TokenGrant",
    "TokenRecord",
]

"""
SQLAlchemy ORM Models for the QuickBooks token keeper

Pure database models using SQLAlchemy 2.0 declarative style.
The schema itself is managed outside this service; these mappings only
describe the existing qbo_tokens table.
"""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from qbo_bridge.core.clock import utcnow
from qbo_bridge.core.database import Base


# =============================================================================
# QuickBooks Tokens
# =============================================================================


class QboToken(Base):
    """OAuth tokens for one connected QuickBooks realm."""
    __tablename__ = "qbo_tokens"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    integration_id: Mapped[str] = mapped_column(String(255))
    realm_id: Mapped[str | None] = mapped_column(String(64), default=None)
    access_token: Mapped[str] = mapped_column(Text)
    refresh_token: Mapped[str | None] = mapped_column(Text, default=None)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        Index("ix_qbo_tokens_expires_at", "expires_at"),
    )

    def __repr__(self) -> str:
        return (
            f"QboToken(integration_id={self.integration_id!r}, "
            f"realm_id={self.realm_id!r}, expires_at={self.expires_at!r})"
        )


# realm_id is nullable, so uniqueness is enforced on coalesce(realm_id, '')
Index(
    "uq_qbo_tokens_integration_realm",
    QboToken.integration_id,
    func.coalesce(QboToken.realm_id, ""),
    unique=True,
)

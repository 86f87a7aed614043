"""
QuickBooks Token Repository

Credential store for per-realm token records. All lookups keyed by realm
use null-safe equality so integrations without realm scoping still match.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import func, or_, select, update

from qbo_bridge.core.clock import utcnow
from qbo_bridge.models.orm import QboToken
from qbo_bridge.models.schemas import TokenRecord
from qbo_bridge.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


def _realm_matches(realm_id: str | None):
    return QboToken.realm_id.is_not_distinct_from(realm_id)


class QboTokenRepository(BaseRepository[QboToken]):
    """Repository for the qbo_tokens table."""

    model = QboToken

    async def select_due_tokens(
        self,
        skew_minutes: int,
        limit: int,
        now: datetime | None = None,
    ) -> list[TokenRecord]:
        """
        Find token records that need renewal.

        A record is due when its expires_at is null or falls within
        skew_minutes of now. Most urgent first; null expiry sorts as now.

        Args:
            skew_minutes: Lead time before expiry
            limit: Maximum number of records returned
            now: Reference time (naive UTC), defaults to the current time

        Returns:
            Due records, most urgent first
        """
        if skew_minutes <= 0 or limit <= 0:
            raise ValueError("skew_minutes and limit must be positive")

        now = now or utcnow()
        cutoff = now + timedelta(minutes=skew_minutes)

        query = (
            select(QboToken)
            .where(
                or_(
                    QboToken.expires_at.is_(None),
                    QboToken.expires_at <= cutoff,
                )
            )
            .order_by(func.coalesce(QboToken.expires_at, now).asc())
            .limit(limit)
        )
        result = await self.session.execute(query)
        return [TokenRecord.from_orm_row(row) for row in result.scalars().all()]

    async def update_token(
        self,
        integration_id: str,
        realm_id: str | None,
        access_token: str,
        refresh_token: str | None,
        expires_in_seconds: int,
        now: datetime | None = None,
    ) -> int:
        """
        Write a refreshed token pair back to its record.

        expires_at is computed from expires_in_seconds relative to now.

        Returns:
            Number of rows updated (0 when no record matches the key)
        """
        now = now or utcnow()
        stmt = (
            update(QboToken)
            .where(
                QboToken.integration_id == integration_id,
                _realm_matches(realm_id),
            )
            .values(
                access_token=access_token,
                refresh_token=refresh_token,
                expires_at=now + timedelta(seconds=expires_in_seconds),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def get_by_key(
        self,
        integration_id: str,
        realm_id: str | None,
    ) -> QboToken | None:
        """Get the row for an (integration_id, realm_id) key."""
        result = await self.session.execute(
            select(QboToken).where(
                QboToken.integration_id == integration_id,
                _realm_matches(realm_id),
            )
        )
        return result.scalar_one_or_none()

    async def upsert_token(
        self,
        integration_id: str,
        realm_id: str | None,
        access_token: str,
        refresh_token: str | None,
        expires_in_seconds: int,
        now: datetime | None = None,
    ) -> QboToken:
        """
        Create or replace the record for a newly connected realm.

        Used by the OAuth callback after an authorization-code exchange.
        """
        now = now or utcnow()
        expires_at = now + timedelta(seconds=expires_in_seconds)

        existing = await self.get_by_key(integration_id, realm_id)
        if existing is not None:
            existing.access_token = access_token
            existing.refresh_token = refresh_token
            existing.expires_at = expires_at
            existing.updated_at = now
            await self.session.flush()
            logger.info(f"Updated token record for integration_id={integration_id} realm_id={realm_id}")
            return existing

        token = QboToken(
            integration_id=integration_id,
            realm_id=realm_id,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
            created_at=now,
            updated_at=now,
        )
        created = await self.create(token)
        logger.info(f"Created token record for integration_id={integration_id} realm_id={realm_id}")
        return created

    async def get_latest_for_integration(self, integration_id: str) -> TokenRecord | None:
        """Most recently updated record for an integration, if any."""
        result = await self.session.execute(
            select(QboToken)
            .where(QboToken.integration_id == integration_id)
            .order_by(QboToken.updated_at.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        return TokenRecord.from_orm_row(row) if row is not None else None

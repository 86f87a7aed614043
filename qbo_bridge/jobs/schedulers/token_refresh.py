"""
QuickBooks Token Refresh Job

Renews QuickBooks access tokens that are about to expire.
Each tick selects due records (most urgent first, capped per tick),
refreshes them one by one against Intuit, and writes every result back
in its own transaction. One bad record never aborts the rest of the batch.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from qbo_bridge.config import get_settings
from qbo_bridge.core.clock import Clock, utcnow
from qbo_bridge.core.database import SessionScope, get_db_context
from qbo_bridge.core.errors import PersistenceError, TokenRefreshError
from qbo_bridge.models.enums import RefreshStatus
from qbo_bridge.models.schemas import TokenRecord
from qbo_bridge.repositories.qbo_tokens import QboTokenRepository
from qbo_bridge.services.intuit_oauth import IntuitOAuthClient

logger = logging.getLogger(__name__)


@dataclass
class RowResult:
    """Outcome of refreshing one token record."""
    integration_id: str
    realm_id: str | None
    status: RefreshStatus
    error_kind: str | None = None
    error: str | None = None

    @classmethod
    def for_record(
        cls,
        record: TokenRecord,
        status: RefreshStatus,
        error: Exception | None = None,
    ) -> "RowResult":
        error_kind = None
        if error is not None:
            error_kind = getattr(error, "error_code", type(error).__name__)
        return cls(
            integration_id=record.integration_id,
            realm_id=record.realm_id,
            status=status,
            error_kind=error_kind,
            error=str(error) if error is not None else None,
        )


@dataclass
class TickSummary:
    """Aggregated outcome of one refresher tick."""
    started_at: datetime
    finished_at: datetime | None = None
    selected: int = 0
    refreshed: int = 0
    failed: int = 0
    skipped: int = 0
    results: list[RowResult] = field(default_factory=list)
    error: str | None = None

    def add(self, result: RowResult) -> None:
        self.results.append(result)
        if result.status == RefreshStatus.REFRESHED:
            self.refreshed += 1
        elif result.status == RefreshStatus.FAILED:
            self.failed += 1
        else:
            self.skipped += 1

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": self.duration_seconds,
            "selected": self.selected,
            "refreshed": self.refreshed,
            "failed": self.failed,
            "skipped": self.skipped,
            "error": self.error,
            "results": [
                {
                    "integration_id": r.integration_id,
                    "realm_id": r.realm_id,
                    "status": r.status.value,
                    "error_kind": r.error_kind,
                    "error": r.error,
                }
                for r in self.results
            ],
        }


async def refresh_token_record(
    record: TokenRecord,
    client: IntuitOAuthClient,
    session_scope: SessionScope = get_db_context,
    clock: Clock = utcnow,
) -> RowResult:
    """
    Refresh a single token record and write the result back.

    Records without a refresh token are skipped without a network call.
    Errors are returned as a FAILED result rather than raised.

    Args:
        record: Token record to refresh
        client: Intuit OAuth client
        session_scope: Transactional session factory for the write-back
        clock: Source of the refresh completion time

    Returns:
        RowResult describing the outcome
    """
    if not record.can_refresh:
        logger.debug(f"No refresh token, skipping {record.describe()}")
        return RowResult.for_record(record, RefreshStatus.SKIPPED)

    try:
        grant = await client.refresh(record.refresh_token)
    except TokenRefreshError as e:
        logger.warning(f"Token refresh failed for {record.describe()}: [{e.error_code}] {e.message}")
        return RowResult.for_record(record, RefreshStatus.FAILED, e)

    # Intuit does not always rotate the refresh token
    refresh_token = grant.refresh_token or record.refresh_token
    now = clock()

    try:
        async with session_scope() as db:
            updated = await QboTokenRepository(db).update_token(
                integration_id=record.integration_id,
                realm_id=record.realm_id,
                access_token=grant.access_token.get_secret_value(),
                refresh_token=refresh_token.get_secret_value(),
                expires_in_seconds=grant.expires_in,
                now=now,
            )
    except Exception as e:
        error = PersistenceError(f"Write-back failed: {type(e).__name__}: {e}")
        logger.error(
            f"Refreshed token LOST for {record.describe()}: could not persist new credentials "
            f"({type(e).__name__})"
        )
        return RowResult.for_record(record, RefreshStatus.FAILED, error)

    if updated == 0:
        error = PersistenceError("Write-back matched no token record")
        logger.error(f"Refreshed token LOST for {record.describe()}: record no longer exists")
        return RowResult.for_record(record, RefreshStatus.FAILED, error)

    logger.info(f"Refreshed token for {record.describe()} (expires_in={grant.expires_in}s)")
    return RowResult.for_record(record, RefreshStatus.REFRESHED)


async def run_refresh_tick(
    client: IntuitOAuthClient | None = None,
    session_scope: SessionScope = get_db_context,
    skew_minutes: int | None = None,
    limit: int | None = None,
    clock: Clock = utcnow,
) -> TickSummary:
    """
    Run one refresher tick.

    Selects up to `limit` records expiring within `skew_minutes` (or with no
    expiry), refreshes each in selector order, and returns the aggregated
    outcome. Never raises.

    Args:
        client: Intuit OAuth client (built from settings when omitted)
        session_scope: Transactional session factory
        skew_minutes: Expiry lead time (settings default)
        limit: Maximum records per tick (settings default)
        clock: Time source

    Returns:
        TickSummary with per-row results and counts
    """
    settings = get_settings()
    if skew_minutes is None:
        skew_minutes = settings.refresh_skew_minutes
    if limit is None:
        limit = settings.refresh_batch_limit
    client = client or IntuitOAuthClient.from_settings(settings)

    summary = TickSummary(started_at=clock())

    try:
        async with session_scope() as db:
            records = await QboTokenRepository(db).select_due_tokens(
                skew_minutes=skew_minutes,
                limit=limit,
                now=summary.started_at,
            )
    except Exception as e:
        summary.error = f"{type(e).__name__}: {e}"
        summary.finished_at = clock()
        logger.error(f"Token refresh tick could not select due tokens: {summary.error}")
        return summary

    summary.selected = len(records)

    for record in records:
        try:
            result = await refresh_token_record(record, client, session_scope, clock)
        except Exception as e:
            logger.error(f"Unexpected error refreshing {record.describe()}: {type(e).__name__}: {e}")
            result = RowResult.for_record(record, RefreshStatus.FAILED, e)
        summary.add(result)

    summary.finished_at = clock()
    logger.info(
        f"Token refresh tick done in {summary.duration_seconds:.2f}s: "
        f"selected={summary.selected} refreshed={summary.refreshed} "
        f"failed={summary.failed} skipped={summary.skipped}"
    )
    return summary

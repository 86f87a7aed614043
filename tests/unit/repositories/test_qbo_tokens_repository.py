"""Unit tests for QboTokenRepository

Runs the real queries against a SQLite database created from the ORM mapping.
"""

from datetime import timedelta

import pytest

from qbo_bridge.repositories.qbo_tokens import QboTokenRepository
from tests.helpers import NOW


class TestSelectDueTokens:
    """Test batch selection of tokens needing renewal"""

    async def test_selects_null_and_within_skew(self, seed_token, db_session):
        await seed_token(integration_id="null-expiry", expires_at=None)
        await seed_token(integration_id="within-skew", expires_at=NOW + timedelta(minutes=4))
        await seed_token(integration_id="already-expired", expires_at=NOW - timedelta(hours=1))
        await seed_token(integration_id="not-due", expires_at=NOW + timedelta(minutes=6))
        await seed_token(integration_id="far-future", expires_at=NOW + timedelta(hours=1))

        records = await QboTokenRepository(db_session).select_due_tokens(5, 50, now=NOW)

        assert {r.integration_id for r in records} == {
            "null-expiry",
            "within-skew",
            "already-expired",
        }

    async def test_skew_boundary_is_inclusive(self, seed_token, db_session):
        await seed_token(integration_id="boundary", expires_at=NOW + timedelta(minutes=5))

        records = await QboTokenRepository(db_session).select_due_tokens(5, 50, now=NOW)

        assert [r.integration_id for r in records] == ["boundary"]

    async def test_orders_most_urgent_first_with_null_as_now(self, seed_token, db_session):
        await seed_token(integration_id="in-3m", expires_at=NOW + timedelta(minutes=3))
        await seed_token(integration_id="null", expires_at=None)
        await seed_token(integration_id="past", expires_at=NOW - timedelta(minutes=1))
        await seed_token(integration_id="in-1m", expires_at=NOW + timedelta(minutes=1))

        records = await QboTokenRepository(db_session).select_due_tokens(5, 50, now=NOW)

        assert [r.integration_id for r in records] == ["past", "null", "in-1m", "in-3m"]

    async def test_limit_caps_to_most_urgent(self, seed_token, db_session):
        for minutes in (4, 1, 3, 2, 0):
            await seed_token(integration_id=f"in-{minutes}m", expires_at=NOW + timedelta(minutes=minutes))

        records = await QboTokenRepository(db_session).select_due_tokens(5, 3, now=NOW)

        assert [r.integration_id for r in records] == ["in-0m", "in-1m", "in-2m"]

    async def test_empty_result(self, seed_token, db_session):
        await seed_token(expires_at=NOW + timedelta(days=1))

        assert await QboTokenRepository(db_session).select_due_tokens(5, 50, now=NOW) == []

    @pytest.mark.parametrize("skew,limit", [(0, 50), (5, 0), (-1, 10)])
    async def test_rejects_non_positive_arguments(self, db_session, skew, limit):
        with pytest.raises(ValueError):
            await QboTokenRepository(db_session).select_due_tokens(skew, limit, now=NOW)

    async def test_records_hide_token_values(self, seed_token, db_session):
        await seed_token(access_token="at-visible?", refresh_token="rt-visible?")

        record = (await QboTokenRepository(db_session).select_due_tokens(5, 50, now=NOW))[0]

        assert "at-visible?" not in repr(record)
        assert "rt-visible?" not in repr(record)
        assert "rt-visible?" not in record.describe()
        assert record.refresh_token.get_secret_value() == "rt-visible?"


class TestUpdateToken:
    """Test write-back of refreshed tokens"""

    async def test_updates_tokens_and_expiry(self, seed_token, session_scope, fetch_token):
        await seed_token(integration_id="i1", realm_id="r1")

        async with session_scope() as db:
            updated = await QboTokenRepository(db).update_token(
                "i1", "r1", "at-2", "rt-2", 3600, now=NOW
            )

        assert updated == 1
        row = await fetch_token("i1", "r1")
        assert row.access_token == "at-2"
        assert row.refresh_token == "rt-2"
        assert row.expires_at == NOW + timedelta(seconds=3600)
        assert row.updated_at == NOW

    async def test_null_realm_is_matched(self, seed_token, session_scope, fetch_token):
        await seed_token(integration_id="i1", realm_id=None)

        async with session_scope() as db:
            updated = await QboTokenRepository(db).update_token(
                "i1", None, "at-2", "rt-2", 3600, now=NOW
            )

        assert updated == 1
        row = await fetch_token("i1", None)
        assert row.access_token == "at-2"

    async def test_only_exact_key_is_updated(self, seed_token, session_scope, fetch_token):
        await seed_token(integration_id="i1", realm_id=None, access_token="null-realm")
        await seed_token(integration_id="i1", realm_id="r1", access_token="realm-1")
        await seed_token(integration_id="i2", realm_id="r1", access_token="other-integration")

        async with session_scope() as db:
            updated = await QboTokenRepository(db).update_token(
                "i1", "r1", "at-2", "rt-2", 3600, now=NOW
            )

        assert updated == 1
        assert (await fetch_token("i1", None)).access_token == "null-realm"
        assert (await fetch_token("i1", "r1")).access_token == "at-2"
        assert (await fetch_token("i2", "r1")).access_token == "other-integration"

    async def test_no_match_returns_zero(self, session_scope):
        async with session_scope() as db:
            updated = await QboTokenRepository(db).update_token(
                "missing", None, "at", "rt", 3600, now=NOW
            )

        assert updated == 0


class TestUpsertAndLookup:
    """Test callback upsert and company-info lookup"""

    async def test_upsert_creates_then_updates(self, session_scope, fetch_token):
        async with session_scope() as db:
            await QboTokenRepository(db).upsert_token("i1", None, "at-1", "rt-1", 3600, now=NOW)

        later = NOW + timedelta(minutes=30)
        async with session_scope() as db:
            await QboTokenRepository(db).upsert_token("i1", None, "at-2", "rt-2", 1800, now=later)

        row = await fetch_token("i1", None)
        assert row.access_token == "at-2"
        assert row.expires_at == later + timedelta(seconds=1800)

        async with session_scope() as db:
            assert len((await QboTokenRepository(db).select_due_tokens(5, 50, now=later + timedelta(hours=1)))) == 1

    async def test_get_latest_for_integration(self, seed_token, db_session):
        await seed_token(integration_id="i1", realm_id="old", updated_at=NOW - timedelta(days=1))
        await seed_token(integration_id="i1", realm_id="new", updated_at=NOW)
        await seed_token(integration_id="i2", realm_id="other", updated_at=NOW + timedelta(days=1))

        record = await QboTokenRepository(db_session).get_latest_for_integration("i1")

        assert record.realm_id == "new"

    async def test_get_latest_for_unknown_integration(self, db_session):
        assert await QboTokenRepository(db_session).get_latest_for_integration("nope") is None

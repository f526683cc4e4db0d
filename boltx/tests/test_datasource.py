"""
SqlCheckoutDataSource tests — store functions and Redis are mocked.

Verifies the read-through cache, transaction handling on persist, and that
cache failures never break a read or a write.
"""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from boltx.cache import make_prediction_key
from boltx.risk.datasource import SqlCheckoutDataSource
from boltx.risk.schemas import SESSION_EVENT_TYPES, PersistedPredictionRecord
from boltx.tests.factories import CUSTOMER_ID, NOW, SESSION_ID, make_event, make_record


def _session_factory():
    """async_sessionmaker stand-in: factory() → async context manager → db."""
    db = MagicMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    cm = MagicMock()
    cm.__aenter__ = AsyncMock(return_value=db)
    cm.__aexit__ = AsyncMock(return_value=False)
    return MagicMock(return_value=cm), db


def _redis(cached: str | None = None):
    redis = MagicMock()
    redis.get = AsyncMock(return_value=cached)
    redis.setex = AsyncMock()
    return redis


def test_prediction_key_namespace() -> None:
    assert make_prediction_key("abc") == "prediction:abc"


# ---------------------------------------------------------------------------
# fetch_events
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_fetch_events_delegates_to_store() -> None:
    factory, db = _session_factory()
    events = [make_event("checkout_start", 10, step="cart")]
    source = SqlCheckoutDataSource(session_factory=factory)

    with patch("boltx.store.get_events_by_types", new=AsyncMock(return_value=events)) as mock_get:
        result = await source.fetch_events(
            CUSTOMER_ID, SESSION_EVENT_TYPES, NOW, NOW, session_id=SESSION_ID
        )

    assert result == events
    mock_get.assert_awaited_once_with(
        db, CUSTOMER_ID, SESSION_EVENT_TYPES, NOW, NOW, session_id=SESSION_ID
    )


# ---------------------------------------------------------------------------
# fetch_latest_prediction — read-through cache
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_latest_prediction_cache_hit_skips_database() -> None:
    factory, _ = _session_factory()
    record = make_record(SESSION_ID, 42)
    redis = _redis(cached=record.model_dump_json(by_alias=True))
    source = SqlCheckoutDataSource(session_factory=factory, redis=redis)

    with patch("boltx.store.get_latest_prediction", new=AsyncMock()) as mock_get:
        result = await source.fetch_latest_prediction(SESSION_ID)

    assert isinstance(result, PersistedPredictionRecord)
    assert result.risk_score == 42
    assert result.id == record.id
    mock_get.assert_not_awaited()
    redis.get.assert_awaited_once_with("prediction:sess_live")


@pytest.mark.asyncio
async def test_latest_prediction_cache_miss_reads_db_and_populates_cache() -> None:
    factory, _ = _session_factory()
    record = make_record(SESSION_ID, 42)
    redis = _redis(cached=None)
    source = SqlCheckoutDataSource(session_factory=factory, redis=redis)

    with patch("boltx.store.get_latest_prediction", new=AsyncMock(return_value=record)):
        result = await source.fetch_latest_prediction(SESSION_ID)

    assert result == record
    key, ttl, _payload = redis.setex.await_args.args
    assert key == "prediction:sess_live"
    assert ttl == 3600


@pytest.mark.asyncio
async def test_latest_prediction_first_prediction_is_none() -> None:
    factory, _ = _session_factory()
    redis = _redis(cached=None)
    source = SqlCheckoutDataSource(session_factory=factory, redis=redis)

    with patch("boltx.store.get_latest_prediction", new=AsyncMock(return_value=None)):
        assert await source.fetch_latest_prediction(SESSION_ID) is None

    redis.setex.assert_not_awaited()


@pytest.mark.asyncio
async def test_latest_prediction_cache_outage_falls_back_to_db() -> None:
    factory, _ = _session_factory()
    record = make_record(SESSION_ID, 42)
    redis = _redis()
    redis.get = AsyncMock(side_effect=ConnectionError("redis down"))
    redis.setex = AsyncMock(side_effect=ConnectionError("redis down"))
    source = SqlCheckoutDataSource(session_factory=factory, redis=redis)

    with patch("boltx.store.get_latest_prediction", new=AsyncMock(return_value=record)):
        result = await source.fetch_latest_prediction(SESSION_ID)

    assert result == record


@pytest.mark.asyncio
async def test_latest_prediction_without_redis() -> None:
    factory, _ = _session_factory()
    record = make_record(SESSION_ID, 42)
    source = SqlCheckoutDataSource(session_factory=factory)

    with patch("boltx.store.get_latest_prediction", new=AsyncMock(return_value=record)):
        assert await source.fetch_latest_prediction(SESSION_ID) == record


# ---------------------------------------------------------------------------
# persist_prediction
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_persist_commits_and_caches() -> None:
    factory, db = _session_factory()
    record = make_record(SESSION_ID, 61)
    redis = _redis()
    source = SqlCheckoutDataSource(session_factory=factory, redis=redis)

    with patch("boltx.store.save_prediction", new=AsyncMock(return_value=record)) as mock_save:
        result = await source.persist_prediction(CUSTOMER_ID, SESSION_ID, "of_1", record.prediction)

    assert result == record
    mock_save.assert_awaited_once_with(db, CUSTOMER_ID, SESSION_ID, "of_1", record.prediction)
    db.commit.assert_awaited_once()
    db.rollback.assert_not_awaited()
    redis.setex.assert_awaited_once()


@pytest.mark.asyncio
async def test_persist_failure_rolls_back_and_raises() -> None:
    factory, db = _session_factory()
    record = make_record(SESSION_ID, 61)
    redis = _redis()
    source = SqlCheckoutDataSource(session_factory=factory, redis=redis)

    with patch("boltx.store.save_prediction", new=AsyncMock(side_effect=RuntimeError("constraint"))):
        with pytest.raises(RuntimeError):
            await source.persist_prediction(CUSTOMER_ID, SESSION_ID, None, record.prediction)

    db.rollback.assert_awaited_once()
    db.commit.assert_not_awaited()
    redis.setex.assert_not_awaited()


@pytest.mark.asyncio
async def test_persist_survives_cache_write_failure() -> None:
    factory, _ = _session_factory()
    record = make_record(SESSION_ID, 61)
    redis = _redis()
    redis.setex = AsyncMock(side_effect=ConnectionError("redis down"))
    source = SqlCheckoutDataSource(session_factory=factory, redis=redis)

    with patch("boltx.store.save_prediction", new=AsyncMock(return_value=record)):
        assert await source.persist_prediction(CUSTOMER_ID, SESSION_ID, None, record.prediction) == record


# ---------------------------------------------------------------------------
# list_predictions
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_predictions_delegates_to_store() -> None:
    factory, db = _session_factory()
    records = [make_record(SESSION_ID, 61), make_record(SESSION_ID, 40)]
    source = SqlCheckoutDataSource(session_factory=factory)

    with patch("boltx.store.get_predictions", new=AsyncMock(return_value=records)) as mock_list:
        result = await source.list_predictions(CUSTOMER_ID, session_id=SESSION_ID, limit=5)

    assert result == records
    mock_list.assert_awaited_once_with(db, CUSTOMER_ID, session_id=SESSION_ID, limit=5)

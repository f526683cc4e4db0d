"""
datasource.py — The storage seam the risk engine depends on.

CheckoutDataSource is what the orchestrator and routes call. The production
implementation, SqlCheckoutDataSource, sits on store.py (PostgreSQL) with a
Redis read-through cache for each session's latest prediction.

Every SqlCheckoutDataSource operation opens its own AsyncSession, so the
orchestrator may await independent reads concurrently.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, Optional

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from boltx import store
from boltx.cache import get_cached_prediction, set_cached_prediction
from boltx.database import AsyncSessionLocal
from boltx.risk.schemas import (
    AbandonmentPrediction,
    CheckoutEvent,
    CheckoutEventType,
    PersistedPredictionRecord,
)

logger = logging.getLogger(__name__)


class CheckoutDataSource(ABC):
    """Read checkout events; read and append persisted predictions."""

    @abstractmethod
    async def fetch_events(
        self,
        customer_id: str,
        event_types: Iterable[CheckoutEventType],
        start: datetime,
        end: datetime,
        session_id: Optional[str] = None,
    ) -> list[CheckoutEvent]:
        """Events ordered by timestamp ascending."""

    @abstractmethod
    async def fetch_latest_prediction(self, session_id: str) -> Optional[PersistedPredictionRecord]:
        ...

    @abstractmethod
    async def persist_prediction(
        self,
        customer_id: str,
        session_id: str,
        order_form_id: Optional[str],
        prediction: AbandonmentPrediction,
    ) -> PersistedPredictionRecord:
        ...

    @abstractmethod
    async def list_predictions(
        self,
        customer_id: str,
        session_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[PersistedPredictionRecord]:
        """Newest first."""


class SqlCheckoutDataSource(CheckoutDataSource):

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
        redis: Optional[aioredis.Redis] = None,
    ):
        self._session_factory = session_factory
        self._redis = redis

    async def fetch_events(self, customer_id, event_types, start, end, session_id=None):
        async with self._session_factory() as db:
            return await store.get_events_by_types(
                db, customer_id, event_types, start, end, session_id=session_id
            )

    async def fetch_latest_prediction(self, session_id):
        if self._redis is not None:
            try:
                cached = await get_cached_prediction(self._redis, session_id)
                if cached is not None:
                    return cached
            except Exception as exc:
                logger.warning("Prediction cache read failed session_id=%s: %s", session_id, exc)

        async with self._session_factory() as db:
            record = await store.get_latest_prediction(db, session_id)

        if record is not None:
            await self._cache(record)
        return record

    async def persist_prediction(self, customer_id, session_id, order_form_id, prediction):
        async with self._session_factory() as db:
            try:
                record = await store.save_prediction(
                    db, customer_id, session_id, order_form_id, prediction
                )
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        await self._cache(record)
        return record

    async def list_predictions(self, customer_id, session_id=None, limit=100):
        async with self._session_factory() as db:
            return await store.get_predictions(db, customer_id, session_id=session_id, limit=limit)

    async def _cache(self, record: PersistedPredictionRecord) -> None:
        if self._redis is None:
            return
        try:
            await set_cached_prediction(self._redis, record)
        except Exception as exc:
            logger.warning("Prediction cache write failed session_id=%s: %s", record.session_id, exc)

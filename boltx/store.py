"""
store.py — Data access facade for the BoltX risk engine.

Provides a consistent, high-level API for reading checkout events and for
reading/writing abandonment predictions. Only the data source
(risk/datasource.py) calls these; nothing else touches SQLAlchemy directly.

Design principles:
  - All functions are async and accept an AsyncSession parameter
  - No raw SQL: ORM-only queries
  - Logs ids and scores only — never event metadata
  - Returns domain Pydantic objects (not ORM instances) so callers are persistence-agnostic
  - Predictions are append-only: there is no update or delete
"""
import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from boltx.models.ai_prediction import AIPredictionORM
from boltx.models.checkout_event import CheckoutEventORM
from boltx.risk.schemas import (
    AbandonmentPrediction,
    CheckoutEvent,
    CheckoutEventType,
    PersistedPredictionRecord,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Row → domain converters
# ---------------------------------------------------------------------------

def _to_event(orm: CheckoutEventORM) -> CheckoutEvent:
    return CheckoutEvent(
        session_id=orm.session_id,
        event_type=orm.event_type,
        timestamp=orm.timestamp,
        step=orm.step,
        order_form_id=orm.order_form_id,
        metadata=orm.metadata_ or {},
    )


def _to_record(orm: AIPredictionORM) -> PersistedPredictionRecord:
    return PersistedPredictionRecord(
        id=orm.id,
        customer_id=orm.customer_id,
        session_id=orm.session_id,
        order_form_id=orm.order_form_id,
        risk_score=orm.risk_score,
        risk_level=orm.risk_level,
        confidence=orm.confidence,
        model_version=orm.model_version,
        prediction=AbandonmentPrediction.model_validate(orm.prediction_data),
        created_at=orm.created_at,
    )


# ---------------------------------------------------------------------------
# Checkout event queries (read-only)
# ---------------------------------------------------------------------------

async def get_events_by_types(
    db: AsyncSession,
    customer_id: str,
    event_types: Iterable[CheckoutEventType],
    start: datetime,
    end: datetime,
    session_id: Optional[str] = None,
) -> list[CheckoutEvent]:
    """
    Events for a customer within [start, end], restricted to event_types,
    ordered by timestamp ascending. Optionally narrowed to one session.
    """
    types = [t.value for t in event_types]
    stmt = (
        select(CheckoutEventORM)
        .where(CheckoutEventORM.customer_id == customer_id)
        .where(CheckoutEventORM.event_type.in_(types))
        .where(CheckoutEventORM.timestamp >= start)
        .where(CheckoutEventORM.timestamp <= end)
    )
    if session_id is not None:
        stmt = stmt.where(CheckoutEventORM.session_id == session_id)
    stmt = stmt.order_by(CheckoutEventORM.timestamp.asc())

    result = await db.execute(stmt)
    rows = result.scalars().all()
    logger.debug(
        "Fetched %d events customer_id=%s session_id=%s", len(rows), customer_id, session_id
    )
    return [_to_event(row) for row in rows]


# ---------------------------------------------------------------------------
# Prediction operations
# ---------------------------------------------------------------------------

async def get_latest_prediction(
    db: AsyncSession,
    session_id: str,
) -> Optional[PersistedPredictionRecord]:
    """
    Most recently persisted prediction for a session.
    Returns None if the session has never been persisted (first prediction).
    """
    result = await db.execute(
        select(AIPredictionORM)
        .where(AIPredictionORM.session_id == session_id)
        .order_by(AIPredictionORM.created_at.desc())
        .limit(1)
    )
    orm = result.scalar_one_or_none()
    if orm is None:
        return None
    return _to_record(orm)


async def save_prediction(
    db: AsyncSession,
    customer_id: str,
    session_id: str,
    order_form_id: Optional[str],
    prediction: AbandonmentPrediction,
) -> PersistedPredictionRecord:
    """
    Append a new prediction row. Never amends an earlier one.
    Uses flush() (not commit()) — the caller owns the transaction.
    """
    orm = AIPredictionORM(
        customer_id=customer_id,
        session_id=session_id,
        order_form_id=order_form_id,
        prediction_type="abandonment",
        risk_score=prediction.risk_score,
        risk_level=prediction.risk_level.value,
        confidence=prediction.confidence,
        intervention_suggested=prediction.intervention_suggested,
        intervention_type=prediction.intervention_type.value if prediction.intervention_type else None,
        model_version=prediction.model_version,
        prediction_data=prediction.model_dump(mode="json", by_alias=True),
    )
    db.add(orm)
    await db.flush()
    logger.info(
        "Saved prediction session_id=%s risk_score=%d risk_level=%s model=%s",
        session_id,
        prediction.risk_score,
        prediction.risk_level.value,
        prediction.model_version,
    )
    return _to_record(orm)


async def get_predictions(
    db: AsyncSession,
    customer_id: str,
    session_id: Optional[str] = None,
    limit: int = 100,
) -> list[PersistedPredictionRecord]:
    """Persisted predictions for a customer, newest first."""
    stmt = select(AIPredictionORM).where(AIPredictionORM.customer_id == customer_id)
    if session_id is not None:
        stmt = stmt.where(AIPredictionORM.session_id == session_id)
    stmt = stmt.order_by(AIPredictionORM.created_at.desc()).limit(limit)

    result = await db.execute(stmt)
    return [_to_record(row) for row in result.scalars().all()]

"""
evaluation.py — How well persisted predictions matched what sessions actually did.

Scores the fixed heuristic after the fact; nothing here changes the model.
A session counts as "predicted to abandon" when its latest persisted score is
at or above the high-risk threshold (50). Outcome: any completion event makes
the session completed; otherwise a step_abandoned event makes it abandoned;
sessions with neither are skipped.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from boltx.config import settings
from boltx.risk.datasource import CheckoutDataSource
from boltx.risk.schemas import (
    COMPLETION_EVENT_TYPES,
    OUTCOME_EVENT_TYPES,
    CheckoutEvent,
    CheckoutEventType,
    ModelMetrics,
    PersistedPredictionRecord,
)

logger = logging.getLogger(__name__)

COMPLETED = "completed"
ABANDONED = "abandoned"


def resolve_outcomes(events: Iterable[CheckoutEvent]) -> dict[str, str]:
    """Map session_id → "completed" | "abandoned". Completion always wins."""
    outcomes: dict[str, str] = {}
    for event in events:
        if event.event_type in COMPLETION_EVENT_TYPES:
            outcomes[event.session_id] = COMPLETED
        elif event.event_type == CheckoutEventType.step_abandoned:
            outcomes.setdefault(event.session_id, ABANDONED)
    return outcomes


def latest_per_session(
    records: Iterable[PersistedPredictionRecord],
) -> dict[str, PersistedPredictionRecord]:
    latest: dict[str, PersistedPredictionRecord] = {}
    for record in records:
        current = latest.get(record.session_id)
        if current is None or record.created_at > current.created_at:
            latest[record.session_id] = record
    return latest


def compute_model_metrics(
    records: Iterable[PersistedPredictionRecord],
    outcome_events: Iterable[CheckoutEvent],
    high_risk_threshold: int = settings.high_risk_threshold,
) -> ModelMetrics:
    records = list(records)
    if not records:
        return ModelMetrics()

    outcomes = resolve_outcomes(outcome_events)
    tp = fp = tn = fn = 0

    for session_id, record in latest_per_session(records).items():
        outcome = outcomes.get(session_id)
        if outcome is None:
            continue
        predicted_abandon = record.risk_score >= high_risk_threshold
        actually_abandoned = outcome == ABANDONED
        if predicted_abandon and actually_abandoned:
            tp += 1
        elif predicted_abandon:
            fp += 1
        elif not actually_abandoned:
            tn += 1
        else:
            fn += 1

    total = tp + fp + tn + fn
    accuracy = (tp + tn) / total if total else 0.0
    precision = tp / (tp + fp) if tp + fp else 0.0
    recall = tp / (tp + fn) if tp + fn else 0.0
    f1 = 2 * precision * recall / (precision + recall) if precision + recall else 0.0

    logger.info(
        "Model metrics tp=%d fp=%d tn=%d fn=%d accuracy=%.3f f1=%.3f", tp, fp, tn, fn, accuracy, f1
    )
    return ModelMetrics(
        accuracy=accuracy,
        precision=precision,
        recall=recall,
        f1_score=f1,
        last_evaluated=max(r.created_at for r in records),
        sample_size=total,
    )


async def evaluate_customer_predictions(
    source: CheckoutDataSource,
    customer_id: str,
    now: Optional[datetime] = None,
    window_days: int = settings.metrics_window_days,
    limit: int = 1000,
) -> ModelMetrics:
    """
    Evaluate a customer's most recent predictions. If outcome events cannot be
    fetched, metrics are computed from whatever outcomes are available (none).
    """
    now = now or datetime.now(timezone.utc)
    records = await source.list_predictions(customer_id, limit=limit)
    if not records:
        return ModelMetrics()

    try:
        outcome_events = await source.fetch_events(
            customer_id, OUTCOME_EVENT_TYPES, now - timedelta(days=window_days), now
        )
    except Exception as exc:
        logger.warning("Outcome events unavailable customer_id=%s: %s", customer_id, exc)
        outcome_events = []

    return compute_model_metrics(records, outcome_events)

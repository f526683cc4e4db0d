"""
history.py — Historical context aggregation over a customer's past sessions.

aggregate_history() is pure. fetch_historical_context() adds the I/O and the
failure policy: history is a best-effort baseline, so any fetch error is
logged and the default triple (0 abandonments, 180s, 0.5) is returned.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Iterable, Optional

from boltx.config import settings
from boltx.risk.schemas import (
    COMPLETION_EVENT_TYPES,
    DEFAULT_AVG_CHECKOUT_SECONDS,
    HISTORY_EVENT_TYPES,
    START_EVENT_TYPES,
    CheckoutEvent,
    CheckoutEventType,
    HistoricalContext,
)

if TYPE_CHECKING:
    from boltx.risk.datasource import CheckoutDataSource

logger = logging.getLogger(__name__)


def _first_of(events: list[CheckoutEvent], types: Iterable[CheckoutEventType]) -> Optional[CheckoutEvent]:
    wanted = set(types)
    return next((e for e in events if e.event_type in wanted), None)


def aggregate_history(
    events: Iterable[CheckoutEvent],
    current_session_id: str,
) -> HistoricalContext:
    """
    Summarize every session except current_session_id.

    Per session:
      - completed: has a start AND a completion event. Duration (completion −
        start) is recorded only when positive.
      - abandoned: has a step_abandoned event and NO completion event.
      - anything else counts toward the total only.
    """
    by_session: dict[str, list[CheckoutEvent]] = defaultdict(list)
    for event in events:
        if event.session_id != current_session_id:
            by_session[event.session_id].append(event)

    if not by_session:
        return HistoricalContext.default()

    completed = 0
    abandoned = 0
    durations: list[float] = []

    for session_events in by_session.values():
        session_events.sort(key=lambda e: e.timestamp)
        start = _first_of(session_events, START_EVENT_TYPES)
        completion = _first_of(session_events, COMPLETION_EVENT_TYPES)
        abandon = _first_of(session_events, (CheckoutEventType.step_abandoned,))

        if start and completion:
            completed += 1
            duration = (completion.timestamp - start.timestamp).total_seconds()
            if duration > 0:
                durations.append(duration)
        elif abandon and not completion:
            abandoned += 1

    total = len(by_session)
    return HistoricalContext(
        previous_abandonments=abandoned,
        avg_checkout_duration_seconds=(
            sum(durations) / len(durations) if durations else DEFAULT_AVG_CHECKOUT_SECONDS
        ),
        conversion_rate=completed / total,
        sessions_observed=total,
    )


async def fetch_historical_context(
    source: "CheckoutDataSource",
    customer_id: str,
    session_id: str,
    now: Optional[datetime] = None,
    window_days: int = settings.history_window_days,
) -> HistoricalContext:
    """Fetch the trailing window and aggregate it. Never raises."""
    now = now or datetime.now(timezone.utc)
    try:
        events = await source.fetch_events(
            customer_id,
            HISTORY_EVENT_TYPES,
            now - timedelta(days=window_days),
            now,
        )
        return aggregate_history(events, session_id)
    except Exception as exc:
        logger.warning(
            "Historical context unavailable customer_id=%s session_id=%s — using defaults: %s",
            customer_id,
            session_id,
            exc,
        )
        return HistoricalContext.default()

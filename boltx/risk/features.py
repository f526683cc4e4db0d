"""
features.py — Feature extraction from one session's checkout events.

Pure function of (events, now). No I/O, no clock reads unless `now` is omitted.

Step rule: current_step is the FURTHEST step reached in STEP_ORDER. An event
reporting an earlier step (user clicked "back") or the same step again never
moves it, and never resets the step timer.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from boltx.config import STEP_ORDER, settings
from boltx.risk.errors import SessionNotFoundError
from boltx.risk.schemas import START_EVENT_TYPES, CheckoutEvent, CheckoutEventType, FeatureVector


def _step_index(step: Optional[str], step_order: Sequence[str]) -> int:
    """Position of step in the ordering, or -1 for None / unknown step names."""
    if step is None:
        return -1
    try:
        return step_order.index(step)
    except ValueError:
        return -1


def _metadata_value(metadata: dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = metadata.get(key)
        if value:
            return str(value)
    return None


def _order_form_id(event: CheckoutEvent) -> Optional[str]:
    if event.order_form_id:
        return event.order_form_id
    return _metadata_value(event.metadata, "orderFormId", "order_form_id")


def extract_features(
    events: Sequence[CheckoutEvent],
    now: Optional[datetime] = None,
    typical_checkout_seconds: float = settings.typical_checkout_seconds,
    step_order: Sequence[str] = STEP_ORDER,
) -> FeatureVector:
    """
    Build the FeatureVector for one session.

    Args:
        events: The session's events. Sorted (stably) by timestamp before the walk.
        now: Reference instant for durations. Defaults to the current UTC time.
        typical_checkout_seconds: Denominator for time_exceeded_ratio.
        step_order: Fixed checkout stage ordering.

    Raises:
        SessionNotFoundError: If events is empty. An empty session is unknown,
            not a zero-risk session.
    """
    if not events:
        raise SessionNotFoundError()

    now = now or datetime.now(timezone.utc)
    ordered = sorted(events, key=lambda e: e.timestamp)

    session_start = ordered[0].timestamp
    total_duration = max(0.0, (now - session_start).total_seconds())

    current_step = step_order[0]
    step_start = session_start
    error_count = 0
    has_returned = False
    order_form_id: Optional[str] = None
    steps_visited: set[str] = set()

    for event in ordered:
        idx = _step_index(event.step, step_order)
        if idx >= 0:
            steps_visited.add(event.step)
            # Guard: only a strictly later step advances; never regress.
            if idx > step_order.index(current_step):
                current_step = event.step
                step_start = event.timestamp

        if event.event_type == CheckoutEventType.error_occurred:
            error_count += 1

        if event.event_type in START_EVENT_TYPES and len(steps_visited) > 1:
            has_returned = True

        form_id = _order_form_id(event)
        if form_id:
            order_form_id = form_id

    step_progress_ratio = (step_order.index(current_step) + 1) / len(step_order)
    step_duration = max(0.0, (now - step_start).total_seconds())
    time_exceeded_ratio = (
        total_duration / typical_checkout_seconds if typical_checkout_seconds > 0 else 0.0
    )

    first_metadata = ordered[0].metadata
    return FeatureVector(
        time_exceeded_ratio=time_exceeded_ratio,
        error_count=error_count,
        current_step=current_step,
        step_duration=step_duration,
        total_duration=total_duration,
        has_returned=has_returned,
        step_progress_ratio=step_progress_ratio,
        device_type=_metadata_value(first_metadata, "deviceType", "device_type"),
        location=_metadata_value(first_metadata, "location"),
        order_form_id=order_form_id,
    )

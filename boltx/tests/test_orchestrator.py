"""
Real-time orchestrator tests against the in-memory data source.

Covers the full request path (extract → history → score → policy → gate →
persist) and every failure policy:
  - precondition errors fail before any I/O
  - primary event fetch failure is hard (UpstreamFetchError)
  - history / latest-prediction failures degrade
  - persistence failure is logged, never raised
"""
from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from boltx.risk.errors import PreconditionError, SessionNotFoundError, UpstreamFetchError
from boltx.risk.orchestrator import RealtimeRiskService
from boltx.risk.schemas import InterventionType, RiskLevel
from boltx.tests.factories import (
    CUSTOMER_ID,
    NOW,
    SESSION_ID,
    InMemoryDataSource,
    make_event,
    payment_scenario_events,
)

DAY = 86_400


def _service(source) -> RealtimeRiskService:
    return RealtimeRiskService(source, clock=lambda: NOW)


@pytest.fixture
def scenario_source() -> InMemoryDataSource:
    source = InMemoryDataSource()
    source.add_events(CUSTOMER_ID, payment_scenario_events())
    return source


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_end_to_end_payment_scenario(scenario_source: InMemoryDataSource) -> None:
    result = await _service(scenario_source).get_realtime_prediction(CUSTOMER_ID, SESSION_ID)
    prediction = result.prediction

    assert prediction.risk_level in (RiskLevel.high, RiskLevel.critical)
    assert prediction.risk_score == 56
    assert prediction.intervention_suggested is True
    assert prediction.intervention_type == InterventionType.discount
    assert "Consider offering a discount or incentive" in prediction.recommendations
    assert "Offer multiple payment options" in prediction.recommendations
    assert prediction.confidence == pytest.approx(0.95)
    assert prediction.factors.historical_data.conversion_rate == pytest.approx(0.5)

    assert result.has_update is True
    assert result.timestamp == NOW

    assert len(scenario_source.predictions) == 1
    stored = scenario_source.predictions[0]
    assert stored.session_id == SESSION_ID
    assert stored.order_form_id == "of_123"
    assert stored.risk_score == 56


@pytest.mark.asyncio
async def test_repeat_call_without_change_does_not_persist(scenario_source: InMemoryDataSource) -> None:
    service = _service(scenario_source)
    await service.get_realtime_prediction(CUSTOMER_ID, SESSION_ID)
    second = await service.get_realtime_prediction(CUSTOMER_ID, SESSION_ID)

    assert second.has_update is False
    assert second.prediction.risk_score == 56
    assert len(scenario_source.predictions) == 1


@pytest.mark.asyncio
async def test_large_change_appends_new_record(scenario_source: InMemoryDataSource) -> None:
    service = _service(scenario_source)
    await service.get_realtime_prediction(CUSTOMER_ID, SESSION_ID)

    # Two more errors: error sub-score 10 → 30, +16.7 points
    scenario_source.add_events(CUSTOMER_ID, [
        make_event("error_occurred", 30, step="payment"),
        make_event("error_occurred", 20, step="payment"),
    ])
    result = await service.get_realtime_prediction(CUSTOMER_ID, SESSION_ID)

    assert result.prediction.risk_score == 73
    assert result.prediction.risk_level == RiskLevel.critical
    assert result.has_update is True
    assert [r.risk_score for r in scenario_source.predictions] == [56, 73]


@pytest.mark.asyncio
async def test_history_raises_risk(scenario_source: InMemoryDataSource) -> None:
    for i in range(3):
        scenario_source.add_events(CUSTOMER_ID, [
            make_event("checkout_start", (i + 2) * DAY, session_id=f"past_{i}"),
            make_event("step_abandoned", (i + 2) * DAY - 60, session_id=f"past_{i}"),
        ])

    result = await _service(scenario_source).get_realtime_prediction(CUSTOMER_ID, SESSION_ID)

    assert result.prediction.risk_score == 71
    assert result.prediction.risk_level == RiskLevel.critical
    assert result.prediction.factors.historical_data.previous_abandonments == 3


@pytest.mark.asyncio
async def test_other_open_session_counts_as_history(scenario_source: InMemoryDataSource) -> None:
    # Started, never converted: conversion rate 0 adds 10 behavioral points
    scenario_source.add_events(CUSTOMER_ID, [make_event("checkout_start", 30, session_id="sess_other", step="cart")])

    result = await _service(scenario_source).get_realtime_prediction(CUSTOMER_ID, SESSION_ID)

    assert result.prediction.risk_score == 63
    assert result.prediction.factors.historical_data.sessions_observed == 1
    assert result.prediction.factors.historical_data.conversion_rate == 0.0


@pytest.mark.asyncio
async def test_events_outside_session_window_are_ignored(scenario_source: InMemoryDataSource) -> None:
    scenario_source.add_events(CUSTOMER_ID, [make_event("checkout_start", 8 * DAY, step="cart")])

    result = await _service(scenario_source).get_realtime_prediction(CUSTOMER_ID, SESSION_ID)

    assert result.prediction.factors.total_duration == pytest.approx(250)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_empty_session_is_not_found(source: InMemoryDataSource) -> None:
    with pytest.raises(SessionNotFoundError):
        await _service(source).get_realtime_prediction(CUSTOMER_ID, SESSION_ID)
    assert source.predictions == []


@pytest.mark.asyncio
@pytest.mark.parametrize("customer_id, session_id", [(None, SESSION_ID), ("", SESSION_ID), (CUSTOMER_ID, None), (CUSTOMER_ID, "")])
async def test_missing_identifiers_fail_before_io(source: InMemoryDataSource, customer_id, session_id) -> None:
    with pytest.raises(PreconditionError):
        await _service(source).get_realtime_prediction(customer_id, session_id)
    assert source.fetch_calls == []


@pytest.mark.asyncio
async def test_primary_fetch_failure_is_upstream_error() -> None:
    source = MagicMock()
    source.fetch_events = AsyncMock(side_effect=TimeoutError("pool exhausted"))
    source.persist_prediction = AsyncMock()

    with pytest.raises(UpstreamFetchError) as exc_info:
        await _service(source).get_realtime_prediction(CUSTOMER_ID, SESSION_ID)

    # Caller-facing message stays generic
    assert "pool" not in exc_info.value.message
    source.persist_prediction.assert_not_awaited()


# ---------------------------------------------------------------------------
# Degradation
# ---------------------------------------------------------------------------

class _HistoryDown(InMemoryDataSource):
    async def fetch_events(self, customer_id, event_types, start, end, session_id=None):
        if session_id is None:
            raise ConnectionError("replica down")
        return await super().fetch_events(customer_id, event_types, start, end, session_id=session_id)


class _LatestDown(InMemoryDataSource):
    async def fetch_latest_prediction(self, session_id):
        raise ConnectionError("cache and db down")


class _PersistDown(InMemoryDataSource):
    async def persist_prediction(self, customer_id, session_id, order_form_id, prediction):
        raise ConnectionError("write failed")


@pytest.mark.asyncio
async def test_history_failure_uses_default_baseline() -> None:
    source = _HistoryDown()
    source.add_events(CUSTOMER_ID, payment_scenario_events())

    result = await _service(source).get_realtime_prediction(CUSTOMER_ID, SESSION_ID)

    assert result.prediction.risk_score == 56
    assert result.prediction.factors.historical_data.previous_abandonments == 0


@pytest.mark.asyncio
async def test_latest_prediction_failure_is_treated_as_first() -> None:
    source = _LatestDown()
    source.add_events(CUSTOMER_ID, payment_scenario_events())

    result = await _service(source).get_realtime_prediction(CUSTOMER_ID, SESSION_ID)

    assert result.has_update is True
    assert len(source.predictions) == 1


@pytest.mark.asyncio
async def test_persist_failure_still_returns_prediction() -> None:
    source = _PersistDown()
    source.add_events(CUSTOMER_ID, payment_scenario_events())

    result = await _service(source).get_realtime_prediction(CUSTOMER_ID, SESSION_ID)

    assert result.prediction.risk_score == 56
    assert result.has_update is True


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------

class _Rendezvous(InMemoryDataSource):
    """History fetch only finishes once the latest-prediction read has started."""

    def __init__(self):
        super().__init__()
        self.latest_started = asyncio.Event()
        self.history_saw_latest = False

    async def fetch_events(self, customer_id, event_types, start, end, session_id=None):
        if session_id is None:
            await asyncio.wait_for(self.latest_started.wait(), timeout=1.0)
            self.history_saw_latest = True
        return await super().fetch_events(customer_id, event_types, start, end, session_id=session_id)

    async def fetch_latest_prediction(self, session_id):
        self.latest_started.set()
        return await super().fetch_latest_prediction(session_id)


@pytest.mark.asyncio
async def test_history_and_latest_prediction_are_fetched_concurrently() -> None:
    source = _Rendezvous()
    source.add_events(CUSTOMER_ID, payment_scenario_events())

    await _service(source).get_realtime_prediction(CUSTOMER_ID, SESSION_ID)

    assert source.history_saw_latest is True


@pytest.mark.asyncio
async def test_concurrent_sessions_do_not_interfere() -> None:
    source = InMemoryDataSource()
    source.add_events(CUSTOMER_ID, payment_scenario_events())
    # Another account, so neither session counts as the other's history
    source.add_events("cust_calm", [make_event("checkout_start", 30, session_id="sess_calm", step="cart")])
    service = _service(source)

    busy, calm = await asyncio.gather(
        service.get_realtime_prediction(CUSTOMER_ID, SESSION_ID),
        service.get_realtime_prediction("cust_calm", "sess_calm"),
    )

    assert busy.prediction.risk_score == 56
    assert calm.prediction.risk_level == RiskLevel.low
    assert {r.session_id for r in source.predictions} == {SESSION_ID, "sess_calm"}


# ---------------------------------------------------------------------------
# record_prediction (no gate)
# ---------------------------------------------------------------------------

class _CountingLatest(InMemoryDataSource):
    def __init__(self):
        super().__init__()
        self.latest_reads = 0

    async def fetch_latest_prediction(self, session_id):
        self.latest_reads += 1
        return await super().fetch_latest_prediction(session_id)


@pytest.mark.asyncio
async def test_record_prediction_persists_every_call() -> None:
    source = _CountingLatest()
    source.add_events(CUSTOMER_ID, payment_scenario_events())
    service = _service(source)

    first = await service.record_prediction(CUSTOMER_ID, SESSION_ID)
    second = await service.record_prediction(CUSTOMER_ID, SESSION_ID)

    assert first.risk_score == second.risk_score == 56
    assert [r.risk_score for r in source.predictions] == [56, 56]
    assert {r.model_version for r in source.predictions} == {"weighted-v1"}
    assert source.predictions[0].order_form_id == "of_123"
    assert source.latest_reads == 0


@pytest.mark.asyncio
async def test_record_after_realtime_still_appends(scenario_source: InMemoryDataSource) -> None:
    service = _service(scenario_source)
    await service.get_realtime_prediction(CUSTOMER_ID, SESSION_ID)

    await service.record_prediction(CUSTOMER_ID, SESSION_ID)
    polled = await service.get_realtime_prediction(CUSTOMER_ID, SESSION_ID)

    assert len(scenario_source.predictions) == 2
    assert polled.has_update is False


@pytest.mark.asyncio
async def test_record_prediction_persist_failure_still_returns() -> None:
    source = _PersistDown()
    source.add_events(CUSTOMER_ID, payment_scenario_events())

    prediction = await _service(source).record_prediction(CUSTOMER_ID, SESSION_ID)

    assert prediction.risk_score == 56


@pytest.mark.asyncio
async def test_record_prediction_errors(source: InMemoryDataSource) -> None:
    with pytest.raises(PreconditionError):
        await _service(source).record_prediction(CUSTOMER_ID, "")
    with pytest.raises(SessionNotFoundError):
        await _service(source).record_prediction(CUSTOMER_ID, SESSION_ID)
    assert source.predictions == []

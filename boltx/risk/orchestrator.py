"""
orchestrator.py — Real-time abandonment risk for one checkout session.

Per call (no state survives between calls):
  1. Validate identifiers                     → PreconditionError
  2. Fetch the session's events (7 days)      → UpstreamFetchError / SessionNotFoundError
  3. Extract features
  4. Historical context (30 days)   ┐ awaited concurrently;
     Latest persisted prediction    ┘ both degrade instead of failing
  5. Score, then apply the intervention policy
  6. Change-detection gate
  7. Persist if the gate fires; a failed write is logged, never raised
  8. Return {prediction, timestamp, hasUpdate}

record_prediction() skips the latest-prediction read and the gate, and always
persists: the on-demand "score and record now" path behind
GET /api/boltx/predictions.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Sequence

from boltx.config import HYSTERESIS_THRESHOLD, STEP_ORDER, settings
from boltx.risk.datasource import CheckoutDataSource
from boltx.risk.errors import PreconditionError, SessionNotFoundError, UpstreamFetchError
from boltx.risk.features import extract_features
from boltx.risk.gate import evaluate_gate
from boltx.risk.history import fetch_historical_context
from boltx.risk.policy import apply_policy
from boltx.risk.schemas import (
    SESSION_EVENT_TYPES,
    AbandonmentPrediction,
    FeatureVector,
    PersistedPredictionRecord,
    RealtimePredictionResponse,
)
from boltx.risk.scoring import RiskModel, WeightedRiskModel

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require_ids(customer_id: Optional[str], session_id: Optional[str]) -> None:
    if not customer_id:
        raise PreconditionError("Customer account is required")
    if not session_id:
        raise PreconditionError("Session ID is required")


class RealtimeRiskService:
    """Coordinates extractor → aggregator → model → policy → gate for one request."""

    def __init__(
        self,
        source: CheckoutDataSource,
        model: Optional[RiskModel] = None,
        clock: Callable[[], datetime] = _utcnow,
        typical_checkout_seconds: float = settings.typical_checkout_seconds,
        hysteresis_threshold: int = HYSTERESIS_THRESHOLD,
        session_window_days: int = settings.session_window_days,
        history_window_days: int = settings.history_window_days,
        step_order: Sequence[str] = STEP_ORDER,
    ):
        self.source = source
        self.model = model or WeightedRiskModel()
        self.clock = clock
        self.typical_checkout_seconds = typical_checkout_seconds
        self.hysteresis_threshold = hysteresis_threshold
        self.session_window_days = session_window_days
        self.history_window_days = history_window_days
        self.step_order = step_order

    async def _latest_prediction_or_none(self, session_id: str) -> Optional[PersistedPredictionRecord]:
        try:
            return await self.source.fetch_latest_prediction(session_id)
        except Exception as exc:
            logger.warning(
                "Latest prediction unavailable session_id=%s — treating as first prediction: %s",
                session_id,
                exc,
            )
            return None

    async def _session_features(self, customer_id: str, session_id: str, now: datetime) -> FeatureVector:
        try:
            events = await self.source.fetch_events(
                customer_id,
                SESSION_EVENT_TYPES,
                now - timedelta(days=self.session_window_days),
                now,
                session_id=session_id,
            )
        except Exception as exc:
            logger.error(
                "Event fetch failed customer_id=%s session_id=%s: %s",
                customer_id,
                session_id,
                exc,
                exc_info=True,
            )
            raise UpstreamFetchError() from exc

        # A source may ignore the session filter
        events = [e for e in events if e.session_id == session_id]
        if not events:
            logger.info("No events for session customer_id=%s session_id=%s", customer_id, session_id)
            raise SessionNotFoundError()

        return extract_features(
            events,
            now=now,
            typical_checkout_seconds=self.typical_checkout_seconds,
            step_order=self.step_order,
        )

    async def _persist(
        self,
        customer_id: str,
        session_id: str,
        features: FeatureVector,
        prediction: AbandonmentPrediction,
    ) -> None:
        try:
            await self.source.persist_prediction(
                customer_id, session_id, features.order_form_id, prediction
            )
        except Exception as exc:
            # The caller already holds a valid in-memory prediction
            logger.error(
                "Prediction persist failed session_id=%s: %s", session_id, exc, exc_info=True
            )

    async def get_realtime_prediction(
        self,
        customer_id: Optional[str],
        session_id: Optional[str],
    ) -> RealtimePredictionResponse:
        _require_ids(customer_id, session_id)
        now = self.clock()
        features = await self._session_features(customer_id, session_id, now)

        history, prior = await asyncio.gather(
            fetch_historical_context(
                self.source, customer_id, session_id, now=now, window_days=self.history_window_days
            ),
            self._latest_prediction_or_none(session_id),
        )

        prediction = apply_policy(self.model.score(features, history))

        decision = evaluate_gate(prediction, prior, threshold=self.hysteresis_threshold)
        logger.info(
            "Scored session_id=%s risk_score=%d risk_level=%s model=%s prior=%s persist=%s",
            session_id,
            prediction.risk_score,
            prediction.risk_level.value,
            prediction.model_version,
            decision.prior_score,
            decision.persist,
        )

        if decision.persist:
            await self._persist(customer_id, session_id, features, prediction)

        return RealtimePredictionResponse(
            prediction=prediction,
            timestamp=now,
            has_update=decision.has_update,
        )

    async def record_prediction(
        self,
        customer_id: Optional[str],
        session_id: Optional[str],
    ) -> AbandonmentPrediction:
        """
        Score the session and append the result unconditionally.

        Same pipeline as get_realtime_prediction minus the change-detection
        gate, so the latest persisted prediction is not read.
        """
        _require_ids(customer_id, session_id)
        now = self.clock()
        features = await self._session_features(customer_id, session_id, now)

        history = await fetch_historical_context(
            self.source, customer_id, session_id, now=now, window_days=self.history_window_days
        )
        prediction = apply_policy(self.model.score(features, history))
        logger.info(
            "Recorded session_id=%s risk_score=%d risk_level=%s model=%s",
            session_id,
            prediction.risk_score,
            prediction.risk_level.value,
            prediction.model_version,
        )

        await self._persist(customer_id, session_id, features, prediction)
        return prediction

"""
BoltX Risk Scoring Model — hand-tuned weighted heuristic.
Pure Python, no I/O, deterministic. Same input → same output.

Five independent sub-scores, each capped at its own maximum, are normalized to
their cap and combined with fixed weights that sum to 1.0:

    score = Σ weight_i × (sub_score_i / cap_i) × 100        clamped to [0, 100]

RiskModel is the strategy interface the orchestrator depends on, so a learned
model can replace WeightedRiskModel without touching the request path.
"""
from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Optional

from boltx.risk.schemas import (
    FeatureVector,
    HistoricalContext,
    HistoricalSnapshot,
    PredictionFactors,
    RiskAssessment,
    RiskLevel,
)

# ===========================================================================
# WEIGHTS (sum to 1.0) AND SUB-SCORE CAPS
# ===========================================================================

WEIGHT_TIME     = 0.30
WEIGHT_ERRORS   = 0.25
WEIGHT_STEP     = 0.20
WEIGHT_BEHAVIOR = 0.15
WEIGHT_CONTEXT  = 0.10

CAP_TIME     = 40
CAP_ERRORS   = 30
CAP_STEP     = 25
CAP_BEHAVIOR = 20
CAP_CONTEXT  = 10

# ===========================================================================
# TIME RISK
# ===========================================================================

# (ratio strictly above, points), evaluated top-down; first match wins
TIME_RATIO_BANDS: list[tuple[float, int]] = [
    (1.5, 40),
    (1.0, 30),
    (0.5, 20),
    (0.2, 10),
]
# Absolute-duration floors: only ever raise the ratio-based value
TIME_FLOOR_LONG_SECONDS  = 300
TIME_FLOOR_LONG_POINTS   = 35
TIME_FLOOR_SHORT_SECONDS = 180
TIME_FLOOR_SHORT_POINTS  = 25

# ===========================================================================
# STEP RISK
# ===========================================================================

STEP_BASE_POINTS: dict[str, int] = {
    "cart":     5,
    "profile":  10,
    "shipping": 15,
    "payment":  20,
}
STEP_UNKNOWN_POINTS        = 10
STEP_STUCK_LONG_SECONDS    = 300
STEP_STUCK_LONG_POINTS     = 10
STEP_STUCK_SHORT_SECONDS   = 180
STEP_STUCK_SHORT_POINTS    = 5
STEP_LOW_PROGRESS_RATIO    = 0.25
STEP_LOW_PROGRESS_POINTS   = 5

# ===========================================================================
# BEHAVIORAL / CONTEXT RISK
# ===========================================================================

RETURNED_CREDIT              = 15   # subtracted: returning shows intent
REPEAT_ABANDONER_POINTS      = 15   # > 2 previous abandonments
PAST_ABANDONER_POINTS        = 10   # 1–2 previous abandonments
LOW_CONVERSION_RATE          = 0.2
LOW_CONVERSION_POINTS        = 10
MEDIUM_CONVERSION_RATE       = 0.5
MEDIUM_CONVERSION_POINTS     = 5
MOBILE_DEVICE_POINTS         = 5
# Location contributes nothing yet; rules will land here.
LOCATION_POINTS              = 0

# ===========================================================================
# CONFIDENCE (data completeness, NOT accuracy)
# ===========================================================================

CONFIDENCE_BASE                 = 0.5
CONFIDENCE_ABANDONMENTS_BONUS   = 0.2
CONFIDENCE_AVG_DURATION_BONUS   = 0.1
CONFIDENCE_CONVERSION_BONUS     = 0.1
CONFIDENCE_DEVICE_BONUS         = 0.05
CONFIDENCE_LOCATION_BONUS       = 0.05

# ===========================================================================
# RISK LEVEL THRESHOLDS (inclusive lower bounds, evaluated high → low)
# ===========================================================================

CRITICAL_THRESHOLD = 70
HIGH_THRESHOLD     = 50
MEDIUM_THRESHOLD   = 30


# ===========================================================================
# SUB-SCORES (pure functions, no I/O)
# ===========================================================================

def calculate_time_risk(time_exceeded_ratio: float, total_duration: float) -> int:
    risk = 0
    for threshold, points in TIME_RATIO_BANDS:
        if time_exceeded_ratio > threshold:
            risk = points
            break

    if total_duration > TIME_FLOOR_LONG_SECONDS:
        risk = max(risk, TIME_FLOOR_LONG_POINTS)
    elif total_duration > TIME_FLOOR_SHORT_SECONDS:
        risk = max(risk, TIME_FLOOR_SHORT_POINTS)

    return min(CAP_TIME, risk)


def calculate_error_risk(error_count: int) -> int:
    if error_count >= 3:
        return 30
    if error_count == 2:
        return 20
    if error_count == 1:
        return 10
    return 0


def calculate_step_risk(current_step: str, step_duration: float, step_progress_ratio: float) -> int:
    risk = STEP_BASE_POINTS.get(current_step, STEP_UNKNOWN_POINTS)

    if step_duration > STEP_STUCK_LONG_SECONDS:
        risk += STEP_STUCK_LONG_POINTS
    elif step_duration > STEP_STUCK_SHORT_SECONDS:
        risk += STEP_STUCK_SHORT_POINTS

    if step_progress_ratio < STEP_LOW_PROGRESS_RATIO:
        risk += STEP_LOW_PROGRESS_POINTS

    return min(CAP_STEP, risk)


def calculate_behavioral_risk(has_returned: bool, history: Optional[HistoricalContext]) -> int:
    risk = 0
    if has_returned:
        risk -= RETURNED_CREDIT

    if history is not None:
        if history.previous_abandonments > 2:
            risk += REPEAT_ABANDONER_POINTS
        elif history.previous_abandonments > 0:
            risk += PAST_ABANDONER_POINTS

        if history.conversion_rate < LOW_CONVERSION_RATE:
            risk += LOW_CONVERSION_POINTS
        elif history.conversion_rate < MEDIUM_CONVERSION_RATE:
            risk += MEDIUM_CONVERSION_POINTS

    return max(0, min(CAP_BEHAVIOR, risk))


def calculate_context_risk(device_type: Optional[str], location: Optional[str]) -> int:
    risk = 0
    if device_type == "mobile":
        risk += MOBILE_DEVICE_POINTS
    if location:
        risk += LOCATION_POINTS
    return min(CAP_CONTEXT, risk)


def calculate_confidence(features: FeatureVector, history: Optional[HistoricalContext]) -> float:
    confidence = CONFIDENCE_BASE
    if history is not None:
        confidence += CONFIDENCE_ABANDONMENTS_BONUS
        confidence += CONFIDENCE_AVG_DURATION_BONUS
        confidence += CONFIDENCE_CONVERSION_BONUS
    if features.device_type:
        confidence += CONFIDENCE_DEVICE_BONUS
    if features.location:
        confidence += CONFIDENCE_LOCATION_BONUS
    return round(min(1.0, confidence), 4)


def get_risk_level(score: float) -> RiskLevel:
    if score >= CRITICAL_THRESHOLD:
        return RiskLevel.critical
    if score >= HIGH_THRESHOLD:
        return RiskLevel.high
    if score >= MEDIUM_THRESHOLD:
        return RiskLevel.medium
    return RiskLevel.low


def _round_half_up(value: float) -> int:
    # round(…, 6) absorbs float noise so 22.499999… still rounds like 22.5
    return int(math.floor(round(value, 6) + 0.5))


def build_factors(features: FeatureVector, history: Optional[HistoricalContext]) -> PredictionFactors:
    snapshot = None
    if history is not None:
        snapshot = HistoricalSnapshot(
            previous_abandonments=history.previous_abandonments,
            avg_checkout_time=history.avg_checkout_duration_seconds,
            conversion_rate=history.conversion_rate,
            sessions_observed=history.sessions_observed,
        )
    return PredictionFactors(
        time_exceeded_ratio=features.time_exceeded_ratio,
        error_count=features.error_count,
        current_step=features.current_step,
        step_duration=features.step_duration,
        total_duration=features.total_duration,
        has_returned=features.has_returned,
        step_progress_ratio=features.step_progress_ratio,
        device_type=features.device_type,
        location=features.location,
        historical_data=snapshot,
    )


# ===========================================================================
# STRATEGY INTERFACE
# ===========================================================================

class RiskModel(ABC):
    """Maps (features, history) to a RiskAssessment. Implementations must be pure."""

    model_version: str = "unversioned"

    @abstractmethod
    def score(self, features: FeatureVector, history: Optional[HistoricalContext] = None) -> RiskAssessment:
        ...


class WeightedRiskModel(RiskModel):
    """The hand-tuned five-factor heuristic."""

    model_version = "weighted-v1"

    def contributions(
        self, features: FeatureVector, history: Optional[HistoricalContext] = None
    ) -> dict[str, float]:
        """Weighted points each sub-score adds to the final 0–100 score."""
        raw = {
            "time":     (calculate_time_risk(features.time_exceeded_ratio, features.total_duration), CAP_TIME, WEIGHT_TIME),
            "errors":   (calculate_error_risk(features.error_count), CAP_ERRORS, WEIGHT_ERRORS),
            "step":     (calculate_step_risk(features.current_step, features.step_duration, features.step_progress_ratio), CAP_STEP, WEIGHT_STEP),
            "behavior": (calculate_behavioral_risk(features.has_returned, history), CAP_BEHAVIOR, WEIGHT_BEHAVIOR),
            "context":  (calculate_context_risk(features.device_type, features.location), CAP_CONTEXT, WEIGHT_CONTEXT),
        }
        return {name: (weight * 100) * points / cap for name, (points, cap, weight) in raw.items()}

    def score(self, features: FeatureVector, history: Optional[HistoricalContext] = None) -> RiskAssessment:
        contributions = self.contributions(features, history)
        total = max(0.0, min(100.0, sum(contributions.values())))
        risk_score = _round_half_up(total)

        # Stable sort keeps declaration order for ties
        ranked = [
            name
            for name, value in sorted(contributions.items(), key=lambda kv: kv[1], reverse=True)
            if value > 0
        ]

        return RiskAssessment(
            risk_score=risk_score,
            risk_level=get_risk_level(risk_score),
            confidence=calculate_confidence(features, history),
            factors=build_factors(features, history),
            ranked_factors=ranked,
            model_version=self.model_version,
        )

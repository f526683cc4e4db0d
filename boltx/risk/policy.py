"""
policy.py — Intervention policy: a deterministic decision table.

Two independent outputs:
  - recommendations: ACCUMULATE across every applicable rule, in table order.
  - intervention_type: FIRST matching branch wins, and only when an
    intervention is suggested at all (medium / high / critical).
"""
from __future__ import annotations

from typing import Optional

from boltx.risk.schemas import (
    AbandonmentPrediction,
    FeatureVector,
    InterventionType,
    PredictionFactors,
    RiskAssessment,
    RiskLevel,
)

INTERVENTION_LEVELS = frozenset({RiskLevel.medium, RiskLevel.high, RiskLevel.critical})
URGENT_LEVELS = frozenset({RiskLevel.high, RiskLevel.critical})

STUCK_STEP_SECONDS = 180
SLOW_CHECKOUT_RATIO = 1.0

INCENTIVE_RECOMMENDATIONS = [
    "Consider offering a discount or incentive",
    "Send recovery email if user abandons",
    "Simplify checkout process",
]
ERROR_RECOMMENDATIONS = [
    "Improve error handling and user feedback",
    "Simplify form validation",
]
SPEED_RECOMMENDATIONS = [
    "Optimize checkout flow to reduce time",
    "Consider auto-fill options for faster checkout",
]
PAYMENT_TRUST_RECOMMENDATIONS = [
    "Offer multiple payment options",
    "Show security badges and trust indicators",
]
PROGRESS_RECOMMENDATIONS = [
    "Add progress indicators to show completion",
    "Provide clear next steps guidance",
]

# Either a FeatureVector or the PredictionFactors snapshot carries what the rules read
_Features = FeatureVector | PredictionFactors


def should_intervene(risk_level: RiskLevel) -> bool:
    return risk_level in INTERVENTION_LEVELS


def generate_recommendations(risk_level: RiskLevel, features: _Features) -> list[str]:
    recommendations: list[str] = []

    if risk_level in URGENT_LEVELS:
        recommendations.extend(INCENTIVE_RECOMMENDATIONS)
    if features.error_count > 0:
        recommendations.extend(ERROR_RECOMMENDATIONS)
    if features.time_exceeded_ratio > SLOW_CHECKOUT_RATIO:
        recommendations.extend(SPEED_RECOMMENDATIONS)
    if features.current_step == "payment":
        recommendations.extend(PAYMENT_TRUST_RECOMMENDATIONS)
    if features.step_duration > STUCK_STEP_SECONDS:
        recommendations.extend(PROGRESS_RECOMMENDATIONS)

    return recommendations


def select_intervention_type(risk_level: RiskLevel, features: _Features) -> Optional[InterventionType]:
    if not should_intervene(risk_level):
        return None
    if risk_level in URGENT_LEVELS:
        return InterventionType.discount
    if features.current_step == "payment":
        return InterventionType.security
    if features.error_count > 0 or features.step_duration > STUCK_STEP_SECONDS:
        return InterventionType.simplify
    return InterventionType.progress


def apply_policy(assessment: RiskAssessment) -> AbandonmentPrediction:
    """Finalize a scorer assessment into a full AbandonmentPrediction."""
    level = assessment.risk_level
    factors = assessment.factors
    return AbandonmentPrediction(
        risk_score=assessment.risk_score,
        risk_level=level,
        confidence=assessment.confidence,
        factors=factors,
        recommendations=generate_recommendations(level, factors),
        intervention_suggested=should_intervene(level),
        intervention_type=select_intervention_type(level, factors),
        ranked_factors=list(assessment.ranked_factors),
        model_version=assessment.model_version,
    )

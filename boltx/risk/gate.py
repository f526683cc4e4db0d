"""
gate.py — Change-detection and persistence gate.

Decides whether a freshly computed prediction is written. The same boolean is
reported to callers as `hasUpdate`; "should notify" and "should persist" are
one decision today.

HYSTERESIS_THRESHOLD is strict: a delta of exactly 10 does NOT persist.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from boltx.config import HYSTERESIS_THRESHOLD
from boltx.risk.schemas import AbandonmentPrediction, PersistedPredictionRecord


@dataclass(frozen=True)
class GateDecision:
    persist: bool
    prior_score: Optional[int]
    delta: Optional[int]

    @property
    def has_update(self) -> bool:
        return self.persist


def should_persist(
    new_score: int,
    prior_score: Optional[int],
    threshold: int = HYSTERESIS_THRESHOLD,
) -> bool:
    if prior_score is None:
        return True
    return abs(new_score - prior_score) > threshold


def evaluate_gate(
    prediction: AbandonmentPrediction,
    prior: Optional[PersistedPredictionRecord],
    threshold: int = HYSTERESIS_THRESHOLD,
) -> GateDecision:
    prior_score = prior.risk_score if prior is not None else None
    return GateDecision(
        persist=should_persist(prediction.risk_score, prior_score, threshold),
        prior_score=prior_score,
        delta=None if prior_score is None else prediction.risk_score - prior_score,
    )

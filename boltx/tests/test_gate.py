"""
Change-detection gate tests. The hysteresis threshold (10) is strict.
"""
from __future__ import annotations

import pytest

from boltx.config import Settings
from boltx.risk.gate import HYSTERESIS_THRESHOLD, evaluate_gate, should_persist
from boltx.risk.policy import apply_policy
from boltx.risk.schemas import FeatureVector
from boltx.risk.scoring import WeightedRiskModel
from boltx.tests.factories import SESSION_ID, make_record


def _prediction():
    features = FeatureVector(
        time_exceeded_ratio=0.1,
        error_count=0,
        current_step="cart",
        step_duration=10,
        total_duration=10,
        step_progress_ratio=0.25,
    )
    return apply_policy(WeightedRiskModel().score(features, None))


def _record(score: int):
    return make_record(SESSION_ID, score)


def test_threshold_constant() -> None:
    assert HYSTERESIS_THRESHOLD == 10


def test_threshold_ignores_environment(monkeypatch) -> None:
    monkeypatch.setenv("BOLTX_HYSTERESIS_THRESHOLD", "25")

    assert not hasattr(Settings(), "hysteresis_threshold")
    assert should_persist(70, 50) is True


@pytest.mark.parametrize("score", [0, 4, 50, 100])
def test_first_prediction_always_persists(score: int) -> None:
    assert should_persist(score, None) is True


@pytest.mark.parametrize(
    "prior, new, expected",
    [
        (50, 60, False),   # delta exactly 10 is not enough
        (50, 61, True),
        (50, 40, False),
        (50, 39, True),    # drops count too
        (50, 50, False),
    ],
)
def test_hysteresis(prior: int, new: int, expected: bool) -> None:
    assert should_persist(new, prior) is expected


def test_evaluate_gate_first_prediction() -> None:
    decision = evaluate_gate(_prediction(), None)

    assert decision.persist is True
    assert decision.has_update is True
    assert decision.prior_score is None
    assert decision.delta is None


def test_evaluate_gate_reports_delta_and_keeps_has_update_equal_to_persist() -> None:
    prediction = _prediction()   # scores 4

    unchanged = evaluate_gate(prediction, _record(10))
    assert unchanged.persist is False
    assert unchanged.has_update == unchanged.persist
    assert unchanged.delta == -6

    moved = evaluate_gate(prediction, _record(40))
    assert moved.persist is True
    assert moved.has_update == moved.persist
    assert moved.prior_score == 40

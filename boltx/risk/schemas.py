"""
schemas.py — Risk engine Pydantic v2 data contracts.

Defines:
  - CheckoutEventType, RiskLevel, InterventionType enums
  - CheckoutEvent          (immutable fact read from the event store)
  - FeatureVector          (per-call features derived from one session's events)
  - HistoricalContext      (customer baseline from past sessions)
  - PredictionFactors      (audit snapshot stored alongside every prediction)
  - RiskAssessment         (scorer output, before the intervention policy runs)
  - AbandonmentPrediction  (final prediction — API payload and persisted record)
  - PersistedPredictionRecord, RealtimePredictionResponse, ModelMetrics
  - ErrorDetail, ErrorBody, ErrorResponse  (cross-cutting error envelope)

All models serialize with camelCase aliases (riskScore, hasUpdate, ...) because
the dashboard consumes them directly. Python code uses snake_case names.
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class CheckoutEventType(str, Enum):
    checkout_start = "checkout_start"
    checkout_started = "checkout_started"
    step_viewed = "step_viewed"
    step_completed = "step_completed"
    step_abandoned = "step_abandoned"
    error_occurred = "error_occurred"
    checkout_complete = "checkout_complete"
    order_confirmed = "order_confirmed"
    address_validated = "address_validated"
    shipping_selected = "shipping_selected"


# Both spellings are emitted by storefront integrations
START_EVENT_TYPES = frozenset({CheckoutEventType.checkout_start, CheckoutEventType.checkout_started})
COMPLETION_EVENT_TYPES = frozenset({CheckoutEventType.checkout_complete, CheckoutEventType.order_confirmed})

# Event types pulled for the live session (scoring) and for the trailing history
SESSION_EVENT_TYPES: list[CheckoutEventType] = [
    CheckoutEventType.checkout_start,
    CheckoutEventType.checkout_started,
    CheckoutEventType.step_viewed,
    CheckoutEventType.step_completed,
    CheckoutEventType.step_abandoned,
    CheckoutEventType.error_occurred,
    CheckoutEventType.checkout_complete,
    CheckoutEventType.order_confirmed,
]
HISTORY_EVENT_TYPES: list[CheckoutEventType] = [
    CheckoutEventType.checkout_start,
    CheckoutEventType.checkout_started,
    CheckoutEventType.checkout_complete,
    CheckoutEventType.order_confirmed,
    CheckoutEventType.step_abandoned,
]
OUTCOME_EVENT_TYPES: list[CheckoutEventType] = [
    CheckoutEventType.checkout_complete,
    CheckoutEventType.order_confirmed,
    CheckoutEventType.step_abandoned,
]


class RiskLevel(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"


class InterventionType(str, Enum):
    discount = "discount"
    security = "security"
    simplify = "simplify"
    progress = "progress"


class CamelModel(BaseModel):
    """Base for every contract exposed to the dashboard."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# CheckoutEvent — read-only input
# ---------------------------------------------------------------------------

class CheckoutEvent(CamelModel):
    """
    One checkout event as stored by the ingestion layer.

    Frozen: the engine never mutates events. Naive timestamps are taken as UTC.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    session_id: str
    event_type: CheckoutEventType
    timestamp: datetime
    step: Optional[str] = None
    order_form_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("timestamp")
    @classmethod
    def _ensure_aware(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


# ---------------------------------------------------------------------------
# FeatureVector / HistoricalContext — derived, ephemeral
# ---------------------------------------------------------------------------

class FeatureVector(CamelModel):
    """Fixed-shape features for the current state of one checkout session."""

    time_exceeded_ratio: float = Field(..., ge=0)
    error_count: int = Field(..., ge=0)
    current_step: str
    step_duration: float
    total_duration: float
    has_returned: bool = False
    step_progress_ratio: float = Field(..., ge=0, le=1)
    device_type: Optional[str] = None
    location: Optional[str] = None
    order_form_id: Optional[str] = None


DEFAULT_PREVIOUS_ABANDONMENTS = 0
DEFAULT_AVG_CHECKOUT_SECONDS = 180.0
DEFAULT_CONVERSION_RATE = 0.5


class HistoricalContext(CamelModel):
    """
    Customer baseline computed from other sessions in the trailing window.

    sessions_observed == 0 marks the default triple: it is a neutral prior,
    not a measured zero-abandonment / 50% conversion customer.
    """

    previous_abandonments: int = Field(default=DEFAULT_PREVIOUS_ABANDONMENTS, ge=0)
    avg_checkout_duration_seconds: float = Field(default=DEFAULT_AVG_CHECKOUT_SECONDS, ge=0)
    conversion_rate: float = Field(default=DEFAULT_CONVERSION_RATE, ge=0, le=1)
    sessions_observed: int = Field(default=0, ge=0)

    @classmethod
    def default(cls) -> "HistoricalContext":
        return cls()

    @property
    def is_default(self) -> bool:
        return self.sessions_observed == 0


# ---------------------------------------------------------------------------
# Prediction contracts
# ---------------------------------------------------------------------------

class HistoricalSnapshot(CamelModel):
    """History as the scorer saw it. sessions_observed == 0 means the default prior was used."""

    previous_abandonments: int = 0
    avg_checkout_time: float = 0.0
    conversion_rate: float = 0.0
    sessions_observed: int = 0


class PredictionFactors(CamelModel):
    """Copy of the inputs a prediction was computed from, kept for auditability."""

    time_exceeded_ratio: float
    error_count: int
    current_step: str
    step_duration: float
    total_duration: float
    has_returned: bool
    step_progress_ratio: float
    device_type: Optional[str] = None
    location: Optional[str] = None
    historical_data: Optional[HistoricalSnapshot] = None


class RiskAssessment(CamelModel):
    """
    Output of RiskModel.score().

    ranked_factors: sub-score names ordered by weighted contribution (largest
    first); sub-scores that contributed nothing are omitted.
    model_version: which RiskModel produced the score.
    """

    risk_score: int = Field(..., ge=0, le=100)
    risk_level: RiskLevel
    confidence: float = Field(..., ge=0, le=1)
    factors: PredictionFactors
    ranked_factors: List[str] = Field(default_factory=list)
    model_version: str = "unversioned"


class AbandonmentPrediction(CamelModel):
    """Final prediction returned to callers and persisted by the gate."""

    risk_score: int = Field(..., ge=0, le=100)
    risk_level: RiskLevel
    confidence: float = Field(..., ge=0, le=1)
    factors: PredictionFactors
    recommendations: List[str] = Field(default_factory=list)
    intervention_suggested: bool = False
    intervention_type: Optional[InterventionType] = None
    ranked_factors: List[str] = Field(default_factory=list)
    model_version: str = "unversioned"


class PersistedPredictionRecord(CamelModel):
    """The stored form of an AbandonmentPrediction. Never amended once written."""

    id: str
    customer_id: str
    session_id: str
    order_form_id: Optional[str] = None
    risk_score: int
    risk_level: RiskLevel
    confidence: float
    model_version: str = "unversioned"
    prediction: AbandonmentPrediction
    created_at: datetime


class RealtimePredictionResponse(CamelModel):
    """Payload of GET /api/boltx/realtime."""

    prediction: AbandonmentPrediction
    timestamp: datetime
    has_update: bool


class ModelMetrics(CamelModel):
    """Offline evaluation of persisted predictions against observed outcomes."""

    accuracy: float = 0.0
    precision: float = 0.0
    recall: float = 0.0
    f1_score: float = 0.0
    last_evaluated: Optional[datetime] = None
    sample_size: int = 0


# ---------------------------------------------------------------------------
# Error envelope — {"error": {"code", "message", "details"}}
# ---------------------------------------------------------------------------

class ErrorDetail(BaseModel):
    field: Optional[str] = None
    issue: str


class ErrorBody(BaseModel):
    code: str
    message: str
    details: List[ErrorDetail] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    error: ErrorBody


__all__ = [
    "CheckoutEventType",
    "RiskLevel",
    "InterventionType",
    "CheckoutEvent",
    "FeatureVector",
    "HistoricalContext",
    "HistoricalSnapshot",
    "PredictionFactors",
    "RiskAssessment",
    "AbandonmentPrediction",
    "PersistedPredictionRecord",
    "RealtimePredictionResponse",
    "ModelMetrics",
    "ErrorDetail",
    "ErrorBody",
    "ErrorResponse",
]

"""
models/ai_prediction.py — SQLAlchemy ORM for persisted abandonment predictions.

Table: ai_predictions
Append-only: a new row is written whenever the change-detection gate fires.
Rows are never updated, so a session's prediction history is immutable.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, Float, Index, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from boltx.database import Base


class AIPredictionORM(Base):
    """
    ORM model for one abandonment prediction.

    prediction_data: Full AbandonmentPrediction serialized as JSONB.
    risk_score / risk_level / intervention_*: denormalized for dashboard queries.
    """
    __tablename__ = "ai_predictions"
    __table_args__ = (
        Index("ix_ai_predictions_session_created", "session_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    customer_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )
    session_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )
    order_form_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )
    prediction_type: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default="abandonment",
    )
    risk_score: Mapped[int] = mapped_column(Integer, nullable=False)
    risk_level: Mapped[str] = mapped_column(String(16), nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    intervention_suggested: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    intervention_type: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    model_version: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default="unversioned",
        comment="RiskModel.model_version that produced the score",
    )
    prediction_data: Mapped[dict] = mapped_column(
        JSONB,
        nullable=False,
        comment="Full AbandonmentPrediction serialized as JSONB",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

"""
models/checkout_event.py — SQLAlchemy ORM for raw checkout events.

Table: checkout_events
One row per event emitted by the storefront checkout (start, step views,
errors, completion...). Written by the ingestion layer; the risk engine only
reads it.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from boltx.database import Base


class CheckoutEventORM(Base):
    """
    ORM model for a single checkout event.

    event_type: checkout_start, step_viewed, error_occurred, order_confirmed, ...
    step:       cart | profile | shipping | payment, when the event concerns a step.
    metadata_:  free-form context — deviceType, location, orderFormId.
    """
    __tablename__ = "checkout_events"
    __table_args__ = (
        Index("ix_checkout_events_customer_type_ts", "customer_id", "event_type", "timestamp"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        comment="UUID row identifier",
    )
    customer_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Merchant account that owns the checkout",
    )
    session_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
        comment="Checkout session identifier",
    )
    event_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )
    step: Mapped[Optional[str]] = mapped_column(
        String(32),
        nullable=True,
    )
    order_form_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )
    # "metadata" is reserved on declarative classes
    metadata_: Mapped[dict] = mapped_column(
        "metadata",
        JSONB,
        nullable=False,
        default=dict,
    )
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

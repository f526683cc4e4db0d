"""initial_schema

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18 00:00:00.000000 UTC

Creates the two tables the risk engine works with:
  checkout_events  one row per storefront checkout event (read-only for the engine)
  ai_predictions   append-only abandonment predictions written by the gate
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "checkout_events",
        sa.Column("id", sa.String(36), nullable=False, comment="UUID row identifier"),
        sa.Column(
            "customer_id",
            sa.String(64),
            nullable=False,
            comment="Merchant account that owns the checkout",
        ),
        sa.Column(
            "session_id",
            sa.String(64),
            nullable=False,
            comment="Checkout session identifier",
        ),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("step", sa.String(32), nullable=True),
        sa.Column("order_form_id", sa.String(64), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_checkout_events_session_id", "checkout_events", ["session_id"])
    op.create_index(
        "ix_checkout_events_customer_type_ts",
        "checkout_events",
        ["customer_id", "event_type", "timestamp"],
    )

    op.create_table(
        "ai_predictions",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("customer_id", sa.String(64), nullable=False),
        sa.Column("session_id", sa.String(64), nullable=False),
        sa.Column("order_form_id", sa.String(64), nullable=True),
        sa.Column("prediction_type", sa.String(32), nullable=False),
        sa.Column("risk_score", sa.Integer(), nullable=False),
        sa.Column("risk_level", sa.String(16), nullable=False),
        sa.Column("confidence", sa.Float(), nullable=False),
        sa.Column("intervention_suggested", sa.Boolean(), nullable=False),
        sa.Column("intervention_type", sa.String(16), nullable=True),
        sa.Column(
            "prediction_data",
            postgresql.JSONB(),
            nullable=False,
            comment="Full AbandonmentPrediction serialized as JSONB",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ai_predictions_customer_id", "ai_predictions", ["customer_id"])
    op.create_index(
        "ix_ai_predictions_session_created",
        "ai_predictions",
        ["session_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_ai_predictions_session_created", table_name="ai_predictions")
    op.drop_index("ix_ai_predictions_customer_id", table_name="ai_predictions")
    op.drop_table("ai_predictions")
    op.drop_index("ix_checkout_events_customer_type_ts", table_name="checkout_events")
    op.drop_index("ix_checkout_events_session_id", table_name="checkout_events")
    op.drop_table("checkout_events")

"""add_model_version

Revision ID: 002_add_model_version
Revises: 001_initial_schema
Create Date: 2026-10-18 00:00:00.000000 UTC

Records which RiskModel produced each persisted prediction, so accuracy can be
compared across models once a learned one replaces the weighted heuristic.
Existing rows were all scored before versioning and get 'unversioned'.
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "002_add_model_version"
down_revision: Union[str, None] = "001_initial_schema"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        "ai_predictions",
        sa.Column(
            "model_version",
            sa.String(32),
            nullable=False,
            server_default="unversioned",
            comment="RiskModel.model_version that produced the score",
        ),
    )


def downgrade() -> None:
    op.drop_column("ai_predictions", "model_version")

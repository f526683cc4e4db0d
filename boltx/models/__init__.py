"""
models/__init__.py — imports all ORM models so Alembic's env.py
sees them via Base.metadata when generating migrations.
"""
from boltx.models.checkout_event import CheckoutEventORM
from boltx.models.ai_prediction import AIPredictionORM

__all__ = ["CheckoutEventORM", "AIPredictionORM"]

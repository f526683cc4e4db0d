"""
auth.py — Caller identity and entitlement for the risk endpoints.

Authentication itself happens upstream: the API gateway verifies the dashboard
session and forwards the resolved account as trusted headers.
  X-Account-Id    merchant account id (required)
  X-Account-Plan  billing plan name   (must be one of settings.entitled_plans)

Missing account → 401. Plan not entitled → 403. No guessing, no fallbacks.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException

from boltx.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallerIdentity:
    customer_id: str
    plan: str


async def get_caller(
    x_account_id: Optional[str] = Header(default=None),
    x_account_plan: Optional[str] = Header(default=None),
) -> CallerIdentity:
    """FastAPI dependency resolving the calling merchant account."""
    customer_id = (x_account_id or "").strip()
    if not customer_id:
        raise HTTPException(status_code=401, detail="User account not found")

    plan = (x_account_plan or "").strip().lower()
    if plan not in settings.entitled_plans_set:
        logger.info("Entitlement denied customer_id=%s plan=%s", customer_id, plan or "-")
        raise HTTPException(
            status_code=403,
            detail="BoltX is only available on the Enterprise plan",
        )

    return CallerIdentity(customer_id=customer_id, plan=plan)

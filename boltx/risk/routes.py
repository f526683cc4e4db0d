"""
Risk engine HTTP routes — GET /api/boltx/realtime,
                           GET /api/boltx/predictions,
                           GET /api/boltx/predictions/history,
                           GET /api/boltx/model-metrics

Every endpoint requires an entitled caller (see auth.py). Responses use the
camelCase wire names; errors use the standard {error: {code, message, details}}
envelope via the handlers registered in main.py.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from boltx.auth import CallerIdentity, get_caller
from boltx.risk.datasource import CheckoutDataSource, SqlCheckoutDataSource
from boltx.risk.errors import PreconditionError
from boltx.risk.evaluation import evaluate_customer_predictions
from boltx.risk.orchestrator import RealtimeRiskService

router = APIRouter(prefix="/api/boltx", tags=["boltx"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_data_source(request: Request) -> CheckoutDataSource:
    """SQL-backed source; uses the Redis pool when lifespan created one."""
    redis = getattr(request.app.state, "redis", None)
    return SqlCheckoutDataSource(redis=redis)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("/realtime")
async def realtime_prediction(
    session_id: Optional[str] = Query(default=None, alias="sessionId"),
    caller: CallerIdentity = Depends(get_caller),
    source: CheckoutDataSource = Depends(get_data_source),
) -> JSONResponse:
    """
    Score one live checkout session.

    Returns:
      200: {prediction, timestamp, hasUpdate}
      400: sessionId missing
      401/403: caller not identified / not entitled
      404: no events for the session in the last 7 days
      500: event fetch or scoring failed
    """
    if not session_id or not session_id.strip():
        raise PreconditionError("Session ID is required")

    service = RealtimeRiskService(source)
    result = await service.get_realtime_prediction(caller.customer_id, session_id.strip())
    return JSONResponse(status_code=200, content=result.model_dump(mode="json", by_alias=True))


@router.get("/predictions")
async def record_prediction(
    session_id: Optional[str] = Query(default=None, alias="sessionId"),
    caller: CallerIdentity = Depends(get_caller),
    source: CheckoutDataSource = Depends(get_data_source),
) -> JSONResponse:
    """
    Score one checkout session now and append the result, whatever the last
    stored score was.

    Returns:
      200: the prediction (riskScore, riskLevel, factors, ...)
      400: sessionId missing
      401/403: caller not identified / not entitled
      404: no events for the session in the last 7 days
      500: event fetch or scoring failed
    """
    if not session_id or not session_id.strip():
        raise PreconditionError("Session ID is required")

    service = RealtimeRiskService(source)
    prediction = await service.record_prediction(caller.customer_id, session_id.strip())
    return JSONResponse(status_code=200, content=prediction.model_dump(mode="json", by_alias=True))


@router.get("/predictions/history")
async def list_predictions(
    session_id: Optional[str] = Query(default=None, alias="sessionId"),
    limit: int = Query(default=100, ge=1, le=1000),
    caller: CallerIdentity = Depends(get_caller),
    source: CheckoutDataSource = Depends(get_data_source),
) -> JSONResponse:
    """Persisted predictions for the caller, newest first, optionally for one session."""
    records = await source.list_predictions(
        caller.customer_id, session_id=session_id or None, limit=limit
    )
    logger.info(
        "Listed predictions customer_id=%s session_id=%s count=%d",
        caller.customer_id,
        session_id or "-",
        len(records),
    )
    return JSONResponse(
        status_code=200,
        content={"predictions": [r.model_dump(mode="json", by_alias=True) for r in records]},
    )


@router.get("/model-metrics")
async def model_metrics(
    caller: CallerIdentity = Depends(get_caller),
    source: CheckoutDataSource = Depends(get_data_source),
) -> JSONResponse:
    """Accuracy / precision / recall / F1 of past predictions against real outcomes."""
    metrics = await evaluate_customer_predictions(source, caller.customer_id)
    return JSONResponse(status_code=200, content=metrics.model_dump(mode="json", by_alias=True))

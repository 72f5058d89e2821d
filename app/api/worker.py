"""
Worker trigger - runs one delivery sweep (for cron/scheduler HTTP calls).
"""

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.auth import get_worker_auth
from app.db.deps import get_db
from app.schemas.worker import DeliverySweepResponse
from app.services.delivery import run_delivery_sweep

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/deliver", response_model=DeliverySweepResponse)
async def deliver_pending(
    batch_size: int | None = Query(default=None, ge=1, le=100),
    db: Session = Depends(get_db),
    _auth: bool = Depends(get_worker_auth),
):
    """
    Deliver due pending_send submissions.

    Responds 500 when any delivery in the run failed, so schedulers surface it.
    """
    results = await run_delivery_sweep(db, batch_limit=batch_size)
    body = DeliverySweepResponse(**results)
    if body.errors:
        logger.warning(f"Delivery sweep finished with {len(body.errors)} error(s)")
        return JSONResponse(status_code=500, content=body.model_dump())
    return body

"""Intake Routes - client submission, update, latest read and review status."""
from fastapi import APIRouter, Depends
from typing import Optional
import logging

from middleware import (
    enforce_intake_rate_limit,
    get_current_identity,
    require_auth,
    require_preparer_auth,
)
from models import Identity, IntakeRequest, StatusUpdateRequest
from services.intake_service import (
    get_intake_status,
    get_latest_intake,
    set_review_status,
    submit_intake,
    update_intake,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/intake", tags=["intake"])


@router.post("", dependencies=[Depends(enforce_intake_rate_limit)])
async def submit(
    request: IntakeRequest,
    identity: Optional[Identity] = Depends(get_current_identity),
):
    """Create a new intake. No session required; a valid one links the record to the account."""
    intake_id = await submit_intake(request.model_dump(), identity)
    return {"ok": True, "id": intake_id}


@router.patch("", dependencies=[Depends(enforce_intake_rate_limit)])
async def update(
    request: IntakeRequest,
    identity: Identity = Depends(require_auth),
):
    intake_id = await update_intake(request.model_dump(), identity)
    return {"ok": True, "id": intake_id}


@router.get("/latest")
async def latest(identity: Identity = Depends(require_auth)):
    intake = await get_latest_intake(identity)
    if not intake:
        return {"found": False}
    return {"found": True, "intake": intake}


@router.get("/status")
async def status(
    client_user_id: Optional[str] = None,
    email: Optional[str] = None,
):
    """Poll review status by owner id or email.

    Unauthenticated by product decision: knowing the identifier is enough.
    """
    return await get_intake_status(client_user_id, email)


@router.patch("/status")
async def change_status(
    request: StatusUpdateRequest,
    identity: Identity = Depends(require_preparer_auth),
):
    intake_id = await set_review_status(request.model_dump(), identity)
    return {"ok": True, "id": intake_id}

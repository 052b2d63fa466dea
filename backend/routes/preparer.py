"""Preparer Routes - client triage, upload telemetry and visibility."""
from fastapi import APIRouter, Depends
from typing import Optional
import logging

from middleware import require_preparer_auth
from models import Identity, VisibilityRequest
from services.client_profiles import resolve_client
from services.preparer_overview import build_overview
from services.storage_adapter import StorageAdapter, get_storage_adapter
from services.upload_recorder import list_preparer_uploads, set_visibility

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/preparer", tags=["preparer"])


@router.get("/overview")
async def overview(identity: Identity = Depends(require_preparer_auth)):
    return await build_overview()


@router.get("/validate-client")
async def validate_client(
    username: Optional[str] = None,
    identity: Identity = Depends(require_preparer_auth),
):
    await resolve_client(username)
    return {"ok": True}


@router.get("/uploads")
async def client_uploads(
    username: Optional[str] = None,
    user_id: Optional[str] = None,
    identity: Identity = Depends(require_preparer_auth),
    storage: StorageAdapter = Depends(get_storage_adapter),
):
    return await list_preparer_uploads(username, user_id, storage)


@router.post("/uploads/hide")
async def hide_upload(
    request: VisibilityRequest,
    identity: Identity = Depends(require_preparer_auth),
):
    hidden = await set_visibility(request.model_dump(), identity)
    return {"ok": True, "hidden": hidden}

"""Client Profile Routes - sync the signed-in user's profile."""
from fastapi import APIRouter, Depends
import logging

from middleware import require_auth
from models import Identity, ProfileRequest
from services.client_profiles import upsert_profile

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/profile", tags=["profile"])


@router.post("")
async def sync_profile(
    request: ProfileRequest,
    identity: Identity = Depends(require_auth),
):
    """Upsert the caller's profile. The user id and email come from the session."""
    user_id = await upsert_profile(request.model_dump(), identity)
    return {"ok": True, "id": user_id}

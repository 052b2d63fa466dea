"""Client profiles: the username -> user id mapping behind storage owner keys."""
import logging
from typing import Any, Dict, Mapping, Optional

from database import database
from models import AuditAction, Identity, utc_now
from services.intake_service import clean_text
from services.storage_adapter import normalize_username
from utils.audit import record_audit_event
from utils.errors import NotFound, ValidationError

logger = logging.getLogger(__name__)


async def upsert_profile(data: Mapping[str, Any], identity: Identity) -> str:
    """Create or refresh the caller's profile. Unsupplied fields keep their stored value."""
    email = clean_text(identity.email)
    if not email:
        raise ValidationError("Missing required profile fields.")

    username = normalize_username(clean_text(data.get("username"))) or None
    if username:
        owner = await find_profile_by_username(username)
        if owner and owner.get("supabase_user_id") != identity.id:
            raise ValidationError("Username already taken.", field="username")

    now = utc_now().isoformat()
    changes: Dict[str, Any] = {"email": email, "updated_at": now}
    for name, value in (
        ("username", username),
        ("full_name", clean_text(data.get("full_name"))),
        ("phone", clean_text(data.get("phone"))),
    ):
        if value is not None:
            changes[name] = value

    db = database.get_db()
    await db.client_profiles.update_one(
        {"supabase_user_id": identity.id},
        {"$set": changes, "$setOnInsert": {"created_at": now}},
        upsert=True,
    )
    logger.info(f"Profile synced for user {identity.id}")

    record_audit_event(
        AuditAction.PROFILE_SYNCED,
        actor_user_id=identity.id,
        actor_email=email,
        actor_role=identity.role,
        target_user_id=identity.id,
        target_email=email,
        target_username=username,
    )
    return identity.id


async def find_profile_by_username(username: Optional[str]) -> Optional[Dict[str, Any]]:
    key = normalize_username(username)
    if not key:
        return None
    db = database.get_db()
    return await db.client_profiles.find_one({"username": key}, {"_id": 0})


async def find_profile_by_user_id(user_id: Optional[str]) -> Optional[Dict[str, Any]]:
    if not user_id:
        return None
    db = database.get_db()
    return await db.client_profiles.find_one({"supabase_user_id": user_id}, {"_id": 0})


async def resolve_client(username: Optional[str]) -> Dict[str, Any]:
    """Profile for a preparer-supplied username. Raises NotFound / ValidationError."""
    if not clean_text(username):
        raise ValidationError("Missing username.", field="username")
    if not normalize_username(username):
        raise ValidationError("Invalid username.", field="username")
    profile = await find_profile_by_username(username)
    if not profile:
        raise NotFound("Client not found.")
    return profile

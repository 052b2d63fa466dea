"""
Upload Recorder - metadata for screened-and-accepted files.

Records are insert-only. Client-facing visibility is separate soft state in
`upload_visibility`, keyed by (owner user id, storage path); hiding a file
never touches its record or its bytes.
"""
import logging
from typing import Any, Dict, List, Mapping, Optional, Set

from pymongo.errors import DuplicateKeyError

from database import database
from models import (
    AuditAction,
    Identity,
    ScanStatus,
    UploadCategory,
    UploadRecord,
    UserRole,
    utc_now,
)
from services.client_profiles import find_profile_by_username
from services.filename_policy import detect_document_type
from services.intake_service import clean_text, to_nullable_int, to_nullable_number
from services.storage_adapter import (
    CATEGORY_PREFIXES,
    StorageAdapter,
    StorageError,
    is_namespaced_path,
    normalize_username,
)
from utils.audit import record_audit_event
from utils.errors import NotFound, StorageUnavailable, ValidationError

logger = logging.getLogger(__name__)

UPLOAD_CATEGORIES = tuple(category.value for category in UploadCategory)
SCAN_STATUSES = tuple(status.value for status in ScanStatus)

CLIENT_RECORD_FIELDS = {
    "_id": 0,
    "storage_path": 1,
    "scan_status": 1,
    "scan_notes": 1,
    "dlp_hits": 1,
    "document_type": 1,
    "file_name": 1,
    "category": 1,
    "created_at": 1,
}
MAX_RECORDS = 500
PREPARER_LIST_LIMIT = 200


def default_scan_status(dlp_hits: int) -> str:
    return ScanStatus.FLAGGED.value if dlp_hits else ScanStatus.CLEAN.value


async def insert_upload_record(record: UploadRecord) -> UploadRecord:
    db = database.get_db()
    try:
        await db.upload_records.insert_one(record.model_dump(mode="json"))
    except DuplicateKeyError:
        raise ValidationError("Upload already recorded.", field="storage_path")

    logger.info(f"Upload recorded: {record.storage_path} ({record.scan_status.value})")
    record_audit_event(
        AuditAction.UPLOAD_RECORDED,
        actor_user_id=record.uploader_user_id,
        actor_role=record.uploader_role,
        target_user_id=record.client_user_id,
        target_username=record.client_username,
        metadata={
            "file_name": record.file_name,
            "category": record.category.value,
            "document_type": record.document_type,
            "scan_status": record.scan_status.value,
            "dlp_hits": record.dlp_hits,
        },
    )
    return record


async def record_upload(data: Mapping[str, Any], identity: Identity) -> UploadRecord:
    """Register metadata for a file the caller already stored.

    Clients can only record against themselves; a preparer naming a client
    username must name a known client.
    """
    file_name = clean_text(data.get("file_name"))
    storage_path = clean_text(data.get("storage_path"))
    if not file_name or not storage_path:
        raise ValidationError("Missing upload metadata.")
    if not is_namespaced_path(storage_path):
        raise ValidationError("Invalid storage path.", field="storage_path")

    category = clean_text(data.get("category")) or UploadCategory.DOCUMENTS.value
    if category not in UPLOAD_CATEGORIES:
        raise ValidationError("Invalid upload category.", field="category")

    dlp_hits = to_nullable_int(data.get("dlp_hits")) or 0
    scan_status = clean_text(data.get("scan_status")) or default_scan_status(dlp_hits)
    if scan_status not in SCAN_STATUSES:
        raise ValidationError("Invalid scan status.", field="scan_status")

    client_username = normalize_username(clean_text(data.get("client_username"))) or None
    if identity.role == UserRole.PREPARER:
        client_user_id = clean_text(data.get("client_user_id"))
        if client_username:
            profile = await find_profile_by_username(client_username)
            if not profile:
                raise NotFound("Client not found.")
            client_user_id = client_user_id or profile.get("supabase_user_id")
    else:
        client_user_id = identity.id

    record = UploadRecord(
        client_user_id=client_user_id,
        client_username=client_username,
        uploader_user_id=identity.id,
        uploader_role=identity.role,
        category=category,
        document_type=detect_document_type(file_name, category),
        scan_status=scan_status,
        scan_notes=clean_text(data.get("scan_notes")),
        dlp_hits=dlp_hits,
        file_name=file_name,
        storage_path=storage_path,
        file_size=to_nullable_number(data.get("file_size")),
        file_type=clean_text(data.get("file_type")),
    )
    return await insert_upload_record(record)


async def hidden_paths_for_user(user_id: Optional[str]) -> Set[str]:
    if not user_id:
        return set()
    db = database.get_db()
    cursor = db.upload_visibility.find(
        {"user_id": user_id, "hidden": True},
        {"_id": 0, "path": 1},
    )
    rows = await cursor.to_list(length=None)
    return {row["path"] for row in rows if row.get("path")}


async def list_client_records(identity: Identity) -> List[Dict[str, Any]]:
    """The caller's own records, newest first, minus files a preparer hid."""
    db = database.get_db()
    cursor = db.upload_records.find(
        {"client_user_id": identity.id},
        CLIENT_RECORD_FIELDS,
    ).sort("created_at", -1).limit(MAX_RECORDS)
    records = await cursor.to_list(length=MAX_RECORDS)
    hidden = await hidden_paths_for_user(identity.id)
    return [record for record in records if record.get("storage_path") not in hidden]


async def set_visibility(data: Mapping[str, Any], identity: Identity) -> bool:
    """Hide or re-show one stored file in the client's view."""
    client_user_id = clean_text(data.get("client_user_id"))
    path = clean_text(data.get("path"))
    hidden = data.get("hidden") is True or data.get("hidden") == "true"
    if not client_user_id or not path:
        raise ValidationError("Missing upload identifier.")

    db = database.get_db()
    key = {"user_id": client_user_id, "path": path}
    if hidden:
        await db.upload_visibility.update_one(
            key,
            {"$set": {"hidden": True, "updated_by": identity.id, "updated_at": utc_now().isoformat()}},
            upsert=True,
        )
    else:
        await db.upload_visibility.delete_one(key)

    logger.info(f"Upload {'hidden' if hidden else 'shown'}: {path}")
    record_audit_event(
        AuditAction.UPLOAD_HIDDEN if hidden else AuditAction.UPLOAD_UNHIDDEN,
        actor_user_id=identity.id,
        actor_email=identity.email,
        actor_role=UserRole.PREPARER,
        target_user_id=client_user_id,
        metadata={"path": path},
    )
    return hidden


async def list_preparer_uploads(
    username: Optional[str],
    user_id: Optional[str],
    storage: StorageAdapter,
) -> Dict[str, Any]:
    """A client's stored objects merged with their records and hidden flags."""
    storage.require_configured("Upload telemetry not configured.")

    if not clean_text(username):
        raise ValidationError("Missing username.", field="username")
    owner_key = normalize_username(username)
    if not owner_key:
        raise ValidationError("Invalid username.", field="username")

    client_user_id = clean_text(user_id)
    if not client_user_id:
        profile = await find_profile_by_username(owner_key)
        client_user_id = profile.get("supabase_user_id") if profile else None

    files: List[Dict[str, Any]] = []
    try:
        for category, prefix in CATEGORY_PREFIXES.items():
            for item in await storage.list_files(f"{prefix}/{owner_key}", PREPARER_LIST_LIMIT):
                files.append({
                    "name": item.name,
                    "path": f"{prefix}/{owner_key}/{item.name}",
                    "created_at": item.created_at,
                    "size": item.size,
                    "category": category,
                    "document_type": detect_document_type(item.name, category),
                })
    except StorageError as e:
        logger.error(f"Listing uploads for {owner_key} failed: {e}")
        raise StorageUnavailable("Unable to list client uploads.")

    files.sort(key=lambda item: item["created_at"] or "", reverse=True)

    db = database.get_db()
    cursor = db.upload_records.find(
        {"client_username": owner_key},
        {"_id": 0, "storage_path": 1, "scan_status": 1, "scan_notes": 1, "dlp_hits": 1, "document_type": 1},
    )
    records = {row["storage_path"]: row for row in await cursor.to_list(length=None)}
    hidden = await hidden_paths_for_user(client_user_id)

    for item in files:
        record = records.get(item["path"])
        if record:
            item["scan_status"] = record.get("scan_status")
            item["scan_notes"] = record.get("scan_notes")
            item["dlp_hits"] = record.get("dlp_hits")
            item["document_type"] = record.get("document_type") or item["document_type"]
        item["hidden"] = item["path"] in hidden

    return {"ok": True, "username": owner_key, "client_user_id": client_user_id, "files": files}

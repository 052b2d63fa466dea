"""
Document intake pipeline for multipart batch uploads.

    policy checks (type, size, filename)  -> whole batch, nothing stored yet
    content screening                     -> whole batch, stops at first reject
    store + record                        -> one file at a time, in order

A rejection in either of the first two stages stores nothing. A storage
failure on file k leaves files 1..k-1 stored and recorded; the error reports
how many made it.
"""
import os
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from fastapi import UploadFile

from models import (
    AuditAction,
    BatchUploadResponse,
    Identity,
    ScanStatus,
    ScreenedFile,
    UploadCategory,
    UploadRecord,
    UserRole,
    utc_now,
)
from services.client_profiles import find_profile_by_user_id, resolve_client
from services.document_screener import SIGNATURES, expected_signature, screen_batch
from services.filename_policy import NAMING_RULES, check_name, detect_document_type
from services.storage_adapter import StorageAdapter, StorageError, build_storage_path
from services.upload_recorder import insert_upload_record
from utils.audit import record_audit_event
from utils.errors import ScreeningRejected, StorageUnavailable, ValidationError

logger = logging.getLogger(__name__)

MAX_FILES_PER_REQUEST = 20
MAX_UPLOAD_SIZE_MB = int(os.getenv("MAX_UPLOAD_SIZE_MB", "10"))
MAX_UPLOAD_SIZE_BYTES = MAX_UPLOAD_SIZE_MB * 1024 * 1024
ALLOWED_CONTENT_TYPES = tuple(SIGNATURES)


@dataclass
class IncomingFile:
    filename: str
    content_type: Optional[str]
    data: bytes


@dataclass
class UploadOwner:
    user_id: Optional[str]
    owner_key: str


async def resolve_owner(identity: Identity, client_username: Optional[str]) -> UploadOwner:
    """Clients upload into their own namespace; preparers name the client."""
    if identity.role == UserRole.PREPARER:
        profile = await resolve_client(client_username)
        return UploadOwner(user_id=profile.get("supabase_user_id"), owner_key=profile["username"])

    profile = await find_profile_by_user_id(identity.id)
    if not profile or not profile.get("username"):
        raise ValidationError("Complete your profile before uploading.", field="username")
    return UploadOwner(user_id=identity.id, owner_key=profile["username"])


def check_file_count(count: int) -> None:
    if not count:
        raise ValidationError("No files provided.", field="files")
    if count > MAX_FILES_PER_REQUEST:
        raise ValidationError(
            f"Too many files. Maximum {MAX_FILES_PER_REQUEST} per upload.",
            field="files",
        )


def file_too_large(filename: str) -> ValidationError:
    return ValidationError(
        f"{filename} exceeds the {MAX_UPLOAD_SIZE_MB}MB limit.",
        field="files",
        filename=filename,
    )


async def read_uploads(uploads: Sequence[UploadFile]) -> List[IncomingFile]:
    """Read multipart parts, holding at most the size cap (plus one byte) per file.

    The part count is checked before anything is read.
    """
    check_file_count(len(uploads))
    incoming: List[IncomingFile] = []
    for upload in uploads:
        filename = upload.filename or ""
        if upload.size is not None and upload.size > MAX_UPLOAD_SIZE_BYTES:
            raise file_too_large(filename)
        data = await upload.read(MAX_UPLOAD_SIZE_BYTES + 1)
        if len(data) > MAX_UPLOAD_SIZE_BYTES:
            raise file_too_large(filename)
        incoming.append(IncomingFile(filename=filename, content_type=upload.content_type, data=data))
    return incoming


def check_batch_policy(files: List[IncomingFile], category: str, naming_rule: Optional[str]) -> None:
    """Type, size and naming checks for every file before any is screened."""
    check_file_count(len(files))
    if category not in (UploadCategory.DOCUMENTS.value, UploadCategory.AUTHORIZATIONS.value):
        raise ValidationError("Invalid upload category.", field="category")
    if naming_rule and naming_rule not in NAMING_RULES:
        raise ValidationError("Unknown naming rule.", field="naming_rule")

    for item in files:
        if not item.filename:
            raise ValidationError("Every file needs a name.", field="files")
        resolved = expected_signature(item.content_type, item.filename)
        if not resolved or resolved[0] not in ALLOWED_CONTENT_TYPES:
            raise ValidationError(
                f"{item.filename} is not an allowed file type. Use PDF, JPG or PNG.",
                field="files",
                filename=item.filename,
            )
        if len(item.data) > MAX_UPLOAD_SIZE_BYTES:
            raise file_too_large(item.filename)
        violation = check_name(item.filename, naming_rule or category)
        if violation:
            raise ValidationError(violation, field="files", filename=item.filename)


async def upload_batch(
    files: List[IncomingFile],
    identity: Identity,
    storage: StorageAdapter,
    category: str = UploadCategory.DOCUMENTS.value,
    client_username: Optional[str] = None,
    naming_rule: Optional[str] = None,
    on_progress: Optional[Callable[[str], None]] = None,
) -> BatchUploadResponse:
    storage.require_configured()
    check_batch_policy(files, category, naming_rule)
    owner = await resolve_owner(identity, client_username)

    screening = screen_batch(
        [(item.filename, item.content_type, item.data) for item in files],
        on_progress=on_progress,
    )
    if not screening.ok:
        logger.warning(f"Batch rejected at {screening.rejected_file}: {screening.message}")
        record_audit_event(
            AuditAction.UPLOAD_REJECTED,
            actor_user_id=identity.id,
            actor_email=identity.email,
            actor_role=identity.role,
            target_user_id=owner.user_id,
            target_username=owner.owner_key,
            metadata={
                "file_name": screening.rejected_file,
                "reason": screening.message,
                "batch_size": len(files),
            },
        )
        raise ScreeningRejected(
            screening.message,
            filename=screening.rejected_file,
            results=screening.results,
        )

    batch_time = utc_now()
    uploaded = 0
    screened: List[ScreenedFile] = []
    for index, (item, result) in enumerate(zip(files, screening.results)):
        path = build_storage_path(category, owner.owner_key, item.filename, ordinal=index, now=batch_time)
        content_type = expected_signature(item.content_type, item.filename)[0]
        try:
            await storage.upload_file(path, item.data, content_type)
        except StorageError as e:
            logger.error(f"Batch stopped at {item.filename} after {uploaded} stored: {e}")
            raise StorageUnavailable(
                f"Upload failed for {item.filename}. {uploaded} of {len(files)} files were uploaded.",
                uploaded=uploaded,
                filename=item.filename,
            )

        dlp_hits = 1 if result["dlp"] else 0
        await insert_upload_record(UploadRecord(
            client_user_id=owner.user_id,
            client_username=owner.owner_key,
            uploader_user_id=identity.id,
            uploader_role=identity.role,
            category=category,
            document_type=detect_document_type(item.filename, category),
            scan_status=ScanStatus.FLAGGED if dlp_hits else ScanStatus.CLEAN,
            scan_notes=result["message"] or None,
            dlp_hits=dlp_hits,
            file_name=item.filename,
            storage_path=path,
            file_size=len(item.data),
            file_type=content_type,
        ))
        uploaded += 1
        screened.append(ScreenedFile(**result))

    return BatchUploadResponse(
        uploaded=uploaded,
        dlp_hits=screening.dlp_hits,
        warnings=screening.warnings,
        files=[entry.model_dump() for entry in screened],
    )

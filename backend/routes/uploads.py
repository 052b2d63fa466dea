"""
Upload Routes - batch upload with screening, and upload metadata records.
"""
from fastapi import APIRouter, Depends, File, Form, UploadFile
from typing import List, Optional
import logging

from middleware import require_auth
from models import Identity, UploadCategory, UploadRecordRequest
from services.document_intake import read_uploads, upload_batch
from services.storage_adapter import StorageAdapter, get_storage_adapter
from services.upload_recorder import list_client_records, record_upload

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/uploads", tags=["uploads"])


@router.post("")
async def upload_documents(
    files: List[UploadFile] = File(...),
    category: str = Form(UploadCategory.DOCUMENTS.value),
    client_username: Optional[str] = Form(None),
    naming_rule: Optional[str] = Form(None),
    identity: Identity = Depends(require_auth),
    storage: StorageAdapter = Depends(get_storage_adapter),
):
    """
    Screen and store a batch of documents.
    - Allowed: PDF, JPG, PNG. Max 20 files per request.
    - Any screening rejection stores nothing; the response names the file.
    """
    incoming = await read_uploads(files)
    result = await upload_batch(
        incoming,
        identity,
        storage,
        category=category,
        client_username=client_username,
        naming_rule=naming_rule,
    )
    logger.info(f"Batch upload by {identity.id}: {result.uploaded} stored, {result.dlp_hits} flagged")
    return result.model_dump()


@router.post("/record")
async def record(
    request: UploadRecordRequest,
    identity: Identity = Depends(require_auth),
):
    created = await record_upload(request.model_dump(), identity)
    return {"ok": True, "record_id": created.record_id}


@router.get("/records")
async def records(identity: Identity = Depends(require_auth)):
    return {"ok": True, "records": await list_client_records(identity)}

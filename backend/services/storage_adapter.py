"""
Storage Adapter - object store for screened client uploads.

Bytes live in the Supabase storage bucket; only metadata is kept in MongoDB
(see upload_recorder). Paths are namespaced by category and owner key:

    uploads/<owner_key>/<timestamp>-<ordinal>-<safe_name>
    authorizations/<owner_key>/<timestamp>-<ordinal>-<safe_name>
"""
import os
import re
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List

import httpx

from models import UploadCategory
from utils.errors import ConfigurationError

logger = logging.getLogger(__name__)

SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
SUPABASE_BUCKET = os.getenv("SUPABASE_BUCKET", "client-uploads")

CATEGORY_PREFIXES = {
    UploadCategory.DOCUMENTS.value: "uploads",
    UploadCategory.AUTHORIZATIONS.value: "authorizations",
}

_USERNAME_CHARS = re.compile(r"[^a-z0-9._-]")
_FILE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


class StorageError(Exception):
    """Object store call failed."""
    pass


class StoredObject:
    """One entry from a bucket listing."""
    def __init__(
        self,
        name: str,
        created_at: Optional[str] = None,
        size: int = 0,
    ):
        self.name = name
        self.created_at = created_at
        self.size = size

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "created_at": self.created_at,
            "size": self.size,
        }


def normalize_username(value: Optional[str]) -> str:
    """Owner key: lowercased username with unsafe characters replaced by "_"."""
    if not value:
        return ""
    return _USERNAME_CHARS.sub("_", value.strip().lower())


def safe_file_name(value: str) -> str:
    return _FILE_NAME_CHARS.sub("_", value or "")


def path_timestamp(now: Optional[datetime] = None) -> str:
    """Millisecond UTC timestamp, digits only: 2025-01-02T03:04:05.678Z -> 20250102030405678."""
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y%m%d%H%M%S") + f"{now.microsecond // 1000:03d}"


def build_storage_path(
    category: str,
    owner_key: str,
    file_name: str,
    ordinal: int = 0,
    now: Optional[datetime] = None,
) -> str:
    """Path for one file of a batch; `ordinal` separates files sharing a timestamp.

    The ordinal is always present so a file name can never imitate it.
    """
    prefix = CATEGORY_PREFIXES.get(category)
    if prefix is None:
        raise ValueError(f"Unknown upload category: {category}")
    return f"{prefix}/{owner_key}/{path_timestamp(now)}-{ordinal}-{safe_file_name(file_name)}"


def is_namespaced_path(path: str) -> bool:
    if ".." in path.split("/"):
        return False
    return any(path.startswith(f"{prefix}/") for prefix in CATEGORY_PREFIXES.values())


class StorageAdapter(ABC):
    """Abstract base class for storage implementations."""

    @property
    @abstractmethod
    def configured(self) -> bool:
        pass

    @abstractmethod
    async def upload_file(self, path: str, data: bytes, content_type: str) -> None:
        """Store bytes at `path`. Raises StorageError on failure."""
        pass

    @abstractmethod
    async def list_files(self, prefix: str, limit: int = 200) -> List[StoredObject]:
        """Newest first."""
        pass

    def require_configured(self, message: str = "Storage not configured."):
        if not self.configured:
            raise ConfigurationError(message)


class SupabaseStorageAdapter(StorageAdapter):
    """Supabase storage REST API (service-role key)."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        service_key: Optional[str] = None,
        bucket: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self.base_url = (base_url if base_url is not None else SUPABASE_URL).rstrip("/")
        self.service_key = service_key if service_key is not None else SUPABASE_SERVICE_ROLE_KEY
        self.bucket = bucket or SUPABASE_BUCKET
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.service_key)

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.service_key}",
            "apikey": self.service_key,
        }

    async def upload_file(self, path: str, data: bytes, content_type: str) -> None:
        self.require_configured()
        url = f"{self.base_url}/storage/v1/object/{self.bucket}/{path}"
        headers = {**self._headers(), "Content-Type": content_type, "x-upsert": "false"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, content=data, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Storage upload failed for {path}: {e}")
            raise StorageError(f"Storage upload failed: {e}")

        if response.status_code >= 400:
            message = _error_message(response) or "Storage upload failed."
            logger.error(f"Storage upload rejected for {path}: {response.status_code} {message}")
            raise StorageError(message)

        logger.info(f"Stored object {path} ({len(data)} bytes)")

    async def list_files(self, prefix: str, limit: int = 200) -> List[StoredObject]:
        self.require_configured()
        url = f"{self.base_url}/storage/v1/object/list/{self.bucket}"
        body = {
            "prefix": prefix,
            "limit": limit,
            "sortBy": {"column": "created_at", "order": "desc"},
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, json=body, headers=self._headers())
        except httpx.HTTPError as e:
            logger.error(f"Storage list failed for {prefix}: {e}")
            raise StorageError(f"Storage list failed: {e}")

        if response.status_code >= 400:
            raise StorageError(_error_message(response) or "Storage list failed.")

        data = response.json()
        items = data if isinstance(data, list) else []
        return [
            StoredObject(
                name=item.get("name"),
                created_at=item.get("created_at"),
                size=(item.get("metadata") or {}).get("size") or 0,
            )
            for item in items
            if item.get("name")
        ]


def _error_message(response: httpx.Response) -> Optional[str]:
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict):
        return data.get("message") or data.get("error")
    return None


storage_adapter = SupabaseStorageAdapter()


def get_storage_adapter() -> StorageAdapter:
    """FastAPI dependency; tests override it."""
    return storage_adapter

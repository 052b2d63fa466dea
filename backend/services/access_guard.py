"""
Access Guard - who may do what to which intake / upload record.

Ownership of an intake is either by authenticated account (client_user_id)
or, for email-only submissions, by email. That either/or is modelled as
Owner = OwnerById | OwnerByEmail so the rule lives in one comparison.
"""
import os
import re
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

from models import Identity, UserRole
from utils.errors import Forbidden, Unauthorized

logger = logging.getLogger(__name__)

PREPARER_EMAIL_DOMAIN = os.getenv("PREPARER_EMAIL_DOMAIN", "")
PREPARER_EMAILS = os.getenv("PREPARER_EMAILS", "")


@dataclass(frozen=True)
class OwnerById:
    user_id: str


@dataclass(frozen=True)
class OwnerByEmail:
    email: str


Owner = Union[OwnerById, OwnerByEmail]


def normalize_email(value: Optional[str]) -> str:
    return value.strip().lower() if isinstance(value, str) else ""


def owner_of_record(record: Mapping[str, Any]) -> Optional[Owner]:
    """The authoritative owner key of a stored intake, or None if it has neither."""
    user_id = record.get("client_user_id")
    if user_id:
        return OwnerById(user_id)
    email = normalize_email(record.get("email"))
    if email:
        return OwnerByEmail(email)
    return None


def owner_matches(owner: Optional[Owner], identity: Identity) -> bool:
    if isinstance(owner, OwnerById):
        return owner.user_id == identity.id
    if isinstance(owner, OwnerByEmail):
        return owner.email == normalize_email(identity.email)
    return False


def ownership_filter(identity: Identity) -> Dict[str, Any]:
    """Mongo predicate matching exactly the records `owner_matches` accepts."""
    return {
        "$or": [
            {"client_user_id": identity.id},
            {"client_user_id": None, "email": normalize_email(identity.email)},
        ]
    }


def authorize_ownership(record: Mapping[str, Any], identity: Identity) -> None:
    if not owner_matches(owner_of_record(record), identity):
        logger.warning(f"Ownership check failed for user {identity.id}")
        raise Forbidden("Unauthorized update.")


def is_preparer_allowed(email: Optional[str]) -> bool:
    """Domain suffix wins when configured; otherwise the explicit allow-list."""
    normalized = normalize_email(email)
    if not normalized:
        return False
    domain = PREPARER_EMAIL_DOMAIN.strip().lower().lstrip("@")
    if domain:
        return normalized.endswith(f"@{domain}")
    allowed = {value.strip().lower() for value in re.split(r"[,\s]+", PREPARER_EMAILS) if value.strip()}
    return normalized in allowed


def authorize_preparer(identity: Identity) -> bool:
    return is_preparer_allowed(identity.email)


def require_preparer(identity: Identity) -> Identity:
    if not authorize_preparer(identity):
        raise Forbidden("Access restricted.")
    return identity


async def authenticate(token: Optional[str], provider) -> Identity:
    """Resolve a bearer token to an Identity with its role."""
    if not token:
        raise Unauthorized("Missing authorization.")
    user = await provider.fetch_user(token)
    email = user.get("email")
    user_id = user.get("id")
    if not email or not user_id:
        raise Unauthorized("Invalid user session.")
    role = UserRole.PREPARER if is_preparer_allowed(email) else UserRole.CLIENT
    return Identity(id=str(user_id), email=normalize_email(email), role=role)

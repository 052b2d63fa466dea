"""
Intake Record Manager - create, update and read intake submissions.

Every write runs in the same order: validate the whole payload, then encrypt
the sensitive fields, then persist. Nothing is written if validation fails.
"""
import logging
import math
import re
from typing import Any, Dict, Mapping, Optional, Tuple

from pymongo import ReturnDocument

from database import database, get_next_sequence
from models import (
    AuditAction,
    FilingStatus,
    Identity,
    IntakeSubmission,
    ReviewStatus,
    UserRole,
    utc_now,
)
from services.access_guard import (
    authorize_ownership,
    authorize_preparer,
    normalize_email,
    ownership_filter,
)
from services.review_status import describe_status, is_known_status
from services.sensitive_fields import (
    IP_PIN_DIGITS,
    SSN_DIGITS,
    get_codec,
    normalize_ip_pin,
    normalize_ssn,
)
from services.tax_estimate import compute_estimate
from utils.audit import record_audit_event
from utils.errors import Forbidden, NotFound, ValidationError

logger = logging.getLogger(__name__)

INTAKE_SEQUENCE = "intake_submissions"

MIN_FILING_YEAR = 2000
MAX_FILING_YEAR = 2100
MAX_DEPENDENTS = 20

FILING_STATUSES = tuple(status.value for status in FilingStatus)

TEXT_FIELDS = (
    "employer",
    "other_income",
    "other_deductions",
    "filing_method",
    "contact_method",
    "notes",
)

AMOUNT_FIELDS = (
    "wages",
    "federal_withholding",
    "income_1099",
    "investment_income",
    "retirement",
    "mortgage",
    "charity",
    "student_loan",
    "hsa",
)

ESTIMATE_FIELDS = (
    "estimated_income",
    "estimated_taxable",
    "estimated_tax",
    "estimated_withholding",
    "estimated_refund",
)

# Never leaves the database through this module
SENSITIVE_PROJECTION = {"_id": 0, "ssn_encrypted": 0, "ip_pin_encrypted": 0}

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


# ============================================================================
# INPUT NORMALIZATION
# ============================================================================

def clean_text(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def to_nullable_int(value: Any) -> Optional[int]:
    """Lenient integer parse: "2025" -> 2025, "3 kids" -> 3, "" -> None."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else None


def to_nullable_number(value: Any) -> Optional[float]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def is_consent_given(value: Any) -> bool:
    return value is True or value in ("true", "on")


def validate_intake(data: Mapping[str, Any]) -> Tuple[Dict[str, Any], str, str]:
    """Validate and normalize an intake payload.

    Returns (fields, ssn_digits, ip_pin_digits); the digit strings are empty
    when not supplied. Raises ValidationError on the first violated rule.
    """
    fields: Dict[str, Any] = {
        "first_name": clean_text(data.get("first_name")),
        "last_name": clean_text(data.get("last_name")),
        "dob": clean_text(data.get("dob")),
        "email": normalize_email(clean_text(data.get("email"))),
        "phone": clean_text(data.get("phone")),
        "filing_status": clean_text(data.get("filing_status")),
        "consent": is_consent_given(data.get("consent")),
    }
    if not all(fields.values()):
        raise ValidationError("Missing or invalid required fields.")

    if fields["filing_status"] not in FILING_STATUSES:
        raise ValidationError("Invalid filing status.", field="filing_status")

    ssn = normalize_ssn(data.get("ssn"))
    if ssn and len(ssn) != SSN_DIGITS:
        raise ValidationError("Invalid SSN.", field="ssn")

    ip_pin = normalize_ip_pin(data.get("ip_pin"))
    if ip_pin and len(ip_pin) != IP_PIN_DIGITS:
        raise ValidationError("Invalid IP PIN.", field="ip_pin")

    filing_year = to_nullable_int(data.get("filing_year"))
    if not filing_year or not MIN_FILING_YEAR <= filing_year <= MAX_FILING_YEAR:
        raise ValidationError("Invalid filing year.", field="filing_year")
    fields["filing_year"] = filing_year

    dependents = to_nullable_int(data.get("dependents"))
    if dependents is not None and not 0 <= dependents <= MAX_DEPENDENTS:
        raise ValidationError("Dependents must be between 0 and 20.", field="dependents")
    fields["dependents"] = dependents

    for name in AMOUNT_FIELDS:
        amount = to_nullable_number(data.get(name))
        if amount is not None and amount < 0:
            raise ValidationError("Amounts cannot be negative.", field=name)
        fields[name] = amount

    for name in TEXT_FIELDS:
        fields[name] = clean_text(data.get(name))

    fields["client_username"] = clean_text(data.get("client_username"))
    return fields, ssn, ip_pin


def estimate_fields(fields: Mapping[str, Any]) -> Dict[str, Optional[float]]:
    estimate = compute_estimate(fields) or {}
    return {name: estimate.get(name) for name in ESTIMATE_FIELDS}


# ============================================================================
# OPERATIONS
# ============================================================================

async def submit_intake(data: Mapping[str, Any], identity: Optional[Identity] = None) -> int:
    """Create a submission and return its id. Status starts at `received`."""
    fields, ssn, ip_pin = validate_intake(data)

    client_user_id = identity.id if identity else clean_text(data.get("client_user_id"))

    codec = get_codec()
    ssn_encrypted = codec.protect_optional(ssn)
    ip_pin_encrypted = codec.protect_optional(ip_pin)

    intake_id = await get_next_sequence(INTAKE_SEQUENCE)
    submission = IntakeSubmission(
        id=intake_id,
        client_user_id=client_user_id,
        ssn_encrypted=ssn_encrypted,
        ip_pin_encrypted=ip_pin_encrypted,
        review_status=ReviewStatus.RECEIVED,
        **fields,
        **estimate_fields(fields),
    )

    db = database.get_db()
    await db.intake_submissions.insert_one(submission.model_dump(mode="json"))
    logger.info(f"Intake {intake_id} submitted (filing year {fields['filing_year']})")

    record_audit_event(
        AuditAction.INTAKE_SUBMITTED,
        actor_user_id=client_user_id,
        actor_email=fields["email"],
        actor_role=UserRole.CLIENT,
        target_user_id=client_user_id,
        target_email=fields["email"],
        target_username=fields["client_username"],
        metadata={
            "filing_year": fields["filing_year"],
            "filing_status": fields["filing_status"],
        },
    )
    return intake_id


async def update_intake(data: Mapping[str, Any], identity: Identity) -> int:
    """Full re-validation and overwrite of the requester's own intake.

    SSN and IP PIN must be on the record after the update: a value that was
    not supplied keeps the stored token, a supplied one replaces it.
    Review status goes back to `received` and notes are cleared.
    """
    intake_id = to_nullable_int(data.get("intake_id"))
    if not intake_id:
        raise ValidationError("Missing intake identifier.", field="intake_id")

    db = database.get_db()
    existing = await db.intake_submissions.find_one(
        {"id": intake_id},
        {"_id": 0, "client_user_id": 1, "email": 1, "ssn_encrypted": 1, "ip_pin_encrypted": 1},
    )
    if not existing:
        raise NotFound("Intake record not found.")
    authorize_ownership(existing, identity)

    # Email always comes from the verified session, never the body
    fields, ssn, ip_pin = validate_intake({**data, "email": identity.email})
    if not ssn and not existing.get("ssn_encrypted"):
        raise ValidationError("Invalid SSN.", field="ssn")
    if not ip_pin and not existing.get("ip_pin_encrypted"):
        raise ValidationError("Invalid IP PIN.", field="ip_pin")

    codec = get_codec()
    changes = {
        **fields,
        **estimate_fields(fields),
        "client_user_id": identity.id,
        "ssn_encrypted": codec.protect_optional(ssn) or existing.get("ssn_encrypted"),
        "ip_pin_encrypted": codec.protect_optional(ip_pin) or existing.get("ip_pin_encrypted"),
        "review_status": ReviewStatus.RECEIVED.value,
        "review_notes": None,
        "review_updated_at": utc_now().isoformat(),
    }

    # Last write wins; the ownership predicate is re-applied atomically
    result = await db.intake_submissions.find_one_and_update(
        {"id": intake_id, **ownership_filter(identity)},
        {"$set": changes},
        projection={"_id": 0, "id": 1},
        return_document=ReturnDocument.AFTER,
    )
    if not result:
        raise NotFound("Intake record not found.")

    logger.info(f"Intake {intake_id} updated by owner")
    record_audit_event(
        AuditAction.INTAKE_UPDATED,
        actor_user_id=identity.id,
        actor_email=identity.email,
        actor_role=UserRole.CLIENT,
        target_user_id=identity.id,
        target_email=identity.email,
        target_username=fields["client_username"],
        metadata={
            "filing_year": fields["filing_year"],
            "filing_status": fields["filing_status"],
        },
    )
    return result["id"]


async def get_latest_intake(identity: Identity) -> Optional[Dict[str, Any]]:
    """Most recent submission owned by the caller, without encrypted fields."""
    db = database.get_db()
    return await db.intake_submissions.find_one(
        ownership_filter(identity),
        SENSITIVE_PROJECTION,
        sort=[("created_at", -1)],
    )


async def get_intake_status(
    client_user_id: Optional[str] = None,
    email: Optional[str] = None,
) -> Dict[str, Any]:
    """Review status of an owner's latest intake.

    Callable without a session: the identifier itself is the capability.
    """
    client_user_id = clean_text(client_user_id)
    email = normalize_email(clean_text(email))
    if not client_user_id and not email:
        raise ValidationError("Missing client identifier.")

    query = {"client_user_id": client_user_id} if client_user_id else {"email": email}
    db = database.get_db()
    row = await db.intake_submissions.find_one(
        query,
        {
            "_id": 0,
            "review_status": 1,
            "review_notes": 1,
            "review_updated_at": 1,
            "filing_year": 1,
            "created_at": 1,
            "estimated_refund": 1,
            "estimated_tax": 1,
            "estimated_withholding": 1,
            "estimated_taxable": 1,
        },
        sort=[("created_at", -1)],
    )
    if not row:
        return {"found": False}

    status = describe_status(row.get("review_status"))
    return {
        "found": True,
        "review_status": status["review_status"],
        "review_label": status["label"],
        "review_notes": row.get("review_notes") or "",
        "review_updated_at": row.get("review_updated_at"),
        "review_detail": status["detail"],
        "progress": status["progress"],
        "progress_steps": status["progress_steps"],
        "filing_year": row.get("filing_year"),
        "estimated_refund": row.get("estimated_refund"),
        "estimated_tax": row.get("estimated_tax"),
        "estimated_withholding": row.get("estimated_withholding"),
        "estimated_taxable": row.get("estimated_taxable"),
        "created_at": row.get("created_at"),
    }


async def set_review_status(data: Mapping[str, Any], identity: Identity) -> int:
    """Preparer-only status/notes change. Any known status may follow any other."""
    if not authorize_preparer(identity):
        raise Forbidden("Access restricted.")

    review_status = clean_text(data.get("review_status"))
    if not is_known_status(review_status):
        raise ValidationError("Invalid review status.", field="review_status")

    intake_id = to_nullable_int(data.get("intake_id"))
    client_user_id = clean_text(data.get("client_user_id"))
    email = normalize_email(clean_text(data.get("email")))
    if not intake_id and not client_user_id and not email:
        raise ValidationError("Missing intake identifier.")

    review_notes = clean_text(data.get("review_notes"))
    update = {
        "$set": {
            "review_status": review_status,
            "review_notes": review_notes,
            "review_updated_at": utc_now().isoformat(),
        }
    }

    db = database.get_db()
    if intake_id:
        result = await db.intake_submissions.find_one_and_update(
            {"id": intake_id},
            update,
            projection={"_id": 0, "id": 1},
            return_document=ReturnDocument.AFTER,
        )
    else:
        query = {"client_user_id": client_user_id} if client_user_id else {"email": email}
        result = await db.intake_submissions.find_one_and_update(
            query,
            update,
            projection={"_id": 0, "id": 1},
            sort=[("created_at", -1)],
            return_document=ReturnDocument.AFTER,
        )

    if not result:
        raise NotFound("Intake submission not found.")

    logger.info(f"Intake {result['id']} moved to {review_status} by preparer {identity.id}")
    record_audit_event(
        AuditAction.INTAKE_STATUS_UPDATED,
        actor_user_id=identity.id,
        actor_email=identity.email,
        actor_role=UserRole.PREPARER,
        target_user_id=client_user_id,
        target_email=email,
        metadata={
            "review_status": review_status,
            "review_notes": review_notes or "",
            "intake_id": intake_id,
        },
    )
    return result["id"]

from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, Dict, Any, List, Union
from datetime import datetime, timezone
from enum import Enum
import uuid

# ============================================================================
# ENUMS (System Constants)
# ============================================================================

class FilingStatus(str, Enum):
    SINGLE = "single"
    MARRIED_JOINT = "married_joint"
    MARRIED_SEPARATE = "married_separate"
    HEAD_HOUSEHOLD = "head_household"

class ReviewStatus(str, Enum):
    # Wire-exact values; order is the display order of the progress timeline
    RECEIVED = "received"
    IN_REVIEW = "in_review"
    AWAITING_DOCUMENTS = "awaiting_documents"
    AWAITING_AUTHORIZATION = "awaiting_authorization"
    READY_TO_FILE = "ready_to_file"
    FILED = "filed"

class UserRole(str, Enum):
    CLIENT = "client"
    PREPARER = "preparer"

class UploadCategory(str, Enum):
    DOCUMENTS = "documents"
    AUTHORIZATIONS = "authorizations"

class ScanStatus(str, Enum):
    CLEAN = "clean"
    FLAGGED = "flagged"
    UNKNOWN = "unknown"

class AuditAction(str, Enum):
    INTAKE_SUBMITTED = "intake_submitted"
    INTAKE_UPDATED = "intake_updated"
    INTAKE_STATUS_UPDATED = "intake_status_updated"
    UPLOAD_RECORDED = "upload_recorded"
    UPLOAD_HIDDEN = "upload_hidden"
    UPLOAD_UNHIDDEN = "upload_unhidden"
    UPLOAD_REJECTED = "upload_rejected"
    PROFILE_SYNCED = "profile_synced"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)

# ============================================================================
# IDENTITY
# ============================================================================

class Identity(BaseModel):
    """Authenticated caller as resolved by the identity provider."""
    model_config = ConfigDict(extra="ignore")

    id: str
    email: str
    role: UserRole = UserRole.CLIENT

# ============================================================================
# STORED DOCUMENTS
# ============================================================================

class IntakeSubmission(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    # Identity linkage: client_user_id is authoritative when present, else email
    client_user_id: Optional[str] = None
    client_username: Optional[str] = None
    email: str

    first_name: str
    last_name: str
    dob: str
    phone: str
    employer: Optional[str] = None

    filing_year: int
    filing_status: FilingStatus
    dependents: Optional[int] = None
    filing_method: Optional[str] = None
    contact_method: Optional[str] = None
    notes: Optional[str] = None
    consent: bool

    wages: Optional[float] = None
    federal_withholding: Optional[float] = None
    income_1099: Optional[float] = None
    investment_income: Optional[float] = None
    retirement: Optional[float] = None
    other_income: Optional[str] = None
    mortgage: Optional[float] = None
    charity: Optional[float] = None
    student_loan: Optional[float] = None
    hsa: Optional[float] = None
    other_deductions: Optional[str] = None

    # Only ever the opaque token from the sensitive field codec
    ssn_encrypted: Optional[str] = None
    ip_pin_encrypted: Optional[str] = None

    estimated_income: Optional[float] = None
    estimated_taxable: Optional[float] = None
    estimated_tax: Optional[float] = None
    estimated_withholding: Optional[float] = None
    estimated_refund: Optional[float] = None

    review_status: ReviewStatus = ReviewStatus.RECEIVED
    review_notes: Optional[str] = None
    review_updated_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)

class UploadRecord(BaseModel):
    """Metadata for one screened-and-accepted file. Never mutated."""
    model_config = ConfigDict(extra="ignore")

    record_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    client_user_id: Optional[str] = None
    client_username: Optional[str] = None
    uploader_user_id: Optional[str] = None
    uploader_role: UserRole
    category: UploadCategory = UploadCategory.DOCUMENTS
    document_type: str
    scan_status: ScanStatus
    scan_notes: Optional[str] = None
    dlp_hits: int = 0
    file_name: str
    storage_path: str
    file_size: Optional[float] = None
    file_type: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)

class AuditEvent(BaseModel):
    """Append-only audit entry. Write-only from the application's side."""
    model_config = ConfigDict(extra="ignore")

    audit_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    actor_user_id: Optional[str] = None
    actor_email: Optional[str] = None
    actor_role: Optional[UserRole] = None
    action_type: AuditAction
    target_user_id: Optional[str] = None
    target_email: Optional[str] = None
    target_username: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime = Field(default_factory=utc_now)

class ClientProfile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    supabase_user_id: str
    email: str
    username: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None

# ============================================================================
# REQUEST BODIES
# ============================================================================

# Browser forms post numbers and checkboxes as strings; normalization and
# validation happen in the services so errors stay field-specific 400s.
LooseValue = Optional[Union[bool, int, float, str]]

class IntakeRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    intake_id: LooseValue = None
    first_name: LooseValue = None
    last_name: LooseValue = None
    dob: LooseValue = None
    email: LooseValue = None
    phone: LooseValue = None
    employer: LooseValue = None
    ssn: LooseValue = None
    ip_pin: LooseValue = None
    filing_year: LooseValue = None
    filing_status: LooseValue = None
    dependents: LooseValue = None
    filing_method: LooseValue = None
    contact_method: LooseValue = None
    notes: LooseValue = None
    consent: LooseValue = None
    client_user_id: LooseValue = None
    client_username: LooseValue = None
    wages: LooseValue = None
    federal_withholding: LooseValue = None
    income_1099: LooseValue = None
    investment_income: LooseValue = None
    retirement: LooseValue = None
    other_income: LooseValue = None
    mortgage: LooseValue = None
    charity: LooseValue = None
    student_loan: LooseValue = None
    hsa: LooseValue = None
    other_deductions: LooseValue = None

class StatusUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    intake_id: LooseValue = None
    client_user_id: Optional[str] = None
    email: Optional[str] = None
    review_status: Optional[str] = None
    review_notes: Optional[str] = None

class UploadRecordRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    client_user_id: Optional[str] = None
    client_username: Optional[str] = None
    file_name: Optional[str] = None
    storage_path: Optional[str] = None
    category: Optional[str] = None
    file_type: Optional[str] = None
    file_size: LooseValue = None
    dlp_hits: LooseValue = None
    scan_status: Optional[str] = None
    scan_notes: Optional[str] = None

class VisibilityRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    client_user_id: Optional[str] = None
    path: Optional[str] = None
    hidden: LooseValue = False

class ProfileRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    supabase_user_id: Optional[str] = None
    email: Optional[str] = None
    username: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None

# ============================================================================
# RESPONSES
# ============================================================================

class ScreenedFile(BaseModel):
    name: str
    ok: bool
    dlp: bool = False
    message: str = ""

class BatchUploadResponse(BaseModel):
    ok: bool = True
    uploaded: int
    dlp_hits: int = 0
    warnings: List[str] = Field(default_factory=list)
    files: List[Dict[str, Any]] = Field(default_factory=list)

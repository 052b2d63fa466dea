"""
Review State Machine - the six review statuses an intake can occupy.

The machine is permissive: a preparer may move an intake to any known status
from any status, including back out of `filed`. The only rule is that the
value must be one of the six known statuses. Progress display uses a fixed
linear ordering in which both awaiting_* states share one rank.
"""
from typing import Any, Dict, Iterable, Mapping, Optional

from models import ReviewStatus

REVIEW_STATUSES = tuple(status.value for status in ReviewStatus)

# Display rank for the progress timeline
PROGRESS_RANK = {
    ReviewStatus.RECEIVED.value: 0,
    ReviewStatus.IN_REVIEW.value: 1,
    ReviewStatus.AWAITING_DOCUMENTS.value: 2,
    ReviewStatus.AWAITING_AUTHORIZATION.value: 2,
    ReviewStatus.READY_TO_FILE.value: 3,
    ReviewStatus.FILED.value: 4,
}
PROGRESS_STEPS = max(PROGRESS_RANK.values()) + 1

REVIEW_LABELS = {
    "received": "Received",
    "in_review": "In review",
    "awaiting_documents": "Awaiting documents",
    "awaiting_authorization": "Awaiting Form 8879",
    "ready_to_file": "Ready to file",
    "filed": "Filed",
}

REVIEW_DETAILS = {
    "received": "Intake received. Your preparer will begin review shortly.",
    "in_review": "Your preparer is validating documents and confirming filing details.",
    "awaiting_documents": "Additional documents requested. Upload via the client dashboard.",
    "awaiting_authorization": "Form 8879 is required before e-file can proceed.",
    "ready_to_file": "All items verified. Your return is queued for e-file.",
    "filed": "Return transmitted to the IRS. Confirmation pending.",
}

# "required" means the client has something to do
REVIEW_BADGES = {
    "received": "pending",
    "in_review": "pending",
    "awaiting_documents": "required",
    "awaiting_authorization": "required",
    "ready_to_file": "pending",
    "filed": "received",
}


def is_known_status(value: Any) -> bool:
    return isinstance(value, str) and value in REVIEW_STATUSES


def normalize_status(value: Optional[str]) -> str:
    """Unknown or missing statuses display as `received`."""
    return value if is_known_status(value) else ReviewStatus.RECEIVED.value


def progress_rank(value: Optional[str]) -> int:
    return PROGRESS_RANK[normalize_status(value)]


def describe_status(value: Optional[str]) -> Dict[str, Any]:
    status = normalize_status(value)
    return {
        "review_status": status,
        "label": REVIEW_LABELS[status],
        "detail": REVIEW_DETAILS[status],
        "badge": REVIEW_BADGES[status],
        "progress": progress_rank(status),
        "progress_steps": PROGRESS_STEPS,
    }


def count_by_status(rows: Iterable[Mapping[str, Any]]) -> Dict[str, int]:
    """Fold `$group` rows ({_id: status, count: n}) into a full six-key tally.

    Unknown values are ignored rather than coerced.
    """
    counts = {status: 0 for status in REVIEW_STATUSES}
    for row in rows:
        status = row.get("_id")
        if status in counts:
            counts[status] += int(row.get("count") or 0)
    return counts

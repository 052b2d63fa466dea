from database import database
from models import AuditEvent, AuditAction, UserRole
from typing import Optional, Dict, Any, Set
import asyncio
import logging

logger = logging.getLogger(__name__)

AUDIT_MAX_ATTEMPTS = 3
AUDIT_RETRY_DELAY_SECONDS = 0.2

# Strong references so pending audit writes are not garbage collected
_pending: Set[asyncio.Task] = set()


async def create_audit_log(event: AuditEvent) -> str:
    """Insert one audit event. Returns the audit id, or "" on failure.

    Never raises: a failed audit write must not fail the operation that
    triggered it.
    """
    try:
        db = database.get_db()
        doc = event.model_dump(mode="json")
        await db.audit_events.insert_one(doc)
        logger.info(f"Audit event created: {event.action_type.value}")
        return event.audit_id
    except Exception as e:
        logger.error(f"Failed to create audit log: {e}")
        return ""


async def _write_with_retry(event: AuditEvent, attempts: int) -> None:
    for attempt in range(1, attempts + 1):
        if await create_audit_log(event):
            return
        if attempt < attempts:
            await asyncio.sleep(AUDIT_RETRY_DELAY_SECONDS * attempt)
    logger.warning(
        f"Dropping audit event {event.action_type.value} after {attempts} attempts"
    )


def record_audit_event(
    action: AuditAction,
    actor_user_id: Optional[str] = None,
    actor_email: Optional[str] = None,
    actor_role: Optional[UserRole] = None,
    target_user_id: Optional[str] = None,
    target_email: Optional[str] = None,
    target_username: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    attempts: int = AUDIT_MAX_ATTEMPTS,
) -> asyncio.Task:
    """Schedule an audit write on its own task and return immediately.

    Retries a bounded number of times, then logs and drops the event.
    Must be called from inside a running event loop.
    """
    event = AuditEvent(
        action_type=action,
        actor_user_id=actor_user_id or None,
        actor_email=actor_email or None,
        actor_role=actor_role,
        target_user_id=target_user_id or None,
        target_email=target_email or None,
        target_username=target_username or None,
        metadata=metadata or None,
    )
    task = asyncio.get_running_loop().create_task(_write_with_retry(event, attempts))
    _pending.add(task)
    task.add_done_callback(_pending.discard)
    return task


async def drain_audit_tasks(timeout: Optional[float] = 5.0) -> None:
    """Wait for scheduled audit writes (used at shutdown and in tests)."""
    if not _pending:
        return
    done, not_done = await asyncio.wait(set(_pending), timeout=timeout)
    if not_done:
        logger.warning(f"{len(not_done)} audit events still pending at shutdown")

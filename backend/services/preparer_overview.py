"""Preparer dashboard summary: counts, per-status tally, recent intakes and clients."""
import asyncio
import logging
import re
from typing import Any, Dict, List

from database import database
from services import access_guard
from services.review_status import count_by_status

logger = logging.getLogger(__name__)

RECENT_INTAKES_LIMIT = 40
RECENT_CLIENTS_LIMIT = 60

INTAKE_SUMMARY_FIELDS = {
    "_id": 0,
    "id": 1,
    "client_user_id": 1,
    "client_username": 1,
    "email": 1,
    "first_name": 1,
    "last_name": 1,
    "filing_year": 1,
    "review_status": 1,
    "review_notes": 1,
    "review_updated_at": 1,
    "created_at": 1,
}


def staff_filter() -> Dict[str, Any]:
    """Exclude the firm's own accounts when a preparer domain is configured."""
    domain = access_guard.PREPARER_EMAIL_DOMAIN.strip().lower().lstrip("@")
    if not domain:
        return {}
    return {"email": {"$not": re.compile(f"@{re.escape(domain)}$", re.IGNORECASE)}}


async def build_overview() -> Dict[str, Any]:
    db = database.get_db()
    query = staff_filter()

    client_count, intake_count, status_rows, intakes, clients = await asyncio.gather(
        db.client_profiles.count_documents(query),
        db.intake_submissions.count_documents(query),
        db.intake_submissions.aggregate([
            {"$match": query},
            {"$group": {"_id": "$review_status", "count": {"$sum": 1}}},
        ]).to_list(length=None),
        db.intake_submissions.find(query, INTAKE_SUMMARY_FIELDS)
            .sort("created_at", -1)
            .limit(RECENT_INTAKES_LIMIT)
            .to_list(length=RECENT_INTAKES_LIMIT),
        db.client_profiles.find(query, {"_id": 0})
            .sort("created_at", -1)
            .limit(RECENT_CLIENTS_LIMIT)
            .to_list(length=RECENT_CLIENTS_LIMIT),
    )

    _attach_profiles(intakes, clients)

    return {
        "ok": True,
        "counts": {
            "clients": client_count,
            "intakes": intake_count,
        },
        "status_counts": count_by_status(status_rows),
        "intakes": intakes,
        "clients": clients,
    }


def _attach_profiles(intakes: List[Dict[str, Any]], clients: List[Dict[str, Any]]) -> None:
    """Fill missing intake usernames and names from the matching profile."""
    profiles = {client.get("supabase_user_id"): client for client in clients}
    for intake in intakes:
        profile = profiles.get(intake.get("client_user_id"))
        if not profile:
            continue
        intake["client_username"] = intake.get("client_username") or profile.get("username")
        intake["profile_name"] = profile.get("full_name")
        intake["profile_phone"] = profile.get("phone")

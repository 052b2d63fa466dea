"""Review statuses: the six wire values, permissive validation, progress rank."""
from services.review_status import (
    PROGRESS_STEPS,
    REVIEW_STATUSES,
    count_by_status,
    describe_status,
    is_known_status,
    progress_rank,
)


def test_wire_values():
    assert REVIEW_STATUSES == (
        "received",
        "in_review",
        "awaiting_documents",
        "awaiting_authorization",
        "ready_to_file",
        "filed",
    )


def test_is_known_status():
    assert all(is_known_status(status) for status in REVIEW_STATUSES)
    assert not is_known_status("zzz")
    assert not is_known_status("FILED")
    assert not is_known_status(None)


def test_awaiting_states_share_a_rank():
    assert progress_rank("awaiting_documents") == progress_rank("awaiting_authorization")
    assert progress_rank("awaiting_documents") == progress_rank("in_review") + 1


def test_progress_is_monotonic_along_the_timeline():
    ranks = [progress_rank(status) for status in REVIEW_STATUSES]
    assert ranks == sorted(ranks)
    assert ranks[-1] == PROGRESS_STEPS - 1


def test_unknown_status_displays_as_received():
    described = describe_status("legacy_value")
    assert described["review_status"] == "received"
    assert described["progress"] == 0


def test_describe_filed():
    described = describe_status("filed")
    assert described["label"] == "Filed"
    assert "IRS" in described["detail"]


def test_count_by_status_from_group_rows():
    rows = [
        {"_id": "received", "count": 3},
        {"_id": "filed", "count": 1},
        {"_id": None, "count": 2},
    ]
    counts = count_by_status(rows)
    assert counts["received"] == 3
    assert counts["filed"] == 1
    assert counts["in_review"] == 0
    assert set(counts) == set(REVIEW_STATUSES)

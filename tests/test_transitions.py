"""Tests for join-request status transitions."""

import pytest

from chapter_bot.db import session_scope
from chapter_bot.models import ChapterJoinRequest, StatusTransitionError, transition_join_request


@pytest.fixture
def pending_request(seed):
    seed.participant("P1", full_name="Applicant", status="visitor")
    return seed.join_request("R1", participant_id="P1")


def _status(request_id):
    with session_scope() as session:
        row = session.get(ChapterJoinRequest, request_id)
        return row.status, row.decided_by, row.decided_at


def test_pending_request_can_be_approved(pending_request):
    with session_scope() as session:
        moved = transition_join_request(
            session, request_id=pending_request, from_status="pending", to_status="approved", decided_by="U2"
        )

    status, decided_by, decided_at = _status(pending_request)
    assert moved is True
    assert status == "approved"
    assert decided_by == "U2"
    assert decided_at is not None


def test_second_decision_matches_no_row(pending_request):
    with session_scope() as session:
        assert transition_join_request(session, request_id=pending_request, from_status="pending", to_status="approved")

    with session_scope() as session:
        moved = transition_join_request(session, request_id=pending_request, from_status="pending", to_status="rejected")

    assert moved is False
    assert _status(pending_request)[0] == "approved"


def test_compensation_returns_request_to_pending(pending_request):
    with session_scope() as session:
        transition_join_request(
            session, request_id=pending_request, from_status="pending", to_status="approved", decided_by="U2"
        )
    with session_scope() as session:
        moved = transition_join_request(session, request_id=pending_request, from_status="approved", to_status="pending")

    assert moved is True
    assert _status(pending_request) == ("pending", None, None)


@pytest.mark.parametrize(
    ("from_status", "to_status"),
    [("rejected", "pending"), ("rejected", "approved"), ("approved", "rejected"), ("pending", "pending")],
)
def test_invalid_transition_raises_error(pending_request, from_status, to_status):
    with session_scope() as session:
        with pytest.raises(StatusTransitionError):
            transition_join_request(session, request_id=pending_request, from_status=from_status, to_status=to_status)

from datetime import datetime, timezone

import pytest

from content_approval.core.config import WorkflowConfig
from content_approval.core.errors import NotAssignedError
from content_approval.models import AssignmentStatus, ReviewAssignment, ReviewStatus, UserRole
from content_approval.workflow import ledger
from content_approval.workflow.quorum import RemainingApprovals

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
CONFIG = WorkflowConfig(min_required_reviews=2)


def _request(db, item, requester, reviewers):
    outcome = ledger.request_review(
        db, item, requester_id=requester.id, reviewer_ids=[u.id for u in reviewers], config=CONFIG, now=NOW
    )
    db.commit()
    return outcome


def test_same_reviewer_set_twice_assigns_nobody_new(db_session, make_item, make_user):
    requester, a, b = make_user(UserRole.author), make_user(), make_user()
    item = make_item()

    assert _request(db_session, item, requester, [a, b]).newly_assigned == frozenset({a.id, b.id})
    assert _request(db_session, item, requester, [a, b]).newly_assigned == frozenset()


def test_request_records_requester_quorum_and_status(db_session, make_item, make_user):
    requester, a = make_user(UserRole.author), make_user()
    item = make_item()

    outcome = _request(db_session, item, requester, [a])

    assert outcome.remaining == RemainingApprovals.counting(2)
    assert item.requested_by == requester.id
    assert item.required_approvals == 2
    assert item.review_status == ReviewStatus.PENDING
    assert ledger.remaining_of(item) == RemainingApprovals.counting(2)


def test_dropped_reviewers_lose_their_row(db_session, make_item, make_user):
    requester, a, b = make_user(UserRole.author), make_user(), make_user()
    item = make_item()
    _request(db_session, item, requester, [a, b])
    _request(db_session, item, requester, [b])

    rows = db_session.query(ReviewAssignment).filter(ReviewAssignment.item_id == item.id).all()
    assert [r.user_id for r in rows] == [b.id]


def test_user_is_never_pending_and_approved_at_once(db_session, make_item, make_user):
    requester, a, b = make_user(UserRole.author), make_user(), make_user()
    item = make_item()
    _request(db_session, item, requester, [a, b])

    ledger.record_approval(item, a.id)
    db_session.commit()

    assert ledger.pending_reviewers(item) == frozenset({b.id})
    assert ledger.approved_reviewers(item) == frozenset({a.id})
    assert not (ledger.pending_reviewers(item) & ledger.approved_reviewers(item))


def test_record_approval_requires_pending_row(db_session, make_item, make_user):
    requester, a = make_user(UserRole.author), make_user()
    item = make_item()
    _request(db_session, item, requester, [a])
    assert ledger.cancel_assignment(item, a.id) is True
    assert ledger.cancel_assignment(item, a.id) is False

    with pytest.raises(NotAssignedError):
        ledger.record_approval(item, a.id)


def test_ignore_keeps_approvals_but_forgets_the_request(db_session, make_item, make_user):
    requester, a, b = make_user(UserRole.author), make_user(), make_user()
    item = make_item()
    _request(db_session, item, requester, [a, b])
    ledger.record_approval(item, a.id)

    ledger.set_ignore_flag(db_session, item, True)
    db_session.commit()

    assert item.ignore_workflow is True
    assert item.requested_by is None
    assert item.requested_at is None
    assert ledger.pending_reviewers(item) == frozenset()
    assert ledger.approved_reviewers(item) == frozenset({a.id})
    assert ledger.requested_reviewers(item) == frozenset()
    assert ledger.remaining_of(item) == RemainingApprovals.counting(1)

    # A fresh request after the ignore notifies the previous approver again.
    item.ignore_workflow = False
    outcome = _request(db_session, item, requester, [a])
    assert outcome.newly_assigned == frozenset({a.id})
    row = db_session.query(ReviewAssignment).filter_by(item_id=item.id, user_id=a.id).one()
    assert row.status == AssignmentStatus.PENDING


def test_remaining_of_hand_edited_zero_count_is_ready(make_item):
    from content_approval.models import RemainingState

    item = make_item()
    item.remaining_state = RemainingState.COUNTING
    item.remaining_approvals = 0
    assert ledger.remaining_of(item) == RemainingApprovals.ready()

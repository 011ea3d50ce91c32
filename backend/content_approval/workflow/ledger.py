"""
Review assignment ledger.

Operates on a loaded ContentItem inside the caller's transaction; nothing here
commits. Each (item, user) pair has at most one ReviewAssignment row, which is
what keeps a user out of the pending and approved sets at the same time.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, FrozenSet, Iterable, Optional, Tuple

from sqlalchemy.orm import Session

from content_approval.core.config import WorkflowConfig
from content_approval.core.errors import NotAssignedError
from content_approval.models.content_item import (
    AssignmentStatus,
    ContentItem,
    RemainingState,
    ReviewAssignment,
    ReviewStatus,
)
from content_approval.workflow import quorum
from content_approval.workflow.quorum import RemainingApprovals


@dataclass(frozen=True)
class RequestOutcome:
    newly_assigned: FrozenSet[int]
    reviewers: FrozenSet[int]
    remaining: RemainingApprovals


def remaining_of(item: ContentItem) -> RemainingApprovals:
    state = item.remaining_state or RemainingState.UNSET
    if state == RemainingState.COUNTING:
        count = int(item.remaining_approvals or 0)
        # A zero count can only come from a hand-edited row; treat it as met.
        return RemainingApprovals.counting(count) if count > 0 else RemainingApprovals.ready()
    if state == RemainingState.READY:
        return RemainingApprovals.ready()
    return RemainingApprovals.unset()


def store_remaining(item: ContentItem, remaining: RemainingApprovals) -> None:
    item.remaining_state = remaining.state
    item.remaining_approvals = remaining.count


def _rows(item: ContentItem) -> Dict[int, ReviewAssignment]:
    return {int(r.user_id): r for r in item.assignments}


def pending_reviewers(item: ContentItem) -> FrozenSet[int]:
    return frozenset(int(r.user_id) for r in item.assignments if r.status == AssignmentStatus.PENDING)


def approved_reviewers(item: ContentItem) -> FrozenSet[int]:
    return frozenset(int(r.user_id) for r in item.assignments if r.status == AssignmentStatus.APPROVED)


def requested_reviewers(item: ContentItem) -> FrozenSet[int]:
    return frozenset(int(r.user_id) for r in item.assignments if r.requested)


def normalize_user_ids(user_ids: Optional[Iterable]) -> FrozenSet[int]:
    out = set()
    for uid in user_ids or ():
        out.add(int(uid))
    return frozenset(out)


def request_review(
    db: Session,
    item: ContentItem,
    *,
    requester_id: int,
    reviewer_ids: Iterable[int],
    config: WorkflowConfig,
    now: datetime,
) -> RequestOutcome:
    """
    Start (or restart) a review cycle with exactly ``reviewer_ids`` pending.

    Previous pending/approved state is discarded. ``newly_assigned`` only holds
    users who were not part of the previous request, so callers can avoid
    re-notifying people who were already asked.
    """
    reviewers = normalize_user_ids(reviewer_ids)
    newly_assigned = reviewers - requested_reviewers(item)

    existing = _rows(item)
    for uid, row in existing.items():
        if uid not in reviewers:
            item.assignments.remove(row)
            db.delete(row)
    for uid in sorted(reviewers):
        row = existing.get(uid)
        if row is None:
            item.assignments.append(ReviewAssignment(user_id=uid, status=AssignmentStatus.PENDING, requested=True))
        else:
            row.status = AssignmentStatus.PENDING
            row.requested = True

    current = remaining_of(item)
    remaining = quorum.reseed_if_needed(current, config)
    store_remaining(item, remaining)
    # Mid-cycle requests keep the quorum snapshot they started with.
    if current.state != RemainingState.COUNTING or item.required_approvals is None:
        item.required_approvals = quorum.required_reviews(config)

    item.review_status = ReviewStatus.READY if quorum.is_ready(remaining) else ReviewStatus.PENDING
    item.requested_by = int(requester_id)
    item.requested_at = now

    return RequestOutcome(newly_assigned=newly_assigned, reviewers=reviewers, remaining=remaining)


def record_approval(item: ContentItem, approver_id: int) -> Tuple[RemainingApprovals, bool]:
    row = _rows(item).get(int(approver_id))
    if row is None or row.status != AssignmentStatus.PENDING:
        raise NotAssignedError()

    row.status = AssignmentStatus.APPROVED
    remaining, ready = quorum.remaining_after_approval(remaining_of(item))
    store_remaining(item, remaining)
    if ready:
        item.review_status = ReviewStatus.READY
    return remaining, ready


def cancel_assignment(item: ContentItem, user_id: int) -> bool:
    """Take a user out of the cycle. The remaining count is left as it is."""
    row = _rows(item).get(int(user_id))
    if row is None or row.status == AssignmentStatus.CANCELLED:
        return False
    row.status = AssignmentStatus.CANCELLED
    return True


def set_ignore_flag(db: Session, item: ContentItem, ignore: bool) -> None:
    item.ignore_workflow = bool(ignore)
    if not ignore:
        return

    for row in list(item.assignments):
        if row.status == AssignmentStatus.APPROVED:
            row.requested = False
            continue
        item.assignments.remove(row)
        db.delete(row)
    item.requested_by = None
    item.requested_at = None
    item.review_status = ReviewStatus.NONE

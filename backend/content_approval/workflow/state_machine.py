"""
Approval state machine.

Coordinates the ledger, the quorum policy, the audit sink and the notification
dispatcher for one content item at a time:

    UNASSIGNED --request(reviewers)--> PENDING --approve (n left)--> PENDING
    PENDING --approve (quorum met)--> READY
    PENDING/READY --request(new set)--> PENDING
    any --ignore--> gating bypassed (orthogonal flag)

Every mutation runs under the per-item lock and commits in one transaction.
Audit and notification side effects happen after the commit and can only
degrade the result to "succeeded with a warning".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, FrozenSet, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from content_approval.core.config import WorkflowConfig
from content_approval.core.errors import (
    EmptyFeedbackError,
    InvalidContentId,
    InvalidUser,
    NotAssignedError,
    StatusConflictError,
)
from content_approval.core.locks import ItemLockRegistry, item_locks
from content_approval.core.tracing import count_event
from content_approval.models.audit import AuditEntry
from content_approval.models.content_item import (
    FEEDBACK_KIND,
    ContentItem,
    ReviewFeedback,
    ReviewStatus,
)
from content_approval.models.user import User
from content_approval.services import notifications
from content_approval.services.audit import APPROVED, AuditSink, SqlAuditSink
from content_approval.services.notifications import NotificationDispatcher
from content_approval.workflow import ledger, publish_gate, quorum
from content_approval.workflow.publish_gate import GateResult
from content_approval.workflow.quorum import RemainingApprovals

logger = logging.getLogger("caw.workflow")

FEEDBACK_PAGE_SIZE = 10


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RequestResult:
    message: str
    newly_assigned: FrozenSet[int]
    remaining: RemainingApprovals
    review_status: ReviewStatus
    warning: Optional[str] = None


@dataclass
class ApprovalResult:
    message: str
    remaining: RemainingApprovals
    review_status: ReviewStatus
    ready: bool = False
    audit_id: Optional[int] = None
    notified: bool = False
    ignored: bool = False
    warning: Optional[str] = None


@dataclass
class FeedbackResult:
    feedback: ReviewFeedback
    total: int
    warning: Optional[str] = None


@dataclass
class TransitionResult:
    gate: GateResult
    status: str
    changed: bool = False


@dataclass
class ItemSnapshot:
    item: ContentItem
    remaining: RemainingApprovals
    pending: FrozenSet[int] = field(default_factory=frozenset)
    approved: FrozenSet[int] = field(default_factory=frozenset)
    requested: FrozenSet[int] = field(default_factory=frozenset)


class ApprovalWorkflow:
    def __init__(
        self,
        db: Session,
        config: WorkflowConfig,
        dispatcher: NotificationDispatcher,
        audit_sink: Optional[AuditSink] = None,
        locks: ItemLockRegistry = item_locks,
        clock: Callable[[], datetime] = _now_utc,
    ) -> None:
        self.db = db
        self.config = config
        self.dispatcher = dispatcher
        self.audit_sink = audit_sink or SqlAuditSink(db)
        self.locks = locks
        self.clock = clock

    # --- lookups ---

    def _load(self, item_id, *, for_update: bool = False) -> ContentItem:
        try:
            key = int(item_id)
        except (TypeError, ValueError):
            raise InvalidContentId()
        if key <= 0:
            raise InvalidContentId()
        q = self.db.query(ContentItem).filter(ContentItem.id == key)
        if for_update:
            q = q.with_for_update()
        item = q.first()
        if item is None:
            raise InvalidContentId()
        return item

    def _user(self, user_id) -> User:
        try:
            key = int(user_id)
        except (TypeError, ValueError):
            raise InvalidUser(f"Invalid user id: {user_id!r}")
        user = self.db.get(User, key) if key > 0 else None
        if user is None:
            raise InvalidUser(f"User {user_id} not found")
        return user

    def _users(self, user_ids: Iterable[int]) -> List[User]:
        return [self._user(uid) for uid in sorted(user_ids)]

    def _hold(self, item_id):
        try:
            key = int(item_id)
        except (TypeError, ValueError):
            raise InvalidContentId()
        return self.locks.hold(key)

    def _commit(self) -> None:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def snapshot(self, item_id) -> ItemSnapshot:
        item = self._load(item_id)
        return ItemSnapshot(
            item=item,
            remaining=ledger.remaining_of(item),
            pending=ledger.pending_reviewers(item),
            approved=ledger.approved_reviewers(item),
            requested=ledger.requested_reviewers(item),
        )

    # --- transitions ---

    def request_review(self, item_id, requester_id, reviewer_ids: Iterable) -> RequestResult:
        requester = self._user(requester_id)
        try:
            reviewers = ledger.normalize_user_ids(reviewer_ids)
        except (TypeError, ValueError):
            raise InvalidUser("Reviewer ids must be integers")
        reviewer_users = self._users(reviewers)
        allowed_roles = self.config.roles_can_approve
        for user in reviewer_users:
            role = user.role.value if hasattr(user.role, "value") else str(user.role)
            if allowed_roles and role not in allowed_roles:
                raise InvalidUser(f"User {user.id} is not allowed to approve content")

        with self._hold(item_id):
            item = self._load(item_id, for_update=True)
            try:
                outcome = ledger.request_review(
                    self.db,
                    item,
                    requester_id=requester.id,
                    reviewer_ids=reviewers,
                    config=self.config,
                    now=self.clock(),
                )
                self._commit()
            except Exception:
                self.db.rollback()
                raise
            status = item.review_status

        count_event("review_requested")
        logger.info(
            "item %s: review requested by %s for %s (new: %s, remaining=%s)",
            item.id, requester.id, sorted(outcome.reviewers), sorted(outcome.newly_assigned),
            outcome.remaining.to_public(),
        )

        if not outcome.newly_assigned:
            return RequestResult(
                message="Review request saved successfully.",
                newly_assigned=outcome.newly_assigned,
                remaining=outcome.remaining,
                review_status=status,
            )

        recipients = [u for u in reviewer_users if u.id in outcome.newly_assigned]
        variables = notifications.content_variables(item, assignee=requester)
        sent = notifications.notify_users(self.dispatcher, notifications.ASK_FOR_REVIEW, recipients, variables)
        return RequestResult(
            message="Review request sent successfully.",
            newly_assigned=outcome.newly_assigned,
            remaining=outcome.remaining,
            review_status=status,
            warning=None if sent else "Error sending review request emails.",
        )

    def record_approval(self, item_id, approver_id) -> ApprovalResult:
        approver = self._user(approver_id)

        with self._hold(item_id):
            item = self._load(item_id, for_update=True)
            try:
                remaining, ready = ledger.record_approval(item, approver.id)
            except NotAssignedError:
                self.db.rollback()
                if self.config.unassigned_approval_policy != "ignore":
                    raise
                logger.warning("item %s: ignoring approval from unassigned user %s", item_id, approver.id)
                item = self._load(item_id)
                return ApprovalResult(
                    message="Nothing to approve.",
                    remaining=ledger.remaining_of(item),
                    review_status=item.review_status,
                    ready=quorum.is_ready(ledger.remaining_of(item)),
                    ignored=True,
                    warning="You are not a pending reviewer of this content item.",
                )
            except Exception:
                self.db.rollback()
                raise
            self._commit()
            status = item.review_status
            requester_id = item.requested_by

        count_event("review_approved")
        logger.info("item %s: approved by %s (remaining=%s)", item.id, approver.id, remaining.to_public())

        warnings: List[str] = []
        audit_id: Optional[int] = None
        try:
            audit_id = self.audit_sink.append(
                AuditEntry(
                    content_id=item.id,
                    requester_id=requester_id,
                    approver_id=approver.id,
                    status=APPROVED,
                    created_at=self.clock(),
                )
            )
        except Exception:
            logger.exception("item %s: audit write failed for approval by %s", item.id, approver.id)
            warnings.append("Approval recorded but the history entry could not be written.")

        requester = self.db.get(User, requester_id) if requester_id else None
        notified = False
        if requester is not None:
            variables = notifications.content_variables(item, assignee=requester)
            notified = notifications.notify_users(
                self.dispatcher, notifications.APPROVE_REVIEW, [requester], variables
            )
        if not notified:
            warnings.append("Error sending approval email.")

        return ApprovalResult(
            message="Review approved and email sent successfully." if notified else "Review approved successfully.",
            remaining=remaining,
            review_status=status,
            ready=ready,
            audit_id=audit_id,
            notified=notified,
            warning=" ".join(warnings) or None,
        )

    def cancel_assignment(self, item_id, user_id) -> str:
        user = self._user(user_id)
        with self._hold(item_id):
            item = self._load(item_id, for_update=True)
            try:
                changed = ledger.cancel_assignment(item, user.id)
                self._commit()
            except Exception:
                self.db.rollback()
                raise
        if changed:
            count_event("review_cancelled")
            logger.info("item %s: user %s left the review cycle", item.id, user.id)
        return "Review request cancelled successfully. Please do not forget to submit a feedback"

    def set_ignore_flag(self, item_id, ignore: bool) -> None:
        with self._hold(item_id):
            item = self._load(item_id, for_update=True)
            try:
                ledger.set_ignore_flag(self.db, item, bool(ignore))
                self._commit()
            except Exception:
                self.db.rollback()
                raise
        count_event("workflow_ignored" if ignore else "workflow_restored")
        logger.info("item %s: ignore_workflow=%s", item.id, bool(ignore))

    # --- publish gate ---

    @staticmethod
    def _stored_status(item: ContentItem, claimed: Optional[str]) -> str:
        stored = (item.status or "").strip().lower()
        if claimed is not None and claimed.strip().lower() != stored:
            raise StatusConflictError(
                f"Content item {item.id} is '{stored}', not '{claimed.strip().lower()}'."
            )
        return stored

    def check_publish(
        self, item_id, previous_status: Optional[str] = None, target_status: str = publish_gate.PUBLISHED
    ) -> GateResult:
        """Read-only preflight against the stored status; does not change the item."""
        item = self._load(item_id)
        previous = self._stored_status(item, previous_status)
        return publish_gate.evaluate_item(item, ledger.remaining_of(item), previous, target_status, self.config)

    def apply_transition(self, item_id, previous_status: Optional[str], new_status: str) -> TransitionResult:
        """
        Lifecycle hook: evaluate the gate and store the resulting status.

        The gate always runs against the stored status; a caller-supplied
        ``previous_status`` that disagrees with it raises StatusConflictError.
        On VETO the item is forced to draft, so a second evaluation of the same
        hook sees previous=draft/target=draft and allows it.
        """
        with self._hold(item_id):
            item = self._load(item_id, for_update=True)
            previous = self._stored_status(item, previous_status)
            gate = publish_gate.evaluate_item(item, ledger.remaining_of(item), previous, new_status, self.config)
            status = gate.resulting_status((new_status or "").strip().lower())
            changed = item.status != status
            if changed:
                item.status = status
            self._commit()
        if gate.vetoed:
            count_event("publish_vetoed")
            logger.warning("item %s: publish vetoed, %s approvals outstanding", item.id, gate.outstanding)
        return TransitionResult(gate=gate, status=status, changed=changed)

    # --- feedback ---

    def add_feedback(self, item_id, author_id, body: Optional[str]) -> FeedbackResult:
        text = (body or "").strip()
        if not text:
            raise EmptyFeedbackError()
        author = self._user(author_id)
        item = self._load(item_id)

        fb = ReviewFeedback(item_id=item.id, author_id=author.id, body=text, kind=FEEDBACK_KIND, created_at=self.clock())
        self.db.add(fb)
        self._commit()
        self.db.refresh(fb)
        count_event("feedback_added")

        recipient_ids = set(ledger.requested_reviewers(item))
        if item.author_id:
            recipient_ids.add(int(item.author_id))
        recipient_ids.discard(author.id)
        recipients = [u for u in (self.db.get(User, uid) for uid in sorted(recipient_ids)) if u is not None]

        variables = notifications.content_variables(item)
        variables["feedback_author"] = notifications.display_name(author)
        sent = notifications.notify_users(self.dispatcher, notifications.FEEDBACK, recipients, variables)

        total = (
            self.db.query(ReviewFeedback)
            .filter(ReviewFeedback.item_id == item.id, ReviewFeedback.kind == FEEDBACK_KIND)
            .count()
        )
        return FeedbackResult(feedback=fb, total=total, warning=None if sent else "Error sending feedback email.")

    def list_feedback(self, item_id, page: int = 0, offset: int = 0) -> Tuple[List[ReviewFeedback], bool]:
        """Newest first, ``FEEDBACK_PAGE_SIZE`` per page; ``offset`` skips rows added since the first page."""
        item = self._load(item_id)
        start = FEEDBACK_PAGE_SIZE * max(0, int(page)) + max(0, int(offset))
        rows = (
            self.db.query(ReviewFeedback)
            .filter(ReviewFeedback.item_id == item.id, ReviewFeedback.kind == FEEDBACK_KIND)
            .order_by(ReviewFeedback.created_at.desc(), ReviewFeedback.id.desc())
            .offset(start)
            .limit(FEEDBACK_PAGE_SIZE)
            .all()
        )
        return rows, len(rows) == FEEDBACK_PAGE_SIZE

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from content_approval.api.deps import (
    get_current_user,
    get_db_session,
    get_workflow,
    get_workflow_config,
    require_requester,
    require_role,
)
from content_approval.core.config import WorkflowConfig
from content_approval.models.content_item import AssignmentStatus, ContentItem, ReviewAssignment
from content_approval.models.user import User, UserRole
from content_approval.schemas.approval import (
    ApprovalOut,
    ApprovalStatusOut,
    CancelAssignmentIn,
    FeedbackCreate,
    FeedbackCreatedOut,
    FeedbackOut,
    FeedbackPageOut,
    HistoryFiltersOut,
    HistoryOut,
    IgnoreFlagIn,
    InboxItemOut,
    InboxOut,
    MaintenanceOut,
    OkOut,
    ReviewerCandidateOut,
    ReviewRequestCreate,
    ReviewRequestOut,
    WorkflowStateOut,
)
from content_approval.services import audit, reminders
from content_approval.services.notifications import NotificationDispatcher, get_notification_dispatcher
from content_approval.workflow import ledger
from content_approval.workflow.publish_gate import PUBLISHED
from content_approval.workflow.state_machine import ApprovalWorkflow


router = APIRouter(prefix="/approvals", tags=["approvals"])


def _inbox_row(item: ContentItem) -> InboxItemOut:
    return InboxItemOut(
        id=item.id,
        title=item.title,
        content_type=item.content_type,
        requested_by=item.requested_by,
        requested_at=item.requested_at,
        remaining=ledger.remaining_of(item).to_public(),
        pending_reviewers=sorted(ledger.pending_reviewers(item)),
    )


# --- Review cycle ---


@router.get("/items/{item_id}", response_model=WorkflowStateOut)
def get_workflow_state(
    item_id: int,
    workflow: ApprovalWorkflow = Depends(get_workflow),
    current_user: User = Depends(get_current_user),
):
    snap = workflow.snapshot(item_id)
    item = snap.item
    return WorkflowStateOut(
        id=item.id,
        title=item.title,
        content_type=item.content_type,
        status=item.status,
        review_status=item.review_status,
        ignore_workflow=bool(item.ignore_workflow),
        requested_by=item.requested_by,
        requested_at=item.requested_at,
        required_approvals=item.required_approvals,
        remaining=snap.remaining.to_public(),
        pending_reviewers=sorted(snap.pending),
        approved_reviewers=sorted(snap.approved),
    )


@router.post("/items/{item_id}/request", response_model=ReviewRequestOut)
def request_review(
    item_id: int,
    payload: ReviewRequestCreate,
    workflow: ApprovalWorkflow = Depends(get_workflow),
    current_user: User = Depends(require_requester),
):
    result = workflow.request_review(item_id, current_user.id, payload.reviewer_ids)
    return ReviewRequestOut(
        message=result.message,
        newly_assigned_count=len(result.newly_assigned),
        remaining=result.remaining.to_public(),
        review_status=result.review_status,
        warning=result.warning,
    )


@router.post("/items/{item_id}/approve", response_model=ApprovalOut)
def approve_review(
    item_id: int,
    workflow: ApprovalWorkflow = Depends(get_workflow),
    current_user: User = Depends(get_current_user),
):
    result = workflow.record_approval(item_id, current_user.id)
    return ApprovalOut(
        message=result.message,
        remaining=result.remaining.to_public(),
        ready=result.ready,
        review_status=result.review_status,
        audit_id=result.audit_id,
        notified=result.notified,
        warning=result.warning,
    )


@router.post("/items/{item_id}/cancel", response_model=OkOut)
def cancel_assignment(
    item_id: int,
    payload: Optional[CancelAssignmentIn] = None,
    workflow: ApprovalWorkflow = Depends(get_workflow),
    current_user: User = Depends(get_current_user),
):
    user_id = payload.user_id if payload and payload.user_id else current_user.id
    if user_id != current_user.id:
        # Removing somebody else is reserved for whoever runs the review.
        snap = workflow.snapshot(item_id)
        if current_user.role != UserRole.admin and snap.item.requested_by != current_user.id:
            raise HTTPException(status_code=403, detail="Insufficient permissions")
    message = workflow.cancel_assignment(item_id, user_id)
    return OkOut(message=message)


@router.post("/items/{item_id}/ignore", response_model=OkOut)
def set_ignore_flag(
    item_id: int,
    payload: IgnoreFlagIn,
    workflow: ApprovalWorkflow = Depends(get_workflow),
    current_user: User = Depends(require_requester),
):
    workflow.set_ignore_flag(item_id, payload.ignore)
    return OkOut(message="success")


@router.get("/items/{item_id}/approval-status", response_model=ApprovalStatusOut)
def approval_status(
    item_id: int,
    previous_status: Optional[str] = Query(None, max_length=30),
    workflow: ApprovalWorkflow = Depends(get_workflow),
    current_user: User = Depends(get_current_user),
):
    """Preflight for the editor's publish button; never changes the item."""
    gate = workflow.check_publish(item_id, previous_status, PUBLISHED)
    if gate.reason == "not_gated":
        return ApprovalStatusOut(status="not_gated")
    if gate.vetoed:
        return ApprovalStatusOut(status="unapproved", remaining_reviews=gate.outstanding, message=gate.reason)
    return ApprovalStatusOut(status="approved")


# --- Feedback ---


@router.post("/items/{item_id}/feedback", response_model=FeedbackCreatedOut)
def add_feedback(
    item_id: int,
    payload: FeedbackCreate,
    workflow: ApprovalWorkflow = Depends(get_workflow),
    current_user: User = Depends(get_current_user),
):
    result = workflow.add_feedback(item_id, current_user.id, payload.body)
    return FeedbackCreatedOut(
        total_feedback=result.total,
        feedback=FeedbackOut.model_validate(result.feedback),
        warning=result.warning,
    )


@router.get("/items/{item_id}/feedback", response_model=FeedbackPageOut)
def list_feedback(
    item_id: int,
    page: int = Query(0, ge=0),
    offset: int = Query(0, ge=0),
    workflow: ApprovalWorkflow = Depends(get_workflow),
    current_user: User = Depends(get_current_user),
):
    rows, load_more = workflow.list_feedback(item_id, page=page, offset=offset)
    return FeedbackPageOut(load_more=load_more, items=[FeedbackOut.model_validate(r) for r in rows])


# --- Dashboard ---


@router.get("/inbox", response_model=InboxOut)
def inbox(
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    awaiting = (
        db.query(ContentItem)
        .join(ReviewAssignment, ReviewAssignment.item_id == ContentItem.id)
        .filter(
            ReviewAssignment.user_id == current_user.id,
            ReviewAssignment.status == AssignmentStatus.PENDING,
            ContentItem.ignore_workflow.is_(False),
        )
        .order_by(ContentItem.requested_at.desc(), ContentItem.id.desc())
        .all()
    )
    mine = (
        db.query(ContentItem)
        .filter(ContentItem.requested_by == current_user.id, ContentItem.ignore_workflow.is_(False))
        .order_by(ContentItem.requested_at.desc(), ContentItem.id.desc())
        .all()
    )
    return InboxOut(
        awaiting_my_review=[_inbox_row(i) for i in awaiting],
        my_requests=[_inbox_row(i) for i in mine if ledger.pending_reviewers(i)],
    )


@router.get("/reviewers", response_model=List[ReviewerCandidateOut])
def reviewer_candidates(
    item_id: Optional[int] = None,
    db: Session = Depends(get_db_session),
    config: WorkflowConfig = Depends(get_workflow_config),
    current_user: User = Depends(get_current_user),
):
    """Users allowed to approve (excluding the caller); those already pending on ``item_id`` come first."""
    q = db.query(User).filter(User.id != current_user.id)
    if config.roles_can_approve:
        roles = [r for r in UserRole if r.value in config.roles_can_approve]
        q = q.filter(User.role.in_(roles))
    users = q.order_by(User.email.asc()).all()

    pending: set = set()
    if item_id:
        pending = {
            int(uid)
            for (uid,) in db.query(ReviewAssignment.user_id).filter(
                ReviewAssignment.item_id == item_id,
                ReviewAssignment.status == AssignmentStatus.PENDING,
            )
        }
    out = [ReviewerCandidateOut(id=u.id, display_name=u.display_name or u.email, checked=u.id in pending) for u in users]
    # Stable sort keeps the e-mail ordering inside each group.
    return sorted(out, key=lambda c: not c.checked)


# --- History ---


@router.get("/history", response_model=HistoryOut)
def history(
    user_id: Optional[int] = None,
    content_id: Optional[int] = None,
    assignee_id: Optional[int] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=200),
    order_by: str = Query("date", max_length=30),
    order: str = Query("desc", max_length=4),
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_role(UserRole.admin, UserRole.editor)),
):
    return audit.load_history(
        db,
        user_id=user_id,
        content_id=content_id,
        assignee_id=assignee_id,
        page=page,
        page_size=page_size,
        order_by=order_by,
        order=order,
    )


@router.get("/history/filters", response_model=HistoryFiltersOut)
def history_filters(
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_role(UserRole.admin, UserRole.editor)),
):
    return HistoryFiltersOut(
        approver_ids=audit.distinct_values(db, "approver_id"),
        content_ids=audit.distinct_values(db, "content_id"),
        requester_ids=audit.distinct_values(db, "requester_id"),
    )


# --- Maintenance (called by the external scheduler) ---


@router.post("/maintenance/purge-history", response_model=MaintenanceOut)
def purge_history(
    db: Session = Depends(get_db_session),
    config: WorkflowConfig = Depends(get_workflow_config),
    current_user: User = Depends(require_role(UserRole.admin)),
):
    return MaintenanceOut(purged=audit.purge_expired(db, config.history_retention_days))


@router.post("/maintenance/reminders", response_model=MaintenanceOut)
def run_reminders(
    db: Session = Depends(get_db_session),
    config: WorkflowConfig = Depends(get_workflow_config),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
    current_user: User = Depends(require_role(UserRole.admin)),
):
    overdue = reminders.send_overdue_reminders(db, config, dispatcher)
    periodic = reminders.send_periodic_reminders(db, config, dispatcher)
    return MaintenanceOut(
        overdue_recipients=overdue.recipients,
        reminder_recipients=periodic.recipients,
        failed=overdue.failed + periodic.failed,
    )

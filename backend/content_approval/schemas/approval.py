from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, Field

from content_approval.models.content_item import ReviewStatus
from content_approval.models.user import UserRole


Remaining = Union[int, str, None]  # count, "READY", or None before the first request


class UserOut(BaseModel):
    id: int
    email: str
    display_name: str
    role: UserRole

    class Config:
        from_attributes = True


class ReviewRequestCreate(BaseModel):
    reviewer_ids: List[int] = Field(default_factory=list)


class ReviewRequestOut(BaseModel):
    ok: bool = True
    message: str
    newly_assigned_count: int
    remaining: Remaining = None
    review_status: ReviewStatus
    warning: Optional[str] = None


class ApprovalOut(BaseModel):
    ok: bool = True
    message: str
    remaining: Remaining = None
    ready: bool = False
    review_status: ReviewStatus
    audit_id: Optional[int] = None
    notified: bool = False
    warning: Optional[str] = None


class CancelAssignmentIn(BaseModel):
    # Defaults to the calling user leaving the review
    user_id: Optional[int] = None


class IgnoreFlagIn(BaseModel):
    ignore: bool


class OkOut(BaseModel):
    ok: bool = True
    message: Optional[str] = None


class WorkflowStateOut(BaseModel):
    id: int
    title: str
    content_type: str
    status: str
    review_status: ReviewStatus
    ignore_workflow: bool
    requested_by: Optional[int] = None
    requested_at: Optional[datetime] = None
    required_approvals: Optional[int] = None
    remaining: Remaining = None
    pending_reviewers: List[int] = Field(default_factory=list)
    approved_reviewers: List[int] = Field(default_factory=list)


class ApprovalStatusOut(BaseModel):
    status: str  # approved | unapproved | not_gated
    remaining_reviews: int = 0
    message: Optional[str] = None


class FeedbackCreate(BaseModel):
    body: str = Field("", max_length=10000)


class FeedbackOut(BaseModel):
    id: int
    item_id: int
    author_id: Optional[int] = None
    author: Optional[UserOut] = None
    body: str
    created_at: datetime

    class Config:
        from_attributes = True


class FeedbackCreatedOut(BaseModel):
    ok: bool = True
    message: str = "Feedback added successfully."
    total_feedback: int
    feedback: FeedbackOut
    warning: Optional[str] = None


class FeedbackPageOut(BaseModel):
    load_more: bool
    items: List[FeedbackOut]


class InboxItemOut(BaseModel):
    id: int
    title: str
    content_type: str
    requested_by: Optional[int] = None
    requested_at: Optional[datetime] = None
    remaining: Remaining = None
    pending_reviewers: List[int] = Field(default_factory=list)


class InboxOut(BaseModel):
    awaiting_my_review: List[InboxItemOut]
    my_requests: List[InboxItemOut]


class ReviewerCandidateOut(BaseModel):
    id: int
    display_name: str
    checked: bool


class HistoryRowOut(BaseModel):
    id: int
    status: str
    created_at: datetime
    content_id: int
    post_title: str
    approver_id: Optional[int] = None
    approver_name: str = ""
    requester_id: Optional[int] = None
    requester_name: str = ""


class HistoryOut(BaseModel):
    success: bool
    rows: List[HistoryRowOut]
    total_pages: int
    message: Optional[str] = None


class HistoryFiltersOut(BaseModel):
    approver_ids: List[int]
    content_ids: List[int]
    requester_ids: List[int]


class TransitionIn(BaseModel):
    previous_status: Optional[str] = Field(None, max_length=30)
    new_status: str = Field(..., max_length=30)


class TransitionOut(BaseModel):
    decision: str
    status: str
    remaining_reviews: int = 0
    message: Optional[str] = None


class MaintenanceOut(BaseModel):
    ok: bool = True
    purged: int = 0
    overdue_recipients: int = 0
    reminder_recipients: int = 0
    failed: int = 0

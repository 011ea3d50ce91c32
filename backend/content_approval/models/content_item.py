import enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from content_approval.db.base import Base


class ReviewStatus(str, enum.Enum):
    NONE = "NONE"
    PENDING = "PENDING"
    READY = "READY"


class RemainingState(str, enum.Enum):
    UNSET = "UNSET"
    COUNTING = "COUNTING"
    READY = "READY"


class AssignmentStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    CANCELLED = "CANCELLED"


FEEDBACK_KIND = "review_feedback"


class ContentItem(Base):
    __tablename__ = "content_items"

    id = Column(Integer, primary_key=True, index=True)

    # Mirror of the external content store
    title = Column(String(255), nullable=False)
    content_type = Column(String(50), nullable=False, default="post", index=True)
    status = Column(String(30), nullable=False, default="draft")  # draft|pending|future|publish|...
    author_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    url = Column(String(2048), nullable=True)

    # Review workflow
    review_status = Column(Enum(ReviewStatus), nullable=False, default=ReviewStatus.NONE)
    ignore_workflow = Column(Boolean, nullable=False, default=False, server_default="0")
    requested_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    requested_at = Column(DateTime(timezone=True), nullable=True)
    required_approvals = Column(Integer, nullable=True)  # quorum snapshot at request time
    # Tagged remaining value; only read through workflow.quorum.RemainingApprovals
    remaining_state = Column(Enum(RemainingState), nullable=False, default=RemainingState.UNSET)
    remaining_approvals = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    author = relationship("User", foreign_keys=[author_id])
    requester = relationship("User", foreign_keys=[requested_by])
    assignments = relationship("ReviewAssignment", back_populates="item", cascade="all, delete-orphan")
    feedback = relationship("ReviewFeedback", back_populates="item", cascade="all, delete-orphan")

    def __repr__(self) -> str:  # pragma: no cover
        return f"<ContentItem id={self.id} title={self.title!r} review_status={self.review_status}>"


class ReviewAssignment(Base):
    __tablename__ = "content_review_assignments"
    __table_args__ = (UniqueConstraint("item_id", "user_id", name="ux_content_review_assignments_item_user"),)

    id = Column(Integer, primary_key=True, index=True)
    item_id = Column(Integer, ForeignKey("content_items.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(Enum(AssignmentStatus), nullable=False, default=AssignmentStatus.PENDING)
    # Member of the most recent request's reviewer set
    requested = Column(Boolean, nullable=False, default=True, server_default="1")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    item = relationship("ContentItem", back_populates="assignments")
    user = relationship("User", foreign_keys=[user_id])


class ReviewFeedback(Base):
    __tablename__ = "review_feedback"

    id = Column(Integer, primary_key=True, index=True)
    item_id = Column(Integer, ForeignKey("content_items.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    kind = Column(String(30), nullable=False, default=FEEDBACK_KIND)
    body = Column(Text, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    item = relationship("ContentItem", back_populates="feedback")
    author = relationship("User", foreign_keys=[author_id])

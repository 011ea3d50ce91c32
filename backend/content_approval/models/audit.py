from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from content_approval.db.base import Base


class AuditEntry(Base):
    """One approval event. Rows are never updated; only the retention sweep deletes them."""

    __tablename__ = "approval_audit_log"

    id = Column(Integer, primary_key=True, index=True)
    content_id = Column(Integer, ForeignKey("content_items.id", ondelete="CASCADE"), nullable=False, index=True)
    requester_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    approver_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    status = Column(String(30), nullable=False, default="Approved")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    content = relationship("ContentItem", foreign_keys=[content_id])
    requester = relationship("User", foreign_keys=[requester_id])
    approver = relationship("User", foreign_keys=[approver_id])

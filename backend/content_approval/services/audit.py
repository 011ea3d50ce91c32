from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy import asc, desc
from sqlalchemy.orm import Session, joinedload

from content_approval.core.config import absint
from content_approval.models.audit import AuditEntry
from content_approval.services.notifications import display_name

logger = logging.getLogger("caw.audit")

APPROVED = "Approved"

_ORDER_COLUMNS = {
    "date": AuditEntry.created_at,
    "created_at": AuditEntry.created_at,
    "id": AuditEntry.id,
    "status": AuditEntry.status,
    "content_id": AuditEntry.content_id,
    "approver_id": AuditEntry.approver_id,
    "requester_id": AuditEntry.requester_id,
}
_FILTER_COLUMNS = {
    "approver_id": AuditEntry.approver_id,
    "content_id": AuditEntry.content_id,
    "requester_id": AuditEntry.requester_id,
}


class AuditSink(Protocol):
    def append(self, entry: AuditEntry) -> int:
        ...


class SqlAuditSink:
    """Writes entries in their own commit, after the workflow mutation has committed."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def append(self, entry: AuditEntry) -> int:
        try:
            self.db.add(entry)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(
            "audit %s: content=%s approver=%s requester=%s id=%s",
            entry.status, entry.content_id, entry.approver_id, entry.requester_id, entry.id,
        )
        return int(entry.id)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _positive(value: Any) -> Optional[int]:
    try:
        v = int(value)
    except (TypeError, ValueError):
        return None
    return v if v > 0 else None


def load_history(
    db: Session,
    *,
    user_id: Optional[int] = None,
    content_id: Optional[int] = None,
    assignee_id: Optional[int] = None,
    page: int = 1,
    page_size: int = 10,
    order_by: Optional[str] = None,
    order: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Paginated approval history.

    ``user_id`` filters on the approving user, ``assignee_id`` on the user who
    requested the review. Zero/empty filters are ignored.
    """
    q = db.query(AuditEntry)
    if _positive(user_id):
        q = q.filter(AuditEntry.approver_id == int(user_id))
    if _positive(content_id):
        q = q.filter(AuditEntry.content_id == int(content_id))
    if _positive(assignee_id):
        q = q.filter(AuditEntry.requester_id == int(assignee_id))

    page_size = max(1, min(200, _positive(page_size) or 10))
    page = _positive(page) or 1

    total = q.count()
    total_pages = int(math.ceil(total / page_size)) if total else 0

    column = _ORDER_COLUMNS.get((order_by or "date").strip().lower(), AuditEntry.created_at)
    direction = asc if (order or "desc").strip().lower() == "asc" else desc
    rows = (
        q.options(joinedload(AuditEntry.content), joinedload(AuditEntry.approver), joinedload(AuditEntry.requester))
        .order_by(direction(column), direction(AuditEntry.id))
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )

    if not rows:
        return {"success": False, "message": "No Data Found", "rows": [], "total_pages": 0}

    return {
        "success": True,
        "rows": [history_row(e) for e in rows],
        "total_pages": total_pages,
    }


def history_row(entry: AuditEntry) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "status": entry.status,
        "created_at": entry.created_at,
        "content_id": entry.content_id,
        "post_title": entry.content.title if entry.content is not None else "",
        "approver_id": entry.approver_id,
        "approver_name": display_name(entry.approver),
        "requester_id": entry.requester_id,
        "requester_name": display_name(entry.requester),
    }


def distinct_values(db: Session, column: str) -> List[int]:
    """Values available for one of the history filters; unknown columns yield []."""
    col = _FILTER_COLUMNS.get(column)
    if col is None:
        return []
    return sorted(int(v) for (v,) in db.query(col).filter(col.is_not(None)).distinct().all())


def purge_expired(db: Session, days: Any, now: Optional[datetime] = None) -> int:
    """
    Retention sweep: delete entries older than ``days`` days.

    ``days`` is coerced like a stored option (absolute int); 0 or empty disables
    the sweep. Returns the number of deleted entries.
    """
    threshold_days = absint(days)
    if threshold_days <= 0:
        return 0
    cutoff = (now or _now_utc()) - timedelta(days=threshold_days)
    try:
        deleted = (
            db.query(AuditEntry)
            .filter(AuditEntry.created_at < cutoff)
            .delete(synchronize_session=False)
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    if deleted:
        logger.info("Retention sweep removed %s audit entries older than %s days", deleted, threshold_days)
    return int(deleted or 0)


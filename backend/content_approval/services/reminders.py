"""
Reminder digests for pending reviewers.

Meant to be triggered by an external scheduler (see the maintenance routes).
Each pending reviewer receives at most one aggregated message per run.
"""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional

from sqlalchemy.orm import Session, joinedload

from content_approval.core.config import WorkflowConfig
from content_approval.models.content_item import AssignmentStatus, ContentItem, ReviewAssignment
from content_approval.models.user import User
from content_approval.services import notifications
from content_approval.services.notifications import NotificationDispatcher

logger = logging.getLogger("caw.reminders")

FREQUENCY_DAYS = {"daily": 1, "weekly": 7, "monthly": 30}


@dataclass
class ReminderRun:
    recipients: int = 0
    items: int = 0
    failed: int = 0


def _as_date(value: datetime) -> date:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).date()


def interval_seconds(frequency: Optional[str]) -> int:
    """Scheduler interval for the periodic digest; 0 means it is switched off."""
    return FREQUENCY_DAYS.get((frequency or "none").strip().lower(), 0) * 24 * 60 * 60


def pending_in_scope(db: Session, config: WorkflowConfig) -> Dict[int, List[ContentItem]]:
    """Pending reviewer id -> items (oldest request first) of workflow-enabled, non-ignored items."""
    q = (
        db.query(ReviewAssignment)
        .join(ContentItem, ContentItem.id == ReviewAssignment.item_id)
        .options(joinedload(ReviewAssignment.item))
        .filter(
            ReviewAssignment.status == AssignmentStatus.PENDING,
            ContentItem.ignore_workflow.is_(False),
            ContentItem.requested_at.is_not(None),
        )
    )
    if config.content_types:
        q = q.filter(ContentItem.content_type.in_(sorted(config.content_types)))
    out: Dict[int, List[ContentItem]] = {}
    for row in q.order_by(ContentItem.requested_at.asc(), ContentItem.id.asc()).all():
        out.setdefault(int(row.user_id), []).append(row.item)
    return out


def _send_digest(
    db: Session,
    dispatcher: NotificationDispatcher,
    template_key: str,
    per_user: Dict[int, List[str]],
    run: ReminderRun,
) -> None:
    for user_id, entries in per_user.items():
        user = db.get(User, user_id)
        if user is None or not entries:
            continue
        ok = notifications.notify_users(dispatcher, template_key, [user], {"post_list": "".join(entries)})
        run.recipients += 1
        run.items += len(entries)
        if not ok:
            run.failed += 1


def _entry(item: ContentItem, due: Optional[date] = None) -> str:
    link = html.escape(notifications.content_link(item), quote=True)
    title = html.escape(item.title or "")
    if due is None:
        return f'<p>- Post: <a href="{link}">{title}</a></p>'
    return f'<p>- Post: <a href="{link}">{title}</a> ( Due Date: {due.isoformat()} )</p>'


def send_overdue_reminders(
    db: Session,
    config: WorkflowConfig,
    dispatcher: NotificationDispatcher,
    today: Optional[date] = None,
) -> ReminderRun:
    """Remind pending reviewers about items requested at least ``review_due_days`` ago."""
    run = ReminderRun()
    days = int(config.review_due_days or 0)
    if days <= 0:
        return run
    today = today or datetime.now(timezone.utc).date()

    per_user: Dict[int, List[str]] = {}
    for user_id, items in pending_in_scope(db, config).items():
        for item in items:
            due = _as_date(item.requested_at) + timedelta(days=days)
            if due > today:
                continue
            per_user.setdefault(user_id, []).append(_entry(item))

    _send_digest(db, dispatcher, notifications.REVIEW_OVERDUE, per_user, run)
    logger.info("overdue reminders: %s recipients, %s items, %s failed", run.recipients, run.items, run.failed)
    return run


def send_periodic_reminders(
    db: Session,
    config: WorkflowConfig,
    dispatcher: NotificationDispatcher,
) -> ReminderRun:
    """Digest of everything still pending per reviewer, with each item's due date."""
    run = ReminderRun()
    if interval_seconds(config.pending_review_frequency) <= 0:
        return run
    days = int(config.review_due_days or 0)

    per_user: Dict[int, List[str]] = {}
    for user_id, items in pending_in_scope(db, config).items():
        for item in items:
            due = _as_date(item.requested_at) + timedelta(days=days)
            per_user.setdefault(user_id, []).append(_entry(item, due))

    _send_digest(db, dispatcher, notifications.REVIEW_REMINDER, per_user, run)
    logger.info("periodic reminders: %s recipients, %s items, %s failed", run.recipients, run.items, run.failed)
    return run

"""
Outbound notifications.

The workflow only talks to the ``NotificationDispatcher`` protocol; the SMTP
implementation renders the configured templates and hands them to the mailer.
Dispatch results are advisory: callers turn a failed send into a warning.
"""

from __future__ import annotations

import html
import logging
import re
from typing import Dict, Iterable, Mapping, Optional, Protocol

from content_approval.core.config import WorkflowConfig, get_settings
from content_approval.models.content_item import ContentItem
from content_approval.models.user import User
from content_approval.utils.mailer import send_email

logger = logging.getLogger("caw.notifications")

ASK_FOR_REVIEW = "ask_for_review"
APPROVE_REVIEW = "approve_review"
FEEDBACK = "feedback"
REVIEW_OVERDUE = "review_overdue"
REVIEW_REMINDER = "review_reminder"

# Values for these placeholders are pre-rendered HTML fragments.
_RAW_PLACEHOLDERS = {"post_list"}
_TAG_RE = re.compile(r"<[^>]+>")


class NotificationDispatcher(Protocol):
    def send(self, template_key: str, recipient: str, variables: Mapping[str, str]) -> bool:
        ...


def render(template: str, variables: Mapping[str, str], *, escape: bool = True) -> str:
    out = template
    for key, value in variables.items():
        value = "" if value is None else str(value)
        if escape and key not in _RAW_PLACEHOLDERS:
            value = html.escape(value)
        out = out.replace("{" + key + "}", value)
    return out


def strip_tags(text: str) -> str:
    return html.unescape(_TAG_RE.sub("", text or "")).strip()


class SmtpNotificationDispatcher:
    """Renders ``config.templates[template_key]`` and sends it as an HTML mail."""

    def __init__(self, config: WorkflowConfig, timeout: Optional[float] = None) -> None:
        self.config = config
        self.timeout = timeout

    def send(self, template_key: str, recipient: str, variables: Mapping[str, str]) -> bool:
        template = self.config.template(template_key)
        if template is None:
            logger.error("Unknown notification template %r", template_key)
            return False
        subject = strip_tags(render(template.subject, variables, escape=False))
        body = render(template.message, variables)
        message = f"<html><body>{body}</body></html>"
        ok = send_email(recipient, subject, strip_tags(body), message, timeout=self.timeout)
        if not ok:
            logger.warning("Notification %s to %s was not delivered", template_key, recipient)
        return ok


def get_notification_dispatcher() -> NotificationDispatcher:
    """FastAPI dependency; tests override it with a recording fake."""
    settings = get_settings()
    return SmtpNotificationDispatcher(settings.workflow_config(), timeout=settings.notification_timeout_seconds)


def display_name(user: Optional[User]) -> str:
    if user is None:
        return ""
    return user.display_name or user.email or ""


def content_link(item: ContentItem) -> str:
    if item.url:
        return item.url
    base = (get_settings().frontend_url or "").rstrip("/")
    return f"{base}/content/{item.id}"


def content_variables(item: ContentItem, *, assignee: Optional[User] = None) -> Dict[str, str]:
    return {
        "post_title": item.title or "",
        "post_link": content_link(item),
        "post_author": display_name(item.author),
        "assignee": display_name(assignee if assignee is not None else item.requester),
    }


def notify_users(
    dispatcher: NotificationDispatcher,
    template_key: str,
    recipients: Iterable[User],
    variables: Mapping[str, str],
) -> bool:
    """
    Send one message per recipient. Returns True only if every send succeeded.
    A dispatcher that raises counts as a failed send.
    """
    all_sent = True
    for user in recipients:
        per_user = dict(variables)
        per_user["recipient"] = display_name(user)
        try:
            ok = bool(dispatcher.send(template_key, user.email, per_user))
        except Exception:
            logger.exception("Notification dispatcher raised for %s -> user %s", template_key, user.id)
            ok = False
        all_sent = all_sent and ok
    return all_sent

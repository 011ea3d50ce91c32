import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

from content_approval.core.config import get_settings

logger = logging.getLogger("caw.notifications")


def send_email(to: str, subject: str, text: str, html: Optional[str] = None, *, timeout: Optional[float] = None) -> bool:
    """
    Send a single e-mail via SMTP. Returns False (never raises) when SMTP is not
    configured or delivery fails.
    """
    settings = get_settings()
    if not settings.smtp_host or not to:
        logger.info("SMTP not configured or empty recipient; skipping mail to %r", to)
        return False

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = settings.email_from or settings.smtp_user or "no-reply@localhost"
    msg["To"] = to
    msg.set_content(text or "")
    if html:
        msg.add_alternative(html, subtype="html")

    port = int(settings.smtp_port or 587)
    wait = float(timeout if timeout is not None else settings.notification_timeout_seconds)
    try:
        if port == 465:
            server = smtplib.SMTP_SSL(settings.smtp_host, port, timeout=wait)
        else:
            server = smtplib.SMTP(settings.smtp_host, port, timeout=wait)
        with server:
            if port != 465:
                server.starttls()
            if settings.smtp_user and settings.smtp_pass:
                server.login(settings.smtp_user, settings.smtp_pass)
            server.send_message(msg)
        return True
    except (smtplib.SMTPException, OSError):
        logger.exception("Failed to send mail to %s", to)
        return False

"""
Scheduled maintenance entry point.

Runs the history retention sweep and the reminder digests once and exits, so a
system cron / platform scheduler can call it:

  caw-maintenance               # everything
  caw-maintenance --only purge  # just the retention sweep
"""

from __future__ import annotations

import argparse
import json
import logging
from datetime import date
from typing import Dict, Optional

from sqlalchemy.orm import Session

from content_approval.core.config import WorkflowConfig, get_settings
from content_approval.core.tracing import configure_logging
from content_approval.db.session import SessionLocal
from content_approval.services import audit, reminders
from content_approval.services.notifications import NotificationDispatcher, get_notification_dispatcher

logger = logging.getLogger("caw.reminders")

TASKS = ("purge", "overdue", "periodic")


def run_maintenance(
    db: Session,
    config: WorkflowConfig,
    dispatcher: NotificationDispatcher,
    *,
    only: Optional[str] = None,
    today: Optional[date] = None,
) -> Dict[str, int]:
    summary: Dict[str, int] = {}
    if only in (None, "purge"):
        summary["purged"] = audit.purge_expired(db, config.history_retention_days)
    if only in (None, "overdue"):
        run = reminders.send_overdue_reminders(db, config, dispatcher, today=today)
        summary["overdue_recipients"] = run.recipients
        summary["overdue_failed"] = run.failed
    if only in (None, "periodic"):
        run = reminders.send_periodic_reminders(db, config, dispatcher)
        summary["reminder_recipients"] = run.recipients
        summary["reminder_failed"] = run.failed
    return summary


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="caw-maintenance", description=__doc__.splitlines()[1])
    parser.add_argument("--only", choices=TASKS, default=None)
    args = parser.parse_args(argv)

    configure_logging()
    config = get_settings().workflow_config()
    db = SessionLocal()
    try:
        summary = run_maintenance(db, config, get_notification_dispatcher(), only=args.only)
    finally:
        db.close()
    logger.info("maintenance finished: %s", json.dumps(summary, sort_keys=True))
    return 1 if summary.get("overdue_failed") or summary.get("reminder_failed") else 0


if __name__ == "__main__":
    raise SystemExit(main())

from dataclasses import replace
from datetime import date, datetime, timezone

import pytest

from content_approval.models import UserRole
from content_approval.services import notifications, reminders


@pytest.fixture
def pending(workflow, db_session, make_item, make_user):
    author = make_user(UserRole.author)
    a, b = make_user(name="Alice"), make_user(name="Bob")
    old = make_item(author=author, title="Old post")
    fresh = make_item(author=author, title="Fresh post")
    product = make_item(author=author, title="Product", content_type="product")
    for item in (old, fresh, product):
        workflow.request_review(item.id, author.id, [a.id])
    workflow.request_review(fresh.id, author.id, [a.id, b.id])

    old.requested_at = datetime(2026, 5, 1, 8, 0, tzinfo=timezone.utc)
    fresh.requested_at = datetime(2026, 5, 9, 8, 0, tzinfo=timezone.utc)
    product.requested_at = datetime(2026, 4, 1, 8, 0, tzinfo=timezone.utc)
    db_session.commit()
    return {"a": a, "b": b, "old": old, "fresh": fresh}


def test_pending_in_scope_skips_other_content_types(db_session, config, pending):
    by_user = reminders.pending_in_scope(db_session, config)
    assert [i.title for i in by_user[pending["a"].id]] == ["Old post", "Fresh post"]
    assert [i.title for i in by_user[pending["b"].id]] == ["Fresh post"]


def test_overdue_digest_lists_only_overdue_items(db_session, config, dispatcher, pending):
    dispatcher.sent.clear()
    cfg = replace(config, review_due_days=7)

    run = reminders.send_overdue_reminders(db_session, cfg, dispatcher, today=date(2026, 5, 10))

    assert (run.recipients, run.items, run.failed) == (1, 1, 0)
    key, recipient, variables = dispatcher.sent[0]
    assert key == notifications.REVIEW_OVERDUE
    assert recipient == pending["a"].email
    assert "Old post" in variables["post_list"]
    assert "Fresh post" not in variables["post_list"]


def test_overdue_digest_disabled_without_due_days(db_session, config, dispatcher, pending):
    dispatcher.sent.clear()
    run = reminders.send_overdue_reminders(db_session, config, dispatcher, today=date(2027, 1, 1))
    assert run.recipients == 0
    assert dispatcher.sent == []


def test_ignored_items_are_not_reminded(workflow, db_session, config, dispatcher, pending):
    workflow.set_ignore_flag(pending["old"].id, True)
    dispatcher.sent.clear()
    cfg = replace(config, review_due_days=1)

    reminders.send_overdue_reminders(db_session, cfg, dispatcher, today=date(2026, 6, 1))

    lists = " ".join(v["post_list"] for (_, _, v) in dispatcher.sent)
    assert "Old post" not in lists
    assert "Fresh post" in lists


def test_periodic_digest_includes_due_dates(db_session, config, dispatcher, pending):
    dispatcher.sent.clear()
    cfg = replace(config, pending_review_frequency="weekly", review_due_days=3)

    run = reminders.send_periodic_reminders(db_session, cfg, dispatcher)

    assert run.recipients == 2
    assert run.items == 3
    digest = {r: v["post_list"] for (_, r, v) in dispatcher.sent}
    assert "Due Date: 2026-05-04" in digest[pending["a"].email]
    assert "Due Date: 2026-05-12" in digest[pending["b"].email]


def test_periodic_digest_off_by_default(db_session, config, dispatcher, pending):
    dispatcher.sent.clear()
    assert reminders.send_periodic_reminders(db_session, config, dispatcher).recipients == 0


def test_failed_digest_is_counted(db_session, config, raising_dispatcher, pending):
    cfg = replace(config, pending_review_frequency="daily")
    run = reminders.send_periodic_reminders(db_session, cfg, raising_dispatcher)
    assert run.failed == run.recipients == 2


def test_interval_seconds():
    assert reminders.interval_seconds("daily") == 86400
    assert reminders.interval_seconds("weekly") == 7 * 86400
    assert reminders.interval_seconds("monthly") == 30 * 86400
    assert reminders.interval_seconds("none") == 0
    assert reminders.interval_seconds(None) == 0

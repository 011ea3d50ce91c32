from datetime import datetime, timedelta, timezone

import pytest

from content_approval.models import AuditEntry, UserRole
from content_approval.services import audit

NOW = datetime(2026, 6, 30, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def entries(db_session, make_item, make_user):
    requester = make_user(UserRole.author, name="Rita")
    a, b = make_user(name="Alice"), make_user(name="Bob")
    first, second = make_item(title="First"), make_item(title="Second")
    rows = [
        AuditEntry(content_id=first.id, requester_id=requester.id, approver_id=a.id, created_at=NOW - timedelta(days=40)),
        AuditEntry(content_id=first.id, requester_id=requester.id, approver_id=b.id, created_at=NOW - timedelta(days=10)),
        AuditEntry(content_id=second.id, requester_id=requester.id, approver_id=a.id, created_at=NOW - timedelta(days=1)),
    ]
    db_session.add_all(rows)
    db_session.commit()
    return {"requester": requester, "a": a, "b": b, "first": first, "second": second}


def test_history_filters_by_approver_content_and_requester(db_session, entries):
    by_approver = audit.load_history(db_session, user_id=entries["a"].id)
    assert by_approver["success"] is True
    assert {r["approver_id"] for r in by_approver["rows"]} == {entries["a"].id}
    assert len(by_approver["rows"]) == 2

    by_content = audit.load_history(db_session, content_id=entries["second"].id)
    assert [r["post_title"] for r in by_content["rows"]] == ["Second"]

    by_requester = audit.load_history(db_session, assignee_id=entries["requester"].id)
    assert len(by_requester["rows"]) == 3
    assert by_requester["rows"][0]["requester_name"] == "Rita"


def test_history_pagination_and_order(db_session, entries):
    page = audit.load_history(db_session, page=1, page_size=2, order="asc")
    assert page["total_pages"] == 2
    assert [r["approver_id"] for r in page["rows"]] == [entries["a"].id, entries["b"].id]

    last = audit.load_history(db_session, page=2, page_size=2, order="desc")
    assert [r["approver_id"] for r in last["rows"]] == [entries["a"].id]


def test_history_without_rows_says_so(db_session, entries):
    result = audit.load_history(db_session, content_id=9999)
    assert result == {"success": False, "message": "No Data Found", "rows": [], "total_pages": 0}


def test_distinct_filter_values(db_session, entries):
    assert audit.distinct_values(db_session, "approver_id") == sorted([entries["a"].id, entries["b"].id])
    assert audit.distinct_values(db_session, "requester_id") == [entries["requester"].id]
    assert audit.distinct_values(db_session, "nope") == []


def test_purge_removes_entries_older_than_retention(db_session, entries):
    assert audit.purge_expired(db_session, 30, now=NOW) == 1
    assert db_session.query(AuditEntry).count() == 2


@pytest.mark.parametrize("days", [0, "", None, "abc"])
def test_purge_disabled_for_zero_or_blank(db_session, entries, days):
    assert audit.purge_expired(db_session, days, now=NOW) == 0
    assert db_session.query(AuditEntry).count() == 3


def test_purge_coerces_negative_days_to_absolute(db_session, entries):
    assert audit.purge_expired(db_session, "-5", now=NOW) == 2

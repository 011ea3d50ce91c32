from datetime import datetime, timedelta, timezone

import pytest

from content_approval.core.errors import EmptyFeedbackError
from content_approval.models import ReviewFeedback, UserRole
from content_approval.services import notifications
from content_approval.workflow.state_machine import FEEDBACK_PAGE_SIZE


@pytest.fixture
def cycle(workflow, make_item, make_user):
    author = make_user(UserRole.author, name="Ann Author")
    a, b = make_user(name="Alice"), make_user(name="Bob")
    item = make_item(author=author)
    workflow.request_review(item.id, author.id, [a.id, b.id])
    return item, author, a, b


def test_empty_feedback_is_rejected(workflow, cycle, db_session):
    item, _, a, _ = cycle
    with pytest.raises(EmptyFeedbackError):
        workflow.add_feedback(item.id, a.id, "   ")
    assert db_session.query(ReviewFeedback).count() == 0


def test_feedback_notifies_reviewers_and_author_but_not_its_writer(workflow, dispatcher, cycle):
    item, author, a, b = cycle
    dispatcher.sent.clear()

    result = workflow.add_feedback(item.id, a.id, "  Please fix the intro.  ")

    assert result.feedback.body == "Please fix the intro."
    assert result.total == 1
    assert result.warning is None
    assert sorted(dispatcher.recipients(notifications.FEEDBACK)) == sorted([author.email, b.email])
    _, _, variables = dispatcher.sent[0]
    assert variables["feedback_author"] == "Alice"


def test_feedback_pages_newest_first(workflow, cycle, db_session):
    item, author, a, _ = cycle
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    for i in range(FEEDBACK_PAGE_SIZE + 3):
        db_session.add(ReviewFeedback(item_id=item.id, author_id=a.id, body=f"note {i}", created_at=base + timedelta(minutes=i)))
    db_session.commit()

    first, more = workflow.list_feedback(item.id)
    assert more is True
    assert first[0].body == f"note {FEEDBACK_PAGE_SIZE + 2}"
    assert len(first) == FEEDBACK_PAGE_SIZE

    second, more = workflow.list_feedback(item.id, page=1)
    assert more is False
    assert [f.body for f in second] == ["note 2", "note 1", "note 0"]

    # One comment was posted after the first page was loaded.
    shifted, _ = workflow.list_feedback(item.id, page=1, offset=1)
    assert [f.body for f in shifted] == ["note 1", "note 0"]

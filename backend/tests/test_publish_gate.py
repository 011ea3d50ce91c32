import pytest

from content_approval.core.config import WorkflowConfig
from content_approval.workflow import publish_gate
from content_approval.workflow.publish_gate import GateDecision
from content_approval.workflow.quorum import RemainingApprovals


GATED = WorkflowConfig(min_required_reviews=2, publish_without_approval=False)


def _evaluate(**overrides):
    kwargs = dict(
        previous_status="draft",
        target_status="publish",
        in_scope=True,
        ignored=False,
        remaining=RemainingApprovals.counting(1),
        config=GATED,
    )
    kwargs.update(overrides)
    return publish_gate.evaluate(**kwargs)


def test_vetoes_publish_with_outstanding_approvals():
    result = _evaluate()
    assert result.decision == GateDecision.VETO
    assert result.outstanding == 1
    assert result.resulting_status("publish") == "draft"


def test_unset_remaining_counts_as_full_quorum():
    result = _evaluate(remaining=RemainingApprovals.unset())
    assert result.vetoed
    assert result.outstanding == 2


def test_ready_item_may_publish():
    result = _evaluate(remaining=RemainingApprovals.ready())
    assert result.decision == GateDecision.ALLOW
    assert result.resulting_status("publish") == "publish"


@pytest.mark.parametrize(
    "overrides",
    [
        {"previous_status": "publish"},
        {"target_status": "pending"},
        {"target_status": "draft"},
        {"in_scope": False},
        {"ignored": True},
        {"config": WorkflowConfig(min_required_reviews=2, publish_without_approval=True)},
    ],
)
def test_ungated_transitions_are_allowed(overrides):
    result = _evaluate(**overrides)
    assert result.decision == GateDecision.ALLOW
    assert result.reason == "not_gated"


def test_evaluate_item_normalises_statuses_and_scope(make_item):
    item = make_item(content_type="post")
    result = publish_gate.evaluate_item(item, RemainingApprovals.counting(2), " Draft ", "PUBLISH", GATED)
    assert result.vetoed

    other = make_item(content_type="product")
    result = publish_gate.evaluate_item(other, RemainingApprovals.counting(2), "draft", "publish", GATED)
    assert not result.vetoed

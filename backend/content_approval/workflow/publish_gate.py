"""Publish gate: decides whether a status change to "publish" may go through."""

from __future__ import annotations

import enum
from dataclasses import dataclass

from content_approval.core.config import WorkflowConfig
from content_approval.models.content_item import ContentItem
from content_approval.workflow import quorum
from content_approval.workflow.quorum import RemainingApprovals

PUBLISHED = "publish"
DRAFT = "draft"


class GateDecision(str, enum.Enum):
    ALLOW = "ALLOW"
    VETO = "VETO"


@dataclass(frozen=True)
class GateResult:
    decision: GateDecision
    outstanding: int = 0
    reason: str = ""

    @property
    def vetoed(self) -> bool:
        return self.decision == GateDecision.VETO

    def resulting_status(self, target_status: str) -> str:
        return DRAFT if self.vetoed else target_status


def is_gated(
    *,
    previous_status: str,
    target_status: str,
    in_scope: bool,
    ignored: bool,
    config: WorkflowConfig,
) -> bool:
    """True when the quorum has to be consulted for this transition at all."""
    return (
        target_status == PUBLISHED
        and previous_status != PUBLISHED
        and not config.publish_without_approval
        and in_scope
        and not ignored
    )


def evaluate(
    *,
    previous_status: str,
    target_status: str,
    in_scope: bool,
    ignored: bool,
    remaining: RemainingApprovals,
    config: WorkflowConfig,
) -> GateResult:
    if not is_gated(
        previous_status=previous_status,
        target_status=target_status,
        in_scope=in_scope,
        ignored=ignored,
        config=config,
    ):
        return GateResult(GateDecision.ALLOW, reason="not_gated")

    missing = quorum.outstanding(remaining, config)
    if missing > 0:
        return GateResult(GateDecision.VETO, outstanding=missing, reason="Not enough reviews for approval. Saved as draft.")
    return GateResult(GateDecision.ALLOW, reason="approved")


def evaluate_item(
    item: ContentItem,
    remaining: RemainingApprovals,
    previous_status: str,
    target_status: str,
    config: WorkflowConfig,
) -> GateResult:
    return evaluate(
        previous_status=(previous_status or "").strip().lower(),
        target_status=(target_status or "").strip().lower(),
        in_scope=item.content_type in config.content_types,
        ignored=bool(item.ignore_workflow),
        remaining=remaining,
        config=config,
    )

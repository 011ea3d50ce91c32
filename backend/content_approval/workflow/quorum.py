"""
Quorum policy: pure functions over the remaining-approvals value.

The remaining value is a tagged union rather than a bare integer so that
"never started" (UNSET) can not be confused with "quorum met" (READY):

    RemainingApprovals.unset()      no request made yet in this cycle
    RemainingApprovals.counting(n)  n > 0 approvals still needed
    RemainingApprovals.ready()      quorum reached
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple, Union

from content_approval.core.config import WorkflowConfig
from content_approval.models.content_item import RemainingState


@dataclass(frozen=True)
class RemainingApprovals:
    state: RemainingState
    count: Optional[int] = None

    def __post_init__(self) -> None:
        if self.state == RemainingState.COUNTING:
            if self.count is None or self.count <= 0:
                raise ValueError("counting state requires a positive count")
        elif self.count is not None:
            raise ValueError(f"{self.state.value} state carries no count")

    @classmethod
    def unset(cls) -> "RemainingApprovals":
        return cls(RemainingState.UNSET)

    @classmethod
    def ready(cls) -> "RemainingApprovals":
        return cls(RemainingState.READY)

    @classmethod
    def counting(cls, n: int) -> "RemainingApprovals":
        return cls(RemainingState.COUNTING, int(n))

    @property
    def is_unset(self) -> bool:
        return self.state == RemainingState.UNSET

    def to_public(self) -> Union[int, str, None]:
        """API shape: remaining count, the string "READY", or None when unset."""
        if self.state == RemainingState.READY:
            return "READY"
        if self.state == RemainingState.COUNTING:
            return self.count
        return None


def required_reviews(config: WorkflowConfig) -> int:
    return max(0, int(config.min_required_reviews or 0))


def seed(config: WorkflowConfig) -> RemainingApprovals:
    required = required_reviews(config)
    if required == 0:
        return RemainingApprovals.ready()
    return RemainingApprovals.counting(required)


def reseed_if_needed(current: RemainingApprovals, config: WorkflowConfig) -> RemainingApprovals:
    """A new request restarts the count only when none is running (UNSET or READY)."""
    if current.state == RemainingState.COUNTING:
        return current
    return seed(config)


def remaining_after_approval(remaining: RemainingApprovals) -> Tuple[RemainingApprovals, bool]:
    if remaining.state == RemainingState.READY:
        return remaining, True
    if remaining.state == RemainingState.UNSET:
        return remaining, False
    left = remaining.count - 1
    if left <= 0:
        return RemainingApprovals.ready(), True
    return RemainingApprovals.counting(left), False


def is_ready(remaining: RemainingApprovals) -> bool:
    return remaining.state == RemainingState.READY


def outstanding(remaining: RemainingApprovals, config: WorkflowConfig) -> int:
    """Approvals still missing before publishing; an unstarted item needs the full quorum."""
    if remaining.state == RemainingState.READY:
        return 0
    if remaining.state == RemainingState.COUNTING:
        return remaining.count
    return required_reviews(config)

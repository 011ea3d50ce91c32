from fastapi import APIRouter, Depends

from content_approval.api.deps import get_workflow, require_requester
from content_approval.models.user import User
from content_approval.schemas.approval import TransitionIn, TransitionOut
from content_approval.workflow.state_machine import ApprovalWorkflow


router = APIRouter(prefix="/content", tags=["content"])


@router.post("/items/{item_id}/transition", response_model=TransitionOut)
def transition_item(
    item_id: int,
    payload: TransitionIn,
    workflow: ApprovalWorkflow = Depends(get_workflow),
    current_user: User = Depends(require_requester),
):
    """
    Status-change hook of the content store: a vetoed publish is stored as draft.

    The gate runs against the stored status; a mismatching previous_status is a 409.
    """
    result = workflow.apply_transition(item_id, payload.previous_status, payload.new_status)
    return TransitionOut(
        decision=result.gate.decision.value,
        status=result.status,
        remaining_reviews=result.gate.outstanding,
        message=result.gate.reason if result.gate.vetoed else None,
    )

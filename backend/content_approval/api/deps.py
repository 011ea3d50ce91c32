from typing import Callable, Optional

from fastapi import Depends, HTTPException, Request
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from content_approval.core.config import WorkflowConfig, get_settings
from content_approval.db.session import get_db_session  # re-exported for convenience
from content_approval.models.user import User, UserRole
from content_approval.services.notifications import NotificationDispatcher, get_notification_dispatcher
from content_approval.workflow.state_machine import ApprovalWorkflow


def _token_from_request(request: Request) -> Optional[str]:
    auth = request.headers.get("authorization") or ""
    if auth.lower().startswith("bearer "):
        return auth[7:].strip() or None
    settings = get_settings()
    return request.cookies.get(settings.cookie_access_name)


def get_current_user(
    request: Request,
    db: Session = Depends(get_db_session),
) -> User:
    """Resolve the caller from an identity-provider access token. Raises 401 if invalid."""
    settings = get_settings()
    token = _token_from_request(request)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        if payload.get("typ", "access") != "access":
            raise HTTPException(status_code=401, detail="Invalid token")
        user_id = int(payload.get("sub"))
    except HTTPException:
        raise
    except (JWTError, TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token")

    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def role_of(user: User) -> str:
    return user.role.value if hasattr(user.role, "value") else str(user.role)


def require_role(*allowed_roles: UserRole) -> Callable:
    """Create dependency that requires user to have one of the specified roles."""
    def role_checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed_roles:
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user
    return role_checker


def get_workflow_config() -> WorkflowConfig:
    return get_settings().workflow_config()


def require_requester(
    user: User = Depends(get_current_user),
    config: WorkflowConfig = Depends(get_workflow_config),
) -> User:
    """Only roles listed in ROLES_CAN_REQUEST may start review cycles."""
    if config.roles_can_request and role_of(user) not in config.roles_can_request:
        raise HTTPException(status_code=403, detail="Your role can not request reviews")
    return user


def get_workflow(
    db: Session = Depends(get_db_session),
    config: WorkflowConfig = Depends(get_workflow_config),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> ApprovalWorkflow:
    return ApprovalWorkflow(db, config, dispatcher)

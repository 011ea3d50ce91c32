import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import FrozenSet, Optional, Union

from pydantic import Field, validator
from pydantic_settings import BaseSettings


_FREQUENCIES = {"none", "daily", "weekly", "monthly"}
_APPROVAL_POLICIES = {"reject", "ignore"}


def _csv(raw: Optional[str]) -> FrozenSet[str]:
    if not raw:
        return frozenset()
    return frozenset(p.strip() for p in str(raw).split(",") if p.strip())


def absint(value) -> int:
    """Coerce option values the way the admin settings store them (blank/garbage -> 0)."""
    try:
        return abs(int(str(value).strip()))
    except (TypeError, ValueError):
        return 0


@dataclass(frozen=True)
class EmailTemplate:
    subject: str
    message: str


@dataclass(frozen=True)
class WorkflowConfig:
    """
    Immutable snapshot of the workflow options.

    Built once per operation from Settings so that an in-flight request never
    observes a half-applied settings change.
    """

    min_required_reviews: int = 1
    publish_without_approval: bool = True
    content_types: FrozenSet[str] = frozenset({"post", "page"})
    roles_can_request: FrozenSet[str] = frozenset()
    roles_can_approve: FrozenSet[str] = frozenset()
    unassigned_approval_policy: str = "reject"
    review_due_days: int = 0
    pending_review_frequency: str = "none"
    history_retention_days: int = 30
    templates: dict = field(default_factory=dict, hash=False, compare=False)

    def template(self, key: str) -> Optional[EmailTemplate]:
        return self.templates.get(key)


DEFAULT_TEMPLATES = {
    "ask_for_review": EmailTemplate(
        subject="Review Request for {post_title}",
        message=(
            "<p>Hello {recipient}</p><p>You have received a review request for the following post:</p>"
            '<p><strong>Post Title</strong> <a href="{post_link}">{post_title}</a> </p>'
            "<p>Please review the post and provide your feedback.</p><p>Thank you!</p>"
        ),
    ),
    "approve_review": EmailTemplate(
        subject="Review Approved for {post_title}",
        message=(
            "<p>Hello {assignee}</p><p>Your review for the following post has been approved:</p>"
            '<p><strong>Post Title</strong> <a href="{post_link}">{post_title}</a> </p><p>Thank you!</p>'
        ),
    ),
    "feedback": EmailTemplate(
        subject="Feedback added for {post_title}",
        message=(
            "<p>Hello {recipient} </p><p>{feedback_author}  has added a new feedback on the following post:</p>"
            '<p><strong>Post Title</strong> <a href="{post_link}">{post_title}</a> </p>'
            "<p>Please review the feedback.</p><p>Thank you!</p>"
        ),
    ),
    "review_overdue": EmailTemplate(
        subject="Overdue Reminder for Pending Review Posts",
        message=(
            "<p>This is a reminder that the due date for the following posts is overdue. "
            "Please take immediate action:</p>{post_list}"
        ),
    ),
    "review_reminder": EmailTemplate(
        subject="Pending Review Reminder for Your Posts",
        message="<p>This is a reminder for the following posts:</p>{post_list}",
    ),
}


class Settings(BaseSettings):
    """
    Application settings with Pydantic validation.
    Loads from environment variables with type checking and validation.
    """
    app_name: str = Field(default="Content Approval Workflow", env="APP_NAME")
    environment: str = Field(default="development", env="ENVIRONMENT")

    backend_cors_origins: str = Field(
        default="http://localhost:3000,http://127.0.0.1:3000",
        env="BACKEND_CORS_ORIGINS"
    )

    database_url: str = Field(
        default="sqlite:///./approvals.db",
        env="DATABASE_URL"
    )

    # Tokens are issued by the identity provider; we only verify them.
    jwt_secret_key: str = Field(default="dev-secret-key-change-in-production-d8f7g6h5j4k3l2m1n0", env="JWT_SECRET_KEY", min_length=32)
    jwt_algorithm: str = Field(default="HS256", env="JWT_ALGORITHM")
    cookie_access_name: str = Field(default="access_token", env="COOKIE_ACCESS_NAME")

    # Sentry
    sentry_dsn: Union[str, None] = Field(default=None, env="SENTRY_DSN")
    sentry_env: str = Field(default="development", env="SENTRY_ENV")
    metrics_token: Optional[str] = Field(default=None, env="METRICS_TOKEN")

    debug: bool = Field(default=True, env="DEBUG")

    # Workflow (general)
    min_required_reviews: int = Field(default=1, env="MIN_REQUIRED_REVIEWS")
    publish_without_approval: bool = Field(default=True, env="PUBLISH_WITHOUT_APPROVAL")
    workflow_content_types: str = Field(default="post,page", env="WORKFLOW_CONTENT_TYPES")
    roles_can_request: str = Field(default="admin,editor,author", env="ROLES_CAN_REQUEST")
    roles_can_approve: str = Field(default="admin,editor", env="ROLES_CAN_APPROVE")
    unassigned_approval_policy: str = Field(default="reject", env="UNASSIGNED_APPROVAL_POLICY")  # reject | ignore

    # Notifications
    review_due_days: int = Field(default=0, env="REVIEW_DUE_DAYS")
    pending_review_frequency: str = Field(default="none", env="PENDING_REVIEW_FREQUENCY")  # none | daily | weekly | monthly
    notification_timeout_seconds: float = Field(default=10.0, env="NOTIFICATION_TIMEOUT_SECONDS")

    # History
    history_retention_days: Optional[str] = Field(default="30", env="HISTORY_RETENTION_DAYS")

    # SMTP (optional)
    smtp_host: Optional[str] = Field(default=None, env="SMTP_HOST")
    smtp_port: Optional[int] = Field(default=None, env="SMTP_PORT")
    smtp_user: Optional[str] = Field(default=None, env="SMTP_USER")
    smtp_pass: Optional[str] = Field(default=None, env="SMTP_PASS")
    email_from: Optional[str] = Field(default=None, env="EMAIL_FROM")
    frontend_url: Optional[str] = Field(default=None, env="FRONTEND_URL")

    # E-mail template overrides; empty falls back to the built-in defaults
    ask_for_review_subject: Optional[str] = Field(default=None, env="ASK_FOR_REVIEW_SUBJECT")
    ask_for_review_message: Optional[str] = Field(default=None, env="ASK_FOR_REVIEW_MESSAGE")
    approve_review_subject: Optional[str] = Field(default=None, env="APPROVE_REVIEW_SUBJECT")
    approve_review_message: Optional[str] = Field(default=None, env="APPROVE_REVIEW_MESSAGE")
    feedback_subject: Optional[str] = Field(default=None, env="FEEDBACK_SUBJECT")
    feedback_message: Optional[str] = Field(default=None, env="FEEDBACK_MESSAGE")

    @validator("jwt_secret_key")
    def validate_jwt_secret(cls, v: str, values: dict) -> str:
        """Ensure JWT secret is strong in production"""
        env = values.get("environment")
        if env == "production":
            if len(v) < 32 or "dev-secret" in v or "change" in v.lower():
                raise ValueError(
                    "JWT_SECRET_KEY must be a strong, unique secret (min 32 chars) in production."
                )
        return v

    @validator("database_url")
    def validate_database_url(cls, v: str, values: dict) -> str:
        """Validate database URL; disallow SQLite in production."""
        env = values.get("environment")
        if env == "production" and v.startswith("sqlite"):
            raise ValueError("SQLite is not allowed for DATABASE_URL in production. Use PostgreSQL.")
        return v

    @validator("debug")
    def validate_debug(cls, v: bool, values: dict) -> bool:
        """Never allow DEBUG=true in production."""
        if values.get("environment") == "production" and v:
            raise ValueError("DEBUG must be false in production.")
        return v

    @validator("min_required_reviews")
    def validate_min_required_reviews(cls, v: int) -> int:
        if v < 0:
            raise ValueError("MIN_REQUIRED_REVIEWS must be >= 0.")
        return v

    @validator("unassigned_approval_policy")
    def validate_unassigned_policy(cls, v: str) -> str:
        v = (v or "").strip().lower()
        if v not in _APPROVAL_POLICIES:
            raise ValueError("UNASSIGNED_APPROVAL_POLICY must be 'reject' or 'ignore'.")
        return v

    @validator("pending_review_frequency")
    def validate_frequency(cls, v: str) -> str:
        # Unknown values behave like 'none' (the scheduler simply never fires).
        v = (v or "").strip().lower()
        return v if v in _FREQUENCIES else "none"

    def _templates(self) -> dict:
        out = dict(DEFAULT_TEMPLATES)
        for key in ("ask_for_review", "approve_review", "feedback"):
            base = DEFAULT_TEMPLATES[key]
            subject = getattr(self, f"{key}_subject", None) or base.subject
            message = getattr(self, f"{key}_message", None) or base.message
            out[key] = EmailTemplate(subject=subject, message=message)
        return out

    def workflow_config(self) -> WorkflowConfig:
        return WorkflowConfig(
            min_required_reviews=int(self.min_required_reviews or 0),
            publish_without_approval=bool(self.publish_without_approval),
            content_types=_csv(self.workflow_content_types),
            roles_can_request=_csv(self.roles_can_request),
            roles_can_approve=_csv(self.roles_can_approve),
            unassigned_approval_policy=self.unassigned_approval_policy,
            review_due_days=absint(self.review_due_days),
            pending_review_frequency=self.pending_review_frequency,
            history_retention_days=absint(self.history_retention_days),
            templates=self._templates(),
        )

    class Config:
        # Load env file based on ENVIRONMENT; default to development
        env_file = ".env.production" if os.getenv("ENVIRONMENT") == "production" else ".env.development"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Validates all environment variables on first access.
    Raises ValidationError if configuration is invalid.
    """
    return Settings()

# Register every table on Base.metadata (create_all / Alembic autogenerate).
from content_approval.models.audit import AuditEntry  # noqa: F401
from content_approval.models.content_item import (  # noqa: F401
    AssignmentStatus,
    ContentItem,
    RemainingState,
    ReviewAssignment,
    ReviewFeedback,
    ReviewStatus,
)
from content_approval.models.user import User, UserRole  # noqa: F401

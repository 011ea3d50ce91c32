"""approval_workflow_schema

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19

- users mirror, content_items with review state, reviewer assignments,
  review feedback and the approval audit log.
"""

from alembic import op
import sqlalchemy as sa


# Alembic's default version table uses VARCHAR(32), so keep revision <= 32 chars.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


USER_ROLE = sa.Enum("subscriber", "contributor", "author", "editor", "admin", name="userrole")
REVIEW_STATUS = sa.Enum("NONE", "PENDING", "READY", name="reviewstatus")
REMAINING_STATE = sa.Enum("UNSET", "COUNTING", "READY", name="remainingstate")
ASSIGNMENT_STATUS = sa.Enum("PENDING", "APPROVED", "CANCELLED", name="assignmentstatus")


def _has_table(bind, table: str) -> bool:
    return sa.inspect(bind).has_table(table)


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    bind = op.get_bind()

    if not _has_table(bind, "users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("display_name", sa.String(length=255), nullable=False, server_default=""),
            sa.Column("role", USER_ROLE, nullable=False),
            *_timestamps(),
        )
        op.create_index("ix_users_id", "users", ["id"])
        op.create_index("ix_users_email", "users", ["email"], unique=True)

    if not _has_table(bind, "content_items"):
        op.create_table(
            "content_items",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("content_type", sa.String(length=50), nullable=False, server_default="post"),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="draft"),
            sa.Column("author_id", sa.Integer(), nullable=True),
            sa.Column("url", sa.String(length=2048), nullable=True),
            sa.Column("review_status", REVIEW_STATUS, nullable=False, server_default="NONE"),
            sa.Column("ignore_workflow", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("requested_by", sa.Integer(), nullable=True),
            sa.Column("requested_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("required_approvals", sa.Integer(), nullable=True),
            sa.Column("remaining_state", REMAINING_STATE, nullable=False, server_default="UNSET"),
            sa.Column("remaining_approvals", sa.Integer(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["author_id"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["requested_by"], ["users.id"], ondelete="SET NULL"),
        )
        op.create_index("ix_content_items_id", "content_items", ["id"])
        op.create_index("ix_content_items_content_type", "content_items", ["content_type"])
        op.create_index("ix_content_items_author_id", "content_items", ["author_id"])
        op.create_index("ix_content_items_requested_by", "content_items", ["requested_by"])

    if not _has_table(bind, "content_review_assignments"):
        op.create_table(
            "content_review_assignments",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("item_id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("status", ASSIGNMENT_STATUS, nullable=False, server_default="PENDING"),
            sa.Column("requested", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
            sa.ForeignKeyConstraint(["item_id"], ["content_items.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.UniqueConstraint("item_id", "user_id", name="ux_content_review_assignments_item_user"),
        )
        op.create_index("ix_content_review_assignments_id", "content_review_assignments", ["id"])
        op.create_index("ix_content_review_assignments_item_id", "content_review_assignments", ["item_id"])
        op.create_index("ix_content_review_assignments_user_id", "content_review_assignments", ["user_id"])

    if not _has_table(bind, "review_feedback"):
        op.create_table(
            "review_feedback",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("item_id", sa.Integer(), nullable=False),
            sa.Column("author_id", sa.Integer(), nullable=True),
            sa.Column("kind", sa.String(length=30), nullable=False, server_default="review_feedback"),
            sa.Column("body", sa.Text(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.ForeignKeyConstraint(["item_id"], ["content_items.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["author_id"], ["users.id"], ondelete="SET NULL"),
        )
        op.create_index("ix_review_feedback_id", "review_feedback", ["id"])
        op.create_index("ix_review_feedback_item_id", "review_feedback", ["item_id"])
        op.create_index("ix_review_feedback_author_id", "review_feedback", ["author_id"])

    if not _has_table(bind, "approval_audit_log"):
        op.create_table(
            "approval_audit_log",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("content_id", sa.Integer(), nullable=False),
            sa.Column("requester_id", sa.Integer(), nullable=True),
            sa.Column("approver_id", sa.Integer(), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="Approved"),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.ForeignKeyConstraint(["content_id"], ["content_items.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["requester_id"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["approver_id"], ["users.id"], ondelete="SET NULL"),
        )
        op.create_index("ix_approval_audit_log_id", "approval_audit_log", ["id"])
        op.create_index("ix_approval_audit_log_content_id", "approval_audit_log", ["content_id"])
        op.create_index("ix_approval_audit_log_requester_id", "approval_audit_log", ["requester_id"])
        op.create_index("ix_approval_audit_log_approver_id", "approval_audit_log", ["approver_id"])
        op.create_index("ix_approval_audit_log_created_at", "approval_audit_log", ["created_at"])


def downgrade() -> None:
    bind = op.get_bind()
    for table in (
        "approval_audit_log",
        "review_feedback",
        "content_review_assignments",
        "content_items",
        "users",
    ):
        if _has_table(bind, table):
            op.drop_table(table)
    if bind.dialect.name == "postgresql":
        for enum_type in (ASSIGNMENT_STATUS, REMAINING_STATE, REVIEW_STATUS, USER_ROLE):
            enum_type.drop(bind, checkfirst=True)

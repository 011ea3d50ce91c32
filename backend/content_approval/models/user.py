from sqlalchemy import Column, Integer, String, DateTime, Enum
from sqlalchemy.sql import func
import enum

from content_approval.db.base import Base


class UserRole(str, enum.Enum):
    subscriber = "subscriber"
    contributor = "contributor"
    author = "author"
    editor = "editor"
    admin = "admin"


class User(Base):
    """Read-only mirror of identity-provider users (synced externally)."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    display_name = Column(String(255), nullable=False, default="")
    role = Column(Enum(UserRole), nullable=False, default=UserRole.subscriber)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self) -> str:  # pragma: no cover
        return f"<User id={self.id} email={self.email!r} role={self.role}>"

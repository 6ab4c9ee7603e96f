"""SQLAlchemy database models."""
from datetime import datetime, timezone
import enum

from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    DateTime,
    ForeignKey,
    Enum,
)
from sqlalchemy.orm import declarative_base, relationship

# Base class for all models
Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the ``DateTime`` columns below."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class BugPriority(str, enum.Enum):
    """Bug priority enum."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class BugStatus(str, enum.Enum):
    """Bug lifecycle status enum.

    Statuses are not ordered by a transition matrix: a bug may move from any
    status to any other (the kanban board drags freely between columns).
    """

    NEW = "New"
    IN_PROGRESS = "In Progress"
    RESOLVED = "Resolved"
    CLOSED = "Closed"


class UserRole(str, enum.Enum):
    """User role enum."""

    DEVELOPER = "Developer"
    TESTER = "Tester"
    ADMIN = "Admin"


# Statuses that count as finished work for resolution-time reporting
RESOLVED_STATUSES = (BugStatus.RESOLVED, BugStatus.CLOSED)


def _enum_values(enum_cls):
    # Store enum values ("In Progress") rather than names ("IN_PROGRESS")
    return [e.value for e in enum_cls]


class User(Base):
    """
    User account.

    Users log in with email and password; only the bcrypt hash of the
    password is stored.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(
        Enum(UserRole, values_callable=_enum_values, name="userrole"),
        nullable=False,
        default=UserRole.DEVELOPER,
    )
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role.value if self.role else None})>"


class Project(Base):
    """Project that bugs can be filed against."""

    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    bugs = relationship("Bug", back_populates="project")

    def __repr__(self) -> str:
        return f"<Project {self.id}: {self.name}>"


class Bug(Base):
    """
    Tracked defect.

    Only the lifecycle engine writes this table. ``updated_at`` stays null
    until the first mutating update.
    """

    __tablename__ = "bugs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="SET NULL"), nullable=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    priority = Column(
        Enum(BugPriority, values_callable=_enum_values, name="bugpriority"),
        nullable=False,
        default=BugPriority.MEDIUM,
        index=True,
    )
    status = Column(
        Enum(BugStatus, values_callable=_enum_values, name="bugstatus"),
        nullable=False,
        default=BugStatus.NEW,
        index=True,
    )
    reporter_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    assignee_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=True)

    # Relationships
    project = relationship("Project", back_populates="bugs")
    reporter = relationship("User", foreign_keys=[reporter_id])
    assignee = relationship("User", foreign_keys=[assignee_id])
    comments = relationship(
        "Comment", back_populates="bug", cascade="all, delete-orphan", order_by="Comment.created_at"
    )
    attachments = relationship(
        "Attachment", back_populates="bug", cascade="all, delete-orphan", order_by="Attachment.uploaded_at"
    )
    history = relationship("BugHistory", back_populates="bug", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Bug {self.id}: {self.title} [{self.status.value if self.status else None}]>"


class BugHistory(Base):
    """
    Field-level audit trail for bugs.

    One row per changed field per update. Rows are never modified after
    insert.
    """

    __tablename__ = "bug_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    bug_id = Column(Integer, ForeignKey("bugs.id", ondelete="CASCADE"), nullable=False, index=True)
    field_changed = Column(String(50), nullable=False)
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    changed_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    changed_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    bug = relationship("Bug", back_populates="history")
    user = relationship("User")

    def __repr__(self) -> str:
        return f"<BugHistory {self.bug_id}: {self.field_changed} {self.old_value!r} -> {self.new_value!r}>"


class Comment(Base):
    """Comment on a bug (append-only)."""

    __tablename__ = "comments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    bug_id = Column(Integer, ForeignKey("bugs.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    comment_text = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    bug = relationship("Bug", back_populates="comments")
    user = relationship("User")


class Attachment(Base):
    """Uploaded file attached to a bug."""

    __tablename__ = "attachments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    bug_id = Column(Integer, ForeignKey("bugs.id", ondelete="CASCADE"), nullable=False, index=True)
    uploaded_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    file_name = Column(String(255), nullable=False)
    file_size = Column(Integer, nullable=False)
    file_path = Column(String(500), nullable=False)
    uploaded_at = Column(DateTime, nullable=False, default=utcnow)

    bug = relationship("Bug", back_populates="attachments")

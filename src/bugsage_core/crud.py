"""Read queries and non-lifecycle writes (users, projects, attachments).

Bug and bug history writes live in ``lifecycle``.
"""
import logging
from typing import Optional

from sqlalchemy import or_, func
from sqlalchemy.orm import Session, joinedload, selectinload

from . import models

logger = logging.getLogger("bugsage-core.crud")

SEARCH_RESULT_LIMIT = 20


def _bug_query(db: Session):
    """Bug query with project, reporter and assignee eagerly loaded."""
    return db.query(models.Bug).options(
        joinedload(models.Bug.project),
        joinedload(models.Bug.reporter),
        joinedload(models.Bug.assignee),
    )


# ============================================================================
# Bug projections
# ============================================================================

def get_bugs(
    db: Session,
    skip: int = 0,
    limit: int = 20,
    status_filter: Optional[models.BugStatus] = None,
    priority_filter: Optional[models.BugPriority] = None,
    assignee_id: Optional[int] = None,
    project_id: Optional[int] = None,
) -> tuple[list[models.Bug], int]:
    """
    Get bugs with optional filtering and pagination.

    Args:
        db: Database session
        skip: Number of records to skip
        limit: Maximum number of records to return
        status_filter: Optional status filter
        priority_filter: Optional priority filter
        assignee_id: Optional assignee filter
        project_id: Optional project filter

    Returns:
        Tuple of (bugs list, total count), newest first
    """
    query = db.query(models.Bug)

    if status_filter:
        query = query.filter(models.Bug.status == status_filter)

    if priority_filter:
        query = query.filter(models.Bug.priority == priority_filter)

    if assignee_id is not None:
        query = query.filter(models.Bug.assignee_id == assignee_id)

    if project_id is not None:
        query = query.filter(models.Bug.project_id == project_id)

    total = query.count()
    bugs = (
        query.options(
            joinedload(models.Bug.project),
            joinedload(models.Bug.reporter),
            joinedload(models.Bug.assignee),
        )
        .order_by(models.Bug.created_at.desc(), models.Bug.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )

    return bugs, total


def search_bugs(db: Session, text: str, limit: int = SEARCH_RESULT_LIMIT) -> list[models.Bug]:
    """
    Search bug titles and descriptions for a case-insensitive substring.

    Args:
        db: Database session
        text: Search text
        limit: Maximum number of results

    Returns:
        Matching bugs, newest first
    """
    needle = text.lower()
    return (
        _bug_query(db)
        .filter(
            or_(
                func.lower(models.Bug.title).contains(needle, autoescape=True),
                func.lower(models.Bug.description).contains(needle, autoescape=True),
            )
        )
        .order_by(models.Bug.created_at.desc(), models.Bug.id.desc())
        .limit(limit)
        .all()
    )


def get_bug_detail(db: Session, bug_id: int) -> Optional[models.Bug]:
    """
    Get a bug with its comments (and their authors) and attachments loaded.

    Returns:
        Bug instance or None if not found
    """
    return (
        _bug_query(db)
        .options(
            selectinload(models.Bug.comments).joinedload(models.Comment.user),
            selectinload(models.Bug.attachments),
        )
        .filter(models.Bug.id == bug_id)
        .first()
    )


def get_bug_history(db: Session, bug_id: int, limit: int = 50) -> list[models.BugHistory]:
    """
    Get history for a bug.

    Args:
        db: Database session
        bug_id: Bug ID
        limit: Maximum number of history entries

    Returns:
        List of history entries, newest first
    """
    return (
        db.query(models.BugHistory)
        .options(joinedload(models.BugHistory.user))
        .filter(models.BugHistory.bug_id == bug_id)
        .order_by(models.BugHistory.changed_at.desc(), models.BugHistory.id.desc())
        .limit(limit)
        .all()
    )


def get_recent_bugs(db: Session, limit: int = 10) -> list[models.Bug]:
    """Most recently created bugs."""
    return (
        _bug_query(db)
        .order_by(models.Bug.created_at.desc(), models.Bug.id.desc())
        .limit(limit)
        .all()
    )


# ============================================================================
# Users
# ============================================================================

def create_user(
    db: Session,
    name: str,
    email: str,
    password_hash: str,
    role: models.UserRole = models.UserRole.DEVELOPER,
) -> models.User:
    """
    Create a new user.

    Args:
        db: Database session
        name: Display name
        email: Login email (unique)
        password_hash: bcrypt hash of the password
        role: User role

    Returns:
        Created user instance
    """
    db_user = models.User(name=name, email=email, password_hash=password_hash, role=role)
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    logger.debug(f"Created user {db_user.id} ({db_user.email})")
    return db_user


def get_user_by_id(db: Session, user_id: int) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.id == user_id).first()


def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    """Look up a user by email (case-insensitive)."""
    return db.query(models.User).filter(func.lower(models.User.email) == email.lower()).first()


def list_users(db: Session) -> list[models.User]:
    """All users ordered by name, for assignment dropdowns."""
    return db.query(models.User).order_by(models.User.name.asc()).all()


# ============================================================================
# Projects
# ============================================================================

def create_project(
    db: Session,
    name: str,
    description: Optional[str] = None,
    user_id: Optional[int] = None,
) -> models.Project:
    """
    Create a new project.

    Args:
        db: Database session
        name: Project name (unique)
        description: Optional description
        user_id: Creator

    Returns:
        Created project instance
    """
    db_project = models.Project(name=name, description=description, created_by=user_id)
    db.add(db_project)
    db.commit()
    db.refresh(db_project)
    logger.debug(f"Created project {db_project.id} ({db_project.name})")
    return db_project


def get_project_by_name(db: Session, name: str) -> Optional[models.Project]:
    return db.query(models.Project).filter(func.lower(models.Project.name) == name.lower()).first()


def get_projects_with_bug_counts(db: Session) -> list[tuple[models.Project, int]]:
    """
    Get all projects with the number of bugs filed against each.

    Returns:
        List of (project, bug_count) tuples ordered by name
    """
    bug_count = func.count(models.Bug.id)
    rows = (
        db.query(models.Project, bug_count)
        .outerjoin(models.Bug, models.Bug.project_id == models.Project.id)
        .group_by(models.Project.id)
        .order_by(models.Project.name.asc())
        .all()
    )
    return [(project, count) for project, count in rows]


# ============================================================================
# Attachments
# ============================================================================

def create_attachment(
    db: Session,
    bug_id: int,
    file_name: str,
    file_size: int,
    file_path: str,
    user_id: Optional[int] = None,
) -> models.Attachment:
    """Record metadata for a stored upload."""
    attachment = models.Attachment(
        bug_id=bug_id,
        uploaded_by=user_id,
        file_name=file_name,
        file_size=file_size,
        file_path=file_path,
    )
    db.add(attachment)
    db.commit()
    db.refresh(attachment)
    return attachment

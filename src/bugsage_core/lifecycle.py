"""Bug lifecycle engine: creation, field updates, status changes, comments.

This module is the only writer of ``bugs`` and ``bug_history`` rows.

- Creation runs a soft duplicate check (case-insensitive substring match of
  the new title against existing titles and descriptions). Matches return a
  DuplicateWarning instead of writing; callers resubmit with ``force=True``.
- Updates diff each recognized field against the stored value and append
  one history row per changed field, committed together with the row update.
- The status shortcut is a true no-op when the status is unchanged, unlike
  the general update which always touches ``updated_at``.

Every operation takes an explicit CallerContext; nothing is read from
ambient request state.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

from sqlalchemy import or_, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models
from .errors import BugValidationError, InvalidReferenceError, BugNotFoundError, StoreError

logger = logging.getLogger("bugsage-core.lifecycle")

# Fields a caller may change through update_bug; history only ever names these
MUTABLE_FIELDS: tuple[str, ...] = ("title", "description", "priority", "status", "assignee_id")

DUPLICATE_CANDIDATE_LIMIT = 5


@dataclass(frozen=True)
class CallerContext:
    """Authenticated caller, as established by the identity layer."""

    user_id: int
    role: models.UserRole = models.UserRole.DEVELOPER

    @property
    def is_admin(self) -> bool:
        return self.role == models.UserRole.ADMIN


@dataclass(frozen=True)
class DuplicateCandidate:
    """Existing bug that looks like the one being created."""

    bug_id: int
    title: str


@dataclass
class DuplicateWarning:
    """Soft block returned by create_bug when similar bugs exist.

    Nothing was written; resubmitting with ``force=True`` creates the bug.
    """

    candidates: list[DuplicateCandidate] = field(default_factory=list)
    message: str = "Potential duplicates found"


@contextmanager
def _store_guard(db: Session, action: str):
    """Roll back and convert SQLAlchemy failures into StoreError."""
    try:
        yield
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error {action}: {e}", exc_info=True)
        raise StoreError(f"Database error occurred while {action}") from e


# ============================================================================
# Field coercion and comparison
# ============================================================================

def _coerce_text(field_name: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise BugValidationError(f"{field_name.capitalize()} cannot be empty")
    return value.strip()


def _coerce_priority(value: Any) -> models.BugPriority:
    try:
        return models.BugPriority(value)
    except ValueError:
        raise BugValidationError("Invalid priority level")


def _coerce_status(value: Any) -> models.BugStatus:
    try:
        return models.BugStatus(value)
    except ValueError:
        raise BugValidationError("Invalid status")


def _coerce_user_ref(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise BugValidationError("Invalid assignee selected")
    return value


def _history_text(value: Any) -> Optional[str]:
    """Render a field value for the history table (null stays null)."""
    if value is None:
        return None
    if isinstance(value, (models.BugPriority, models.BugStatus)):
        return value.value
    return str(value)


def _require_project(db: Session, project_id: int) -> None:
    exists = db.query(models.Project.id).filter(models.Project.id == project_id).first()
    if not exists:
        logger.warning(f"Rejected reference to missing project {project_id}")
        raise InvalidReferenceError("Invalid project selected", "project_id", project_id)


def _require_assignee(db: Session, user_id: int) -> None:
    exists = db.query(models.User.id).filter(models.User.id == user_id).first()
    if not exists:
        logger.warning(f"Rejected reference to missing assignee {user_id}")
        raise InvalidReferenceError("Invalid assignee selected", "assignee_id", user_id)


def _coerce_update(db: Session, field_name: str, value: Any) -> Any:
    """Convert a raw update value to the column's type, validating it."""
    if field_name in ("title", "description"):
        return _coerce_text(field_name, value)
    if field_name == "priority":
        return _coerce_priority(value)
    if field_name == "status":
        return _coerce_status(value)
    # assignee_id: null unassigns, anything else must be an existing user
    user_id = _coerce_user_ref(value)
    if user_id is not None:
        _require_assignee(db, user_id)
    return user_id


def _append_history(
    db: Session,
    bug: models.Bug,
    field_name: str,
    old_value: Any,
    new_value: Any,
    caller: CallerContext,
) -> None:
    db.add(models.BugHistory(
        bug_id=bug.id,
        field_changed=field_name,
        old_value=_history_text(old_value),
        new_value=_history_text(new_value),
        changed_by=caller.user_id,
        changed_at=models.utcnow(),
    ))


# ============================================================================
# Operations
# ============================================================================

def get_bug(db: Session, bug_id: int) -> Optional[models.Bug]:
    """
    Get a bug by ID.

    Args:
        db: Database session
        bug_id: Bug ID

    Returns:
        Bug instance or None if not found
    """
    return db.query(models.Bug).filter(models.Bug.id == bug_id).first()


def find_duplicate_candidates(
    db: Session, title: str, limit: int = DUPLICATE_CANDIDATE_LIMIT
) -> list[DuplicateCandidate]:
    """
    Find bugs whose title or description contains ``title``.

    Matching is plain substring containment with both sides lower-cased;
    ``%`` and ``_`` in the title match literally.

    Args:
        db: Database session
        title: Title of the bug being created
        limit: Maximum number of candidates

    Returns:
        Candidates ordered by bug ID
    """
    needle = title.lower()
    rows = (
        db.query(models.Bug.id, models.Bug.title)
        .filter(
            or_(
                func.lower(models.Bug.title).contains(needle, autoescape=True),
                func.lower(models.Bug.description).contains(needle, autoescape=True),
            )
        )
        .order_by(models.Bug.id)
        .limit(limit)
        .all()
    )
    return [DuplicateCandidate(bug_id=row.id, title=row.title) for row in rows]


def create_bug(
    db: Session,
    caller: CallerContext,
    title: Any,
    description: Any,
    priority: Any = models.BugPriority.MEDIUM,
    project_id: Optional[int] = None,
    assignee_id: Optional[int] = None,
    force: bool = False,
) -> Union[models.Bug, DuplicateWarning]:
    """
    Create a new bug.

    Validation, the duplicate check and reference checks all run before the
    insert, so a rejected request writes nothing.

    Args:
        db: Database session
        caller: Acting user, recorded as reporter
        title: Bug title (non-empty)
        description: Bug description (non-empty)
        priority: One of Low/Medium/High/Critical
        project_id: Optional project reference
        assignee_id: Optional assignee reference
        force: Skip the duplicate check

    Returns:
        The created bug, or a DuplicateWarning when similar bugs exist

    Raises:
        BugValidationError: Empty title/description or unknown priority
        InvalidReferenceError: Project or assignee does not exist
        StoreError: The database rejected the operation
    """
    if not isinstance(title, str) or not title.strip() or not isinstance(description, str) or not description.strip():
        logger.warning("Rejected bug without title or description")
        raise BugValidationError("Title and description are required")
    title = title.strip()
    description = description.strip()
    priority = _coerce_priority(priority)

    # 0 is what an empty <select> submits; treat it as "no reference"
    project_id = project_id or None
    assignee_id = assignee_id or None

    with _store_guard(db, "creating bug"):
        if not force:
            candidates = find_duplicate_candidates(db, title)
            if candidates:
                logger.info(f"Duplicate warning for '{title}': {[c.bug_id for c in candidates]}")
                return DuplicateWarning(candidates=candidates)

        if project_id is not None:
            _require_project(db, project_id)
        if assignee_id is not None:
            _require_assignee(db, _coerce_user_ref(assignee_id))

        bug = models.Bug(
            title=title,
            description=description,
            priority=priority,
            status=models.BugStatus.NEW,
            project_id=project_id,
            reporter_id=caller.user_id,
            assignee_id=assignee_id,
            created_at=models.utcnow(),
        )
        db.add(bug)
        db.commit()
        db.refresh(bug)

    logger.info(f"Created bug {bug.id} '{bug.title}' (reporter={caller.user_id}, forced={force})")
    return bug


def update_bug(
    db: Session,
    caller: CallerContext,
    bug_id: int,
    changes: Mapping[str, Any],
) -> models.Bug:
    """
    Apply a partial update to a bug, recording history for changed fields.

    Keys outside MUTABLE_FIELDS are ignored. Fields whose new value equals
    the stored value are written back unchanged and produce no history;
    ``updated_at`` is refreshed whenever at least one recognized field is
    present.

    Args:
        db: Database session
        caller: Acting user, recorded on history entries
        bug_id: Bug ID
        changes: Field name -> new value

    Returns:
        The updated bug

    Raises:
        BugNotFoundError: Bug does not exist
        BugValidationError: No recognized fields, or an invalid value
        InvalidReferenceError: assignee_id does not resolve to a user
        StoreError: The database rejected the operation
    """
    with _store_guard(db, "updating bug"):
        bug = get_bug(db, bug_id)
        if not bug:
            raise BugNotFoundError(bug_id)

        recognized = {name: changes[name] for name in MUTABLE_FIELDS if name in changes}
        if not recognized:
            logger.warning(f"Rejected update of bug {bug_id} with no recognized fields")
            raise BugValidationError("No fields to update")

        coerced = {name: _coerce_update(db, name, value) for name, value in recognized.items()}

        changed = []
        for name, new_value in coerced.items():
            old_value = getattr(bug, name)
            if old_value != new_value:
                _append_history(db, bug, name, old_value, new_value, caller)
                changed.append(name)
            setattr(bug, name, new_value)

        bug.updated_at = models.utcnow()
        db.commit()
        db.refresh(bug)

    logger.info(f"Updated bug {bug_id} by user {caller.user_id}; changed fields: {changed or 'none'}")
    return bug


def update_bug_status(
    db: Session,
    caller: CallerContext,
    bug_id: int,
    status: Any,
) -> bool:
    """
    Move a bug to a new status (kanban drag-and-drop).

    Args:
        db: Database session
        caller: Acting user
        bug_id: Bug ID
        status: Target status

    Returns:
        True if the status changed, False if it already had that status
        (in which case nothing is written)

    Raises:
        BugValidationError: Unknown status
        BugNotFoundError: Bug does not exist
        StoreError: The database rejected the operation
    """
    new_status = _coerce_status(status)

    with _store_guard(db, "updating status"):
        bug = get_bug(db, bug_id)
        if not bug:
            raise BugNotFoundError(bug_id)

        old_status = bug.status
        if old_status == new_status:
            logger.debug(f"Bug {bug_id} already {new_status.value}; no-op")
            return False

        bug.status = new_status
        bug.updated_at = models.utcnow()
        _append_history(db, bug, "status", old_status, new_status, caller)
        db.commit()

    logger.info(f"Bug {bug_id} status {old_status.value} -> {new_status.value} by user {caller.user_id}")
    return True


def add_comment(
    db: Session,
    caller: CallerContext,
    bug_id: int,
    text: Any,
) -> models.Comment:
    """
    Append a comment to a bug.

    Raises:
        BugNotFoundError: Bug does not exist
        BugValidationError: Empty comment text
        StoreError: The database rejected the operation
    """
    with _store_guard(db, "adding comment"):
        if not get_bug(db, bug_id):
            raise BugNotFoundError(bug_id)

        if not isinstance(text, str) or not text.strip():
            raise BugValidationError("Comment text is required")

        comment = models.Comment(
            bug_id=bug_id,
            user_id=caller.user_id,
            comment_text=text.strip(),
            created_at=models.utcnow(),
        )
        db.add(comment)
        db.commit()
        db.refresh(comment)

    logger.info(f"Comment {comment.id} added to bug {bug_id} by user {caller.user_id}")
    return comment

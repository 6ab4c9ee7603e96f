"""Bugs API endpoints: lifecycle operations and read projections."""
import logging
from math import ceil
from typing import Optional, Union

from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ... import attachments, crud, lifecycle, models, schemas
from ...config import get_settings
from ...database import get_db
from ...errors import BugNotFoundError, BugValidationError, StoreError
from ...lifecycle import CallerContext
from ..dependencies import get_current_caller

logger = logging.getLogger("bugsage-core.bugs")

router = APIRouter(tags=["bugs"])


def bug_to_response(bug: models.Bug) -> schemas.BugResponse:
    """Convert Bug model to BugResponse schema."""
    return schemas.BugResponse(
        bug_id=bug.id,
        title=bug.title,
        description=bug.description,
        priority=bug.priority,
        status=bug.status,
        project_id=bug.project_id,
        project_name=bug.project.name if bug.project else None,
        reporter_id=bug.reporter_id,
        reporter_name=bug.reporter.name if bug.reporter else None,
        assignee_id=bug.assignee_id,
        assignee_name=bug.assignee.name if bug.assignee else None,
        created_at=bug.created_at,
        updated_at=bug.updated_at,
    )


def _parse_assignee_filter(assignee: Optional[str], caller: CallerContext) -> Optional[int]:
    if not assignee:
        return None
    if assignee == "me":
        return caller.user_id
    try:
        return int(assignee)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid assignee filter")


@router.get("/", response_model=schemas.BugListResponse)
def list_bugs(
    page: int = Query(1, ge=1, description="Page number"),
    per_page: Optional[int] = Query(None, ge=1, description="Items per page"),
    status: Optional[models.BugStatus] = Query(None, description="Filter by status"),
    priority: Optional[models.BugPriority] = Query(None, description="Filter by priority"),
    assignee: Optional[str] = Query(None, description="Filter by assignee ID, or 'me'"),
    project: Optional[int] = Query(None, description="Filter by project ID"),
    caller: CallerContext = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    """
    List bugs with optional filtering and pagination (newest first).

    - **page**: Page number (starts at 1)
    - **per_page**: Items per page (default 20, capped at 100)
    - **status** / **priority**: Exact-match filters
    - **assignee**: User ID, or `me` for the caller
    - **project**: Project ID
    """
    settings = get_settings()
    per_page = min(per_page or settings.bugs_per_page, settings.max_per_page)
    skip = (page - 1) * per_page

    try:
        bugs, total = crud.get_bugs(
            db,
            skip=skip,
            limit=per_page,
            status_filter=status,
            priority_filter=priority,
            assignee_id=_parse_assignee_filter(assignee, caller),
            project_id=project,
        )
    except SQLAlchemyError as e:
        logger.error(f"Error listing bugs: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch bugs")

    return schemas.BugListResponse(
        bugs=[bug_to_response(b) for b in bugs],
        pagination=schemas.PaginationInfo(
            current_page=page,
            per_page=per_page,
            total_pages=ceil(total / per_page) if total > 0 else 0,
            total_bugs=total,
        ),
    )


@router.get("/search", response_model=schemas.BugSearchResponse)
def search_bugs(
    q: str = Query("", description="Text to find in title or description"),
    caller: CallerContext = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    """Search bug titles and descriptions (case-insensitive, at most 20 results)."""
    if not q.strip():
        raise HTTPException(status_code=400, detail="Search query is required")

    try:
        results = crud.search_bugs(db, q.strip())
    except SQLAlchemyError as e:
        logger.error(f"Error searching bugs: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Search failed")

    return schemas.BugSearchResponse(results=[bug_to_response(b) for b in results])


@router.post(
    "/",
    response_model=Union[schemas.BugCreatedResponse, schemas.DuplicateWarningResponse],
    status_code=201,
)
def create_bug(
    bug_data: schemas.BugCreate,
    response: Response,
    caller: CallerContext = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    """
    Create a new bug.

    Unless **force_create** is true, bugs whose title or description contain
    the new title are returned as a duplicate warning (HTTP 200) and nothing
    is created. Resubmit with **force_create** to create anyway.
    """
    try:
        result = lifecycle.create_bug(
            db,
            caller,
            title=bug_data.title,
            description=bug_data.description,
            priority=bug_data.priority,
            project_id=bug_data.project_id,
            assignee_id=bug_data.assignee_id,
            force=bug_data.force_create,
        )
    except BugValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StoreError as e:
        raise HTTPException(status_code=500, detail=str(e))

    if isinstance(result, lifecycle.DuplicateWarning):
        response.status_code = 200
        return schemas.DuplicateWarningResponse(
            warning=result.message,
            duplicates=[
                schemas.DuplicateCandidateResponse(bug_id=c.bug_id, title=c.title)
                for c in result.candidates
            ],
        )

    return schemas.BugCreatedResponse(bug_id=result.id)


@router.get("/{bug_id}", response_model=schemas.BugDetailResponse)
def get_bug(
    bug_id: int,
    caller: CallerContext = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    """Get a bug with its comments and attachments."""
    try:
        bug = crud.get_bug_detail(db, bug_id)
    except SQLAlchemyError as e:
        logger.error(f"Error loading bug {bug_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch bug details")

    if not bug:
        raise HTTPException(status_code=404, detail="Bug not found")

    return schemas.BugDetailResponse(
        bug=bug_to_response(bug),
        comments=[
            schemas.CommentResponse(
                id=c.id,
                bug_id=c.bug_id,
                user_id=c.user_id,
                user_name=c.user.name if c.user else None,
                comment_text=c.comment_text,
                created_at=c.created_at,
            )
            for c in bug.comments
        ],
        attachments=[schemas.AttachmentResponse.model_validate(a) for a in bug.attachments],
    )


@router.put("/{bug_id}", response_model=schemas.SuccessResponse)
def update_bug(
    bug_id: int,
    bug_update: schemas.BugUpdate,
    caller: CallerContext = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    """
    Update a bug. Only the fields present in the body are applied.

    - **title**, **description**: non-empty text
    - **priority**: Low, Medium, High or Critical
    - **status**: New, In Progress, Resolved or Closed
    - **assignee_id**: user ID, or null to unassign
    """
    try:
        lifecycle.update_bug(db, caller, bug_id, bug_update.model_dump(exclude_unset=True))
    except BugNotFoundError:
        raise HTTPException(status_code=404, detail="Bug not found")
    except BugValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StoreError as e:
        raise HTTPException(status_code=500, detail=str(e))

    return schemas.SuccessResponse(message="Bug updated successfully")


@router.post("/{bug_id}/status", response_model=schemas.SuccessResponse)
def update_bug_status(
    bug_id: int,
    status_update: schemas.BugStatusUpdate,
    caller: CallerContext = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    """Change only the status of a bug (kanban drag-and-drop)."""
    try:
        changed = lifecycle.update_bug_status(db, caller, bug_id, status_update.status)
    except BugNotFoundError:
        raise HTTPException(status_code=404, detail="Bug not found")
    except BugValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StoreError as e:
        raise HTTPException(status_code=500, detail=str(e))

    message = "Status updated successfully" if changed else "Status unchanged"
    return schemas.SuccessResponse(message=message)


@router.post("/{bug_id}/comments", response_model=schemas.SuccessResponse, status_code=201)
def add_comment(
    bug_id: int,
    comment_data: schemas.CommentCreate,
    caller: CallerContext = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    """Add a comment to a bug."""
    try:
        lifecycle.add_comment(db, caller, bug_id, comment_data.comment)
    except BugNotFoundError:
        raise HTTPException(status_code=404, detail="Bug not found")
    except BugValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StoreError as e:
        raise HTTPException(status_code=500, detail=str(e))

    return schemas.SuccessResponse(message="Comment added successfully")


@router.get("/{bug_id}/history", response_model=list[schemas.BugHistoryResponse])
def get_bug_history(
    bug_id: int,
    limit: int = Query(50, ge=1, le=200),
    caller: CallerContext = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    """Field change history for a bug, newest first."""
    if not lifecycle.get_bug(db, bug_id):
        raise HTTPException(status_code=404, detail="Bug not found")

    return [
        schemas.BugHistoryResponse(
            id=h.id,
            bug_id=h.bug_id,
            field_changed=h.field_changed,
            old_value=h.old_value,
            new_value=h.new_value,
            changed_by=h.changed_by,
            changed_by_name=h.user.name if h.user else None,
            changed_at=h.changed_at,
        )
        for h in crud.get_bug_history(db, bug_id, limit=limit)
    ]


@router.post("/{bug_id}/attachments", response_model=schemas.AttachmentResponse, status_code=201)
def upload_attachment(
    bug_id: int,
    file: UploadFile = File(...),
    caller: CallerContext = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    """Attach a file to a bug (jpg, jpeg, png, gif, pdf, doc, docx, txt; 5MB max)."""
    if not lifecycle.get_bug(db, bug_id):
        raise HTTPException(status_code=404, detail="Bug not found")

    try:
        attachment = attachments.store_attachment(
            db, bug_id, file.filename, file.file, user_id=caller.user_id
        )
    except BugValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Error storing attachment for bug {bug_id}: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to upload attachment")

    return attachment

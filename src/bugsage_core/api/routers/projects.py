"""Projects API endpoints."""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ... import crud, schemas
from ...database import get_db
from ...lifecycle import CallerContext
from ..dependencies import get_current_caller, require_admin

logger = logging.getLogger("bugsage-core.projects")

router = APIRouter(tags=["projects"])


@router.get("/", response_model=schemas.ProjectListResponse)
def list_projects(
    caller: CallerContext = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    """List projects with the number of bugs filed against each."""
    try:
        rows = crud.get_projects_with_bug_counts(db)
    except SQLAlchemyError as e:
        logger.error(f"Error listing projects: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch projects")

    return schemas.ProjectListResponse(
        projects=[
            schemas.ProjectResponse(
                id=project.id,
                name=project.name,
                description=project.description,
                bug_count=count,
                created_at=project.created_at,
            )
            for project, count in rows
        ]
    )


@router.post("/", response_model=schemas.ProjectResponse, status_code=201)
def create_project(
    project: schemas.ProjectCreate,
    caller: CallerContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Create a new project (Admin only).

    - **name**: Project name (unique, case-insensitive)
    - **description**: Optional description
    """
    name = project.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Project name is required")

    if crud.get_project_by_name(db, name):
        raise HTTPException(status_code=400, detail=f"Project '{name}' already exists")

    try:
        result = crud.create_project(
            db,
            name=name,
            description=project.description,
            user_id=caller.user_id,
        )
    except SQLAlchemyError as e:
        logger.error(f"Error creating project: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to create project")

    logger.info(f"Created project '{result.name}' (ID: {result.id})")
    return schemas.ProjectResponse(
        id=result.id,
        name=result.name,
        description=result.description,
        bug_count=0,
        created_at=result.created_at,
    )

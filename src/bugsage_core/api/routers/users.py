"""Users API endpoints."""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ... import crud, schemas
from ...database import get_db
from ...lifecycle import CallerContext
from ..dependencies import get_current_caller

logger = logging.getLogger("bugsage-core.users")

router = APIRouter(tags=["users"])


@router.get("/", response_model=schemas.UserListResponse)
def list_users(
    caller: CallerContext = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    """List all users (for assignee dropdowns), ordered by name."""
    try:
        users = crud.list_users(db)
    except SQLAlchemyError as e:
        logger.error(f"Error listing users: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch users")

    return schemas.UserListResponse(users=[schemas.UserResponse.model_validate(u) for u in users])

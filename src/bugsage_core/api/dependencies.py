"""FastAPI dependencies that turn the session cookie into a caller context."""
import logging

from fastapi import Depends, HTTPException, Request

from .. import models
from ..auth import session_expired, session_user_id, SESSION_USER_ROLE
from ..config import get_settings
from ..lifecycle import CallerContext

logger = logging.getLogger("bugsage-core.api.dependencies")


def get_current_caller(request: Request) -> CallerContext:
    """
    Require a logged-in session and return the caller.

    Raises:
        HTTPException: 401 if there is no session or it has expired
    """
    session = request.session
    user_id = session_user_id(session)
    if not user_id:
        raise HTTPException(status_code=401, detail="Authentication required")

    if session_expired(session, get_settings().session_max_age_seconds):
        logger.info(f"Session for user {user_id} expired")
        session.clear()
        raise HTTPException(status_code=401, detail="Session expired")

    try:
        role = models.UserRole(session.get(SESSION_USER_ROLE))
    except ValueError:
        role = models.UserRole.DEVELOPER
    return CallerContext(user_id=int(user_id), role=role)


def require_admin(caller: CallerContext = Depends(get_current_caller)) -> CallerContext:
    """Require a logged-in Admin."""
    if not caller.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return caller

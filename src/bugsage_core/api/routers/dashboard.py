"""Dashboard and reports endpoints.

These never fail with 500: database errors degrade to zero-filled payloads.
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ... import crud, dashboard, schemas
from ...database import get_db
from ...lifecycle import CallerContext
from ..dependencies import get_current_caller
from .bugs import bug_to_response

logger = logging.getLogger("bugsage-core.dashboard")

router = APIRouter(tags=["dashboard"])

RECENT_BUGS_LIMIT = 10


@router.get("/stats", response_model=schemas.DashboardStatsResponse)
def get_stats(
    caller: CallerContext = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    """Totals, caller's assigned count, last-7-days count, and counts by status/priority."""
    return dashboard.get_dashboard_stats(db, caller.user_id)


@router.get("/recent", response_model=schemas.RecentBugsResponse)
def get_recent(
    caller: CallerContext = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    """The 10 most recently created bugs."""
    try:
        bugs = crud.get_recent_bugs(db, limit=RECENT_BUGS_LIMIT)
    except SQLAlchemyError as e:
        logger.error(f"Error loading recent bugs: {e}", exc_info=True)
        db.rollback()
        bugs = []
    return schemas.RecentBugsResponse(recent_bugs=[bug_to_response(b) for b in bugs])


@router.get("/charts", response_model=schemas.ChartDataResponse)
def get_charts(
    caller: CallerContext = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    """Bugs created per day (last 30 days) and average resolution days per priority."""
    return dashboard.get_chart_data(db)

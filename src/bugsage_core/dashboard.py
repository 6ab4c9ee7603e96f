"""Dashboard and report aggregates.

All functions return zero-filled structures (every status, every priority,
every day of the window) instead of empty lists, and degrade to those
defaults when the database query fails. Failures are logged, not raised.
"""
import logging
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models

logger = logging.getLogger("bugsage-core.dashboard")

RECENT_WINDOW_DAYS = 7
CHART_WINDOW_DAYS = 30


def _zero_status_counts() -> list[dict]:
    return [{"status": s.value, "count": 0} for s in models.BugStatus]


def _zero_priority_counts() -> list[dict]:
    return [{"priority": p.value, "count": 0} for p in models.BugPriority]


def _zero_resolution_times() -> list[dict]:
    return [{"priority": p.value, "avg_resolution_days": 0} for p in models.BugPriority]


def _day_window(today: date, days: int) -> list[date]:
    """The ``days`` dates ending with ``today``, oldest first."""
    return [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]


def _zero_bugs_over_time(today: date, days: int = CHART_WINDOW_DAYS) -> list[dict]:
    return [{"date": d.isoformat(), "count": 0} for d in _day_window(today, days)]


def default_stats() -> dict:
    """Stats payload for an empty (or unreachable) store."""
    return {
        "total_bugs": 0,
        "my_bugs": 0,
        "recent_bugs": 0,
        "status_counts": _zero_status_counts(),
        "priority_counts": _zero_priority_counts(),
    }


def default_chart_data(now: Optional[datetime] = None) -> dict:
    """Chart payload for an empty (or unreachable) store."""
    now = now or models.utcnow()
    return {
        "bugs_over_time": _zero_bugs_over_time(now.date()),
        "resolution_times": _zero_resolution_times(),
    }


def get_dashboard_stats(db: Session, user_id: int, now: Optional[datetime] = None) -> dict:
    """
    Headline counts for the dashboard.

    Args:
        db: Database session
        user_id: Caller, for the "assigned to me" count
        now: Reference time (defaults to current UTC time)

    Returns:
        Dict with total_bugs, my_bugs, recent_bugs, status_counts and
        priority_counts (every enum member present)
    """
    now = now or models.utcnow()
    try:
        total = db.query(func.count(models.Bug.id)).scalar() or 0
        mine = (
            db.query(func.count(models.Bug.id))
            .filter(models.Bug.assignee_id == user_id)
            .scalar()
        ) or 0
        recent = (
            db.query(func.count(models.Bug.id))
            .filter(models.Bug.created_at >= now - timedelta(days=RECENT_WINDOW_DAYS))
            .scalar()
        ) or 0

        by_status = dict(
            db.query(models.Bug.status, func.count(models.Bug.id))
            .group_by(models.Bug.status)
            .all()
        )
        by_priority = dict(
            db.query(models.Bug.priority, func.count(models.Bug.id))
            .group_by(models.Bug.priority)
            .all()
        )
    except SQLAlchemyError as e:
        logger.error(f"Database error loading dashboard stats: {e}", exc_info=True)
        db.rollback()
        return default_stats()

    return {
        "total_bugs": int(total),
        "my_bugs": int(mine),
        "recent_bugs": int(recent),
        "status_counts": [
            {"status": s.value, "count": int(by_status.get(s, 0))} for s in models.BugStatus
        ],
        "priority_counts": [
            {"priority": p.value, "count": int(by_priority.get(p, 0))} for p in models.BugPriority
        ],
    }


def get_chart_data(db: Session, now: Optional[datetime] = None) -> dict:
    """
    Time series and resolution-time data for charts and reports.

    bugs_over_time has one entry per day for the last 30 days (today
    included). resolution_times averages, per priority, the whole days
    between creation and last update of Resolved/Closed bugs; a bug that
    was never updated counts up to ``now``.

    Args:
        db: Database session
        now: Reference time (defaults to current UTC time)

    Returns:
        Dict with bugs_over_time and resolution_times
    """
    now = now or models.utcnow()
    days = _day_window(now.date(), CHART_WINDOW_DAYS)
    try:
        created = (
            db.query(models.Bug.created_at)
            .filter(models.Bug.created_at >= datetime.combine(days[0], datetime.min.time()))
            .all()
        )
        resolved = (
            db.query(models.Bug.priority, models.Bug.created_at, models.Bug.updated_at)
            .filter(models.Bug.status.in_(models.RESOLVED_STATUSES))
            .all()
        )
    except SQLAlchemyError as e:
        logger.error(f"Database error loading chart data: {e}", exc_info=True)
        db.rollback()
        return default_chart_data(now)

    per_day: dict[date, int] = defaultdict(int)
    for (created_at,) in created:
        per_day[created_at.date()] += 1

    durations: dict[models.BugPriority, list[int]] = defaultdict(list)
    for priority, created_at, updated_at in resolved:
        finished = updated_at or now
        durations[priority].append((finished.date() - created_at.date()).days)

    resolution_times = []
    for p in models.BugPriority:
        samples = durations.get(p)
        avg = round(sum(samples) / len(samples), 2) if samples else 0
        resolution_times.append({"priority": p.value, "avg_resolution_days": avg})

    return {
        "bugs_over_time": [{"date": d.isoformat(), "count": per_day.get(d, 0)} for d in days],
        "resolution_times": resolution_times,
    }

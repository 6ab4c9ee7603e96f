"""API routers for BugSage Core."""

from . import auth, bugs, dashboard, projects, users

__all__ = ["auth", "bugs", "dashboard", "projects", "users"]

"""Password hashing and session bookkeeping for the identity layer."""
import logging
import time
from typing import Optional

import bcrypt

from . import models

logger = logging.getLogger("bugsage-core.auth")

# Keys stored in the signed session cookie
SESSION_USER_ID = "user_id"
SESSION_USER_NAME = "user_name"
SESSION_USER_EMAIL = "user_email"
SESSION_USER_ROLE = "user_role"
SESSION_LOGIN_TIME = "login_time"

# bcrypt only reads this many bytes; longer passwords are rejected at registration
MAX_PASSWORD_BYTES = 72


def password_too_long(password: str) -> bool:
    return len(password.encode("utf-8")) > MAX_PASSWORD_BYTES


def hash_password(password: str) -> str:
    """Hash a password with a fresh bcrypt salt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Check a password against a stored bcrypt hash."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash in the database; treat as a failed login
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False


def start_session(session: dict, user: models.User, now: Optional[float] = None) -> None:
    """Record a successful login in the session."""
    session.clear()
    session[SESSION_USER_ID] = user.id
    session[SESSION_USER_NAME] = user.name
    session[SESSION_USER_EMAIL] = user.email
    session[SESSION_USER_ROLE] = user.role.value
    session[SESSION_LOGIN_TIME] = now if now is not None else time.time()


def session_user_id(session: dict) -> Optional[int]:
    return session.get(SESSION_USER_ID) or None


def session_expired(session: dict, max_age_seconds: int, now: Optional[float] = None) -> bool:
    """True when the login recorded in the session is older than ``max_age_seconds``."""
    login_time = session.get(SESSION_LOGIN_TIME)
    if login_time is None:
        return False
    now = now if now is not None else time.time()
    return (now - login_time) > max_age_seconds


def session_user(session: dict) -> dict:
    """Public view of the logged-in user stored in the session."""
    return {
        "id": session.get(SESSION_USER_ID),
        "name": session.get(SESSION_USER_NAME),
        "email": session.get(SESSION_USER_EMAIL),
        "role": session.get(SESSION_USER_ROLE),
    }

"""Authentication endpoints: register, login, logout, session check."""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ... import auth, crud, models, schemas
from ...config import get_settings
from ...database import get_db

logger = logging.getLogger("bugsage-core.auth")

router = APIRouter(tags=["auth"])


@router.post("/register", response_model=schemas.RegisterResponse, status_code=201)
def register(
    registration: schemas.UserRegister,
    db: Session = Depends(get_db),
):
    """
    Register a new user.

    - **name**: Display name
    - **email**: Login email (must be unique)
    - **password**: At least 6 characters
    - **role**: Developer, Tester or Admin (default: Developer)
    """
    settings = get_settings()
    if len(registration.password) < settings.password_min_length:
        raise HTTPException(
            status_code=400,
            detail=f"Password must be at least {settings.password_min_length} characters",
        )
    if auth.password_too_long(registration.password):
        raise HTTPException(
            status_code=400,
            detail=f"Password must be at most {auth.MAX_PASSWORD_BYTES} bytes",
        )

    try:
        role = models.UserRole(registration.role)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid role selected")

    if crud.get_user_by_email(db, registration.email):
        raise HTTPException(status_code=400, detail="Email address is already registered")

    try:
        user = crud.create_user(
            db,
            name=registration.name.strip(),
            email=registration.email,
            password_hash=auth.hash_password(registration.password),
            role=role,
        )
    except IntegrityError:
        # Lost a race with a concurrent registration of the same email
        db.rollback()
        logger.warning(f"Duplicate registration for {registration.email}")
        raise HTTPException(status_code=400, detail="Email address is already registered")
    except SQLAlchemyError as e:
        logger.error(f"Error registering {registration.email}: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Database error occurred during registration")

    logger.info(f"Registered user {user.id} ({user.email}) as {role.value}")
    return schemas.RegisterResponse(user_id=user.id)


@router.post("/login", response_model=schemas.LoginResponse)
def login(
    credentials: schemas.UserLogin,
    request: Request,
    db: Session = Depends(get_db),
):
    """Log in with email and password; starts a session cookie."""
    user = crud.get_user_by_email(db, credentials.email)
    if not user or not auth.verify_password(credentials.password, user.password_hash):
        logger.warning(f"Login failed for {credentials.email}")
        raise HTTPException(status_code=401, detail="Invalid email or password")

    auth.start_session(request.session, user)
    logger.info(f"User {user.id} logged in")
    return schemas.LoginResponse(user=schemas.UserResponse.model_validate(user))


@router.post("/logout", response_model=schemas.AuthStatusResponse)
def logout(request: Request):
    """Clear the session."""
    request.session.clear()
    return schemas.AuthStatusResponse(authenticated=False, message="Logged out successfully")


@router.get("/check", response_model=schemas.AuthStatusResponse)
def check(request: Request):
    """Report whether the session is logged in; expired sessions are cleared."""
    session = request.session
    if not auth.session_user_id(session):
        return schemas.AuthStatusResponse(authenticated=False)

    if auth.session_expired(session, get_settings().session_max_age_seconds):
        session.clear()
        return schemas.AuthStatusResponse(authenticated=False, message="Session expired")

    return schemas.AuthStatusResponse(
        authenticated=True,
        user=schemas.SessionUser(**auth.session_user(session)),
    )

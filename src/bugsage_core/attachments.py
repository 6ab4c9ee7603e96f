"""Attachment storage: validates uploads and writes them under the upload dir."""
import logging
import os
from pathlib import Path
from typing import BinaryIO, Optional
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import crud, models
from .config import get_settings
from .errors import BugValidationError

logger = logging.getLogger("bugsage-core.attachments")

CHUNK_SIZE = 64 * 1024


def file_extension(file_name: str) -> str:
    return Path(file_name).suffix.lower().lstrip(".")


def validate_upload_name(file_name: Optional[str], allowed_extensions: list[str]) -> str:
    """
    Validate an uploaded file name and return its base name.

    Raises:
        BugValidationError: Missing name or disallowed extension
    """
    if not file_name:
        raise BugValidationError("A file is required")
    base_name = os.path.basename(file_name.replace("\\", "/"))
    if file_extension(base_name) not in allowed_extensions:
        raise BugValidationError(
            f"File type not allowed. Allowed types: {', '.join(allowed_extensions)}"
        )
    return base_name


def store_attachment(
    db: Session,
    bug_id: int,
    file_name: Optional[str],
    stream: BinaryIO,
    user_id: Optional[int] = None,
    upload_dir: Optional[str] = None,
) -> models.Attachment:
    """
    Save an uploaded file and record it against a bug.

    The file is written under a random name so uploads never collide; the
    original name is kept on the attachment row. Oversized files are removed
    before the error is raised.

    Raises:
        BugValidationError: Bad file type or file too large
    """
    settings = get_settings()
    base_name = validate_upload_name(file_name, settings.allowed_extensions)

    target_dir = Path(upload_dir or settings.upload_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    stored_name = f"{uuid4().hex}.{file_extension(base_name)}"
    target = target_dir / stored_name

    size = 0
    with open(target, "wb") as out:
        while True:
            chunk = stream.read(CHUNK_SIZE)
            if not chunk:
                break
            size += len(chunk)
            if size > settings.max_upload_size:
                break
            out.write(chunk)

    if size > settings.max_upload_size:
        target.unlink(missing_ok=True)
        limit_mb = settings.max_upload_size // (1024 * 1024)
        logger.warning(f"Rejected upload '{base_name}' for bug {bug_id}: larger than {limit_mb}MB")
        raise BugValidationError(f"File is too large. Maximum size is {limit_mb}MB")

    try:
        attachment = crud.create_attachment(
            db,
            bug_id=bug_id,
            file_name=base_name,
            file_size=size,
            file_path=str(target),
            user_id=user_id,
        )
    except SQLAlchemyError:
        # No row will point at the file
        target.unlink(missing_ok=True)
        raise

    logger.info(f"Stored attachment {attachment.id} ('{base_name}', {size} bytes) for bug {bug_id}")
    return attachment

"""Pydantic schemas for request/response validation."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict, EmailStr

from .models import BugPriority, BugStatus, UserRole


# Bug Schemas

class BugCreate(BaseModel):
    """Schema for creating a bug.

    Empty title/description are rejected by the lifecycle engine (not here)
    so the caller gets the same message whichever path submitted the bug.
    """

    title: str = Field("", max_length=255)
    description: str = ""
    priority: str = BugPriority.MEDIUM.value
    project_id: Optional[int] = None
    assignee_id: Optional[int] = None
    force_create: bool = False


class BugUpdate(BaseModel):
    """Schema for a partial bug update.

    Only fields present in the request body are applied. ``assignee_id:
    null`` unassigns the bug. Unknown fields are ignored.
    """

    title: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    priority: Optional[str] = None
    status: Optional[str] = None
    assignee_id: Optional[int] = None


class BugStatusUpdate(BaseModel):
    """Schema for the drag-and-drop status shortcut."""

    status: str


class CommentCreate(BaseModel):
    """Schema for adding a comment."""

    comment: str = ""


class BugResponse(BaseModel):
    """Bug with project, reporter and assignee names resolved."""

    bug_id: int
    title: str
    description: str
    priority: BugPriority
    status: BugStatus
    project_id: Optional[int] = None
    project_name: Optional[str] = None
    reporter_id: int
    reporter_name: Optional[str] = None
    assignee_id: Optional[int] = None
    assignee_name: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(use_enum_values=True)


class PaginationInfo(BaseModel):
    current_page: int
    per_page: int
    total_pages: int
    total_bugs: int


class BugListResponse(BaseModel):
    """Schema for paginated bug list."""

    bugs: list[BugResponse]
    pagination: PaginationInfo


class BugSearchResponse(BaseModel):
    results: list[BugResponse]


class CommentResponse(BaseModel):
    id: int
    bug_id: int
    user_id: int
    user_name: Optional[str] = None
    comment_text: str
    created_at: datetime


class AttachmentResponse(BaseModel):
    id: int
    bug_id: int
    file_name: str
    file_size: int
    file_path: str
    uploaded_by: Optional[int] = None
    uploaded_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BugDetailResponse(BaseModel):
    bug: BugResponse
    comments: list[CommentResponse]
    attachments: list[AttachmentResponse]


class BugHistoryResponse(BaseModel):
    """Schema for bug history entries."""

    id: int
    bug_id: int
    field_changed: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    changed_by: Optional[int] = None
    changed_by_name: Optional[str] = None
    changed_at: datetime


class DuplicateCandidateResponse(BaseModel):
    bug_id: int
    title: str


class DuplicateWarningResponse(BaseModel):
    """Returned instead of creating a bug when similar bugs exist."""

    warning: str
    duplicates: list[DuplicateCandidateResponse]


class BugCreatedResponse(BaseModel):
    success: bool = True
    bug_id: int
    message: str = "Bug created successfully"


class SuccessResponse(BaseModel):
    success: bool = True
    message: str


# Dashboard Schemas

class StatusCount(BaseModel):
    status: BugStatus
    count: int

    model_config = ConfigDict(use_enum_values=True)


class PriorityCount(BaseModel):
    priority: BugPriority
    count: int

    model_config = ConfigDict(use_enum_values=True)


class DashboardStatsResponse(BaseModel):
    total_bugs: int
    my_bugs: int
    recent_bugs: int
    status_counts: list[StatusCount]
    priority_counts: list[PriorityCount]


class RecentBugsResponse(BaseModel):
    recent_bugs: list[BugResponse]


class DailyCount(BaseModel):
    date: str
    count: int


class ResolutionTime(BaseModel):
    priority: BugPriority
    avg_resolution_days: float

    model_config = ConfigDict(use_enum_values=True)


class ChartDataResponse(BaseModel):
    bugs_over_time: list[DailyCount]
    resolution_times: list[ResolutionTime]


# User / Auth Schemas

class UserRegister(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str
    role: str = UserRole.DEVELOPER.value


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    role: UserRole

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class UserListResponse(BaseModel):
    users: list[UserResponse]


class SessionUser(BaseModel):
    id: int
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None


class AuthStatusResponse(BaseModel):
    authenticated: bool
    user: Optional[SessionUser] = None
    message: Optional[str] = None


class RegisterResponse(BaseModel):
    success: bool = True
    message: str = "Registration successful. You can now login."
    user_id: int


class LoginResponse(BaseModel):
    success: bool = True
    authenticated: bool = True
    user: UserResponse


# Project Schemas

class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None


class ProjectResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    bug_count: int = 0
    created_at: datetime


class ProjectListResponse(BaseModel):
    projects: list[ProjectResponse]

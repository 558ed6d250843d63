"""Pydantic schemas for request/response validation."""
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional, List

from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator

from .models import (
    UserRole,
    ProjectStatus,
    ProjectType,
    ProjectStage,
    TaskStatus,
    TaskPriority,
    NotificationType,
)


def _strip_required(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be blank")
    return value


# User Schemas

class UserClaims(BaseModel):
    """Identity claims forwarded by the identity provider on login."""

    sub: str = Field(..., min_length=1, description="Opaque subject id from the identity provider")
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None


class UserResponse(BaseModel):
    """Schema for user response."""

    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    role: UserRole
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class UserStats(BaseModel):
    """Task and hour counters scoped to the tasks assigned to one user."""

    task_count: int
    completed_task_count: int
    hours_worked: float
    efficiency: float = Field(description="completed / total x 100, 0 when the user has no tasks")


class UserWithStats(UserResponse):
    """User row plus the counters used by the team screen."""

    stats: UserStats


class UserRoleUpdate(BaseModel):
    """Schema for changing a user's role (admin only)."""

    role: UserRole


class UserActiveUpdate(BaseModel):
    """Schema for activating or deactivating a user (admin only)."""

    is_active: bool


# Project Schemas

class ProjectBase(BaseModel):
    """Base schema for project fields."""

    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    status: ProjectStatus = ProjectStatus.ACTIVE
    project_type: Optional[ProjectType] = None
    stage: Optional[ProjectStage] = None
    priority: TaskPriority = TaskPriority.MEDIA
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    client_name: Optional[str] = Field(None, max_length=255)
    client_email: Optional[str] = Field(None, max_length=255)
    client_phone: Optional[str] = Field(None, max_length=50)
    budget: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=2)
    estimated_hours: Optional[float] = Field(None, ge=0)
    actual_hours: Optional[float] = Field(None, ge=0)
    location: Optional[str] = Field(None, max_length=255)
    area: Optional[float] = Field(None, ge=0, description="Area in square meters")

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        return _strip_required(v)


class ProjectCreate(ProjectBase):
    """Schema for creating a new project."""

    pass


class ProjectUpdate(BaseModel):
    """Schema for updating an existing project. Only provided fields change."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    status: Optional[ProjectStatus] = None
    project_type: Optional[ProjectType] = None
    stage: Optional[ProjectStage] = None
    priority: Optional[TaskPriority] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    client_name: Optional[str] = Field(None, max_length=255)
    client_email: Optional[str] = Field(None, max_length=255)
    client_phone: Optional[str] = Field(None, max_length=50)
    budget: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=2)
    estimated_hours: Optional[float] = Field(None, ge=0)
    actual_hours: Optional[float] = Field(None, ge=0)
    location: Optional[str] = Field(None, max_length=255)
    area: Optional[float] = Field(None, ge=0)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: Optional[str]) -> Optional[str]:
        return _strip_required(v) if v is not None else v


class ProjectResponse(ProjectBase):
    """Schema for project response."""

    id: int
    progress: int = Field(0, description="Percentage of tasks completed, rounded")
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class ProjectHealthResponse(BaseModel):
    """Deterministic health analysis of a project's tasks."""

    project_id: int
    health_score: int
    completion_rate: float
    overdue_rate: float
    insights: list[str]
    recommendations: list[str]


# Task Schemas

class TaskCreate(BaseModel):
    """Schema for creating a new task.

    ``assigned_user_id`` set to null (or left out) creates an unassigned task.
    """

    title: str = Field(..., min_length=1, max_length=255, description="Task title")
    description: Optional[str] = Field(None, description="Task description")
    status: TaskStatus = Field(TaskStatus.ABERTA, description="Initial status")
    priority: TaskPriority = Field(TaskPriority.MEDIA, description="Task priority")
    project_id: Optional[int] = Field(None, description="Owning project (optional)")
    assigned_user_id: Optional[str] = Field(None, description="Assignee user id, null for unassigned")
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    estimated_hours: Optional[float] = Field(None, ge=0)
    actual_hours: Optional[float] = Field(None, ge=0)

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        return _strip_required(v)


class TaskUpdate(BaseModel):
    """Schema for updating an existing task. Only provided fields change."""

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    project_id: Optional[int] = None
    assigned_user_id: Optional[str] = None
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    estimated_hours: Optional[float] = Field(None, ge=0)
    actual_hours: Optional[float] = Field(None, ge=0)

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: Optional[str]) -> Optional[str]:
        return _strip_required(v) if v is not None else v


class TaskResponse(BaseModel):
    """Schema for full task response."""

    id: int
    title: str
    description: Optional[str] = None
    status: TaskStatus
    priority: TaskPriority
    project_id: Optional[int] = None
    assigned_user_id: Optional[str] = None
    created_user_id: Optional[str] = None
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    is_overdue: bool = Field(False, description="True if due_date is in the past and status is not concluida/cancelada")
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class ProjectSummary(BaseModel):
    """Lightweight project reference embedded in task responses."""

    id: int
    name: str
    status: ProjectStatus

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class UserSummary(BaseModel):
    """Lightweight user reference embedded in other responses."""

    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class CommentCreate(BaseModel):
    """Schema for adding a comment to a task."""

    content: str = Field(..., min_length=1, description="Comment text")

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, v: str) -> str:
        return _strip_required(v)


class CommentResponse(BaseModel):
    """Schema for task comment response."""

    id: int
    task_id: int
    user_id: str
    content: str
    created_at: datetime
    user: Optional[UserSummary] = None

    model_config = ConfigDict(from_attributes=True)


class TaskHistoryResponse(BaseModel):
    """Schema for task history entries."""

    id: int
    task_id: int
    user_id: Optional[str] = None
    changes: str
    created_at: datetime
    user: Optional[UserSummary] = None

    model_config = ConfigDict(from_attributes=True)


class FileResponse(BaseModel):
    """Schema for uploaded file metadata."""

    id: int
    filename: str
    original_name: str
    mime_type: str
    size: int
    task_id: Optional[int] = None
    project_id: Optional[int] = None
    uploaded_user_id: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TimerStart(BaseModel):
    """Schema for starting a timer on a task."""

    task_id: int
    description: Optional[str] = None


class TimeEntryResponse(BaseModel):
    """Schema for time entry response."""

    id: int
    task_id: int
    user_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: Optional[int] = Field(None, description="Minutes, set when the entry is stopped")
    description: Optional[str] = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class TaskWithDetails(TaskResponse):
    """Task with its project, people and child collections resolved."""

    project: Optional[ProjectSummary] = None
    assigned_user: Optional[UserSummary] = None
    created_user: Optional[UserSummary] = None
    comments: List[CommentResponse] = Field(default_factory=list)
    files: List[FileResponse] = Field(default_factory=list)
    time_entries: List[TimeEntryResponse] = Field(default_factory=list)


class ProjectWithTasks(ProjectResponse):
    """Project with its tasks and attached files."""

    tasks: List[TaskResponse] = Field(default_factory=list)
    files: List[FileResponse] = Field(default_factory=list)


# Notification Schemas

class NotificationResponse(BaseModel):
    """Schema for notification response."""

    id: int
    user_id: str
    title: str
    message: str
    type: NotificationType
    is_read: bool
    related_task_id: Optional[int] = None
    related_project_id: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


# Dashboard / Reporting Schemas

class DashboardStats(BaseModel):
    """Firm-wide counters shown on the dashboard."""

    total_tasks: int
    completed_tasks: int
    active_projects: int
    total_hours: float
    efficiency: float


class TaskFilter(BaseModel):
    """
    Report/listing filter. Every field is optional and narrows the result
    with logical AND; empty strings are treated as absent.
    """

    date_from: Optional[date] = Field(None, description="Inclusive lower bound on created_at (start of day)")
    date_to: Optional[date] = Field(None, description="Inclusive upper bound on created_at (end of day)")
    priority: Optional[TaskPriority] = None
    status: Optional[TaskStatus] = None
    user_id: Optional[str] = Field(None, description="Assignee user id")
    project_id: Optional[int] = None
    search_text: Optional[str] = Field(None, description="Case-insensitive match on title, description and project name")

    @model_validator(mode="before")
    @classmethod
    def blank_strings_to_none(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {
                key: (None if isinstance(value, str) and not value.strip() else value)
                for key, value in data.items()
            }
        return data

    def is_empty(self) -> bool:
        return all(value is None for value in self.model_dump().values())


class ReportRequest(BaseModel):
    """Schema for generating a PDF report."""

    filter: TaskFilter = Field(default_factory=TaskFilter)
    export_timestamp: Optional[datetime] = Field(None, description="Timestamp printed on the report (defaults to now)")

    @field_validator("export_timestamp")
    @classmethod
    def to_naive_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        # Stored timestamps are naive UTC
        if v is not None and v.tzinfo is not None:
            return v.astimezone(timezone.utc).replace(tzinfo=None)
        return v


# Search Schemas

class SearchRequest(BaseModel):
    """Schema for natural-language task search."""

    query: str = Field(..., description="Free-text query")

    @field_validator("query")
    @classmethod
    def query_not_blank(cls, v: str) -> str:
        return _strip_required(v)


class SearchResponse(BaseModel):
    """Ranked search result."""

    query: str
    source: str = Field(description="'assistant' when the language model ranked the tasks, 'keyword' for the fallback")
    tasks: List[TaskResponse]


# Error Schema

class ErrorResponse(BaseModel):
    """Structured error body returned for every domain error."""

    kind: str
    message: str
    field: Optional[str] = None

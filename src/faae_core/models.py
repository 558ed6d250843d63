"""SQLAlchemy database models."""
from datetime import datetime
import enum

from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    Date,
    DateTime,
    ForeignKey,
    Enum,
    Boolean,
    Numeric,
    Index,
    text,
)
from sqlalchemy.orm import relationship, declarative_base

# Base class for all models
Base = declarative_base()


def _enum_column(enum_cls, name: str) -> Enum:
    # Serialize enum values (lowercase) instead of names (UPPERCASE)
    return Enum(enum_cls, name=name, values_callable=lambda obj: [e.value for e in obj])


class UserRole(str, enum.Enum):
    """Role of a user inside the firm."""

    ADMIN = "admin"
    PROJECT_MANAGER = "project_manager"
    SENIOR_ARCHITECT = "senior_architect"
    JUNIOR_ARCHITECT = "junior_architect"
    BUDGET_SPECIALIST = "budget_specialist"
    COLLABORATOR = "collaborator"


class ProjectStatus(str, enum.Enum):
    """Project status enum."""

    ACTIVE = "active"
    COMPLETED = "completed"
    ON_HOLD = "on_hold"
    CANCELLED = "cancelled"


class ProjectType(str, enum.Enum):
    """Kind of architecture work a project covers."""

    STAND_IMOBILIARIO = "stand_imobiliario"
    PROJETO_ARQUITETURA = "projeto_arquitetura"
    PROJETO_ESTRUTURAL = "projeto_estrutural"
    REFORMA = "reforma"
    MANUTENCAO = "manutencao"


class ProjectStage(str, enum.Enum):
    """Advisory project stage.

    Listed in the order a project usually moves through them. The order is
    informational only: any stage may be set at any time.
    """

    BRIEFING = "briefing"
    CONCEITO = "conceito"
    PROJETO = "projeto"
    APROVACAO = "aprovacao"
    ORCAMENTO = "orcamento"
    PRODUCAO = "producao"
    ENTREGA = "entrega"


class TaskStatus(str, enum.Enum):
    """Task lifecycle status enum."""

    ABERTA = "aberta"  # Not yet started
    EM_ANDAMENTO = "em_andamento"  # Currently being worked on
    CONCLUIDA = "concluida"  # Successfully finished
    CANCELADA = "cancelada"  # No longer needed


class TaskPriority(str, enum.Enum):
    """Task priority enum."""

    BAIXA = "baixa"
    MEDIA = "media"
    ALTA = "alta"
    CRITICA = "critica"


class NotificationType(str, enum.Enum):
    """Notification severity enum."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"


class User(Base):
    """
    User account mirrored from the identity provider.

    The id is the provider's opaque subject. Users are never hard-deleted:
    history and comments keep pointing at them, so deactivation flips
    ``is_active`` instead.
    """

    __tablename__ = "users"

    id = Column(String(255), primary_key=True)
    email = Column(String(255), unique=True, nullable=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    profile_image_url = Column(String(500), nullable=True)
    role = Column(_enum_column(UserRole, "userrole"), nullable=False, default=UserRole.COLLABORATOR)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part) or (self.email or self.id)

    def __repr__(self) -> str:
        return f"<User {self.id} ({self.role.value if self.role else None})>"


class Project(Base):
    """Container for tasks with its own client, budget and stage metadata."""

    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(_enum_column(ProjectStatus, "projectstatus"), nullable=False, default=ProjectStatus.ACTIVE, index=True)
    project_type = Column(_enum_column(ProjectType, "projecttype"), nullable=True)
    stage = Column(_enum_column(ProjectStage, "projectstage"), nullable=True)
    priority = Column(_enum_column(TaskPriority, "projectpriority"), nullable=False, default=TaskPriority.MEDIA)

    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)

    # Client contact
    client_name = Column(String(255), nullable=True)
    client_email = Column(String(255), nullable=True)
    client_phone = Column(String(50), nullable=True)

    budget = Column(Numeric(12, 2), nullable=True)
    estimated_hours = Column(Numeric(7, 2), nullable=True)
    actual_hours = Column(Numeric(7, 2), nullable=True)
    location = Column(String(255), nullable=True)
    area = Column(Numeric(10, 2), nullable=True)  # square meters

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    tasks = relationship(
        "Task",
        back_populates="project",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Task.created_at.desc()",
    )
    files = relationship("File", back_populates="project", cascade="all, delete-orphan", passive_deletes=True)
    notifications = relationship("Notification", back_populates="related_project", cascade="all, delete-orphan", passive_deletes=True)

    def __repr__(self) -> str:
        return f"<Project {self.id}: {self.name[:30]}>"


class Task(Base):
    """Unit of work, optionally inside a project, with a four-state lifecycle.

    ``completed_at`` is set exactly when ``status`` is ``concluida``; the
    lifecycle service keeps that true, the table does not.
    """

    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(_enum_column(TaskStatus, "taskstatus"), nullable=False, default=TaskStatus.ABERTA, index=True)
    priority = Column(_enum_column(TaskPriority, "taskpriority"), nullable=False, default=TaskPriority.MEDIA, index=True)

    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=True, index=True)
    assigned_user_id = Column(String(255), ForeignKey("users.id"), nullable=True, index=True)
    created_user_id = Column(String(255), ForeignKey("users.id"), nullable=True)

    start_date = Column(Date, nullable=True)
    due_date = Column(Date, nullable=True, index=True)
    estimated_hours = Column(Numeric(5, 2), nullable=True)
    actual_hours = Column(Numeric(5, 2), nullable=True)

    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    project = relationship("Project", back_populates="tasks")
    assigned_user = relationship("User", foreign_keys=[assigned_user_id])
    created_user = relationship("User", foreign_keys=[created_user_id])

    comments = relationship(
        "TaskComment", back_populates="task", cascade="all, delete-orphan",
        passive_deletes=True, order_by="TaskComment.created_at",
    )
    history = relationship(
        "TaskHistory", back_populates="task", cascade="all, delete-orphan",
        passive_deletes=True, order_by="TaskHistory.created_at.desc()",
    )
    files = relationship("File", back_populates="task", cascade="all, delete-orphan", passive_deletes=True)
    time_entries = relationship("TimeEntry", back_populates="task", cascade="all, delete-orphan", passive_deletes=True)
    notifications = relationship("Notification", back_populates="related_task", cascade="all, delete-orphan", passive_deletes=True)

    def __repr__(self) -> str:
        return f"<Task {self.id}: {self.title[:30]}>"


class TaskComment(Base):
    """Append-only comment on a task."""

    __tablename__ = "task_comments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(255), ForeignKey("users.id"), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    task = relationship("Task", back_populates="comments")
    user = relationship("User")


class TaskHistory(Base):
    """Immutable audit entry describing a change made to a task."""

    __tablename__ = "task_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(255), ForeignKey("users.id"), nullable=True)  # actor
    changes = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    task = relationship("Task", back_populates="history")
    user = relationship("User")

    def __repr__(self) -> str:
        return f"<TaskHistory {self.task_id}: {self.changes[:40]}>"


class File(Base):
    """Metadata of an uploaded file; the bytes live in file storage."""

    __tablename__ = "files"

    id = Column(Integer, primary_key=True, autoincrement=True)
    filename = Column(String(255), nullable=False)  # storage-assigned
    original_name = Column(String(255), nullable=False)
    mime_type = Column(String(100), nullable=False)
    size = Column(Integer, nullable=False)  # bytes
    path = Column(String(500), nullable=False)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=True, index=True)
    uploaded_user_id = Column(String(255), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    task = relationship("Task", back_populates="files")
    project = relationship("Project", back_populates="files")
    uploaded_user = relationship("User")


class Notification(Base):
    """Message addressed to a single user; only ``is_read`` ever changes."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(_enum_column(NotificationType, "notificationtype"), nullable=False, default=NotificationType.INFO)
    is_read = Column(Boolean, nullable=False, default=False)
    related_task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=True)
    related_project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    related_task = relationship("Task", back_populates="notifications")
    related_project = relationship("Project", back_populates="notifications")


class TimeEntry(Base):
    """Time tracking interval for a user on a task.

    At most one entry per user may be active; the partial unique index
    below rejects a second one at the database level.
    """

    __tablename__ = "time_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(255), ForeignKey("users.id"), nullable=False, index=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=True)
    duration = Column(Integer, nullable=True)  # minutes, set at stop time
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    task = relationship("Task", back_populates="time_entries")
    user = relationship("User")

    __table_args__ = (
        Index(
            "uq_time_entries_one_active_per_user",
            "user_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )

    def __repr__(self) -> str:
        return f"<TimeEntry {self.id} user={self.user_id} active={self.is_active}>"

"""CRUD operations and the task lifecycle rules."""
import logging
import math
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from . import fanout, models, reporting, schemas
from .errors import NotFoundError, StorageError, ValidationError
from .file_storage import FileStorage
from .permissions import can_delete_project, can_manage_users
from .search import SearchAssistant, SearchResult
from .state_machine import resolve_completed_at, is_completion_transition

logger = logging.getLogger("faae-core.crud")

TASK_CREATED_HISTORY = "Tarefa criada"

# Fields a patch may not null out
NON_NULLABLE_TASK_FIELDS = ("title", "status", "priority")
NON_NULLABLE_PROJECT_FIELDS = ("name", "status", "priority")


def _utcnow() -> datetime:
    return datetime.utcnow()


def _history_value(value: Any) -> str:
    if value is None:
        return ""
    return str(getattr(value, "value", value))


def _unchanged(old: Any, new: Any) -> bool:
    # Numeric columns load as Decimal while patches carry floats
    if isinstance(old, Decimal) and isinstance(new, float):
        return old == Decimal(str(new))
    return old == new


# User operations

def get_user(db: Session, user_id: str) -> Optional[models.User]:
    return db.get(models.User, user_id)


def _require_user(db: Session, user_id: str, field: Optional[str] = None) -> models.User:
    user = db.get(models.User, user_id)
    if user is None:
        raise NotFoundError("User", user_id, field=field)
    return user


def upsert_user(db: Session, claims: schemas.UserClaims) -> models.User:
    """
    Create or refresh a user from identity claims.

    New users start as collaborators. Existing users get their profile fields
    refreshed; role and activation are never touched here.
    """
    user = db.get(models.User, claims.sub)
    if user is None:
        user = models.User(
            id=claims.sub,
            email=claims.email,
            first_name=claims.first_name,
            last_name=claims.last_name,
            profile_image_url=claims.profile_image_url,
            role=models.UserRole.COLLABORATOR,
            is_active=True,
        )
        db.add(user)
        logger.info(f"Created user {claims.sub} on first login")
    else:
        user.email = claims.email
        user.first_name = claims.first_name
        user.last_name = claims.last_name
        user.profile_image_url = claims.profile_image_url
        logger.debug(f"Refreshed profile of user {claims.sub}")

    db.commit()
    db.refresh(user)
    return user


def list_users_with_stats(db: Session, actor_id: str) -> list[tuple[models.User, schemas.UserStats]]:
    """All users with their task counters (admin only)."""
    can_manage_users(db, actor_id)
    users = db.query(models.User).order_by(models.User.created_at.desc()).all()
    tasks = db.query(models.Task).all()
    entries = db.query(models.TimeEntry).all()
    return [(user, reporting.compute_user_stats(user.id, tasks, entries)) for user in users]


def update_user_role(db: Session, actor_id: str, user_id: str, role: Any) -> models.User:
    """
    Change a user's role (admin only).

    Raises:
        PermissionDeniedError: Actor is not an admin
        ValidationError: Role outside the enumerated set
        NotFoundError: Target user does not exist
    """
    can_manage_users(db, actor_id)
    try:
        new_role = models.UserRole(role)
    except ValueError:
        allowed = ", ".join(r.value for r in models.UserRole)
        raise ValidationError(f"Invalid role '{role}'. Allowed: {allowed}", field="role")

    user = _require_user(db, user_id, field="user_id")
    old_role = user.role
    user.role = new_role
    db.commit()
    db.refresh(user)
    logger.info(f"User {actor_id} changed role of {user_id}: {old_role.value} → {new_role.value}")
    return user


def set_user_active(db: Session, actor_id: str, user_id: str, is_active: bool) -> models.User:
    """Activate or soft-deactivate a user (admin only). Users are never hard-deleted."""
    can_manage_users(db, actor_id)
    user = _require_user(db, user_id, field="user_id")
    user.is_active = is_active
    db.commit()
    db.refresh(user)
    logger.info(f"User {actor_id} set {user_id} active={is_active}")
    return user


# Notification operations

def _add_notification(
    db: Session,
    user_id: str,
    title: str,
    message: str,
    notification_type: models.NotificationType,
    related_task_id: Optional[int] = None,
    related_project_id: Optional[int] = None,
) -> models.Notification:
    notification = models.Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=notification_type,
        is_read=False,
        related_task_id=related_task_id,
        related_project_id=related_project_id,
    )
    db.add(notification)
    return notification


def _publish_notifications(notifications: list[models.Notification]) -> None:
    """Push committed notifications to their recipients' scopes."""
    for notification in notifications:
        payload = schemas.NotificationResponse.model_validate(notification).model_dump(mode="json")
        fanout.publish(
            fanout.EventType.NOTIFICATION_CREATED,
            payload,
            scope=fanout.user_scope(notification.user_id),
        )


def list_notifications(db: Session, user_id: str) -> list[models.Notification]:
    """Notifications addressed to a user, newest first."""
    return (
        db.query(models.Notification)
        .filter(models.Notification.user_id == user_id)
        .order_by(models.Notification.created_at.desc(), models.Notification.id.desc())
        .all()
    )


def mark_notification_read(db: Session, notification_id: int, user_id: str) -> models.Notification:
    """Mark one of the user's notifications as read; others' notifications are NotFound."""
    notification = db.get(models.Notification, notification_id)
    if notification is None or notification.user_id != user_id:
        raise NotFoundError("Notification", notification_id)
    if not notification.is_read:
        notification.is_read = True
        db.commit()
        db.refresh(notification)
    return notification


# Project operations

def _require_project(db: Session, project_id: int, field: Optional[str] = None) -> models.Project:
    project = db.get(models.Project, project_id)
    if project is None:
        raise NotFoundError("Project", project_id, field=field)
    return project


def create_project(db: Session, project_data: schemas.ProjectCreate, user_id: Optional[str] = None) -> models.Project:
    project = models.Project(**project_data.model_dump())
    db.add(project)
    db.commit()
    db.refresh(project)
    logger.info(f"Created project {project.id}: {project.name} (by {user_id})")
    return project


def get_project(db: Session, project_id: int) -> models.Project:
    """
    Get a project with its tasks and files loaded.

    Raises:
        NotFoundError: Project does not exist
    """
    project = (
        db.query(models.Project)
        .options(selectinload(models.Project.tasks), selectinload(models.Project.files))
        .filter(models.Project.id == project_id)
        .first()
    )
    if project is None:
        raise NotFoundError("Project", project_id)
    return project


def list_projects(db: Session) -> list[models.Project]:
    """All projects, newest first, with tasks loaded."""
    return (
        db.query(models.Project)
        .options(selectinload(models.Project.tasks))
        .order_by(models.Project.created_at.desc(), models.Project.id.desc())
        .all()
    )


def update_project(
    db: Session,
    project_id: int,
    project_update: schemas.ProjectUpdate,
    user_id: Optional[str] = None,
) -> models.Project:
    """
    Apply a partial update to a project.

    Stage is advisory: any stage may be set at any time.
    """
    project = _require_project(db, project_id)
    patch = project_update.model_dump(exclude_unset=True)

    changed = []
    for field_name, value in patch.items():
        if value is None and field_name in NON_NULLABLE_PROJECT_FIELDS:
            raise ValidationError(f"'{field_name}' cannot be null", field=field_name)
        if not _unchanged(getattr(project, field_name), value):
            setattr(project, field_name, value)
            changed.append(field_name)

    if changed:
        db.commit()
        logger.info(f"Updated project {project_id} fields {changed} (by {user_id})")
    else:
        logger.debug(f"No changes for project {project_id}")
    return get_project(db, project_id)


def _delete_stored_files(storage: FileStorage, files: list[models.File]) -> None:
    for stored in files:
        storage.delete(stored.path)


def delete_project(db: Session, project_id: int, actor_id: str, storage: FileStorage) -> None:
    """
    Delete a project and everything under it (admin only).

    Stored objects of the project's files and of its tasks' files are removed
    before the rows are deleted.

    Raises:
        PermissionDeniedError: Actor is not an admin
        NotFoundError: Project does not exist
        StorageError: Storage removal failed, or rows could not be deleted
            after their storage objects were removed
    """
    can_delete_project(db, actor_id)
    project = _require_project(db, project_id)

    files = (
        db.query(models.File)
        .outerjoin(models.Task, models.File.task_id == models.Task.id)
        .filter((models.File.project_id == project_id) | (models.Task.project_id == project_id))
        .all()
    )
    _delete_stored_files(storage, files)

    try:
        db.delete(project)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Project {project_id} rows kept after its files were removed from storage: {e}", exc_info=True)
        raise StorageError(
            f"Files of project {project_id} were removed from storage but the project could not be deleted"
        )
    logger.info(f"Deleted project {project_id} ({len(files)} files) by {actor_id}")


def get_project_health(db: Session, project_id: int, now: Optional[datetime] = None) -> dict:
    project = get_project(db, project_id)
    analysis = reporting.analyze_project_health(project.tasks, now or _utcnow())
    return {"project_id": project_id, **analysis}


# Task operations

def get_task(db: Session, task_id: int) -> models.Task:
    """
    Get a task with project, people and child collections loaded.

    Raises:
        NotFoundError: Task does not exist
    """
    task = (
        db.query(models.Task)
        .options(
            joinedload(models.Task.project),
            joinedload(models.Task.assigned_user),
            joinedload(models.Task.created_user),
            selectinload(models.Task.comments).joinedload(models.TaskComment.user),
            selectinload(models.Task.files),
            selectinload(models.Task.time_entries),
        )
        .filter(models.Task.id == task_id)
        .first()
    )
    if task is None:
        raise NotFoundError("Task", task_id)
    return task


def _require_task(db: Session, task_id: int, field: Optional[str] = None) -> models.Task:
    task = db.get(models.Task, task_id)
    if task is None:
        raise NotFoundError("Task", task_id, field=field)
    return task


def list_tasks(
    db: Session,
    user_id: Optional[str] = None,
    project_id: Optional[int] = None,
) -> list[models.Task]:
    """
    Tasks newest first, narrowed to an assignee or a project when given.

    Unfiltered when neither is given.
    """
    query = db.query(models.Task).options(
        joinedload(models.Task.project),
        joinedload(models.Task.assigned_user),
        joinedload(models.Task.created_user),
        selectinload(models.Task.comments).joinedload(models.TaskComment.user),
        selectinload(models.Task.files),
        selectinload(models.Task.time_entries),
    )
    if user_id is not None:
        query = query.filter(models.Task.assigned_user_id == user_id)
    if project_id is not None:
        query = query.filter(models.Task.project_id == project_id)
    return query.order_by(models.Task.created_at.desc(), models.Task.id.desc()).all()


def create_task(
    db: Session,
    task_data: schemas.TaskCreate,
    user_id: str,
    now: Optional[datetime] = None,
) -> models.Task:
    """
    Create a new task.

    Records a "Tarefa criada" history entry and notifies the assignee when
    the task is assigned to someone other than its creator.

    Args:
        db: Database session
        task_data: Task creation data
        user_id: Id of the user creating the task
        now: Creation time (defaults to the current UTC time)

    Returns:
        Created Task object

    Raises:
        NotFoundError: Referenced project or assignee does not exist
    """
    now = now or _utcnow()
    if task_data.project_id is not None:
        _require_project(db, task_data.project_id, field="project_id")
    if task_data.assigned_user_id is not None:
        _require_user(db, task_data.assigned_user_id, field="assigned_user_id")

    task = models.Task(
        **task_data.model_dump(),
        created_user_id=user_id,
        completed_at=resolve_completed_at(None, task_data.status, None, now),
        created_at=now,
        updated_at=now,
    )
    db.add(task)
    db.flush()  # Get task ID for history and notification

    db.add(models.TaskHistory(task_id=task.id, user_id=user_id, changes=TASK_CREATED_HISTORY, created_at=now))

    notifications = []
    if task.assigned_user_id and task.assigned_user_id != user_id:
        notifications.append(_add_notification(
            db,
            user_id=task.assigned_user_id,
            title="Nova tarefa atribuída",
            message=f"Você foi atribuído à tarefa: {task.title}",
            notification_type=models.NotificationType.INFO,
            related_task_id=task.id,
        ))

    db.commit()
    db.refresh(task)
    logger.info(f"Created task {task.id}: {task.title}")
    _publish_notifications(notifications)
    return task


def update_task(
    db: Session,
    task_id: int,
    task_update: schemas.TaskUpdate,
    user_id: str,
    now: Optional[datetime] = None,
) -> models.Task:
    """
    Apply a partial update to a task.

    Completion is stamped when the status enters ``concluida`` from another
    status and cleared when it leaves; re-sending the current status keeps
    the stamp. A history entry listing ``field: 'old' → 'new'`` is written
    when anything changed.

    Raises:
        NotFoundError: Task, project or assignee does not exist
        ValidationError: A required field was set to null
    """
    now = now or _utcnow()
    task = _require_task(db, task_id)
    patch = task_update.model_dump(exclude_unset=True)

    for field_name in NON_NULLABLE_TASK_FIELDS:
        if field_name in patch and patch[field_name] is None:
            raise ValidationError(f"'{field_name}' cannot be null", field=field_name)
    if patch.get("project_id") is not None:
        _require_project(db, patch["project_id"], field="project_id")
    if patch.get("assigned_user_id") is not None:
        _require_user(db, patch["assigned_user_id"], field="assigned_user_id")

    previous_status = task.status
    previous_assignee = task.assigned_user_id

    # Track changes for history
    changes = []
    for field_name, value in patch.items():
        old_value = getattr(task, field_name)
        if _unchanged(old_value, value):
            continue
        changes.append(f"{field_name}: '{_history_value(old_value)}' → '{_history_value(value)}'")
        setattr(task, field_name, value)

    if not changes:
        logger.debug(f"No changes for task {task_id}")
        return task

    task.completed_at = resolve_completed_at(previous_status, task.status, task.completed_at, now)
    task.updated_at = now
    db.add(models.TaskHistory(task_id=task.id, user_id=user_id, changes=", ".join(changes), created_at=now))

    notifications = []
    if is_completion_transition(previous_status, task.status) and task.assigned_user_id:
        notifications.append(_add_notification(
            db,
            user_id=task.assigned_user_id,
            title="Tarefa concluída",
            message=f"Parabéns! Você concluiu a tarefa: {task.title}",
            notification_type=models.NotificationType.SUCCESS,
            related_task_id=task.id,
        ))
    if task.assigned_user_id and task.assigned_user_id != previous_assignee and task.assigned_user_id != user_id:
        notifications.append(_add_notification(
            db,
            user_id=task.assigned_user_id,
            title="Nova tarefa atribuída",
            message=f"Você foi atribuído à tarefa: {task.title}",
            notification_type=models.NotificationType.INFO,
            related_task_id=task.id,
        ))

    db.commit()
    db.refresh(task)
    logger.info(f"Updated task {task_id}: {len(changes)} field(s) changed by {user_id}")
    _publish_notifications(notifications)
    return task


def delete_task(db: Session, task_id: int, storage: FileStorage, user_id: Optional[str] = None) -> None:
    """
    Delete a task with its comments, history, files, time entries and notifications.

    Raises:
        NotFoundError: Task does not exist
        StorageError: Storage removal failed, or the task could not be deleted
            after its files were removed from storage
    """
    task = _require_task(db, task_id)
    files = db.query(models.File).filter(models.File.task_id == task_id).all()
    _delete_stored_files(storage, files)

    try:
        db.delete(task)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Task {task_id} kept after its files were removed from storage: {e}", exc_info=True)
        raise StorageError(f"Files of task {task_id} were removed from storage but the task could not be deleted")
    logger.info(f"Deleted task {task_id} ({len(files)} files) by {user_id}")


def add_comment(db: Session, task_id: int, user_id: str, content: str) -> models.TaskComment:
    """
    Append a comment to a task.

    Raises:
        ValidationError: Blank content
        NotFoundError: Task does not exist
    """
    if not content or not content.strip():
        raise ValidationError("Comment content must not be empty", field="content")
    _require_task(db, task_id)

    comment = models.TaskComment(task_id=task_id, user_id=user_id, content=content.strip())
    db.add(comment)
    db.commit()
    db.refresh(comment)
    logger.info(f"Added comment {comment.id} to task {task_id}")
    return comment


def list_comments(db: Session, task_id: int) -> list[models.TaskComment]:
    """Comments of a task, oldest first."""
    _require_task(db, task_id)
    return (
        db.query(models.TaskComment)
        .options(joinedload(models.TaskComment.user))
        .filter(models.TaskComment.task_id == task_id)
        .order_by(models.TaskComment.created_at.asc(), models.TaskComment.id.asc())
        .all()
    )


def get_task_history(db: Session, task_id: int) -> list[models.TaskHistory]:
    """History entries of a task, newest first."""
    _require_task(db, task_id)
    return (
        db.query(models.TaskHistory)
        .options(joinedload(models.TaskHistory.user))
        .filter(models.TaskHistory.task_id == task_id)
        .order_by(models.TaskHistory.created_at.desc(), models.TaskHistory.id.desc())
        .all()
    )


# Time tracking

def _elapsed_minutes(start: datetime, end: datetime) -> int:
    return max(0, math.floor((end - start).total_seconds() / 60))


def _close_entry(entry: models.TimeEntry, now: datetime) -> None:
    entry.end_time = now
    entry.duration = _elapsed_minutes(entry.start_time, now)
    entry.is_active = False


def _active_entry_query(db: Session, user_id: str):
    return db.query(models.TimeEntry).filter(
        models.TimeEntry.user_id == user_id,
        models.TimeEntry.is_active.is_(True),
    )


def get_active_timer(db: Session, user_id: str) -> Optional[models.TimeEntry]:
    return _active_entry_query(db, user_id).first()


def _start_timer_once(
    db: Session,
    user_id: str,
    task_id: int,
    description: Optional[str],
    now: datetime,
) -> models.TimeEntry:
    active = _active_entry_query(db, user_id).with_for_update().first()
    if active is not None:
        _close_entry(active, now)
        db.flush()  # Close before opening so the unique index never sees two
        logger.info(f"Closed active time entry {active.id} of user {user_id} ({active.duration} min)")

    entry = models.TimeEntry(
        task_id=task_id,
        user_id=user_id,
        start_time=now,
        description=description,
        is_active=True,
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry


def start_timer(
    db: Session,
    user_id: str,
    task_id: int,
    description: Optional[str] = None,
    now: Optional[datetime] = None,
) -> models.TimeEntry:
    """
    Start tracking time on a task, closing any active entry of the user first.

    Closing and opening happen in one transaction. If a concurrent start wins
    the race on the one-active-entry index, the whole unit is re-run once.

    Raises:
        NotFoundError: Task or user does not exist
    """
    now = now or _utcnow()
    _require_task(db, task_id, field="task_id")
    _require_user(db, user_id, field="user_id")

    try:
        entry = _start_timer_once(db, user_id, task_id, description, now)
    except IntegrityError:
        db.rollback()
        logger.warning(f"Concurrent timer start for user {user_id}, retrying once")
        entry = _start_timer_once(db, user_id, task_id, description, now)

    logger.info(f"Started time entry {entry.id} for user {user_id} on task {task_id}")
    return entry


def stop_timer(db: Session, user_id: str, now: Optional[datetime] = None) -> models.TimeEntry:
    """
    Stop the user's active entry, recording its duration in whole minutes.

    Raises:
        NotFoundError: The user has no active entry
    """
    now = now or _utcnow()
    entry = _active_entry_query(db, user_id).with_for_update().first()
    if entry is None:
        raise NotFoundError("Active time entry", user_id)

    _close_entry(entry, now)
    db.commit()
    db.refresh(entry)
    logger.info(f"Stopped time entry {entry.id} of user {user_id} ({entry.duration} min)")
    return entry


# File operations

def create_file(
    db: Session,
    storage: FileStorage,
    content: bytes,
    original_name: str,
    mime_type: Optional[str],
    uploaded_user_id: str,
    task_id: Optional[int] = None,
    project_id: Optional[int] = None,
) -> models.File:
    """
    Store an upload and record its metadata.

    Raises:
        NotFoundError: Referenced task or project does not exist
        ValidationError: Empty name or file over the size limit
        StorageError: Bytes could not be written or metadata could not be saved
    """
    if task_id is not None:
        _require_task(db, task_id, field="task_id")
    if project_id is not None:
        _require_project(db, project_id, field="project_id")

    stored = storage.save(content, original_name)
    record = models.File(
        filename=stored.filename,
        original_name=original_name,
        mime_type=mime_type or "application/octet-stream",
        size=stored.size,
        path=stored.path,
        task_id=task_id,
        project_id=project_id,
        uploaded_user_id=uploaded_user_id,
    )
    try:
        db.add(record)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to save metadata for {stored.filename}: {e}", exc_info=True)
        storage.delete(stored.path)
        raise StorageError(f"Could not save metadata for {original_name}")

    db.refresh(record)
    logger.info(f"Uploaded file {record.id}: {record.filename}")
    return record


def get_file(db: Session, file_id: int) -> models.File:
    record = db.get(models.File, file_id)
    if record is None:
        raise NotFoundError("File", file_id)
    return record


def list_files(db: Session, task_id: Optional[int] = None, project_id: Optional[int] = None) -> list[models.File]:
    """Files newest first, narrowed to a task or a project when given."""
    query = db.query(models.File)
    if task_id is not None:
        query = query.filter(models.File.task_id == task_id)
    if project_id is not None:
        query = query.filter(models.File.project_id == project_id)
    return query.order_by(models.File.created_at.desc(), models.File.id.desc()).all()


def delete_file(db: Session, storage: FileStorage, file_id: int) -> None:
    """
    Delete a file: storage object first, metadata row after.

    Raises:
        NotFoundError: File does not exist
        StorageError: Storage removal failed (metadata kept), or metadata
            could not be deleted after the storage object was removed
    """
    record = get_file(db, file_id)
    storage.delete(record.path)

    try:
        db.delete(record)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Metadata of file {file_id} kept after its storage object was removed: {e}", exc_info=True)
        raise StorageError(
            f"File {file_id} was removed from storage but its metadata could not be deleted",
            field="file_id",
        )
    logger.info(f"Deleted file {file_id}: {record.filename}")


# Aggregation

def get_dashboard_stats(db: Session) -> schemas.DashboardStats:
    return reporting.compute_dashboard_stats(
        db.query(models.Task).all(),
        db.query(models.Project).all(),
        db.query(models.TimeEntry).all(),
    )


def get_user_stats(db: Session, user_id: str) -> schemas.UserStats:
    return reporting.compute_user_stats(
        user_id,
        db.query(models.Task).filter(models.Task.assigned_user_id == user_id).all(),
        db.query(models.TimeEntry).join(models.Task).filter(models.Task.assigned_user_id == user_id).all(),
    )


def generate_report(
    db: Session,
    task_filter: schemas.TaskFilter,
    exported_at: datetime,
    company_name: str,
) -> reporting.ReportDocument:
    """Build a report over the current store contents."""
    return reporting.build_report(
        projects=db.query(models.Project).order_by(models.Project.created_at.desc(), models.Project.id.desc()).all(),
        tasks=list_tasks(db),
        users=db.query(models.User).order_by(models.User.created_at.asc()).all(),
        task_filter=task_filter,
        exported_at=exported_at,
        company_name=company_name,
    )


def search_tasks(db: Session, query: str, assistant: SearchAssistant) -> SearchResult:
    """Rank the current task set against a free-text query."""
    return assistant.search(query, list_tasks(db))

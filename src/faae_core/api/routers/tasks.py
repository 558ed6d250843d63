"""Task API endpoints."""
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from faae_core import crud, schemas, models, fanout, reporting
from faae_core.api.dependencies import get_current_user, get_storage
from faae_core.database import get_db
from faae_core.file_storage import FileStorage

logger = logging.getLogger("faae-core.tasks")

router = APIRouter(tags=["tasks"])


def task_to_response(task: models.Task, now: Optional[datetime] = None) -> schemas.TaskResponse:
    """Convert Task model to TaskResponse schema."""
    response = schemas.TaskResponse.model_validate(task)
    response.is_overdue = reporting.is_overdue(task, now or datetime.utcnow())
    return response


def task_to_details(task: models.Task) -> schemas.TaskWithDetails:
    """Convert a fully loaded Task model to TaskWithDetails."""
    details = schemas.TaskWithDetails.model_validate(task)
    details.is_overdue = reporting.is_overdue(task, datetime.utcnow())
    return details


def _event_payload(task: models.Task) -> dict:
    return task_to_response(task).model_dump(mode="json")


@router.get("/", response_model=list[schemas.TaskWithDetails])
def list_tasks(
    user_id: Optional[str] = Query(None, description="Only tasks assigned to this user"),
    project_id: Optional[int] = Query(None, description="Only tasks of this project"),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """
    List tasks, newest first.

    - **user_id**: Filter by assignee
    - **project_id**: Filter by project

    Unfiltered when neither is given.
    """
    return [task_to_details(t) for t in crud.list_tasks(db, user_id=user_id, project_id=project_id)]


@router.post("/", response_model=schemas.TaskResponse, status_code=201)
def create_task(
    task_data: schemas.TaskCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """
    Create a new task.

    - **title**: Task title (required)
    - **status**: aberta, em_andamento, concluida or cancelada (default: aberta)
    - **priority**: baixa, media, alta or critica (default: media)
    - **project_id**: Owning project (optional)
    - **assigned_user_id**: Assignee, null for unassigned
    """
    task = crud.create_task(db, task_data, current_user.id)
    fanout.publish(fanout.EventType.TASK_CREATED, _event_payload(task))
    return task_to_response(task)


@router.get("/{task_id}", response_model=schemas.TaskWithDetails)
def get_task(
    task_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """Get a task with its project, people, comments, files and time entries."""
    return task_to_details(crud.get_task(db, task_id))


@router.patch("/{task_id}", response_model=schemas.TaskResponse)
def update_task(
    task_id: int,
    task_update: schemas.TaskUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """
    Update a task. Only the fields sent are changed.

    Moving into concluida stamps completed_at; moving out clears it.
    """
    task = crud.update_task(db, task_id, task_update, current_user.id)
    fanout.publish(fanout.EventType.TASK_UPDATED, _event_payload(task))
    return task_to_response(task)


@router.delete("/{task_id}", status_code=204)
def delete_task(
    task_id: int,
    db: Session = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
    current_user: models.User = Depends(get_current_user),
):
    """Delete a task with its comments, history, files, time entries and notifications."""
    crud.delete_task(db, task_id, storage, current_user.id)
    fanout.publish(fanout.EventType.TASK_DELETED, {"id": task_id})
    return Response(status_code=204)


@router.get("/{task_id}/comments", response_model=list[schemas.CommentResponse])
def list_comments(
    task_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """Comments of a task, oldest first."""
    return crud.list_comments(db, task_id)


@router.post("/{task_id}/comments", response_model=schemas.CommentResponse, status_code=201)
def add_comment(
    task_id: int,
    comment: schemas.CommentCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """Add a comment to a task."""
    created = crud.add_comment(db, task_id, current_user.id, comment.content)
    response = schemas.CommentResponse.model_validate(created)
    fanout.publish(fanout.EventType.COMMENT_ADDED, {"task_id": task_id, "comment": response.model_dump(mode="json")})
    return response


@router.get("/{task_id}/history", response_model=list[schemas.TaskHistoryResponse])
def get_task_history(
    task_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """Change history of a task, newest first."""
    return crud.get_task_history(db, task_id)

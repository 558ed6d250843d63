"""Projects API endpoints."""
import logging

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from faae_core import crud, schemas, models, fanout, reporting
from faae_core.api.dependencies import get_current_user, get_storage
from faae_core.database import get_db
from faae_core.file_storage import FileStorage
from .tasks import task_to_response

logger = logging.getLogger("faae-core.projects")

router = APIRouter(tags=["projects"])


def _project_to_response(project: models.Project) -> schemas.ProjectWithTasks:
    """Convert Project model (tasks loaded) to ProjectWithTasks with progress."""
    response = schemas.ProjectWithTasks.model_validate(project)
    response.tasks = [task_to_response(t) for t in project.tasks]
    response.progress = reporting.compute_project_progress(project.tasks)
    return response


@router.get("/", response_model=list[schemas.ProjectWithTasks])
def list_projects(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """List all projects, newest first, with their tasks and progress."""
    return [_project_to_response(p) for p in crud.list_projects(db)]


@router.post("/", response_model=schemas.ProjectWithTasks, status_code=201)
def create_project(
    project: schemas.ProjectCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """
    Create a new project.

    - **name**: Project name (required)
    - **status**: active, completed, on_hold or cancelled (default: active)
    - **project_type**: stand_imobiliario, projeto_arquitetura, projeto_estrutural, reforma or manutencao
    - **stage**: briefing, conceito, projeto, aprovacao, orcamento, producao or entrega
    - **budget**: Budget in BRL
    """
    created = crud.create_project(db, project, current_user.id)
    response = _project_to_response(crud.get_project(db, created.id))
    fanout.publish(fanout.EventType.PROJECT_CREATED, response.model_dump(mode="json"))
    return response


@router.get("/{project_id}", response_model=schemas.ProjectWithTasks)
def get_project(
    project_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """Get a project with its tasks, files and progress."""
    return _project_to_response(crud.get_project(db, project_id))


@router.patch("/{project_id}", response_model=schemas.ProjectWithTasks)
def update_project(
    project_id: int,
    project_update: schemas.ProjectUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """
    Update a project. Only the fields sent are changed.

    The stage is advisory and may be set to any value at any time.
    """
    project = crud.update_project(db, project_id, project_update, current_user.id)
    response = _project_to_response(project)
    fanout.publish(fanout.EventType.PROJECT_UPDATED, response.model_dump(mode="json"))
    return response


@router.delete("/{project_id}", status_code=204)
def delete_project(
    project_id: int,
    db: Session = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
    current_user: models.User = Depends(get_current_user),
):
    """Delete a project with all its tasks and files (admin only)."""
    crud.delete_project(db, project_id, current_user.id, storage)
    fanout.publish(fanout.EventType.PROJECT_DELETED, {"id": project_id})
    return Response(status_code=204)


@router.get("/{project_id}/health", response_model=schemas.ProjectHealthResponse)
def get_project_health(
    project_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """Health score, insights and recommendations computed from the project's tasks."""
    return crud.get_project_health(db, project_id)

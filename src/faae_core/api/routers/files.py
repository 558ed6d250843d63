"""File attachment endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile
from fastapi.responses import FileResponse as DownloadResponse
from sqlalchemy.orm import Session

from faae_core import crud, schemas, models, fanout
from faae_core.api.dependencies import get_current_user, get_storage
from faae_core.database import get_db
from faae_core.file_storage import FileStorage

logger = logging.getLogger("faae-core.files")

router = APIRouter(tags=["files"])


@router.post("/", response_model=schemas.FileResponse, status_code=201)
def upload_file(
    file: UploadFile = File(...),
    task_id: Optional[int] = Form(None),
    project_id: Optional[int] = Form(None),
    db: Session = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
    current_user: models.User = Depends(get_current_user),
):
    """
    Upload a file, optionally attached to a task and/or a project.

    Files over the configured size limit are rejected.
    """
    # One byte over the limit is enough to reject
    limit = storage.max_size_bytes
    content = file.file.read(limit + 1) if limit is not None else file.file.read()
    record = crud.create_file(
        db,
        storage,
        content=content,
        original_name=file.filename or "",
        mime_type=file.content_type,
        uploaded_user_id=current_user.id,
        task_id=task_id,
        project_id=project_id,
    )
    response = schemas.FileResponse.model_validate(record)
    fanout.publish(fanout.EventType.FILE_UPLOADED, response.model_dump(mode="json"))
    return response


@router.get("/", response_model=list[schemas.FileResponse])
def list_files(
    task_id: Optional[int] = None,
    project_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """List files, newest first, optionally by task or project."""
    return crud.list_files(db, task_id=task_id, project_id=project_id)


@router.get("/{file_id}/download")
def download_file(
    file_id: int,
    db: Session = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
    current_user: models.User = Depends(get_current_user),
):
    """Download a file under its original name."""
    record = crud.get_file(db, file_id)
    path = storage.resolve(record.path, file_id)
    return DownloadResponse(path, media_type=record.mime_type, filename=record.original_name)


@router.get("/{file_id}/preview")
def preview_file(
    file_id: int,
    db: Session = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
    current_user: models.User = Depends(get_current_user),
):
    """How to preview a file: image/pdf URL, first characters of text, or other."""
    record = crud.get_file(db, file_id)
    return storage.preview(record.path, record.mime_type, f"/api/v1/files/{file_id}/download")


@router.delete("/{file_id}", status_code=204)
def delete_file(
    file_id: int,
    db: Session = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
    current_user: models.User = Depends(get_current_user),
):
    """Delete a file from storage, then its metadata."""
    crud.delete_file(db, storage, file_id)
    fanout.publish(fanout.EventType.FILE_DELETED, {"id": file_id})
    return Response(status_code=204)

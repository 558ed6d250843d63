"""Tests for cascade deletes and file storage cleanup."""
import os

import pytest

from conftest import ADMIN_ID, ANA_ID
from faae_core import crud, models, schemas
from faae_core.errors import NotFoundError, PermissionDeniedError, StorageError, ValidationError
from faae_core.file_storage import FileStorage, format_file_size


def _count(db, model):
    return db.query(model).count()


@pytest.fixture
def populated_project(db, storage):
    """Project with 3 tasks, 2 files, comments, history, a time entry and a notification."""
    project = crud.create_project(db, schemas.ProjectCreate(name="Reforma Pinheiros"), ADMIN_ID)
    tasks = [
        crud.create_task(
            db, schemas.TaskCreate(title=f"Etapa {i}", project_id=project.id, assigned_user_id=ANA_ID), ADMIN_ID
        )
        for i in range(3)
    ]
    crud.add_comment(db, tasks[0].id, ANA_ID, "Aguardando cliente")
    crud.start_timer(db, ANA_ID, tasks[1].id)
    files = [
        crud.create_file(db, storage, b"planta", "planta.pdf", "application/pdf", ADMIN_ID, project_id=project.id),
        crud.create_file(db, storage, b"foto", "foto.jpg", "image/jpeg", ANA_ID, task_id=tasks[2].id),
    ]
    return project, tasks, files


class TestProjectDelete:
    """Test that deleting a project removes everything under it."""

    def test_cascade_removes_rows_and_stored_objects(self, db, storage, populated_project):
        project, tasks, files = populated_project
        paths = [f.path for f in files]
        assert all(os.path.exists(p) for p in paths)

        crud.delete_project(db, project.id, ADMIN_ID, storage)
        db.expire_all()

        assert _count(db, models.Project) == 0
        assert _count(db, models.Task) == 0
        assert _count(db, models.File) == 0
        assert _count(db, models.TaskComment) == 0
        assert _count(db, models.TaskHistory) == 0
        assert _count(db, models.TimeEntry) == 0
        assert _count(db, models.Notification) == 0
        assert not any(os.path.exists(p) for p in paths)
        # Users are never cascaded
        assert _count(db, models.User) == 3

    def test_non_admin_cannot_delete(self, db, storage, populated_project):
        project, _, files = populated_project

        with pytest.raises(PermissionDeniedError):
            crud.delete_project(db, project.id, ANA_ID, storage)

        assert _count(db, models.Task) == 3
        assert os.path.exists(files[0].path)

    def test_missing_project(self, db, storage):
        with pytest.raises(NotFoundError):
            crud.delete_project(db, 404, ADMIN_ID, storage)


class TestTaskDelete:
    """Test that deleting a task removes its children only."""

    def test_task_cascade(self, db, storage, populated_project):
        project, tasks, files = populated_project

        crud.delete_task(db, tasks[2].id, storage, ADMIN_ID)
        db.expire_all()

        assert _count(db, models.Task) == 2
        assert not os.path.exists(files[1].path)
        # Project-level file stays
        assert os.path.exists(files[0].path)
        assert [f.id for f in crud.list_files(db)] == [files[0].id]


class TestFiles:
    """Test file metadata and storage."""

    def test_stored_name_keeps_original(self, db, storage):
        record = crud.create_file(db, storage, b"abc", "../../memorial.txt", "text/plain", ADMIN_ID)

        assert record.original_name == "../../memorial.txt"
        assert record.filename.endswith("_memorial.txt")
        assert record.size == 3
        assert os.path.dirname(record.path) == str(storage.base_dir)

    def test_oversized_upload_rejected(self, db, storage):
        with pytest.raises(ValidationError):
            crud.create_file(db, storage, b"x" * 2048, "grande.bin", None, ADMIN_ID)
        assert _count(db, models.File) == 0

    def test_delete_removes_object_then_row(self, db, storage):
        record = crud.create_file(db, storage, b"abc", "nota.txt", "text/plain", ADMIN_ID)
        crud.delete_file(db, storage, record.id)

        assert not os.path.exists(record.path)
        with pytest.raises(NotFoundError):
            crud.get_file(db, record.id)

    def test_storage_failure_keeps_metadata(self, db, storage, monkeypatch):
        record = crud.create_file(db, storage, b"abc", "nota.txt", "text/plain", ADMIN_ID)

        def failing_delete(path):
            raise StorageError(f"Cannot delete file {path}")

        monkeypatch.setattr(storage, "delete", failing_delete)
        with pytest.raises(StorageError):
            crud.delete_file(db, storage, record.id)
        assert crud.get_file(db, record.id).id == record.id

    def test_preview(self, tmp_path):
        storage = FileStorage(str(tmp_path))
        stored = storage.save("olá mundo".encode("utf-8"), "nota.txt")

        assert storage.preview(stored.path, "text/plain", "/dl") == {"type": "text", "content": "olá mundo"}
        assert storage.preview(stored.path, "image/png", "/dl") == {"type": "image", "url": "/dl"}
        assert storage.preview(stored.path, "application/zip", "/dl") == {"type": "other"}

    def test_format_file_size(self):
        assert format_file_size(0) == "0 Bytes"
        assert format_file_size(1536) == "1.5 KB"
        assert format_file_size(5 * 1024 * 1024) == "5 MB"

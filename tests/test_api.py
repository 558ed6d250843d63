"""End-to-end tests of the HTTP API."""
from datetime import datetime

from conftest import ADMIN_ID, ANA_ID, BRUNO_ID, auth
from faae_core import schemas


def _create_project(client, name="Stand Vila Madalena", **fields):
    response = client.post("/api/v1/projects/", json={"name": name, **fields}, headers=auth(ADMIN_ID))
    assert response.status_code == 201
    return response.json()


def _create_task(client, title="Planta baixa", user=ADMIN_ID, **fields):
    response = client.post("/api/v1/tasks/", json={"title": title, **fields}, headers=auth(user))
    assert response.status_code == 201
    return response.json()


class TestAuthentication:
    """Test the identity header."""

    def test_missing_header(self, client):
        assert client.get("/api/v1/tasks/").status_code == 401

    def test_unknown_user(self, client):
        assert client.get("/api/v1/tasks/", headers=auth("ghost")).status_code == 401

    def test_deactivated_user(self, client):
        client.patch(f"/api/v1/users/{BRUNO_ID}/active", json={"is_active": False}, headers=auth(ADMIN_ID))
        assert client.get("/api/v1/tasks/", headers=auth(BRUNO_ID)).status_code == 403

    def test_login_upsert(self, client):
        response = client.post("/api/v1/auth/user", json={"sub": "new-user", "email": "n@faae.com.br"})
        assert response.status_code == 200
        assert response.json()["role"] == "collaborator"

        me = client.get("/api/v1/auth/user", headers=auth("new-user"))
        assert me.json()["id"] == "new-user"


class TestTasksApi:
    """Test task endpoints."""

    def test_create_and_get(self, client):
        project = _create_project(client)
        task = _create_task(client, project_id=project["id"], assigned_user_id=ANA_ID, due_date="2020-01-01")

        assert task["status"] == "aberta"
        assert task["is_overdue"] is True

        details = client.get(f"/api/v1/tasks/{task['id']}", headers=auth(ANA_ID)).json()
        assert details["project"]["name"] == "Stand Vila Madalena"
        assert details["assigned_user"]["id"] == ANA_ID

    def test_complete_sets_completed_at(self, client):
        task = _create_task(client)
        updated = client.patch(f"/api/v1/tasks/{task['id']}", json={"status": "concluida"}, headers=auth(ADMIN_ID))

        assert updated.status_code == 200
        assert updated.json()["completed_at"] is not None

        reopened = client.patch(f"/api/v1/tasks/{task['id']}", json={"status": "aberta"}, headers=auth(ADMIN_ID))
        assert reopened.json()["completed_at"] is None

    def test_invalid_status_is_validation_error(self, client):
        task = _create_task(client)
        response = client.patch(f"/api/v1/tasks/{task['id']}", json={"status": "pausada"}, headers=auth(ADMIN_ID))

        assert response.status_code == 422
        body = response.json()
        assert body["kind"] == "validation"
        assert body["field"] == "status"

    def test_missing_task_is_not_found(self, client):
        response = client.get("/api/v1/tasks/999", headers=auth(ADMIN_ID))
        assert response.status_code == 404
        assert response.json()["kind"] == "not_found"

    def test_list_filters(self, client):
        project = _create_project(client)
        _create_task(client, "Com projeto", project_id=project["id"])
        _create_task(client, "Da Ana", assigned_user_id=ANA_ID)

        by_project = client.get(f"/api/v1/tasks/?project_id={project['id']}", headers=auth(ADMIN_ID)).json()
        by_user = client.get(f"/api/v1/tasks/?user_id={ANA_ID}", headers=auth(ADMIN_ID)).json()
        everything = client.get("/api/v1/tasks/", headers=auth(ADMIN_ID)).json()

        assert [t["title"] for t in by_project] == ["Com projeto"]
        assert [t["title"] for t in by_user] == ["Da Ana"]
        assert [t["title"] for t in everything] == ["Da Ana", "Com projeto"]

    def test_comments_and_history(self, client):
        task = _create_task(client)
        client.post(f"/api/v1/tasks/{task['id']}/comments", json={"content": "Ok"}, headers=auth(ANA_ID))
        client.patch(f"/api/v1/tasks/{task['id']}", json={"title": "Planta alta"}, headers=auth(ANA_ID))

        comments = client.get(f"/api/v1/tasks/{task['id']}/comments", headers=auth(ADMIN_ID)).json()
        history = client.get(f"/api/v1/tasks/{task['id']}/history", headers=auth(ADMIN_ID)).json()

        assert [c["content"] for c in comments] == ["Ok"]
        assert history[0]["changes"] == "title: 'Planta baixa' → 'Planta alta'"
        assert history[-1]["changes"] == "Tarefa criada"

    def test_notifications_flow(self, client):
        _create_task(client, assigned_user_id=ANA_ID)
        notifications = client.get("/api/v1/notifications/", headers=auth(ANA_ID)).json()
        assert len(notifications) == 1

        read = client.post(f"/api/v1/notifications/{notifications[0]['id']}/read", headers=auth(ANA_ID))
        assert read.json()["is_read"] is True


class TestProjectsApi:
    """Test project endpoints."""

    def test_progress(self, client):
        project = _create_project(client)
        for index in range(4):
            _create_task(client, f"T{index}", project_id=project["id"], status="concluida" if index else "aberta")

        fetched = client.get(f"/api/v1/projects/{project['id']}", headers=auth(ADMIN_ID)).json()
        assert fetched["progress"] == 75
        assert len(fetched["tasks"]) == 4

    def test_empty_project_progress(self, client):
        assert _create_project(client)["progress"] == 0

    def test_stage_can_be_set_freely(self, client):
        project = _create_project(client, stage="entrega")
        updated = client.patch(f"/api/v1/projects/{project['id']}", json={"stage": "briefing"}, headers=auth(ANA_ID))
        assert updated.json()["stage"] == "briefing"

    def test_only_admin_deletes(self, client):
        project = _create_project(client)

        denied = client.delete(f"/api/v1/projects/{project['id']}", headers=auth(ANA_ID))
        assert denied.status_code == 403
        assert denied.json()["kind"] == "permission"

        assert client.delete(f"/api/v1/projects/{project['id']}", headers=auth(ADMIN_ID)).status_code == 204
        assert client.get(f"/api/v1/projects/{project['id']}", headers=auth(ADMIN_ID)).status_code == 404

    def test_health(self, client):
        project = _create_project(client)
        health = client.get(f"/api/v1/projects/{project['id']}/health", headers=auth(ADMIN_ID)).json()
        assert health["health_score"] == 70


class TestTimeAndDashboardApi:
    """Test time tracking and dashboard endpoints."""

    def test_timer_cycle(self, client):
        task = _create_task(client)
        started = client.post("/api/v1/time/start", json={"task_id": task["id"]}, headers=auth(ANA_ID))
        assert started.status_code == 201

        active = client.get("/api/v1/time/active", headers=auth(ANA_ID)).json()
        assert active["id"] == started.json()["id"]

        stopped = client.post("/api/v1/time/stop", headers=auth(ANA_ID)).json()
        assert stopped["is_active"] is False
        assert client.get("/api/v1/time/active", headers=auth(ANA_ID)).json() is None
        assert client.post("/api/v1/time/stop", headers=auth(ANA_ID)).status_code == 404

    def test_dashboard(self, client):
        _create_project(client)
        _create_task(client, status="concluida")
        _create_task(client)

        stats = client.get("/api/v1/dashboard/stats", headers=auth(ADMIN_ID)).json()
        assert stats == {
            "total_tasks": 2, "completed_tasks": 1, "active_projects": 1, "total_hours": 0.0, "efficiency": 50.0,
        }

    def test_user_stats(self, client):
        _create_task(client, assigned_user_id=ANA_ID, status="concluida")
        stats = client.get(f"/api/v1/dashboard/user-stats?user_id={ANA_ID}", headers=auth(ADMIN_ID)).json()
        assert stats["task_count"] == 1
        assert stats["efficiency"] == 100.0


class TestFilesApi:
    """Test upload, download and delete."""

    def test_upload_download_delete(self, client):
        task = _create_task(client)
        uploaded = client.post(
            "/api/v1/files/",
            data={"task_id": str(task["id"])},
            files={"file": ("memorial.txt", b"Memorial descritivo", "text/plain")},
            headers=auth(ANA_ID),
        )
        assert uploaded.status_code == 201
        file_id = uploaded.json()["id"]

        download = client.get(f"/api/v1/files/{file_id}/download", headers=auth(ANA_ID))
        assert download.content == b"Memorial descritivo"

        preview = client.get(f"/api/v1/files/{file_id}/preview", headers=auth(ANA_ID)).json()
        assert preview == {"type": "text", "content": "Memorial descritivo"}

        assert client.delete(f"/api/v1/files/{file_id}", headers=auth(ANA_ID)).status_code == 204
        assert client.get(f"/api/v1/files/{file_id}/download", headers=auth(ANA_ID)).status_code == 404

    def test_oversized_upload(self, client):
        response = client.post(
            "/api/v1/files/",
            files={"file": ("grande.bin", b"x" * 4096, "application/octet-stream")},
            headers=auth(ANA_ID),
        )
        assert response.status_code == 422


class TestReportAndSearchApi:
    """Test the report and search endpoints."""

    def test_report_pdf(self, client):
        project = _create_project(client)
        _create_task(client, project_id=project["id"])
        response = client.post(
            "/api/v1/reports/",
            json={"filter": {"project_id": project["id"], "search_text": ""}, "export_timestamp": "2024-06-15T14:30:00"},
            headers=auth(ADMIN_ID),
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert f"relatorio-projeto-{project['id']}-2024-06-15-1430.pdf" in response.headers["content-disposition"]
        assert response.content.startswith(b"%PDF")

    def test_report_with_utc_export_timestamp(self, client):
        """An offset-aware timestamp is accepted alongside an overdue task."""
        _create_task(client, "Memorial descritivo", due_date="2024-01-01")
        response = client.post(
            "/api/v1/reports/",
            json={"filter": {}, "export_timestamp": "2024-06-15T14:30:00Z"},
            headers=auth(ADMIN_ID),
        )

        assert response.status_code == 200
        assert "relatorio-completo-2024-06-15-1430.pdf" in response.headers["content-disposition"]
        assert response.content.startswith(b"%PDF")

    def test_export_timestamp_is_stored_as_naive_utc(self):
        request = schemas.ReportRequest(export_timestamp="2024-06-15T11:30:00-03:00")
        assert request.export_timestamp == datetime(2024, 6, 15, 14, 30)
        assert request.export_timestamp.tzinfo is None

    def test_keyword_search(self, client):
        _create_task(client, "Orçamento Vila Madalena")
        _create_task(client, "Planta baixa")

        response = client.post("/api/v1/search/", json={"query": "orçamento"}, headers=auth(ANA_ID)).json()
        assert response["source"] == "keyword"
        assert [t["title"] for t in response["tasks"]] == ["Orçamento Vila Madalena"]

    def test_blank_query(self, client):
        response = client.post("/api/v1/search/", json={"query": "  "}, headers=auth(ANA_ID))
        assert response.status_code == 422


class TestUsersApi:
    """Test admin user management endpoints."""

    def test_list_requires_admin(self, client):
        assert client.get("/api/v1/users/", headers=auth(ANA_ID)).status_code == 403
        users = client.get("/api/v1/users/", headers=auth(ADMIN_ID)).json()
        assert {u["id"] for u in users} == {ADMIN_ID, ANA_ID, BRUNO_ID}
        assert all("stats" in u for u in users)

    def test_change_role(self, client):
        response = client.patch(f"/api/v1/users/{ANA_ID}/role", json={"role": "admin"}, headers=auth(ADMIN_ID))
        assert response.json()["role"] == "admin"


def test_health(client):
    assert client.get("/health").json()["status"] == "healthy"


def test_openapi_documents_error_body(client):
    document = client.get("/openapi.json").json()
    assert "ErrorResponse" in document["components"]["schemas"]
    not_found = document["paths"]["/api/v1/tasks/{task_id}"]["get"]["responses"]["404"]
    assert not_found["content"]["application/json"]["schema"]["$ref"] == "#/components/schemas/ErrorResponse"

"""Integration tests for the HTTP API."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, text

from conferkit.api.app import create_app
from conferkit.conference.types import utcnow
from conferkit.executors.types import QueryResult
from conferkit.persistence.memory import InMemoryRepository


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def executor():
    executor = AsyncMock()
    executor.execute.return_value = QueryResult(rows=[{"total": 1000}])
    return executor


@pytest.fixture
def client(repository, executor):
    app = create_app(repository, executor)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def template_id(client, template):
    response = client.post("/api/templates", json=template.to_dict())
    assert response.status_code == 201
    return response.json()["id"]


@pytest.fixture
def conference(client, template_id):
    response = client.post(
        "/api/conferences",
        json={
            "template_id": template_id,
            "name": "Janeiro",
            "client_name": "Ana",
            "period_start": "2025-01-01",
            "period_end": "2025-01-31",
            "stores": [
                {"id": "s1", "name": "Loja Centro", "store_id": "101"},
                {"id": "s2", "name": "Loja Norte", "store_id": "202"},
            ],
        },
    )
    assert response.status_code == 201
    return response.json()


# =============================================================================
# Templates
# =============================================================================


class TestTemplates:
    def test_list_and_get(self, client, template_id):
        listed = client.get("/api/templates").json()["templates"]
        assert [t["id"] for t in listed] == [template_id]
        assert client.get(f"/api/templates/{template_id}").json()["name"] == "Fechamento Mensal"

    def test_missing_template_is_404(self, client):
        response = client.get("/api/templates/nope")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "TEMPLATE_NOT_FOUND"

    def test_invalid_template_is_422_with_issues(self, client, template):
        body = template.to_dict()
        body["sections"][0]["items"][0]["query"] = "DELETE FROM lancamentos"
        response = client.post("/api/templates", json=body)
        assert response.status_code == 422
        codes = [i["code"] for i in response.json()["error"]["issues"]]
        assert codes == ["NOT_READ_ONLY"]

    def test_malformed_template_is_422(self, client):
        response = client.post("/api/templates", json={"description": "sem nome"})
        assert response.status_code == 422

    def test_update_keeps_creation_audit(self, client, template_id):
        original = client.get(f"/api/templates/{template_id}").json()
        body = dict(original, name="Fechamento Trimestral", createdAt=None)
        response = client.put(f"/api/templates/{template_id}", json=body)
        assert response.status_code == 200
        assert response.json()["name"] == "Fechamento Trimestral"
        assert response.json()["createdAt"] == original["createdAt"]

    def test_export_import_duplicate_delete(self, client, template_id):
        document = client.get(f"/api/templates/{template_id}/export").json()
        assert "id" not in document

        imported = client.post("/api/templates/import", json=document)
        assert imported.status_code == 201
        assert imported.json()["id"] != template_id

        duplicated = client.post(f"/api/templates/{template_id}/duplicate")
        assert duplicated.status_code == 201
        assert duplicated.json()["name"].endswith("(Cópia)")

        assert client.delete(f"/api/templates/{template_id}").status_code == 204
        assert client.get(f"/api/templates/{template_id}").status_code == 404

    def test_import_rejects_schema_violations(self, client):
        response = client.post("/api/templates/import", json={"name": "x", "sections": "nope"})
        assert response.status_code == 422
        assert response.json()["error"]["issues"][0]["code"] == "SCHEMA"

    def test_preview(self, client):
        response = client.post(
            "/api/templates/preview",
            json={
                "query": "SELECT :saldo WHERE loja = :store_id",
                "expected_inputs": [{"key": "saldo", "type": "currency"}],
            },
        )
        assert response.status_code == 200
        assert response.json()["query"] == "SELECT 1000 WHERE loja = 123"


# =============================================================================
# Conferences
# =============================================================================


class TestConferences:
    def test_create(self, conference):
        assert conference["status"] == "pending"
        assert len(conference["items"]) == 4
        assert conference["wizard"]["step"] == "expected_inputs"

    def test_create_with_unknown_template_is_404(self, client):
        response = client.post(
            "/api/conferences",
            json={"template_id": "nope", "name": "X", "stores": [{"id": "s", "name": "S", "store_id": "1"}]},
        )
        assert response.status_code == 404

    def test_create_without_stores_is_422(self, client, template_id):
        response = client.post(
            "/api/conferences", json={"template_id": template_id, "name": "X", "stores": []}
        )
        assert response.status_code == 422
        assert response.json()["error"]["issues"][0]["code"] == "NO_STORES"

    def test_open_by_token(self, client, conference):
        response = client.get(f"/api/conferences/by-token/{conference['linkToken']}")
        assert response.status_code == 200
        assert response.json()["id"] == conference["id"]

        assert client.get("/api/conferences/by-token/invalido").status_code == 404

    def test_expired_link_is_410(self, client, repository, conference):
        stored = repository.get_conference(conference["id"])
        stored.link_expires_at = utcnow() - timedelta(minutes=1)
        repository.save_conference(stored)

        response = client.get(f"/api/conferences/by-token/{conference['linkToken']}")
        assert response.status_code == 410
        assert response.json()["error"]["code"] == "LINK_EXPIRED"

    def test_wizard_flow(self, client, executor, conference):
        base = f"/api/conferences/{conference['id']}"

        response = client.post(f"{base}/wizard/advance")
        assert response.status_code == 409
        assert response.json()["error"]["missing"] == ["saldo", "estoque_s1", "estoque_s2"]

        response = client.post(
            f"{base}/expected-inputs",
            json={"values": {"saldo": "1000", "estoque_s1": "50", "estoque_s2": "70"}},
        )
        assert response.status_code == 200
        assert response.json()["expectedInputValues"]["estoque_s2"]["storeId"] == "s2"

        response = client.post(f"{base}/wizard/advance")
        assert response.json() == {
            "step": "sections",
            "sectionIndex": 0,
            "sectionCount": 2,
            "sectionComplete": False,
        }

        saldo_id = conference["template"]["sections"][0]["items"][0]["id"]
        item = client.post(f"{base}/items/{saldo_id}/evaluate").json()
        assert item["status"] == "correct"
        assert item["autoResolved"] is True

        executor.execute.return_value = QueryResult(rows=[])
        items = client.post(f"{base}/sections/0/evaluate").json()["items"]
        assert [i["status"] for i in items] == ["correct", "auto_ok"]

        pendencias_id = items[1]["id"]
        response = client.post(
            f"{base}/items/{pendencias_id}/respond", json={"response": "divergent", "observation": "Há pendências"}
        )
        assert response.status_code == 200
        assert response.json()["respondedBy"] == "Ana"

        again = client.post(f"{base}/items/{pendencias_id}/respond", json={"response": "correct"})
        assert again.status_code == 409

        assert client.get(f"{base}/wizard").json()["sectionComplete"] is True
        assert client.get(base).json()["wizard"]["sectionComplete"] is True
        progress = client.get(f"{base}/progress").json()
        assert progress == {
            "completed": 2,
            "total": 4,
            "percentage": 50,
            "correctCount": 1,
            "divergentCount": 1,
        }

        assert client.post(f"{base}/wizard/retreat").json()["step"] == "expected_inputs"

    def test_per_store_evaluation(self, client, executor, conference):
        base = f"/api/conferences/{conference['id']}"
        stock_id = conference["template"]["sections"][1]["items"][0]["id"]
        client.post(
            f"{base}/expected-inputs",
            json={"values": {"saldo": "1000", "estoque_s1": "50", "estoque_s2": "70"}},
        )
        executor.execute.return_value = QueryResult(rows=[{"total": 10}])

        response = client.post(f"{base}/items/{stock_id}/evaluate", params={"store_id": "s1"})

        assert response.status_code == 200
        assert response.json()["status"] == "warn"
        assert response.json()["storeId"] == "s1"

    def test_unknown_conference_is_404(self, client):
        assert client.get("/api/conferences/nope").status_code == 404
        assert client.get("/api/conferences/nope/progress").status_code == 404

    def test_responding_to_pending_item_is_409(self, client, conference):
        item_id = conference["items"][0]["id"]
        response = client.post(
            f"/api/conferences/{conference['id']}/items/{item_id}/respond",
            json={"response": "correct"},
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "INVALID_TRANSITION"


# =============================================================================
# Connections
# =============================================================================


@pytest.fixture
def erp_url(tmp_path):
    url = f"sqlite:///{tmp_path / 'erp.db'}"
    engine = create_engine(url)
    with engine.begin() as conn:
        conn.execute(text("CREATE TABLE lancamentos (data TEXT, valor INTEGER)"))
        conn.execute(text("INSERT INTO lancamentos VALUES ('2025-01-10', 1000)"))
    engine.dispose()
    return url


class TestConnections:
    def test_crud_never_returns_the_password(self, client, repository):
        response = client.post(
            "/api/connections", json={"name": "ERP", "url": "postgresql://erp:segredo@db/erp"}
        )
        assert response.status_code == 201
        created = response.json()
        assert created["url"] == "postgresql://erp:***@db/erp"
        assert created["status"] == "inactive"

        listed = client.get("/api/connections").json()["connections"]
        assert [c["url"] for c in listed] == ["postgresql://erp:***@db/erp"]

        response = client.put(
            f"/api/connections/{created['id']}",
            json={"name": "ERP Central", "url": created["url"]},
        )
        assert response.json()["name"] == "ERP Central"
        assert repository.get_connection(created["id"]).url == "postgresql://erp:segredo@db/erp"

        response = client.delete(f"/api/connections/{created['id']}")
        assert response.status_code == 204
        assert client.get(f"/api/connections/{created['id']}").status_code == 404

    def test_invalid_connection_is_422(self, client):
        response = client.post("/api/connections", json={"name": "ERP", "url": "not a url"})
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INVALID_CONNECTION"

    def test_check_connection(self, client):
        created = client.post("/api/connections", json={"name": "Local", "url": "sqlite://"}).json()

        result = client.post(f"/api/connections/{created['id']}/test").json()

        assert result["success"] is True
        assert result["connection"]["status"] == "active"

    def test_conference_runs_on_its_connection(self, client, executor, template_id, erp_url):
        connection = client.post("/api/connections", json={"name": "ERP", "url": erp_url}).json()
        response = client.post(
            "/api/conferences",
            json={
                "template_id": template_id,
                "name": "Janeiro",
                "connection_id": connection["id"],
                "period_start": "2025-01-01",
                "period_end": "2025-01-31",
                "stores": [{"id": "s1", "name": "Loja Centro", "store_id": "101"}],
            },
        )
        assert response.status_code == 201
        conference = response.json()
        assert conference["connectionId"] == connection["id"]
        base = f"/api/conferences/{conference['id']}"
        client.post(f"{base}/expected-inputs", json={"values": {"saldo": "1000"}})

        saldo_id = conference["template"]["sections"][0]["items"][0]["id"]
        item = client.post(f"{base}/items/{saldo_id}/evaluate").json()

        assert item["status"] == "correct"
        assert item["queryResult"] == {"rows": [{"total": 1000}]}
        executor.execute.assert_not_awaited()
        listed = client.get("/api/conferences", params={"connection_id": connection["id"]}).json()
        assert [c["id"] for c in listed["conferences"]] == [conference["id"]]

        response = client.delete(f"/api/connections/{connection['id']}")
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CONNECTION_IN_USE"

    def test_unknown_connection_is_404(self, client, template_id):
        response = client.post(
            "/api/conferences",
            json={
                "template_id": template_id,
                "name": "Janeiro",
                "connection_id": "nope",
                "stores": [{"id": "s1", "name": "Loja Centro", "store_id": "101"}],
            },
        )
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "CONNECTION_NOT_FOUND"


class TestHealth:
    def test_health(self, client):
        assert client.get("/api/health").json() == {"status": "ok"}

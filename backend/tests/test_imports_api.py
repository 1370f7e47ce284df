"""
API tests for the bulk import endpoints.

Background resolution runs inside the TestClient request, so a session is
fully processed once POST /imports returns.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from vaxtlistan.main import app
from vaxtlistan.routes.imports import get_inventory_writer
from vaxtlistan.routes.search import get_catalog_source
from vaxtlistan.schemas.importing import ColumnMapping
from vaxtlistan.services.import_orchestrator import (
    ImportSession,
    ImportSessionStore,
    get_session_store,
)


@pytest.fixture
def writer():
    return AsyncMock(return_value=2)


@pytest.fixture
def session_store():
    return ImportSessionStore()


@pytest.fixture
def import_client(client, memory_catalog, writer, session_store):
    app.dependency_overrides[get_catalog_source] = lambda: memory_catalog
    app.dependency_overrides[get_session_store] = lambda: session_store
    app.dependency_overrides[get_inventory_writer] = lambda: writer
    return client


@pytest.fixture
def import_payload():
    return {
        "plantskola_id": 7,
        "mapping": {"name": "Namn", "price": "Pris", "stock": "Antal", "extra": ["Zon"]},
        "rows": [
            {"Namn": "Acer palmatum", "Pris": "129", "Antal": "4", "Zon": "III"},
            {"Namn": "Acer palmatun"},
            {"Namn": "x"},
            {"Namn": "Betula pendula", "Pris": "249,50"},
        ],
    }


@pytest.fixture
def session_id(import_client, import_payload):
    response = import_client.post("/imports", json=import_payload)
    assert response.status_code == 202
    return response.json()["session_id"]


class TestStartImport:
    """Tests for POST /imports"""

    def test_accepted_without_rows(self, import_client, import_payload):
        response = import_client.post("/imports", json=import_payload)

        assert response.status_code == 202
        data = response.json()
        assert data["session_id"]
        assert data["rows"] == []
        assert data["summary"]["total"] == 4

    def test_mapping_required(self, import_client):
        response = import_client.post("/imports", json={"plantskola_id": 7, "rows": []})

        assert response.status_code == 422


class TestGetImport:
    """Tests for GET /imports/{session_id}"""

    def test_rows_resolved(self, import_client, session_id):
        response = import_client.get(f"/imports/{session_id}")

        assert response.status_code == 200
        data = response.json()
        assert [row["status"] for row in data["rows"]] == ["found", "notFound", "skip", "found"]
        assert data["rows"][1]["suggestions"][0]["id"] == 1
        assert data["progress"]["done"] is True
        assert data["summary"]["found"] == 2

    def test_unknown_session(self, import_client):
        response = import_client.get("/imports/does-not-exist")

        assert response.status_code == 404
        assert response.json()["error"] == "IMPORT_NOT_FOUND"


class TestRowDecisions:
    """Tests for select, skip and revert"""

    def test_select_candidate(self, import_client, session_id):
        response = import_client.post(
            f"/imports/{session_id}/rows/1/select", json={"entry_id": 3}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "manual"
        assert data["selected_id"] == 3
        assert 3 in [s["id"] for s in data["suggestions"]]

    def test_select_unknown_entry(self, import_client, session_id):
        response = import_client.post(
            f"/imports/{session_id}/rows/1/select", json={"entry_id": 999}
        )

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    def test_select_skipped_row_rejected(self, import_client, session_id):
        response = import_client.post(
            f"/imports/{session_id}/rows/2/select", json={"entry_id": 1}
        )

        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_TRANSITION"

    def test_skip_and_revert(self, import_client, session_id):
        skipped = import_client.post(f"/imports/{session_id}/rows/0/skip")
        assert skipped.json()["status"] == "skip"

        reverted = import_client.post(f"/imports/{session_id}/rows/0/revert")
        assert reverted.json()["status"] == "notFound"

    def test_unknown_row(self, import_client, session_id):
        response = import_client.post(f"/imports/{session_id}/rows/42/skip")

        assert response.status_code == 404
        assert response.json()["error"] == "ROW_NOT_FOUND"


class TestCommitImport:
    """Tests for POST /imports/{session_id}/commit"""

    def test_commit_writes_resolved_rows(self, import_client, session_id, writer):
        response = import_client.post(f"/imports/{session_id}/commit")

        assert response.status_code == 200
        data = response.json()
        assert data["ok"] is True
        assert data["summary"]["committed"] == 2

        rows = writer.await_args.args[0]
        assert [row.facit_id for row in rows] == [1, 9]
        assert rows[0].extra_fields == {"Zon": "III"}
        assert rows[1].price == 249.5

    def test_repeat_commit_conflicts(self, import_client, session_id, writer):
        assert import_client.post(f"/imports/{session_id}/commit").status_code == 200

        response = import_client.post(f"/imports/{session_id}/commit")

        assert response.status_code == 409
        assert response.json()["error"] == "ALREADY_COMMITTED"
        assert writer.await_count == 1

    def test_committed_row_cannot_change(self, import_client, session_id):
        import_client.post(f"/imports/{session_id}/commit")

        response = import_client.post(f"/imports/{session_id}/rows/0/skip")

        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_TRANSITION"
        rows = import_client.get(f"/imports/{session_id}").json()["rows"]
        assert rows[0]["committed"] is True
        assert rows[1]["committed"] is False

    def test_commit_before_processing_conflicts(
        self, import_client, session_store, memory_catalog, writer
    ):
        pending = ImportSession(
            [{"Namn": "Acer palmatum"}],
            ColumnMapping(name="Namn"),
            memory_catalog,
            plantskola_id=7,
            session_id="pending-import",
        )
        asyncio.run(session_store.add(pending))

        response = import_client.post("/imports/pending-import/commit")

        assert response.status_code == 409
        assert response.json()["error"] == "IMPORT_NOT_READY"
        writer.assert_not_awaited()

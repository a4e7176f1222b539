"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, MagicMock

from testbench.config import reset_config
from testbench.core.errors import APIError
from testbench.web import server


@pytest.fixture
def client(isolated_config, monkeypatch):
    """Test client with fresh server state."""
    monkeypatch.setenv("TESTBENCH_TIMEOUT", "15")
    reset_config()
    monkeypatch.setattr(server, "_registry", None)
    monkeypatch.setattr(server, "_executor", None)
    monkeypatch.setattr(server, "_gemini", None)
    return TestClient(server.app)


@pytest.fixture
def mock_gemini(monkeypatch):
    gemini = MagicMock()
    gemini.generate_tests = AsyncMock(return_value="it('generated', lambda: None)")
    monkeypatch.setattr(server, "_gemini", gemini)
    return gemini


def create_project(client, **body):
    payload = {"name": "Adder", "code": "def add(a, b):\n    return a + b\n", "testCode": ""}
    payload.update(body)
    response = client.post("/api/projects", json=payload)
    assert response.status_code == 201
    return response.json()


def test_health(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["timeoutSeconds"] == 15.0
    assert data["generationAvailable"] is False


def test_run(client, sample_source_code, sample_test_code):
    response = client.post("/api/run", json={"sourceCode": sample_source_code, "testCode": sample_test_code})

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["error"] is None
    assert [r["status"] for r in data["results"]] == ["pass", "fail"]
    assert data["results"][1]["error"] == "Expected 3 but got 2"
    assert data["logs"][0]["type"] == "group"


def test_run_source_error(client):
    response = client.post("/api/run", json={"sourceCode": "1/0", "testCode": ""})

    data = response.json()
    assert data["success"] is False
    assert data["results"] == []
    assert data["error"] == "Source Code Error: ZeroDivisionError: division by zero"


def test_list_projects_seeds_default(client):
    response = client.get("/api/projects")

    assert response.status_code == 200
    assert [p["name"] for p in response.json()] == ["My First Project"]


def test_project_lifecycle(client):
    """Create, read, update, run, delete."""
    project = create_project(client)
    assert project["code"].startswith("def add")
    assert "createdAt" in project

    response = client.get(f"/api/projects/{project['id']}")
    assert response.json()["name"] == "Adder"

    response = client.put(
        f"/api/projects/{project['id']}",
        json={"testCode": "it('adds', lambda: expect(add(2, 2)).to_be(4))"},
    )
    assert response.status_code == 200
    assert response.json()["code"] == project["code"]

    response = client.post(f"/api/projects/{project['id']}/run")
    assert response.json()["results"][0]["status"] == "pass"

    response = client.delete(f"/api/projects/{project['id']}")
    assert response.json() == {"success": True}

    response = client.get(f"/api/projects/{project['id']}")
    assert response.status_code == 404
    assert response.json()["detail"] == f"Project '{project['id']}' not found"


def test_create_project_with_blank_name(client):
    response = client.post("/api/projects", json={"name": "  "})
    assert response.status_code == 400


def test_update_missing_project(client):
    response = client.put("/api/projects/missing", json={"name": "x"})
    assert response.status_code == 404


def test_delete_missing_project(client):
    response = client.delete("/api/projects/missing")
    assert response.status_code == 404


def test_generate_without_api_key(client):
    response = client.post("/api/generate", json={"sourceCode": "x = 1"})
    assert response.status_code == 503


def test_generate_requires_source(client, mock_gemini):
    response = client.post("/api/generate", json={"sourceCode": "  "})
    assert response.status_code == 400


def test_generate_for_code(client, mock_gemini):
    response = client.post("/api/generate", json={"sourceCode": "x = 1", "instruction": "check x"})

    assert response.json() == {"testCode": "it('generated', lambda: None)"}
    mock_gemini.generate_tests.assert_awaited_once_with("x = 1", "check x")


def test_generate_suite_replaces_project_tests(client, mock_gemini):
    project = create_project(client, testCode="it('old', lambda: None)")

    response = client.post("/api/generate", json={"projectId": project["id"]})

    assert response.json()["project"]["testCode"] == "it('generated', lambda: None)"


def test_generate_single_test_appends(client, mock_gemini):
    project = create_project(client, testCode="it('old', lambda: None)")

    response = client.post("/api/generate", json={"projectId": project["id"], "instruction": "more"})

    assert response.json()["project"]["testCode"] == "it('old', lambda: None)\n\nit('generated', lambda: None)"


def test_generate_api_failure(client, mock_gemini):
    mock_gemini.generate_tests.side_effect = APIError("Rate limit exceeded", status_code=429)

    response = client.post("/api/generate", json={"sourceCode": "x = 1"})

    assert response.status_code == 502
    assert response.json()["detail"] == "Rate limit exceeded"

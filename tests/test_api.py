from __future__ import annotations

from fastapi.testclient import TestClient

from insight.config import parse_config
from insight.main import build_app


def _app():
    return build_app(parse_config({"spec": {"codeConfig": {"kernelLinter": "/nonexistent/checkpatch.pl"}}}))


def test_health() -> None:
    with TestClient(_app()) as client:
        response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_trigger_with_empty_code_trigger() -> None:
    with TestClient(_app()) as client:
        response = client.post("/trigger", json={"codeTrigger": {}})

    assert response.status_code == 200
    body = response.json()
    assert body["codeInfo"]["findings"] == []
    assert "nodeInfo" not in body
    assert "error" not in body


def test_trigger_rejects_bad_ssh_port() -> None:
    with TestClient(_app()) as client:
        response = client.post("/trigger", json={"nodeTrigger": {"sshConfig": {"host": "h", "port": 70000}}})
    assert response.status_code == 422

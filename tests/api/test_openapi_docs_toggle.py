from __future__ import annotations

from types import SimpleNamespace

from fastapi.testclient import TestClient

from loyalty import main as app_main

DOC_PATHS = ("/docs", "/redoc", "/openapi.json")


def _settings(*, enable_openapi_docs: bool) -> SimpleNamespace:
    return SimpleNamespace(
        log_level="WARNING",
        enable_openapi_docs=enable_openapi_docs,
    )


def test_openapi_docs_enabled_lists_action_endpoint(monkeypatch) -> None:
    monkeypatch.setattr(app_main, "get_settings", lambda: _settings(enable_openapi_docs=True))
    client = TestClient(app_main.create_app())

    assert [client.get(path).status_code for path in DOC_PATHS] == [200, 200, 200]
    schema = client.get("/openapi.json").json()
    assert schema["info"]["title"] == "Loyalty Points Ledger API"
    assert "/api/actions" in schema["paths"]
    assert "/health" in schema["paths"]


def test_openapi_docs_disabled(monkeypatch) -> None:
    monkeypatch.setattr(app_main, "get_settings", lambda: _settings(enable_openapi_docs=False))
    client = TestClient(app_main.create_app())

    assert [client.get(path).status_code for path in DOC_PATHS] == [404, 404, 404]

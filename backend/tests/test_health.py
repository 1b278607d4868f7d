from datetime import datetime
from unittest.mock import patch


def test_health(client, settings):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["version"] == settings.APP_VERSION
    datetime.fromisoformat(body["timestamp"])


def test_health_sets_tracing_headers(client):
    response = client.get("/health", headers={"X-Request-ID": "abc123"})
    assert response.headers["X-Request-ID"] == "abc123"
    assert response.headers["X-Response-Time"].endswith("ms")


def test_ready(client):
    assert client.get("/health/ready").json()["status"] == "ready"


def test_ready_reports_unreachable_store(client, kv_store):
    with patch.object(kv_store, "ping", side_effect=ConnectionError("down")):
        response = client.get("/health/ready")
    assert response.status_code == 503


def test_unknown_route_is_404(client):
    response = client.get("/api/v1/does-not-exist")
    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Not found"}


def test_cors_preflight(client):
    response = client.options(
        "/api/v1/cache/menu",
        headers={"Origin": "http://localhost:5173", "Access-Control-Request-Method": "PUT"},
    )
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "http://localhost:5173"


def test_openapi_documents_the_error_envelope(client):
    schema = client.get("/openapi.json").json()

    assert "ErrorResponse" in schema["components"]["schemas"]
    upload_400 = schema["paths"]["/api/v1/images/upload"]["post"]["responses"]["400"]
    assert upload_400["content"]["application/json"]["schema"]["$ref"].endswith("/ErrorResponse")

from archive_reader.services import resolver


def test_healthz(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.data == b"ok"


def test_archive_requires_url(client):
    response = client.get("/api/archive")
    assert response.status_code == 400
    assert response.get_json() == {"error": "Missing url parameter."}
    assert response.headers["Cache-Control"] == "no-store"


def test_archive_rejects_non_http_urls(client):
    response = client.get("/api/archive", query_string={"url": "javascript:alert(1)"})
    assert response.status_code == 400
    assert response.get_json()["error"] == "Please provide a valid http or https URL."


def test_archive_wrong_method_is_json_405(client):
    response = client.post("/api/archive", query_string={"url": "https://example.com/"})
    assert response.status_code == 405
    assert response.get_json() == {"error": "Method not allowed."}
    assert "GET" in response.headers["Allow"]


def test_archive_returns_resolver_payload(client, monkeypatch):
    seen = {}

    def fake_resolve(raw_url):
        seen["url"] = raw_url
        return resolver.ResolveResponse(
            200,
            {
                "status": "submitted",
                "originalUrl": raw_url,
                "archiveUrl": None,
                "message": "queued",
            },
        )

    monkeypatch.setattr(resolver, "resolve", fake_resolve)

    response = client.get(
        "/api/archive",
        query_string={"url": "https://example.com/story"},
        headers={"X-Correlation-ID": "req-123"},
    )

    assert response.status_code == 200
    assert response.get_json()["status"] == "submitted"
    assert seen["url"] == "https://example.com/story"
    assert response.headers["X-Correlation-ID"] == "req-123"
    assert response.headers["Cache-Control"] == "no-store"


def test_archive_passes_through_upstream_errors(client, monkeypatch):
    monkeypatch.setattr(
        resolver,
        "resolve",
        lambda raw_url: resolver.ResolveResponse(
            502, {"error": "Wayback save request failed.", "details": {"type": "NetworkError"}}
        ),
    )

    response = client.get("/api/archive", query_string={"url": "https://example.com/"})

    assert response.status_code == 502
    assert response.get_json()["error"] == "Wayback save request failed."


def test_unexpected_errors_become_json_500(client, monkeypatch):
    def explode(raw_url):
        raise RuntimeError("boom")

    monkeypatch.setattr(resolver, "resolve", explode)

    response = client.get("/api/archive", query_string={"url": "https://example.com/"})

    assert response.status_code == 500
    assert response.get_json() == {"error": "Unexpected error while resolving the archive."}


def test_correlation_id_is_generated_when_missing(client):
    response = client.get("/healthz")
    assert len(response.headers["X-Correlation-ID"]) == 32


def test_correlation_id_from_caller_is_reused_when_well_formed(client):
    reused = client.get("/healthz", headers={"X-Correlation-ID": "req-42.a_b"})
    assert reused.headers["X-Correlation-ID"] == "req-42.a_b"

    replaced = client.get("/healthz", headers={"X-Correlation-ID": "bad id; forged=1"})
    assert replaced.headers["X-Correlation-ID"] != "bad id; forged=1"
    assert len(replaced.headers["X-Correlation-ID"]) == 32


def test_startup_import_check_passes():
    from archive_reader.startup_check import verify_imports

    verify_imports()

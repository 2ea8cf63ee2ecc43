def test_health_needs_no_key(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_missing_api_key_is_401(client):
    resp = client.post("/v1/chat/completions", json={"messages": []})
    assert resp.status_code == 401
    assert resp.json() == {"error": "Invalid API Key"}


def test_wrong_api_key_is_401(client):
    resp = client.get("/v1/models", headers={"Authorization": "Bearer nope"})
    assert resp.status_code == 401


def test_raw_key_without_bearer_prefix_is_accepted(client):
    resp = client.post(
        "/v1/chat/completions",
        headers={"Authorization": "test-api-key"},
        json={"model": "gemini-2.5-flash"},
    )
    assert resp.status_code == 400


def test_oversized_body_is_413(client, auth_headers):
    body = {"messages": [{"role": "user", "content": "x" * 8192}], "model": "m"}
    resp = client.post("/v1/chat/completions", headers=auth_headers, json=body)
    assert resp.status_code == 413
    assert "error" in resp.json()

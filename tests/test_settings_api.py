from .conftest import GEMINI_KEY, REPLICATE_KEY


def _set_cookie_headers(response) -> list[str]:
    return response.headers.get_list("set-cookie")


def test_reports_server_and_custom_keys(client, monkeypatch):
    monkeypatch.delenv("REPLICATE_API_TOKEN")
    client.cookies.set("replicate_api_key", REPLICATE_KEY)

    response = client.get("/api/settings")

    assert response.status_code == 200
    providers = response.json()["providers"]
    assert providers["gemini"] == {"label": "Gemini", "has_server_key": True, "has_custom_key": False}
    assert providers["replicate"] == {"label": "Replicate", "has_server_key": False, "has_custom_key": True}
    assert REPLICATE_KEY not in response.text


def test_saving_a_key_sets_a_strict_http_only_cookie(client):
    response = client.post("/api/settings", json={"gemini_api_key": f"  {GEMINI_KEY} "})

    assert response.status_code == 200
    (cookie,) = _set_cookie_headers(response)
    assert cookie.startswith(f"gemini_api_key={GEMINI_KEY};")
    assert "Max-Age=7776000" in cookie
    assert "HttpOnly" in cookie
    assert "SameSite=strict" in cookie
    assert "Path=/" in cookie


def test_empty_key_clears_the_cookie_and_omitted_key_is_untouched(client):
    response = client.post("/api/settings", json={"replicate_api_key": ""})

    assert response.status_code == 200
    (cookie,) = _set_cookie_headers(response)
    assert cookie.startswith('replicate_api_key="";')
    assert "Max-Age=0" in cookie


def test_invalid_keys_are_rejected_per_field(client):
    response = client.post(
        "/api/settings",
        json={"gemini_api_key": "not-a-key-but-long-enough-to-pass", "replicate_api_key": "r8_x"},
    )

    assert response.status_code == 422
    assert response.json()["errors"] == {
        "gemini_api_key": 'Gemini API key should start with "AIza"',
        "replicate_api_key": "API key appears to be too short",
    }
    assert _set_cookie_headers(response) == []


def test_delete_clears_a_single_provider(client):
    response = client.delete("/api/settings/gemini")

    assert response.status_code == 200
    (cookie,) = _set_cookie_headers(response)
    assert cookie.startswith('gemini_api_key="";')


def test_delete_unknown_provider(client):
    assert client.delete("/api/settings/openai").status_code == 404


def test_secure_flag_follows_configuration(client, monkeypatch):
    monkeypatch.setenv("COOKIE_SECURE", "true")

    response = client.post("/api/settings", json={"gemini_api_key": GEMINI_KEY})

    assert "Secure" in _set_cookie_headers(response)[0]

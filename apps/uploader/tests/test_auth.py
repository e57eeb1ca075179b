import base64
import hashlib
from urllib.parse import parse_qs, urlsplit

from fastapi.testclient import TestClient
import pytest

from uploader.auth import (
    BrowserLoginTokenProvider,
    CallbackResult,
    StaticTokenProvider,
    build_authorize_url,
    create_callback_app,
    exchange_code_for_token,
    generate_code_challenge,
    generate_code_verifier,
)
from uploader.config import get_settings
from uploader.services.pipeline.errors import AuthenticationError


class _FakeResponse:
    def __init__(self, payload: dict[str, object], *, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code
        self.text = str(payload)

    def json(self) -> dict[str, object]:
        return self._payload


def test_code_verifier_and_challenge() -> None:
    verifier = generate_code_verifier()
    expected = base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest()).rstrip(b"=")

    assert len(verifier) == 64
    assert generate_code_challenge(verifier) == expected.decode()
    assert "=" not in generate_code_challenge(verifier)
    with pytest.raises(ValueError):
        generate_code_verifier(12)


def test_authorize_url_carries_pkce_parameters() -> None:
    url = build_authorize_url(
        auth_url="https://login.example.com/services/oauth2/authorize",
        client_id="client-1",
        redirect_uri="http://localhost:8080/oauth/callback",
        code_challenge="challenge",
        state="xyz",
    )

    query = parse_qs(urlsplit(url).query)
    assert query == {
        "response_type": ["code"],
        "client_id": ["client-1"],
        "redirect_uri": ["http://localhost:8080/oauth/callback"],
        "code_challenge": ["challenge"],
        "code_challenge_method": ["S256"],
        "state": ["xyz"],
    }


def test_callback_app_reports_code() -> None:
    results: list[CallbackResult] = []
    client = TestClient(create_callback_app(results.append, expected_state="s1"))

    response = client.get("/oauth/callback", params={"code": "abc", "state": "s1"})

    assert response.status_code == 200
    assert "Login successful" in response.text
    assert results == [CallbackResult(code="abc")]


def test_callback_app_rejects_missing_code_and_errors() -> None:
    results: list[CallbackResult] = []
    client = TestClient(create_callback_app(results.append, expected_state="s1"))

    missing = client.get("/oauth/callback")
    denied = client.get(
        "/oauth/callback", params={"error": "access_denied", "error_description": "user denied"}
    )
    forged = client.get("/oauth/callback", params={"code": "abc", "state": "other"})

    assert missing.status_code == 400
    assert missing.text == "No code found in the request"
    assert denied.status_code == 400
    assert forged.status_code == 400
    assert [result.error for result in results] == ["user denied", "state mismatch in login callback"]


def test_exchange_code_for_token_posts_form(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_post(url: str, *, data: dict[str, str], timeout: float) -> _FakeResponse:
        captured.update(url=url, data=data, timeout=timeout)
        return _FakeResponse(
            {
                "access_token": "00D!abc",
                "token_type": "Bearer",
                "instance_url": "https://example.my.salesforce.com",
                "issued_at": "1700000000000",
            }
        )

    monkeypatch.setattr("uploader.auth.httpx.post", fake_post)

    token = exchange_code_for_token(
        token_url="https://example.my.salesforce.com/services/oauth2/token",
        client_id="client-1",
        redirect_uri="http://localhost:8080/oauth/callback",
        code="abc",
        code_verifier="verifier",
    )

    assert token.access_token == "00D!abc"
    assert token.instance_url == "https://example.my.salesforce.com"
    assert captured["data"] == {
        "grant_type": "authorization_code",
        "code": "abc",
        "client_id": "client-1",
        "redirect_uri": "http://localhost:8080/oauth/callback",
        "code_verifier": "verifier",
    }


def test_exchange_code_for_token_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_post(url: str, **kwargs: object) -> _FakeResponse:
        return _FakeResponse({"error": "invalid_grant"}, status_code=400)

    monkeypatch.setattr("uploader.auth.httpx.post", fake_post)

    with pytest.raises(AuthenticationError, match="status 400"):
        exchange_code_for_token(
            token_url="https://example.my.salesforce.com/services/oauth2/token",
            client_id="client-1",
            redirect_uri="http://localhost:8080/oauth/callback",
            code="abc",
            code_verifier="verifier",
        )


def test_static_token_provider() -> None:
    assert StaticTokenProvider("abc").get_token() == "abc"
    with pytest.raises(AuthenticationError):
        StaticTokenProvider("")


class _FakeConfig:
    def __init__(self, app: object, *, host: str, port: int, log_level: str) -> None:
        self.app = app
        self.host = host
        self.port = port


class _FakeServer:
    instances: list["_FakeServer"] = []

    def __init__(self, config: _FakeConfig) -> None:
        self.config = config
        self.should_exit = False
        _FakeServer.instances.append(self)

    def run(self) -> None:
        return None


def test_browser_login_exchanges_callback_code(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SF_INSTANCE_URL", "https://example.my.salesforce.com")
    monkeypatch.setenv("SF_CLIENT_ID", "client-1")
    monkeypatch.setenv("SF_REDIRECT_URI", "http://localhost:8765/oauth/callback")
    monkeypatch.setattr("uploader.auth.uvicorn.Config", _FakeConfig)
    monkeypatch.setattr("uploader.auth.uvicorn.Server", _FakeServer)
    captured: dict[str, object] = {}

    def fake_post(url: str, *, data: dict[str, str], timeout: float) -> _FakeResponse:
        captured["data"] = data
        return _FakeResponse({"access_token": "00D!fresh"})

    monkeypatch.setattr("uploader.auth.httpx.post", fake_post)

    def fake_browser(url: str) -> bool:
        query = parse_qs(urlsplit(url).query)
        captured["challenge"] = query["code_challenge"][0]
        server = _FakeServer.instances[-1]
        assert (server.config.host, server.config.port) == ("localhost", 8765)
        TestClient(server.config.app).get(
            "/oauth/callback", params={"code": "auth-code", "state": query["state"][0]}
        )
        return True

    provider = BrowserLoginTokenProvider(get_settings(), timeout_seconds=5, open_browser=fake_browser)

    assert provider.get_token() == "00D!fresh"
    data = captured["data"]
    assert isinstance(data, dict)
    assert data["code"] == "auth-code"
    assert generate_code_challenge(data["code_verifier"]) == captured["challenge"]
    assert _FakeServer.instances[-1].should_exit is True


def test_browser_login_requires_client_id(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SF_INSTANCE_URL", "https://example.my.salesforce.com")
    monkeypatch.setenv("SF_CLIENT_ID", "")

    with pytest.raises(AuthenticationError, match="SF_CLIENT_ID"):
        BrowserLoginTokenProvider(get_settings()).get_token()

from __future__ import annotations

import base64
from collections.abc import Callable
from dataclasses import dataclass
import hashlib
import logging
from queue import Empty, Queue
import secrets
import string
from threading import Thread
from typing import Protocol
from urllib.parse import urlencode, urlsplit
import webbrowser

from fastapi import FastAPI, Response
from fastapi.responses import HTMLResponse, PlainTextResponse
import httpx
from pydantic import BaseModel, ConfigDict, ValidationError
import uvicorn

from uploader.config import Settings, get_settings
from uploader.services.pipeline.errors import AuthenticationError

logger = logging.getLogger(__name__)

VERIFIER_ALPHABET = string.ascii_letters + string.digits + "-._~"
DEFAULT_LOGIN_TIMEOUT_SECONDS = 300.0

SUCCESS_PAGE = """<!DOCTYPE html>
<html>
<head><title>Login successful</title></head>
<body>
<h3>Login successful. You can close this window and return to the uploader.</h3>
<script>window.close();</script>
</body>
</html>
"""


class TokenResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    access_token: str
    token_type: str = "Bearer"
    instance_url: str | None = None


@dataclass(frozen=True)
class CallbackResult:
    code: str | None
    error: str | None = None


class TokenProvider(Protocol):
    def get_token(self) -> str: ...


def generate_code_verifier(length: int = 64) -> str:
    if not 43 <= length <= 128:
        raise ValueError("code verifier length must be between 43 and 128")
    return "".join(secrets.choice(VERIFIER_ALPHABET) for _ in range(length))


def generate_code_challenge(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def build_authorize_url(
    *,
    auth_url: str,
    client_id: str,
    redirect_uri: str,
    code_challenge: str,
    state: str | None = None,
) -> str:
    params = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
    }
    if state:
        params["state"] = state
    return f"{auth_url}?{urlencode(params)}"


def create_callback_app(
    on_result: Callable[[CallbackResult], None],
    *,
    path: str = "/oauth/callback",
    expected_state: str | None = None,
) -> FastAPI:
    app = FastAPI(title="Document Uploader Login", docs_url=None, redoc_url=None, openapi_url=None)

    @app.get(path)
    def oauth_callback(
        code: str | None = None,
        state: str | None = None,
        error: str | None = None,
        error_description: str | None = None,
    ) -> Response:
        if error:
            message = error_description or error
            on_result(CallbackResult(code=None, error=message))
            return PlainTextResponse(f"Login failed: {message}", status_code=400)
        if not code:
            return PlainTextResponse("No code found in the request", status_code=400)
        if expected_state is not None and state != expected_state:
            on_result(CallbackResult(code=None, error="state mismatch in login callback"))
            return PlainTextResponse("Login failed: state mismatch", status_code=400)

        on_result(CallbackResult(code=code))
        return HTMLResponse(SUCCESS_PAGE)

    return app


def exchange_code_for_token(
    *,
    token_url: str,
    client_id: str,
    redirect_uri: str,
    code: str,
    code_verifier: str,
    timeout_seconds: float = 30.0,
) -> TokenResponse:
    data = {
        "grant_type": "authorization_code",
        "code": code,
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "code_verifier": code_verifier,
    }

    try:
        response = httpx.post(token_url, data=data, timeout=timeout_seconds)
    except httpx.HTTPError as exc:
        raise AuthenticationError(f"token exchange request failed: {exc}") from exc

    if response.status_code != 200:
        raise AuthenticationError(
            f"token exchange failed with status {response.status_code}: {response.text}"
        )

    try:
        token = TokenResponse.model_validate(response.json())
    except (ValueError, ValidationError) as exc:
        raise AuthenticationError(f"error decoding token response: {exc}") from exc

    if not token.access_token:
        raise AuthenticationError("token response did not include an access token")
    logger.info("Received access token (type=%s)", token.token_type)
    return token


class StaticTokenProvider:
    def __init__(self, token: str) -> None:
        if not token:
            raise AuthenticationError("access token is empty")
        self._token = token

    def get_token(self) -> str:
        return self._token


class BrowserLoginTokenProvider:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        timeout_seconds: float = DEFAULT_LOGIN_TIMEOUT_SECONDS,
        open_browser: Callable[[str], bool] = webbrowser.open,
    ) -> None:
        self._settings = settings or get_settings()
        self._timeout_seconds = timeout_seconds
        self._open_browser = open_browser

    def _wait_for_callback(self, redirect_uri: str, authorize_url: str, state: str) -> CallbackResult:
        redirect = urlsplit(redirect_uri)
        results: Queue[CallbackResult] = Queue()
        app = create_callback_app(
            results.put,
            path=redirect.path or "/oauth/callback",
            expected_state=state,
        )
        config = uvicorn.Config(
            app,
            host=redirect.hostname or "localhost",
            port=redirect.port or 8080,
            log_level="warning",
        )
        server = uvicorn.Server(config)
        thread = Thread(target=server.run, name="oauth-callback", daemon=True)
        thread.start()

        try:
            logger.info("Opening browser for login")
            if not self._open_browser(authorize_url):
                logger.warning("Could not open a browser; visit this URL to log in: %s", authorize_url)
            try:
                return results.get(timeout=self._timeout_seconds)
            except Empty:
                raise AuthenticationError(
                    f"timed out after {self._timeout_seconds:.0f}s waiting for the login callback"
                ) from None
        finally:
            server.should_exit = True
            thread.join(timeout=5)

    def login(self) -> TokenResponse:
        settings = self._settings
        if not settings.instance_url:
            raise AuthenticationError("SF_INSTANCE_URL is not configured")
        if not settings.client_id:
            raise AuthenticationError("SF_CLIENT_ID is not configured")

        verifier = generate_code_verifier()
        state = secrets.token_urlsafe(16)
        authorize_url = build_authorize_url(
            auth_url=settings.auth_url,
            client_id=settings.client_id,
            redirect_uri=settings.redirect_uri,
            code_challenge=generate_code_challenge(verifier),
            state=state,
        )

        result = self._wait_for_callback(settings.redirect_uri, authorize_url, state)
        if result.error or not result.code:
            raise AuthenticationError(f"login failed: {result.error or 'no authorization code'}")

        return exchange_code_for_token(
            token_url=settings.token_url,
            client_id=settings.client_id,
            redirect_uri=settings.redirect_uri,
            code=result.code,
            code_verifier=verifier,
            timeout_seconds=settings.timeout_seconds,
        )

    def get_token(self) -> str:
        return self.login().access_token

"""Google OAuth token lifecycle for the Drive mirror."""

import json
import logging
import secrets
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel, ValidationError

from rockcast.cloud.transport import send
from rockcast.config.crypto import CredentialEncryptor
from rockcast.config.schema import CloudConfig
from rockcast.utils.errors import CloudAuthError, CloudError, EncryptionError
from rockcast.utils.retry import RetryConfig, with_retry

logger = logging.getLogger(__name__)

REFRESH_MARGIN = timedelta(minutes=5)

CodeProvider = Callable[[str], Awaitable[str]]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AuthToken(BaseModel):
    """OAuth access/refresh token pair."""

    access_token: str
    refresh_token: str | None = None
    token_type: str = "Bearer"
    expires_in: int = 3600
    expires_at: datetime
    scope: str | None = None

    @classmethod
    def from_response(cls, data: dict[str, Any], now: datetime) -> "AuthToken":
        """Build a token from a token endpoint response.

        Raises:
            CloudAuthError: If the response lacks a usable access token
        """
        try:
            expires_in = int(data.get("expires_in", 3600))
            return cls(
                access_token=data["access_token"],
                refresh_token=data.get("refresh_token"),
                token_type=data.get("token_type", "Bearer"),
                expires_in=expires_in,
                expires_at=now + timedelta(seconds=expires_in),
                scope=data.get("scope"),
            )
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            raise CloudAuthError(f"Malformed token response: {e!r}") from e

    def needs_refresh(self, now: datetime) -> bool:
        """True once the token is within five minutes of expiring."""
        return self.expires_at < now + REFRESH_MARGIN


class TokenStore:
    """Encrypted on-disk storage for the current token."""

    def __init__(self, path: Path, encryptor: CredentialEncryptor) -> None:
        self.path = path
        self.encryptor = encryptor

    def load(self) -> AuthToken | None:
        if not self.path.exists():
            return None
        try:
            plaintext = self.encryptor.decrypt(self.path.read_text().strip())
            return AuthToken.model_validate(json.loads(plaintext))
        except (EncryptionError, ValidationError, json.JSONDecodeError, OSError) as e:
            logger.warning(f"Ignoring unreadable token store {self.path}: {e}")
            return None

    def save(self, token: AuthToken) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(self.encryptor.encrypt(token.model_dump_json()))
        self.path.chmod(0o600)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


class GoogleAuthService:
    """Authorization-code flow with offline access, refresh and revocation.

    The browser redirect itself is left to a ``code_provider`` coroutine that
    receives the authorization URL and returns the code Google sent back.
    """

    def __init__(
        self,
        config: CloudConfig,
        store: TokenStore,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] = utc_now,
        retry_config: RetryConfig | None = None,
    ):
        self.config = config
        self.store = store
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=60)
        self.clock = clock
        self._post = with_retry(config=retry_config)(self._post_once)

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.config.client_id or "",
            "redirect_uri": self.config.redirect_uri,
            "response_type": "code",
            "scope": self.config.scope,
            "state": state,
            "access_type": "offline",
            "prompt": "consent",
        }
        return f"{self.config.auth_endpoint}?{urlencode(params)}"

    async def authenticate(self, code_provider: CodeProvider) -> AuthToken:
        """Run the interactive flow and store the resulting token.

        Raises:
            CloudAuthError: If no client is configured or the code is rejected
        """
        if not self.config.client_id:
            raise CloudAuthError("No Google OAuth client configured (cloud.client_id)")

        state = secrets.token_urlsafe(16)
        code = await code_provider(self.authorization_url(state))
        if not code:
            raise CloudAuthError("Authorization was cancelled")
        return await self.exchange_code(code)

    async def exchange_code(self, code: str) -> AuthToken:
        data = await self._post(
            self.config.token_endpoint,
            {
                "code": code,
                "client_id": self.config.client_id or "",
                "client_secret": self.config.client_secret or "",
                "redirect_uri": self.config.redirect_uri,
                "grant_type": "authorization_code",
            },
        )
        token = AuthToken.from_response(data, self.clock())
        self.store.save(token)
        logger.info("Signed in to Google Drive")
        return token

    async def refresh(self, token: AuthToken) -> AuthToken:
        """Exchange the refresh token for a new access token.

        Raises:
            CloudAuthError: If there is no refresh token
            CloudError: If Google rejects the refresh
        """
        if not token.refresh_token:
            raise CloudAuthError("Token has no refresh token")

        data = await self._post(
            self.config.token_endpoint,
            {
                "refresh_token": token.refresh_token,
                "client_id": self.config.client_id or "",
                "client_secret": self.config.client_secret or "",
                "grant_type": "refresh_token",
            },
        )
        # Google omits the refresh token from refresh responses
        data.setdefault("refresh_token", token.refresh_token)
        refreshed = AuthToken.from_response(data, self.clock())
        self.store.save(refreshed)
        logger.debug("Refreshed Google access token")
        return refreshed

    async def get_valid_token(self) -> AuthToken | None:
        """Stored token, refreshed if close to expiry; None when signed out."""
        token = self.store.load()
        if token is None:
            return None

        if not token.needs_refresh(self.clock()):
            return token

        if not token.refresh_token:
            logger.info("Access token expired and no refresh token is stored")
            return None

        try:
            return await self.refresh(token)
        except CloudError as e:
            logger.warning(f"Failed to refresh access token: {e}")
            return None

    async def is_authenticated(self) -> bool:
        return await self.get_valid_token() is not None

    async def sign_out(self) -> None:
        """Revoke the token server side (best effort) and forget it locally."""
        token = self.store.load()
        if token is not None:
            try:
                await send(
                    self.client,
                    "POST",
                    self.config.revoke_endpoint,
                    params={"token": token.refresh_token or token.access_token},
                )
            except CloudError as e:
                logger.warning(f"Token revocation failed: {e}")

        self.store.clear()
        logger.info("Signed out of Google Drive")

    async def _post_once(self, url: str, form: dict[str, str]) -> dict[str, Any]:
        response = await send(self.client, "POST", url, data=form)
        try:
            data = response.json()
        except ValueError as e:
            raise CloudAuthError(f"Token endpoint returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise CloudAuthError("Token endpoint returned an unexpected document")
        return data

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

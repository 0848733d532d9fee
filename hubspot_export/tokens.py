"""OAuth token lifecycle.

The TokenManager owns the process-wide token set. It exchanges refresh
tokens and authorization codes at the HubSpot OAuth endpoint, persists
every new set to the env file, and acts as the credential provider that
HubSpotClient consults on each request.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

import aiohttp

from .config import EnvFile, Settings
from .exceptions import AuthenticationError, AuthExpiredError
from .types import TokenSet, now_ms

TOKEN_ENDPOINT = "/oauth/v1/token"

log = logging.getLogger(__name__)

T = TypeVar("T")


class TokenManager:
    """Holds the current tokens and performs refresh / code exchange."""

    def __init__(self, settings: Settings, env_file: Optional[EnvFile] = None):
        self.settings = settings
        self.env_file = env_file if env_file is not None else EnvFile(settings.env_file)
        self._tokens: Optional[TokenSet] = settings.token_set
        self._lock = asyncio.Lock()
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def tokens(self) -> Optional[TokenSet]:
        return self._tokens

    @tokens.setter
    def tokens(self, value: Optional[TokenSet]) -> None:
        self._tokens = value

    @property
    def can_refresh(self) -> bool:
        return bool(
            self._tokens is not None
            and self._tokens.refresh_token
            and self.settings.client_id
            and self.settings.client_secret
        )

    def current_access_token(self) -> str:
        if self._tokens is None:
            raise AuthenticationError("No access token available; run the authorization flow first")
        return self._tokens.access_token

    def is_expired(self, at_ms: Optional[int] = None) -> bool:
        return self._tokens is not None and self._tokens.is_expired(at_ms)

    async def _ensure_session(self) -> None:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.settings.request_timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "TokenManager":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _request_tokens(self, form: Dict[str, str]) -> TokenSet:
        """POST a grant to the token endpoint and parse the resulting token set."""
        url = self.settings.api_base_url + TOKEN_ENDPOINT
        await self._ensure_session()
        issued_at = now_ms()
        try:
            async with self._session.post(url, data=form) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    raise AuthenticationError(
                        f"Token endpoint rejected {form['grant_type']} grant "
                        f"(HTTP {resp.status}): {body[:200]}",
                        status=resp.status, endpoint=TOKEN_ENDPOINT,
                    )
                data = await resp.json(content_type=None)
        except aiohttp.ClientError as e:
            raise AuthenticationError(f"Token request failed: {e}", endpoint=TOKEN_ENDPOINT) from e
        except asyncio.TimeoutError as e:
            raise AuthenticationError("Token request timed out", endpoint=TOKEN_ENDPOINT) from e
        try:
            tokens = TokenSet.from_token_response(data, issued_at_ms=issued_at)
        except ValueError as e:
            raise AuthenticationError(str(e), endpoint=TOKEN_ENDPOINT) from e
        if tokens.refresh_token is None and self._tokens is not None:
            tokens.refresh_token = self._tokens.refresh_token
        return tokens

    async def refresh(self, stale_token: Optional[str] = None) -> TokenSet:
        """Exchange the refresh token for a new token set.

        Refreshes are serialized. When ``stale_token`` is given and another
        caller already replaced it, the current set is returned without a
        second exchange.

        Raises:
            AuthenticationError: If no refresh token is configured or the
                token endpoint rejects it
        """
        async with self._lock:
            if (stale_token is not None and self._tokens is not None
                    and self._tokens.access_token != stale_token):
                log.debug("Token already refreshed by another caller")
                return self._tokens
            if not self.can_refresh:
                raise AuthenticationError(
                    "Cannot refresh: refresh token, client id and client secret are required"
                )
            log.info("Refreshing access token...")
            tokens = await self._request_tokens({
                "grant_type": "refresh_token",
                "client_id": self.settings.client_id,
                "client_secret": self.settings.client_secret,
                "refresh_token": self._tokens.refresh_token,
            })
            self._tokens = tokens
            try:
                self.persist(tokens)
            except OSError as e:
                log.error(f"Error updating {self.env_file.path}: {e}")
            log.info("Token refreshed successfully")
            return tokens

    async def exchange_code(self, code: str) -> TokenSet:
        """Exchange an authorization code for tokens and persist them.

        Raises:
            AuthenticationError: If the token endpoint rejects the code
            OSError: If the tokens cannot be written to the env file
        """
        async with self._lock:
            log.info("Exchanging authorization code for tokens...")
            tokens = await self._request_tokens({
                "grant_type": "authorization_code",
                "client_id": self.settings.client_id or "",
                "client_secret": self.settings.client_secret or "",
                "redirect_uri": self.settings.redirect_uri,
                "code": code,
            })
            self._tokens = tokens
            self.persist(tokens)
            return tokens

    def persist(self, tokens: TokenSet) -> None:
        self.env_file.write_tokens(tokens, defaults={
            "client_id": self.settings.client_id,
            "client_secret": self.settings.client_secret,
            "redirect_uri": self.settings.redirect_uri,
        })

    async def ensure_fresh(self) -> bool:
        """Refresh up front if the stored expiry has already passed.

        Returns:
            True if a refresh was performed
        """
        if self.is_expired() and self.can_refresh:
            log.info("Access token expired, refreshing before starting...")
            await self.refresh(stale_token=self._tokens.access_token)
            return True
        return False


async def with_token_refresh(tokens: TokenManager, call: Callable[..., Awaitable[T]], *args: Any,
                             max_retries: int = 1, **kwargs: Any) -> T:
    """Run ``call`` and retry it after a token refresh on 401.

    At most ``max_retries`` refreshes are attempted. The last
    AuthExpiredError is re-raised when the budget is spent or refresh is
    not configured.
    """
    attempt = 0
    while True:
        used_token = tokens.current_access_token()
        try:
            return await call(*args, **kwargs)
        except AuthExpiredError:
            if attempt >= max_retries or not tokens.can_refresh:
                raise
            attempt += 1
            log.info("Access token expired during request, refreshing...")
            await tokens.refresh(stale_token=used_token)
            log.info("Token refreshed, retrying request...")

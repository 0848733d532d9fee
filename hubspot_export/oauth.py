"""Interactive OAuth bootstrap.

Checks the env file for usable tokens, refreshes them when they are
expired, and otherwise runs the authorization-code flow through a small
local aiohttp web server that receives HubSpot's redirect.
"""
from __future__ import annotations

import asyncio
import enum
import html
import logging
import webbrowser
from typing import Callable, Optional

from aiohttp import web
from yarl import URL

from .config import EnvFile, Settings
from .exceptions import AuthenticationError
from .tokens import TokenManager

AUTHORIZE_URL = "https://app.hubspot.com/oauth/authorize"
DEFAULT_PORT = 3000
DEFAULT_SHUTDOWN_DELAY = 5.0

log = logging.getLogger(__name__)


class BootstrapState(enum.Enum):
    CHECK_EXISTING = "check_existing"
    VALID = "valid"
    EXPIRED = "expired"
    ABSENT = "absent"
    REFRESH = "refresh"
    SUCCESS = "success"
    FAIL = "fail"
    INTERACTIVE = "interactive"


INDEX_PAGE = """
<h1>HubSpot OAuth</h1>
<p>Click the button below to authorize this app with your HubSpot account.</p>
<p>Requested scopes: {scopes}</p>
<p>Redirect URI: {redirect_uri}</p>
<a href="{auth_url}" style="display: inline-block; padding: 10px 15px; background-color: #ff7a59; color: white; text-decoration: none; border-radius: 4px;">
  Connect to HubSpot
</a>
<p style="margin-top: 20px; color: #666;">
  <strong>Troubleshooting:</strong> If you get authorization errors, make sure:
  <ul>
    <li>The redirect URL in your HubSpot app settings exactly matches: {redirect_uri}</li>
    <li>All scopes listed above are enabled in your HubSpot app</li>
  </ul>
</p>
"""

SUCCESS_PAGE = """
<h1>Authorization Successful!</h1>
<p>Your HubSpot account has been connected. The access tokens have been saved.</p>
<p>You can now close this window and run the export with:</p>
<pre style="background: #f1f1f1; padding: 10px; border-radius: 4px;">hubspot-export</pre>
"""

ERROR_PAGE = """
<h1>Error</h1>
<p>Failed to get access token: {message}</p>
<a href="/">Try again</a>
"""


class OAuthBootstrap:
    """Drives CHECK_EXISTING -> VALID | REFRESH | INTERACTIVE."""

    def __init__(self, settings: Settings, env_file: Optional[EnvFile] = None,
                 tokens: Optional[TokenManager] = None, *, host: str = "localhost",
                 port: int = DEFAULT_PORT, shutdown_delay: float = DEFAULT_SHUTDOWN_DELAY,
                 open_browser: Callable[[str], object] = webbrowser.open):
        self.settings = settings
        self.env_file = env_file if env_file is not None else EnvFile(settings.env_file)
        self.tokens = tokens if tokens is not None else TokenManager(settings, self.env_file)
        self.host = host
        self.port = port
        self.shutdown_delay = shutdown_delay
        self.open_browser = open_browser
        self.state = BootstrapState.CHECK_EXISTING
        self._authorized: Optional[asyncio.Event] = None

    @property
    def start_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def authorization_url(self) -> str:
        return str(URL(AUTHORIZE_URL).with_query({
            "client_id": self.settings.client_id or "",
            "redirect_uri": self.settings.redirect_uri,
            "scope": self.settings.scopes,
        }))

    def check_existing(self) -> BootstrapState:
        log.info("Checking for existing tokens...")
        existing = self.env_file.read_tokens()
        if existing is None:
            log.info("No valid tokens found. Starting OAuth flow...")
            self.state = BootstrapState.ABSENT
            return self.state

        log.info(f"Found existing tokens in {self.env_file.path}")
        # Tokens on disk supersede whatever the environment held
        self.tokens.tokens = existing
        self.state = BootstrapState.EXPIRED if existing.is_expired() else BootstrapState.VALID
        return self.state

    async def try_refresh(self) -> BootstrapState:
        self.state = BootstrapState.REFRESH
        log.info("Tokens expired, refreshing...")
        try:
            await self.tokens.refresh()
        except AuthenticationError as e:
            log.error(f"Error refreshing token: {e}")
            log.info("Failed to refresh tokens. Starting OAuth flow...")
            self.state = BootstrapState.FAIL
            return self.state
        log.info("Tokens refreshed successfully!")
        self.state = BootstrapState.SUCCESS
        return self.state

    # -------------------------
    # HTTP handlers
    # -------------------------
    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/", self.handle_index)
        app.router.add_get(URL(self.settings.redirect_uri).path or "/oauth-callback", self.handle_callback)
        return app

    async def handle_index(self, request: web.Request) -> web.Response:
        auth_url = self.authorization_url()
        log.info(f"Auth URL: {auth_url}")
        log.info(f"Scopes requested: {self.settings.scopes}")
        body = INDEX_PAGE.format(
            scopes=html.escape(self.settings.scopes),
            redirect_uri=html.escape(self.settings.redirect_uri),
            auth_url=html.escape(auth_url, quote=True),
        )
        return web.Response(text=body, content_type="text/html")

    async def handle_callback(self, request: web.Request) -> web.Response:
        code = request.query.get("code")
        if not code:
            message = request.query.get("error_description") or request.query.get("error") or "missing authorization code"
            log.error(f"OAuth callback without code: {message}")
            return self._error_response(message, status=400)

        try:
            await self.tokens.exchange_code(code)
        except (AuthenticationError, OSError) as e:
            log.error(f"Error getting access token: {e}")
            return self._error_response(str(e), status=500)

        self.state = BootstrapState.SUCCESS
        if self._authorized is not None:
            self._authorized.set()
        return web.Response(text=SUCCESS_PAGE, content_type="text/html")

    @staticmethod
    def _error_response(message: str, status: int) -> web.Response:
        return web.Response(text=ERROR_PAGE.format(message=html.escape(message)),
                            content_type="text/html", status=status)

    async def run_interactive(self) -> int:
        self.state = BootstrapState.INTERACTIVE
        self._authorized = asyncio.Event()
        runner = web.AppRunner(self.build_app())
        await runner.setup()
        try:
            site = web.TCPSite(runner, self.host, self.port)
            await site.start()
            log.info(f"OAuth server running at {self.start_url}")
            log.info("Opening browser to start OAuth flow...")
            # Console browsers block until they exit
            await asyncio.to_thread(self.open_browser, self.start_url)

            await self._authorized.wait()
            # Let the success page render before the listener goes away
            await asyncio.sleep(self.shutdown_delay)
            log.info(f"Authorization successful! Access tokens have been saved to {self.env_file.path}.")
            log.info("You can now run the export with: hubspot-export")
        finally:
            await runner.cleanup()
        return 0

    async def run(self) -> int:
        """Run the bootstrap state machine and return the exit status."""
        try:
            state = self.check_existing()
            if state is BootstrapState.VALID:
                log.info("Existing tokens are valid!")
                log.info("You can now run the export with: hubspot-export")
                return 0
            if state is BootstrapState.EXPIRED and await self.try_refresh() is BootstrapState.SUCCESS:
                log.info("You can now run the export with: hubspot-export")
                return 0
            return await self.run_interactive()
        finally:
            await self.tokens.close()

"""Settings and env-file persistence.

Settings are read from the process environment after loading the env file
with python-dotenv (variables already set in the environment win). Token
updates are written back to the same file by replacing only the three
token lines, leaving every other entry as it was.
"""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

from dotenv import dotenv_values, load_dotenv

from .exceptions import ConfigurationError
from .types import TokenSet

DEFAULT_REDIRECT_URI = "http://localhost:3000/oauth-callback"
DEFAULT_SCOPES = "crm.objects.deals.read crm.objects.contacts.read crm.objects.companies.read sales-email-read"
DEFAULT_OUTPUT_DIR = "./data"
DEFAULT_BATCH_SIZE = 100
DEFAULT_API_BASE_URL = "https://api.hubapi.com"
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_ENV_FILE = ".env"

ACCESS_TOKEN_KEY = "HUBSPOT_ACCESS_TOKEN"
REFRESH_TOKEN_KEY = "HUBSPOT_REFRESH_TOKEN"
EXPIRES_AT_KEY = "HUBSPOT_TOKEN_EXPIRES_AT"
TOKEN_KEYS = (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, EXPIRES_AT_KEY)

ENV_TEMPLATE = """
HUBSPOT_CLIENT_ID={client_id}
HUBSPOT_CLIENT_SECRET={client_secret}
HUBSPOT_REDIRECT_URI={redirect_uri}

# OAuth tokens
HUBSPOT_ACCESS_TOKEN=
HUBSPOT_REFRESH_TOKEN=
HUBSPOT_TOKEN_EXPIRES_AT=

# Configuration
OUTPUT_DIR=./data
BATCH_SIZE=100
"""

log = logging.getLogger(__name__)


def _parse_int(environ: Mapping[str, str], key: str, default: Optional[int]) -> Optional[int]:
    raw = environ.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError as e:
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}") from e


def _parse_float(environ: Mapping[str, str], key: str, default: float) -> float:
    raw = environ.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError as e:
        raise ConfigurationError(f"{key} must be a number, got {raw!r}") from e


@dataclass
class Settings:
    """Runtime configuration for both entry points."""

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    token_expires_at: Optional[int] = None
    redirect_uri: str = DEFAULT_REDIRECT_URI
    scopes: str = DEFAULT_SCOPES
    output_dir: str = DEFAULT_OUTPUT_DIR
    batch_size: int = DEFAULT_BATCH_SIZE
    api_base_url: str = DEFAULT_API_BASE_URL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    env_file: str = DEFAULT_ENV_FILE

    @classmethod
    def from_env(cls, env_file: Union[str, Path, None] = DEFAULT_ENV_FILE,
                 environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from the environment.

        Args:
            env_file: Env file to load first (skipped if it does not exist)
            environ: Mapping to read instead of ``os.environ`` (no file is
                loaded when given)

        Raises:
            ConfigurationError: If a numeric setting cannot be parsed
        """
        if environ is None:
            if env_file and Path(env_file).exists():
                load_dotenv(env_file)
                log.debug(f"Loaded environment from {env_file}")
            environ = os.environ

        batch_size = _parse_int(environ, "BATCH_SIZE", DEFAULT_BATCH_SIZE)
        if batch_size is None or batch_size < 1:
            raise ConfigurationError(f"BATCH_SIZE must be a positive integer, got {batch_size}")

        return cls(
            access_token=environ.get(ACCESS_TOKEN_KEY) or None,
            refresh_token=environ.get(REFRESH_TOKEN_KEY) or None,
            client_id=environ.get("HUBSPOT_CLIENT_ID") or None,
            client_secret=environ.get("HUBSPOT_CLIENT_SECRET") or None,
            token_expires_at=_parse_int(environ, EXPIRES_AT_KEY, None),
            redirect_uri=environ.get("HUBSPOT_REDIRECT_URI") or DEFAULT_REDIRECT_URI,
            scopes=environ.get("HUBSPOT_SCOPES") or DEFAULT_SCOPES,
            output_dir=environ.get("OUTPUT_DIR") or DEFAULT_OUTPUT_DIR,
            batch_size=batch_size,
            api_base_url=(environ.get("HUBSPOT_API_BASE_URL") or DEFAULT_API_BASE_URL).rstrip("/"),
            request_timeout=_parse_float(environ, "REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT),
            env_file=str(env_file) if env_file else DEFAULT_ENV_FILE,
        )

    def require_export_credentials(self) -> None:
        if not self.access_token:
            raise ConfigurationError(
                f"{ACCESS_TOKEN_KEY} is not set. Run hubspot-authorize or export {ACCESS_TOKEN_KEY}=your_token"
            )

    def require_client_credentials(self) -> None:
        if not self.client_id or not self.client_secret:
            raise ConfigurationError(
                "HUBSPOT_CLIENT_ID and HUBSPOT_CLIENT_SECRET must be set in the env file"
            )

    @property
    def token_set(self) -> Optional[TokenSet]:
        if not self.access_token:
            return None
        return TokenSet(self.access_token, self.refresh_token, self.token_expires_at)


class EnvFile:
    """Reads and rewrites the token entries of a key=value env file."""

    def __init__(self, path: Union[str, Path] = DEFAULT_ENV_FILE,
                 template_path: Union[str, Path, None] = ".env.example"):
        self.path = Path(path)
        self.template_path = Path(template_path) if template_path else None

    def read_tokens(self) -> Optional[TokenSet]:
        """Return the stored token set, or None unless all three entries are filled in."""
        if not self.path.exists():
            return None
        values = dotenv_values(self.path)
        access, refresh, expires = (values.get(key) for key in TOKEN_KEYS)
        if not (access and refresh and expires):
            return None
        try:
            expires_at = int(expires)
        except ValueError:
            log.warning(f"Ignoring non-numeric {EXPIRES_AT_KEY} in {self.path}")
            return None
        return TokenSet(access, refresh, expires_at)

    def _initial_content(self, defaults: Mapping[str, Optional[str]]) -> str:
        if self.path.exists():
            return self.path.read_text(encoding="utf-8")
        if self.template_path is not None and self.template_path.exists():
            log.info(f"{self.path} not found, starting from {self.template_path}")
            return self.template_path.read_text(encoding="utf-8")
        log.info(f"{self.path} not found, creating it")
        return ENV_TEMPLATE.format(
            client_id=defaults.get("client_id") or "",
            client_secret=defaults.get("client_secret") or "",
            redirect_uri=defaults.get("redirect_uri") or DEFAULT_REDIRECT_URI,
        )

    def write_tokens(self, tokens: TokenSet, defaults: Optional[Mapping[str, Optional[str]]] = None) -> None:
        """Persist the token set, leaving unrelated lines untouched.

        Args:
            tokens: Token set to store
            defaults: client_id / client_secret / redirect_uri used when
                the file has to be created from scratch

        Raises:
            OSError: If the file cannot be read or written
        """
        content = self._initial_content(defaults or {})
        updates: Dict[str, str] = {
            ACCESS_TOKEN_KEY: tokens.access_token,
            REFRESH_TOKEN_KEY: tokens.refresh_token or "",
            EXPIRES_AT_KEY: "" if tokens.expires_at is None else str(tokens.expires_at),
        }
        for key, value in updates.items():
            pattern = re.compile(rf"^{key}=.*$", re.MULTILINE)
            line = f"{key}={value}"
            if pattern.search(content):
                content = pattern.sub(lambda _m: line, content, count=1)
            else:
                if content and not content.endswith("\n"):
                    content += "\n"
                content += line + "\n"
        self.path.write_text(content, encoding="utf-8")
        log.info(f"Updated {self.path} with new tokens")

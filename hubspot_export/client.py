"""HubSpot API client implementation.

This module provides the HubSpotClient class that wraps the few HubSpot
CRM endpoints the exporter needs. Every call either returns parsed JSON or
raises one of the typed errors from hubspot_export.exceptions, decided by
HTTP status code.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Protocol

import aiohttp

from .exceptions import ApiRequestError, AuthExpiredError, RateLimitedError
from .types import AssociationReference, EngagementObject, JSONType

# --- Constants ---
DEALS_ENDPOINT = "/crm/v3/objects/deals"
ASSOCIATIONS_ENDPOINT = "/crm/v4/objects/deals/{deal_id}/associations/{to_object_type}"
BATCH_READ_ENDPOINT = "/crm/v3/objects/{object_type}/batch/read"
MAX_BATCH_READ_SIZE = 100  # HubSpot batch API limit
ASSOCIATIONS_PAGE_SIZE = 500
MAX_RATE_LIMIT_RETRIES = 3
MAX_RETRY_AFTER_SECONDS = 10.0

log = logging.getLogger(__name__)


class CredentialProvider(Protocol):
    def current_access_token(self) -> str:
        ...


class HubSpotClient:
    """Client for the HubSpot CRM API.

    The bearer token is looked up from the credential provider on every
    request, so a refresh performed by the provider is picked up by the
    next call without touching the client.
    """

    def __init__(self, credentials: CredentialProvider, base_url: str = "https://api.hubapi.com",
                 *, timeout: float = 30.0, max_rate_limit_retries: int = MAX_RATE_LIMIT_RETRIES):
        """Initialize HubSpot client.

        Args:
            credentials: Object exposing ``current_access_token()``
            base_url: API root (default: https://api.hubapi.com)
            timeout: Total timeout per request in seconds
            max_rate_limit_retries: Retries on 429 before giving up
        """
        self.base_url = base_url.rstrip('/')
        self.credentials = credentials
        self.timeout = timeout
        self.max_rate_limit_retries = max_rate_limit_retries
        self._session: Optional[aiohttp.ClientSession] = None

    async def _ensure_session(self) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "HubSpotClient":
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # -------------------------
    # HTTP helper
    # -------------------------
    async def _make_api_request(self, method: str, endpoint: str, params: Optional[Dict[str, Any]] = None,
                                payload: Optional[Dict[str, Any]] = None) -> Any:
        """Make an authenticated API request and return the decoded JSON body.

        Raises:
            AuthExpiredError: On 401
            RateLimitedError: On 429 after the retry budget is spent
            ApiRequestError: On any other failure
        """
        url = self.base_url + endpoint
        await self._ensure_session()
        attempt = 0
        while True:
            headers = {
                "Authorization": f"Bearer {self.credentials.current_access_token()}",
                "Accept": "application/json",
            }
            try:
                async with self._session.request(method, url, params=params, json=payload,
                                                 headers=headers) as resp:
                    log.debug(f"{endpoint} response - status: {resp.status}")
                    if resp.status == 401:
                        raise AuthExpiredError(f"Unauthorized response from {endpoint}", endpoint=endpoint)

                    if resp.status == 429:
                        retry_after = self._parse_retry_after(resp.headers.get("Retry-After"))
                        if attempt < self.max_rate_limit_retries:
                            attempt += 1
                            log.warning(f"Rate limited on {endpoint}, retrying in {retry_after}s "
                                        f"(attempt {attempt}/{self.max_rate_limit_retries})")
                            await asyncio.sleep(retry_after)
                            continue
                        raise RateLimitedError(f"Rate limit exceeded for {endpoint}",
                                               retry_after=retry_after, endpoint=endpoint)

                    if resp.status >= 400:
                        detail = await self._error_detail(resp)
                        raise ApiRequestError(
                            f"HubSpot API error ({resp.status}) for {endpoint}: {detail}",
                            status=resp.status, endpoint=endpoint,
                        )

                    return await resp.json(content_type=None)
            except ApiRequestError:
                raise
            except aiohttp.ClientError as e:
                log.error(f"API request failed for {endpoint}: {e}")
                raise ApiRequestError(f"API request failed for {endpoint}: {e}", endpoint=endpoint) from e
            except asyncio.TimeoutError as e:
                log.error(f"API request timed out for {endpoint}")
                raise ApiRequestError(f"API request timed out for {endpoint}", endpoint=endpoint) from e
            except ValueError as e:
                log.error(f"Failed to parse server response for {endpoint}: {e}")
                raise ApiRequestError(f"Failed to parse server response for {endpoint}: {e}",
                                      endpoint=endpoint) from e

    @staticmethod
    def _parse_retry_after(value: Optional[str]) -> float:
        try:
            seconds = float(value) if value is not None else 1.0
        except ValueError:
            seconds = 1.0
        return max(0.0, min(seconds, MAX_RETRY_AFTER_SECONDS))

    @staticmethod
    async def _error_detail(resp: aiohttp.ClientResponse) -> str:
        # HubSpot error format: {"message": "...", "errors": [...]}
        text = await resp.text()
        try:
            body = json.loads(text)
        except ValueError:
            return text[:500]
        if not isinstance(body, dict):
            return text[:500]
        detail = str(body.get("message", ""))
        errors = body.get("errors")
        if isinstance(errors, list) and errors:
            detail = f"{detail}: " + "; ".join(
                str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in errors
            )
        return detail

    # -------------------------
    # CRM capabilities
    # -------------------------
    async def list_deals(self, after: Optional[str] = None, limit: int = 100,
                         properties: Iterable[str] = (), associations: Iterable[str] = ()) -> Dict[str, JSONType]:
        """Fetch one page of deals.

        Returns:
            The raw page: ``{"results": [...], "paging": {"next": {"after": ...}}}``
        """
        params: Dict[str, Any] = {"limit": limit}
        properties = list(properties)
        associations = list(associations)
        if properties:
            params["properties"] = ",".join(properties)
        if associations:
            params["associations"] = ",".join(associations)
        if after:
            params["after"] = after
        return await self._make_api_request("GET", DEALS_ENDPOINT, params=params)

    async def list_associations(self, deal_id: str, to_object_type: str) -> List[AssociationReference]:
        """List every association of ``deal_id`` to objects of ``to_object_type``.

        All association pages are collected before returning.
        """
        endpoint = ASSOCIATIONS_ENDPOINT.format(deal_id=deal_id, to_object_type=to_object_type)
        results: List[AssociationReference] = []
        after: Optional[str] = None
        while True:
            params: Dict[str, Any] = {"limit": ASSOCIATIONS_PAGE_SIZE}
            if after:
                params["after"] = after
            data = await self._make_api_request("GET", endpoint, params=params) or {}
            results.extend(data.get("results", []))
            after = ((data.get("paging") or {}).get("next") or {}).get("after")
            if not after:
                return results

    async def batch_read(self, object_type: str, ids: List[str],
                         properties: Iterable[str] = ()) -> List[EngagementObject]:
        """Resolve up to MAX_BATCH_READ_SIZE ids of one object type to full records.

        Raises:
            ValueError: If more ids than the batch limit are given
        """
        if len(ids) > MAX_BATCH_READ_SIZE:
            raise ValueError(f"batch_read accepts at most {MAX_BATCH_READ_SIZE} ids, got {len(ids)}")
        endpoint = BATCH_READ_ENDPOINT.format(object_type=object_type)
        payload: Dict[str, Any] = {"inputs": [{"id": str(object_id)} for object_id in ids]}
        properties = list(properties)
        if properties:
            payload["properties"] = properties
        data = await self._make_api_request("POST", endpoint, payload=payload) or {}
        if data.get("errors"):
            # 207 Multi-Status: some ids could not be read
            log.warning(f"Batch read of {object_type} returned {len(data['errors'])} error(s)")
        return data.get("results", [])

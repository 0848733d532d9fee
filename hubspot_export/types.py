"""Shared typing helpers used across the hubspot_export package.

This module centralizes JSON-like typings, the typed dictionaries written
to disk, and the token set shared by the token manager and bootstrap flow.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Dict, List, Optional, TypedDict, Union


# Recursive JSON-ish type used for payloads / returned JSON values
JSONType = Union[Dict[str, "JSONType"], List["JSONType"], str, int, float, bool, None]

# HubSpot records are passed through verbatim
Deal = Dict[str, JSONType]
AssociationReference = Dict[str, JSONType]
EngagementObject = Dict[str, JSONType]


class AssociationResult(TypedDict):
    associations: List[AssociationReference]
    objects: List[EngagementObject]


class _ActivityRecordBase(TypedDict):
    deal_id: str
    timestamp: str
    activity_types: Dict[str, AssociationResult]


class ActivityRecord(_ActivityRecordBase, total=False):
    """Per-deal activity snapshot written to ``activities/{deal_id}.json``.

    ``error`` is only present on degraded records.
    """
    error: str


def empty_result() -> AssociationResult:
    return {"associations": [], "objects": []}


def now_ms() -> int:
    """Current Unix time in milliseconds."""
    return int(time.time() * 1000)


@dataclass
class TokenSet:
    """OAuth token pair with its expiry in epoch milliseconds."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None

    @classmethod
    def from_token_response(cls, data: Dict[str, JSONType], issued_at_ms: Optional[int] = None) -> "TokenSet":
        """Build a TokenSet from the OAuth token endpoint's JSON body.

        Raises:
            ValueError: If the body lacks ``access_token`` or ``expires_in``
        """
        try:
            access_token = str(data["access_token"])
            expires_in = int(data["expires_in"])
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Malformed token response: {e}") from e
        issued = issued_at_ms if issued_at_ms is not None else now_ms()
        refresh_token = data.get("refresh_token")
        return cls(
            access_token=access_token,
            refresh_token=str(refresh_token) if refresh_token else None,
            expires_at=issued + expires_in * 1000,
        )

    def is_expired(self, at_ms: Optional[int] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at < (at_ms if at_ms is not None else now_ms())

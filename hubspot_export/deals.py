"""Paginated deal listing."""
from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from .client import HubSpotClient
from .tokens import TokenManager, with_token_refresh
from .types import Deal

DEAL_PROPERTIES = ("dealname", "amount", "dealstage", "closedate", "pipeline", "createdate")
DEAL_ASSOCIATIONS = ("contacts", "companies")

log = logging.getLogger(__name__)


class DealFetcher:
    """Walks the deals list cursor until HubSpot stops returning one."""

    def __init__(self, client: HubSpotClient, tokens: TokenManager, page_size: int = 100,
                 properties: Sequence[str] = DEAL_PROPERTIES,
                 associations: Optional[Sequence[str]] = DEAL_ASSOCIATIONS):
        self.client = client
        self.tokens = tokens
        self.page_size = page_size
        self.properties = list(properties)
        self.associations = list(associations) if associations else []

    async def fetch_all_deals(self) -> List[Deal]:
        """Fetch every deal, page by page, in the order HubSpot returns them.

        A 401 on any page refreshes the token and re-requests that same
        page. Any other failure propagates.

        Raises:
            ApiRequestError: If a page cannot be fetched
        """
        log.info("Fetching deals...")
        deals: List[Deal] = []
        after: Optional[str] = None
        while True:
            page = await with_token_refresh(
                self.tokens, self.client.list_deals,
                after=after, limit=self.page_size,
                properties=self.properties, associations=self.associations,
            ) or {}
            deals.extend(page.get("results", []))
            log.info(f"Retrieved {len(deals)} deals so far...")

            after = ((page.get("paging") or {}).get("next") or {}).get("after")
            if not after:
                break

        log.info(f"Total deals retrieved: {len(deals)}")
        return deals

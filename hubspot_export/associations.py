"""Resolution of a deal's associated engagement objects."""
from __future__ import annotations

import logging
from typing import Dict, List, Optional

from .client import MAX_BATCH_READ_SIZE, HubSpotClient
from .exceptions import ApiRequestError, AuthenticationError, AuthExpiredError
from .tokens import TokenManager, with_token_refresh
from .types import AssociationResult, EngagementObject, empty_result

# Engagement type -> object type accepted by the batch read endpoint
BATCH_READ_OBJECT_TYPES: Dict[str, str] = {
    "notes": "notes",
    "calls": "calls",
    "meetings": "meetings",
    "emails": "emails",
    "tasks": "tasks",
}

log = logging.getLogger(__name__)


def chunked(items: List[str], size: int) -> List[List[str]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class AssociationResolver:
    """Lists a deal's associations of one type and batch-reads the targets.

    Failures are contained here: a bad batch is skipped, and a failed
    listing yields an empty result. Only AuthenticationError (the refresh
    itself failed) escapes.
    """

    def __init__(self, client: HubSpotClient, tokens: TokenManager,
                 batch_size: int = MAX_BATCH_READ_SIZE,
                 object_types: Optional[Dict[str, str]] = None):
        self.client = client
        self.tokens = tokens
        self.batch_size = min(batch_size, MAX_BATCH_READ_SIZE)
        self.object_types = dict(BATCH_READ_OBJECT_TYPES if object_types is None else object_types)

    async def resolve(self, deal_id: str, engagement_type: str) -> AssociationResult:
        try:
            return await with_token_refresh(self.tokens, self._resolve_once, deal_id, engagement_type)
        except AuthenticationError:
            raise
        except AuthExpiredError as e:
            log.error(f"Unauthorized fetching {engagement_type} associations for deal {deal_id}: {e}")
        except ApiRequestError as e:
            log.error(f"Error fetching {engagement_type} associations for deal {deal_id}: {e}")
        return empty_result()

    async def _resolve_once(self, deal_id: str, engagement_type: str) -> AssociationResult:
        associations = await self.client.list_associations(deal_id, engagement_type)
        if not associations:
            return empty_result()
        log.info(f"Found {len(associations)} {engagement_type} for deal {deal_id}")

        object_type = self.object_types.get(engagement_type)
        if object_type is None:
            log.warning(f"No batch API method available for {engagement_type}")
            return {"associations": associations, "objects": []}

        ids = [str(a["toObjectId"]) for a in associations if a.get("toObjectId") is not None]
        objects: List[EngagementObject] = []
        for batch_ids in chunked(ids, self.batch_size):
            try:
                objects.extend(await with_token_refresh(
                    self.tokens, self.client.batch_read, object_type, batch_ids
                ))
            except AuthenticationError:
                raise
            except ApiRequestError as e:
                log.error(f"Error fetching batch of {engagement_type}: {e}")

        log.info(f"Retrieved {len(objects)} {engagement_type} objects for deal {deal_id}")
        return {"associations": associations, "objects": objects}

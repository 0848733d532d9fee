"""Per-deal activity aggregation."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Tuple

from .associations import AssociationResolver
from .types import ActivityRecord, empty_result

ENGAGEMENT_TYPES: Tuple[str, ...] = ("notes", "calls", "meetings", "emails", "tasks")

log = logging.getLogger(__name__)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def has_activities(record: ActivityRecord) -> bool:
    """True if any engagement type has at least one association."""
    return any(result.get("associations") for result in record["activity_types"].values())


class ActivityAggregator:
    def __init__(self, resolver: AssociationResolver, engagement_types: Tuple[str, ...] = ENGAGEMENT_TYPES):
        self.resolver = resolver
        self.engagement_types = engagement_types

    async def aggregate(self, deal_id: str) -> ActivityRecord:
        """Collect every engagement type for one deal.

        Never raises: on failure the record carries ``error`` and an empty
        result for every engagement type.
        """
        log.info(f"Fetching activities for deal {deal_id}...")
        record: ActivityRecord = {
            "deal_id": deal_id,
            "timestamp": _timestamp(),
            "activity_types": {},
        }
        try:
            for engagement_type in self.engagement_types:
                record["activity_types"][engagement_type] = await self.resolver.resolve(deal_id, engagement_type)
        except Exception as e:
            log.error(f"Error fetching activities for deal {deal_id}: {e}")
            return {
                "deal_id": deal_id,
                "timestamp": record["timestamp"],
                "error": str(e),
                "activity_types": {t: empty_result() for t in self.engagement_types},
            }

        total = sum(len(r["associations"]) for r in record["activity_types"].values())
        log.info(f"Total activities for deal {deal_id}: {total}")
        return record

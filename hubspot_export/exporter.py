"""Export driver: deals.json plus one activities file per active deal."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from .activities import ActivityAggregator, has_activities
from .associations import AssociationResolver
from .client import HubSpotClient
from .deals import DealFetcher
from .exceptions import AuthenticationError, HubSpotExportException
from .tokens import TokenManager
from .types import JSONType

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_PARTIAL = 2

DEALS_FILENAME = "deals.json"
ACTIVITIES_DIRNAME = "activities"

log = logging.getLogger(__name__)


@dataclass
class ExportSummary:
    deals: int = 0
    deals_with_activities: int = 0
    files_written: int = 0
    failed_deal_ids: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed_deal_ids


def ensure_directory_exists(directory: Path) -> None:
    directory.mkdir(parents=True, exist_ok=True)
    log.debug(f"Directory ready: {directory}")


def save_json(data: JSONType, path: Path) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
    log.info(f"Data saved to {path}")


class ExportDriver:
    """Runs the whole export sequentially.

    Example:
        async with TokenManager(settings) as tokens, \\
                HubSpotClient(tokens, settings.api_base_url) as client:
            exit_code = await ExportDriver(client, tokens, settings.output_dir).run()
    """

    def __init__(self, client: HubSpotClient, tokens: TokenManager, output_dir: Union[str, Path],
                 page_size: int = 100, progress_every: int = 10,
                 aggregator: Optional[ActivityAggregator] = None):
        self.client = client
        self.tokens = tokens
        self.output_dir = Path(output_dir)
        self.progress_every = progress_every
        self.fetcher = DealFetcher(client, tokens, page_size=page_size)
        self.aggregator = aggregator or ActivityAggregator(AssociationResolver(client, tokens))

    @property
    def activities_dir(self) -> Path:
        return self.output_dir / ACTIVITIES_DIRNAME

    async def export(self) -> ExportSummary:
        """Fetch and write everything.

        Raises:
            ApiRequestError: If listing deals fails
            OSError: If the output directories or deals.json cannot be written
        """
        ensure_directory_exists(self.output_dir)
        ensure_directory_exists(self.activities_dir)

        deals = await self.fetcher.fetch_all_deals()
        save_json(deals, self.output_dir / DEALS_FILENAME)

        summary = ExportSummary(deals=len(deals))
        log.info("Fetching activities for each deal...")
        for processed, deal in enumerate(deals, start=1):
            deal_id = str(deal["id"])
            activities = await self.aggregator.aggregate(deal_id)

            if has_activities(activities):
                summary.deals_with_activities += 1
                try:
                    save_json(activities, self.activities_dir / f"{deal_id}.json")
                    summary.files_written += 1
                except OSError as e:
                    log.error(f"Failed to write activities for deal {deal_id}: {e}")
                    summary.failed_deal_ids.append(deal_id)

            if processed % self.progress_every == 0:
                log.info(f"Progress: {processed}/{len(deals)} deals processed "
                         f"({round(processed / len(deals) * 100)}%)")

        return summary

    async def run(self) -> int:
        """Run the export and map the outcome to a process exit status."""
        try:
            await self.tokens.ensure_fresh()
        except AuthenticationError as e:
            log.error(f"Failed to refresh token, please run the authorization flow again: {e}")
            return EXIT_FAILURE

        try:
            summary = await self.export()
        except (HubSpotExportException, OSError) as e:
            log.error(f"Export failed: {e}")
            return EXIT_FAILURE

        if not summary.complete:
            log.warning(f"Export finished with {len(summary.failed_deal_ids)} unwritten activity file(s): "
                        f"{', '.join(summary.failed_deal_ids)}")
            return EXIT_PARTIAL

        log.info(f"Export completed successfully! {summary.deals} deals, "
                 f"{summary.files_written} activity files")
        return EXIT_OK

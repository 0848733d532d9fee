"""Console entry points: ``hubspot-export`` and ``hubspot-authorize``."""
from __future__ import annotations

import argparse
import asyncio
import logging
from typing import List, Optional

from .client import HubSpotClient
from .config import DEFAULT_ENV_FILE, EnvFile, Settings
from .exceptions import ConfigurationError
from .exporter import EXIT_FAILURE, ExportDriver
from .oauth import OAuthBootstrap
from .tokens import TokenManager

log = logging.getLogger(__name__)


def _parse_args(description: str, argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument('--env-file', default=DEFAULT_ENV_FILE,
                        help=f'Env file holding credentials and tokens (default: {DEFAULT_ENV_FILE})')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')
    return parser.parse_args(argv)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


async def run_export(settings: Settings) -> int:
    env_file = EnvFile(settings.env_file)
    async with TokenManager(settings, env_file) as tokens:
        async with HubSpotClient(tokens, settings.api_base_url, timeout=settings.request_timeout) as client:
            driver = ExportDriver(client, tokens, settings.output_dir, page_size=settings.batch_size)
            try:
                return await driver.run()
            except Exception as e:
                log.exception(f"Export failed unexpectedly: {e}")
                return EXIT_FAILURE


def export_main(argv: Optional[List[str]] = None) -> int:
    """Export deals and their activities to OUTPUT_DIR."""
    args = _parse_args("Export HubSpot deals and their activities to JSON files", argv)
    _configure_logging(args.verbose)
    try:
        settings = Settings.from_env(args.env_file)
        settings.require_export_credentials()
    except ConfigurationError as e:
        log.error(f"Error: {e}")
        return EXIT_FAILURE
    if settings.refresh_token and settings.client_id and settings.client_secret:
        log.info("Token refresh handling is enabled")
    return asyncio.run(run_export(settings))


def authorize_main(argv: Optional[List[str]] = None) -> int:
    """Obtain or refresh OAuth tokens and store them in the env file."""
    args = _parse_args("Authorize this tool against a HubSpot account", argv)
    _configure_logging(args.verbose)
    try:
        settings = Settings.from_env(args.env_file)
        settings.require_client_credentials()
    except ConfigurationError as e:
        log.error(f"Error: {e}")
        log.info("Please create an env file based on .env.example and add your HubSpot API credentials")
        return EXIT_FAILURE
    return asyncio.run(OAuthBootstrap(settings).run())

"""HubSpot deal export package.

This package exports HubSpot deals and the engagements attached to them
(notes, calls, meetings, emails, tasks) into local JSON files. It includes
a low-level API client (HubSpotClient), the token lifecycle
(TokenManager), the export pipeline (ExportDriver) and the interactive
OAuth bootstrap (OAuthBootstrap).

Example Usage:
    # Command line
    $ hubspot-authorize      # one-time browser authorization
    $ hubspot-export         # writes ./data/deals.json and ./data/activities/

    # Library
    from hubspot_export import Settings, TokenManager, HubSpotClient, ExportDriver

    settings = Settings.from_env('.env')
    async with TokenManager(settings) as tokens:
        async with HubSpotClient(tokens, settings.api_base_url) as client:
            exit_code = await ExportDriver(client, tokens, settings.output_dir).run()
"""

from ._version import __version__, __version_info__
from .exceptions import (
    HubSpotExportException,
    ConfigurationError,
    ApiRequestError,
    AuthExpiredError,
    RateLimitedError,
    AuthenticationError,
)
from .types import TokenSet, AssociationResult, ActivityRecord
from .config import Settings, EnvFile
from .tokens import TokenManager, with_token_refresh
from .client import HubSpotClient
from .deals import DealFetcher
from .associations import AssociationResolver, BATCH_READ_OBJECT_TYPES
from .activities import ActivityAggregator, ENGAGEMENT_TYPES
from .exporter import ExportDriver, ExportSummary
from .oauth import OAuthBootstrap, BootstrapState

__all__ = [
    # Version
    '__version__',
    '__version_info__',

    # Main classes
    'Settings',
    'EnvFile',
    'TokenManager',
    'HubSpotClient',
    'DealFetcher',
    'AssociationResolver',
    'ActivityAggregator',
    'ExportDriver',
    'ExportSummary',
    'OAuthBootstrap',
    'BootstrapState',
    'with_token_refresh',

    # Exceptions
    'HubSpotExportException',
    'ConfigurationError',
    'ApiRequestError',
    'AuthExpiredError',
    'RateLimitedError',
    'AuthenticationError',

    # Types
    'TokenSet',
    'AssociationResult',
    'ActivityRecord',

    # Constants
    'BATCH_READ_OBJECT_TYPES',
    'ENGAGEMENT_TYPES',
]

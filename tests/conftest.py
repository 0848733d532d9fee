# pytest configuration for hubspot_export tests
import sys
from pathlib import Path

import pytest

# Ensure the package root is in sys.path for proper imports
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from hubspot_export.config import EnvFile, Settings  # noqa: E402
from hubspot_export.tokens import TokenManager  # noqa: E402


@pytest.fixture
def env_file(tmp_path):
    return EnvFile(tmp_path / ".env", template_path=None)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        access_token="old-token",
        refresh_token="refresh-1",
        client_id="client-id",
        client_secret="client-secret",
        output_dir=str(tmp_path / "data"),
        env_file=str(tmp_path / ".env"),
    )


@pytest.fixture
def tokens(settings, env_file):
    return TokenManager(settings, env_file)


import pytest

from hubspot_export.config import (
    DEFAULT_REDIRECT_URI,
    DEFAULT_SCOPES,
    EnvFile,
    Settings,
)
from hubspot_export.exceptions import ConfigurationError
from hubspot_export.types import TokenSet

from tests.utils.environment import clear_env


def test_settings_defaults_from_empty_environment():
    settings = Settings.from_env(environ={})
    assert settings.access_token is None
    assert settings.redirect_uri == DEFAULT_REDIRECT_URI
    assert settings.scopes == DEFAULT_SCOPES
    assert settings.output_dir == "./data"
    assert settings.batch_size == 100
    assert settings.api_base_url == "https://api.hubapi.com"
    assert settings.token_set is None


def test_settings_reads_all_variables():
    settings = Settings.from_env(environ={
        "HUBSPOT_ACCESS_TOKEN": "at",
        "HUBSPOT_REFRESH_TOKEN": "rt",
        "HUBSPOT_CLIENT_ID": "cid",
        "HUBSPOT_CLIENT_SECRET": "cs",
        "HUBSPOT_TOKEN_EXPIRES_AT": "1700000000000",
        "OUTPUT_DIR": "/tmp/out",
        "BATCH_SIZE": "50",
        "HUBSPOT_API_BASE_URL": "https://example.test/",
        "REQUEST_TIMEOUT": "5",
    })
    assert settings.token_set == TokenSet("at", "rt", 1700000000000)
    assert settings.output_dir == "/tmp/out"
    assert settings.batch_size == 50
    assert settings.api_base_url == "https://example.test"
    assert settings.request_timeout == 5.0


@pytest.mark.parametrize("env", [
    {"BATCH_SIZE": "lots"},
    {"BATCH_SIZE": "0"},
    {"HUBSPOT_TOKEN_EXPIRES_AT": "tomorrow"},
    {"REQUEST_TIMEOUT": "soon"},
])
def test_settings_rejects_malformed_numbers(env):
    with pytest.raises(ConfigurationError):
        Settings.from_env(environ=env)


def test_settings_loads_env_file(tmp_path, monkeypatch):
    clear_env(monkeypatch, "HUBSPOT_ACCESS_TOKEN", "OUTPUT_DIR")
    path = tmp_path / ".env"
    path.write_text("HUBSPOT_ACCESS_TOKEN=from-file\nOUTPUT_DIR=exports\n")

    settings = Settings.from_env(path)
    assert settings.access_token == "from-file"
    assert settings.output_dir == "exports"
    assert settings.env_file == str(path)


def test_environment_wins_over_env_file(tmp_path, monkeypatch):
    monkeypatch.setenv("HUBSPOT_ACCESS_TOKEN", "from-env")
    path = tmp_path / ".env"
    path.write_text("HUBSPOT_ACCESS_TOKEN=from-file\n")

    assert Settings.from_env(path).access_token == "from-env"


def test_credential_requirements():
    with pytest.raises(ConfigurationError, match="HUBSPOT_ACCESS_TOKEN"):
        Settings().require_export_credentials()
    with pytest.raises(ConfigurationError, match="HUBSPOT_CLIENT_ID"):
        Settings(client_id="cid").require_client_credentials()

    Settings(access_token="at").require_export_credentials()
    Settings(client_id="cid", client_secret="cs").require_client_credentials()


def test_write_tokens_replaces_token_lines_in_place(tmp_path):
    path = tmp_path / ".env"
    path.write_text(
        "HUBSPOT_CLIENT_ID=cid\n"
        "HUBSPOT_ACCESS_TOKEN=old\n"
        "# keep this comment\n"
        "HUBSPOT_REFRESH_TOKEN=old-refresh\n"
        "HUBSPOT_TOKEN_EXPIRES_AT=1\n"
        "OUTPUT_DIR=./elsewhere\n"
    )

    EnvFile(path, template_path=None).write_tokens(TokenSet("new", "new-refresh", 1234))

    assert path.read_text() == (
        "HUBSPOT_CLIENT_ID=cid\n"
        "HUBSPOT_ACCESS_TOKEN=new\n"
        "# keep this comment\n"
        "HUBSPOT_REFRESH_TOKEN=new-refresh\n"
        "HUBSPOT_TOKEN_EXPIRES_AT=1234\n"
        "OUTPUT_DIR=./elsewhere\n"
    )


def test_write_tokens_appends_missing_keys(tmp_path):
    path = tmp_path / ".env"
    path.write_text("HUBSPOT_CLIENT_ID=cid")

    EnvFile(path, template_path=None).write_tokens(TokenSet("at", "rt", 99))

    lines = path.read_text().splitlines()
    assert lines[0] == "HUBSPOT_CLIENT_ID=cid"
    assert "HUBSPOT_ACCESS_TOKEN=at" in lines
    assert "HUBSPOT_REFRESH_TOKEN=rt" in lines
    assert "HUBSPOT_TOKEN_EXPIRES_AT=99" in lines


def test_write_tokens_starts_from_template(tmp_path):
    template = tmp_path / ".env.example"
    template.write_text("HUBSPOT_CLIENT_ID=\nHUBSPOT_ACCESS_TOKEN=\nBATCH_SIZE=25\n")
    path = tmp_path / ".env"

    EnvFile(path, template_path=template).write_tokens(TokenSet("at", "rt", 5))

    content = path.read_text()
    assert "HUBSPOT_ACCESS_TOKEN=at\n" in content
    assert "BATCH_SIZE=25\n" in content
    assert template.read_text() == "HUBSPOT_CLIENT_ID=\nHUBSPOT_ACCESS_TOKEN=\nBATCH_SIZE=25\n"


def test_write_tokens_from_scratch_uses_defaults(tmp_path):
    path = tmp_path / ".env"
    env = EnvFile(path, template_path=tmp_path / "missing.example")

    env.write_tokens(TokenSet("at", "rt", 5), defaults={"client_id": "cid", "client_secret": "cs"})

    content = path.read_text()
    assert "HUBSPOT_CLIENT_ID=cid\n" in content
    assert "HUBSPOT_CLIENT_SECRET=cs\n" in content
    assert f"HUBSPOT_REDIRECT_URI={DEFAULT_REDIRECT_URI}\n" in content
    assert env.read_tokens() == TokenSet("at", "rt", 5)


def test_read_tokens_requires_all_three_entries(tmp_path):
    path = tmp_path / ".env"
    env = EnvFile(path, template_path=None)
    assert env.read_tokens() is None

    path.write_text("HUBSPOT_ACCESS_TOKEN=at\nHUBSPOT_REFRESH_TOKEN=\nHUBSPOT_TOKEN_EXPIRES_AT=5\n")
    assert env.read_tokens() is None

    path.write_text("HUBSPOT_ACCESS_TOKEN=at\nHUBSPOT_REFRESH_TOKEN=rt\nHUBSPOT_TOKEN_EXPIRES_AT=soon\n")
    assert env.read_tokens() is None

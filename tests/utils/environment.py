"""
Utility: isolate HUBSPOT_* / OUTPUT_DIR environment variables in tests.
"""


def clear_env(monkeypatch, *keys):
    """Remove env vars for one test and restore them afterwards."""
    for key in keys:
        # setenv first so monkeypatch records the key even when it is absent,
        # ensuring values written later (e.g. by load_dotenv) are undone.
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)

"""Tests for checker configuration loading and API token lookup."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from ingestcheck.config import (
    SERVICE_NAME,
    TOKEN_ENV_VAR,
    delete_api_token,
    get_api_token,
    load_checker_config,
    mask_token,
    resolve_api_token,
    store_api_token,
)
from ingestcheck.constants import CRITICAL_ERROR_PHRASES, SKIP_ERROR_CODES
from ingestcheck.models import CheckerConfig


@pytest.fixture
def no_keyring():
    with patch("ingestcheck.config.keyring.get_password", return_value=None) as mock:
        yield mock


class TestApiToken:
    def test_keyring_first(self, monkeypatch):
        monkeypatch.setenv(TOKEN_ENV_VAR, "from-env")
        with patch("ingestcheck.config.keyring.get_password", return_value="from-keyring"):
            assert get_api_token() == "from-keyring"

    def test_env_fallback(self, monkeypatch, no_keyring):
        monkeypatch.setenv(TOKEN_ENV_VAR, "from-env")
        assert get_api_token() == "from-env"

    def test_missing(self, monkeypatch, no_keyring):
        monkeypatch.delenv(TOKEN_ENV_VAR, raising=False)
        assert get_api_token() is None
        assert resolve_api_token() == (None, None)

    def test_source_reported(self, monkeypatch, no_keyring):
        monkeypatch.setenv(TOKEN_ENV_VAR, "from-env")
        assert resolve_api_token() == ("from-env", TOKEN_ENV_VAR)
        with patch("ingestcheck.config.keyring.get_password", return_value="from-keyring"):
            assert resolve_api_token() == ("from-keyring", "keyring")


class TestTokenStorage:
    def test_store_strips_whitespace(self):
        with patch("ingestcheck.config.keyring.set_password") as set_password:
            store_api_token("  abc123\n")
        set_password.assert_called_once_with(SERVICE_NAME, "api_token", "abc123")

    def test_store_blank_rejected(self):
        with patch("ingestcheck.config.keyring.set_password") as set_password:
            with pytest.raises(ValueError, match="empty"):
                store_api_token("   ")
        set_password.assert_not_called()

    def test_delete_when_stored(self):
        with (
            patch("ingestcheck.config.keyring.get_password", return_value="abc"),
            patch("ingestcheck.config.keyring.delete_password") as delete_password,
        ):
            assert delete_api_token() is True
        delete_password.assert_called_once_with(SERVICE_NAME, "api_token")

    def test_delete_when_absent(self, no_keyring):
        with patch("ingestcheck.config.keyring.delete_password") as delete_password:
            assert delete_api_token() is False
        delete_password.assert_not_called()

    @pytest.mark.parametrize(
        ("token", "expected"),
        [
            ("abcdefghijkl", "********ijkl"),
            ("short", "*****"),
            ("12345678", "********"),
        ],
    )
    def test_mask_token(self, token, expected):
        assert mask_token(token) == expected


class TestLoadCheckerConfig:
    def test_defaults_when_file_missing(self, tmp_path: Path, monkeypatch, no_keyring):
        monkeypatch.delenv(TOKEN_ENV_VAR, raising=False)
        config = load_checker_config(tmp_path / "missing.json")
        assert config.max_consecutive_failures == 3
        assert config.persistence_retries == 2
        assert config.request_timeout_seconds == 30
        assert config.skip_error_codes == SKIP_ERROR_CODES
        assert config.critical_error_phrases == CRITICAL_ERROR_PHRASES
        assert config.api_token is None

    def test_file_values_merged(self, tmp_path: Path, no_keyring):
        path = tmp_path / "status_check_config.json"
        path.write_text(
            json.dumps(
                {
                    "db_path": "/srv/uploads.db",
                    "max_consecutive_failures": 5,
                    "critical_error_phrases": ["Quota Exceeded"],
                    "skip_error_codes": [-1],
                    "unknown_key": "ignored",
                }
            )
        )
        config = load_checker_config(path)
        assert config.db_path == "/srv/uploads.db"
        assert config.max_consecutive_failures == 5
        assert config.critical_error_phrases == ("quota exceeded",)
        assert config.skip_error_codes == (-1,)

    def test_file_token_skips_keyring(self, tmp_path: Path, no_keyring):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"api_token": "file-token"}))
        assert load_checker_config(path).api_token == "file-token"
        no_keyring.assert_not_called()

    def test_invalid_value_rejected(self, tmp_path: Path, no_keyring):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"max_consecutive_failures": 0}))
        with pytest.raises(ValueError, match="max_consecutive_failures"):
            load_checker_config(path)


class TestCheckerConfigValidation:
    def test_negative_retries(self):
        with pytest.raises(ValueError):
            CheckerConfig(persistence_retries=-1)

    def test_non_positive_timeout(self):
        with pytest.raises(ValueError):
            CheckerConfig(request_timeout_seconds=0)

    @pytest.mark.parametrize("name", ["critical_error_phrases", "skip_error_codes"])
    def test_single_string_rejected(self, name):
        """A bare string would otherwise be split into one-character entries."""
        with pytest.raises(ValueError, match=name):
            CheckerConfig(**{name: "invalid permissions"})

    def test_single_string_phrase_in_file_rejected(self, tmp_path: Path, no_keyring):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"critical_error_phrases": "invalid permissions"}))
        with pytest.raises(ValueError, match="critical_error_phrases"):
            load_checker_config(path)

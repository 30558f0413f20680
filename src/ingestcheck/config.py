"""Configuration loading and validation for the status checker."""

from __future__ import annotations

import json
import os
from pathlib import Path

import keyring

from ingestcheck.models import CheckerConfig


SERVICE_NAME = "ingestcheck-archive"
KEY_NAME = "api_token"
TOKEN_ENV_VAR = "ARCHIVE_API_TOKEN"

DEFAULT_CONFIG_PATH = Path("config/status_check_config.json")


def resolve_api_token() -> tuple[str | None, str | None]:
    """Find the archive API token and where it came from.

    The system keyring wins over the ``ARCHIVE_API_TOKEN`` environment
    variable.

    Returns:
        ``(token, source)`` where source is ``"keyring"`` or the env var
        name, or ``(None, None)`` when the archive is accessed anonymously
        (e.g. with a client certificate only).
    """
    token = keyring.get_password(SERVICE_NAME, KEY_NAME)
    if token:
        return token, "keyring"

    token = os.environ.get(TOKEN_ENV_VAR)
    if token:
        return token, TOKEN_ENV_VAR

    return None, None


def get_api_token() -> str | None:
    """Get the archive API token: system keyring first, then env var fallback."""
    return resolve_api_token()[0]


def store_api_token(token: str) -> None:
    """Save *token* in the system keyring, stripped of surrounding whitespace.

    Raises:
        ValueError: If the token is blank.
        keyring.errors.KeyringError: If the keyring backend refuses the write.
    """
    token = token.strip()
    if not token:
        raise ValueError("API token cannot be empty")
    keyring.set_password(SERVICE_NAME, KEY_NAME, token)


def delete_api_token() -> bool:
    """Remove the keyring token.  Returns False when none was stored."""
    if not keyring.get_password(SERVICE_NAME, KEY_NAME):
        return False
    keyring.delete_password(SERVICE_NAME, KEY_NAME)
    return True


def mask_token(token: str) -> str:
    """Show only the last four characters; short tokens are fully hidden."""
    if len(token) <= 8:
        return "*" * len(token)
    return "*" * (len(token) - 4) + token[-4:]


def load_checker_config(config_path: Path | None = None) -> CheckerConfig:
    """Load status checker configuration from JSON, falling back to defaults.

    Reads from ``config/status_check_config.json`` when *config_path* is
    ``None``.  If the file does not exist, returns a ``CheckerConfig`` with
    defaults.  Unknown keys are ignored.  The API token is read from the
    system keyring (service: ``ingestcheck-archive``, key: ``api_token``)
    unless the file sets one.

    Args:
        config_path: Optional explicit path to status_check_config.json.

    Returns:
        CheckerConfig populated from file + keyring overrides.

    Raises:
        ValueError: If a recognised setting has an unusable value.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    data: dict = {}
    if config_path.exists():
        with open(config_path) as f:
            data = json.load(f)

    # Build kwargs from JSON data, only including recognised fields
    field_names = set(CheckerConfig.__dataclass_fields__)
    kwargs = {k: v for k, v in data.items() if k in field_names}

    config = CheckerConfig(**kwargs)

    if config.api_token is None:
        config.api_token = get_api_token()

    return config

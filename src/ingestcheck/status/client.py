"""Archive ingest status client.

Queries the archive's ``get_state`` endpoint for one upload and returns the
parsed ingest status.  Example response::

    {"job_id": 1300004, "state": "OK", "task": "ingest metadata",
     "task_percent": "100.00000", "exception": ""}

No retries happen here: a failed lookup raises :class:`StatusLookupError`
and the caller's consecutive-failure breaker decides what to do.
"""

from __future__ import annotations

import logging
import re
import ssl
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ingestcheck.models import CheckerConfig

logger = logging.getLogger(__name__)

_STATUS_NUM_RE = re.compile(r"job_id=(\d+)")
_LEGACY_STATUS_NUM_RE = re.compile(r"(\d+)/xml", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Custom exceptions
# ---------------------------------------------------------------------------


class StatusLookupError(Exception):
    """Raised when the ingest status of an upload could not be obtained."""

    def __init__(self, message: str, status_uri: str = "") -> None:
        super().__init__(message)
        self.status_uri = status_uri


# ---------------------------------------------------------------------------
# Response model
# ---------------------------------------------------------------------------


class IngestStatus(BaseModel):
    """Parsed ``get_state`` response for one upload."""

    model_config = ConfigDict(extra="ignore")

    job_id: int | None = None
    state: str
    task: str = ""
    task_percent: float = Field(default=0.0, ge=0.0)
    exception: str = ""

    @field_validator("state", "task", mode="before")
    @classmethod
    def _normalize_text(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value).strip()

    @field_validator("exception", mode="before")
    @classmethod
    def _normalize_exception(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value).strip()

    @property
    def state_lower(self) -> str:
        return self.state.lower()


# ---------------------------------------------------------------------------
# Locator helpers
# ---------------------------------------------------------------------------


def build_status_locator(base_url: str, status_num: int) -> str:
    """Return the status locator for an upload, e.g. ``https://host/get_state?job_id=1302995``."""
    return f"{base_url.rstrip('/')}/get_state?job_id={status_num}"


def status_num_from_locator(status_uri: str) -> int:
    """Extract the status number from a status locator.

    Accepts ``.../get_state?job_id=1302995`` and the legacy
    ``.../status/2381528/xml`` form.

    Raises:
        ValueError: If no status number is present or it is zero.
    """
    match = _STATUS_NUM_RE.search(status_uri) or _LEGACY_STATUS_NUM_RE.search(status_uri)
    if match is None:
        raise ValueError(f"Could not find status num in status URI: {status_uri}")

    status_num = int(match.group(1))
    if status_num <= 0:
        raise ValueError(f"Status num is 0 in status URI: {status_uri}")
    return status_num


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class ArchiveStatusClient:
    """Synchronous client for the archive ingest status service.

    Usage::

        with ArchiveStatusClient.from_config(config) as client:
            status = client.get_ingest_status("https://host/get_state?job_id=1302995")
    """

    def __init__(self, http_client: httpx.Client) -> None:
        self._http = http_client

    @classmethod
    def from_config(cls, config: CheckerConfig) -> ArchiveStatusClient:
        """Build a client with the configured timeout, TLS and credentials."""
        headers = {"Accept": "application/json"}
        if config.api_token:
            headers["Authorization"] = f"Bearer {config.api_token}"

        verify: bool | ssl.SSLContext = config.verify_tls
        if config.client_cert_path:
            context = ssl.create_default_context()
            if not config.verify_tls:
                context.check_hostname = False
                context.verify_mode = ssl.CERT_NONE
            context.load_cert_chain(config.client_cert_path)
            verify = context

        http_client = httpx.Client(
            transport=httpx.HTTPTransport(retries=0),
            timeout=httpx.Timeout(config.request_timeout_seconds),
            headers=headers,
            verify=verify,
            follow_redirects=True,
        )
        return cls(http_client)

    def get_ingest_status(self, status_uri: str) -> IngestStatus:
        """Fetch and parse the ingest status for one upload.

        Raises:
            StatusLookupError: On timeouts, connection errors, HTTP error
                responses, non-JSON bodies or unexpected JSON content.
        """
        try:
            response = self._http.get(status_uri)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise StatusLookupError(
                "Error checking upload status; lookup timed out", status_uri
            ) from exc
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 401:
                raise StatusLookupError(
                    "Error checking upload status; user authorization error", status_uri
                ) from exc
            raise StatusLookupError(
                f"Error checking upload status; HTTP {exc.response.status_code}", status_uri
            ) from exc
        except httpx.HTTPError as exc:
            raise StatusLookupError(
                f"Exception checking upload status: {exc}", status_uri
            ) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise StatusLookupError(
                f"Empty JSON server response, or invalid data; see {status_uri}", status_uri
            ) from exc

        if not isinstance(payload, dict):
            raise StatusLookupError(
                f"Empty JSON server response, or invalid data; see {status_uri}", status_uri
            )

        try:
            status = IngestStatus.model_validate(payload)
        except ValidationError as exc:
            raise StatusLookupError(
                f"Unexpected ingest status content for {status_uri}: "
                f"{exc.error_count()} validation error(s)",
                status_uri,
            ) from exc

        logger.debug(
            "Ingest status for %s: state=%s task=%s percent=%.1f",
            status_uri,
            status.state,
            status.task,
            status.task_percent,
        )
        return status

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._http.close()

    def __enter__(self) -> ArchiveStatusClient:
        return self

    def __exit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: object) -> None:
        self.close()

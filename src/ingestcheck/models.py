"""Data models and enums for the archive ingest status checker."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum

from ingestcheck.constants import (
    CRITICAL_ERROR_PHRASES,
    ERROR_CODE_NONE,
    MAX_CONSECUTIVE_FAILURES,
    SKIP_ERROR_CODES,
)


class AttemptState(str, Enum):
    """Stored lifecycle state of an upload attempt."""

    PENDING = "pending"
    VERIFIED = "verified"
    SUPERSEDED = "superseded"
    SKIPPED = "skipped"


class CloseoutType(IntEnum):
    """Result code returned to the scheduler that invoked the check."""

    SUCCESS = 0
    FAILED = 1
    NOT_READY = 2


class EvalCode(IntEnum):
    """Evaluation code accompanying a closeout."""

    SUCCESS = 0
    FAILED = 1
    NOT_EVALUATED = 2
    FAILURE_DO_NOT_RETRY = 8


@dataclass(frozen=True, slots=True)
class UploadAttempt:
    """One archive upload issued for a dataset, as read from the store.

    ``steps_completed`` is the ingest progress counter persisted before the
    current run.  Instances are immutable snapshots; progress computed
    during a run lives in the reconciliation result.
    """

    status_num: int
    status_uri: str
    subdirectory: str = ""
    steps_completed: int = 0
    error_code: int = ERROR_CODE_NONE
    eus_instrument_id: int = 0
    eus_project_id: str = ""
    eus_uploader_id: int = 0

    def __str__(self) -> str:
        return self.status_uri


@dataclass(frozen=True, slots=True)
class CheckRequest:
    """Identifies the job step whose uploads should be verified.

    When ``status_uri`` is set only that upload is checked; otherwise every
    upload for the dataset created by ``job`` or an earlier job is checked.
    """

    dataset_id: int
    job: int
    dataset: str = ""
    status_uri: str | None = None


@dataclass
class ToolReturnData:
    """Outcome of a status check, consumed by the scheduler.

    ``NOT_READY`` means reschedule with backoff, ``FAILED`` means do not
    retry automatically.
    """

    closeout_type: CloseoutType = CloseoutType.SUCCESS
    closeout_msg: str = ""
    eval_code: EvalCode = EvalCode.SUCCESS
    eval_msg: str = ""

    @property
    def succeeded(self) -> bool:
        return self.closeout_type == CloseoutType.SUCCESS


@dataclass
class CheckerConfig:
    """Configuration for the archive status checker.

    Controls the store location, status provider access, the
    consecutive-failure breaker and persistence retry behavior.
    """

    db_path: str = "data/uploads.db"
    status_base_url: str = "https://ingest.archive.example.org"
    request_timeout_seconds: float = 30.0
    max_consecutive_failures: int = MAX_CONSECUTIVE_FAILURES
    persistence_retries: int = 2
    persistence_retry_wait_seconds: float = 5.0
    verify_tls: bool = True
    client_cert_path: str | None = None
    skip_error_codes: tuple[int, ...] = SKIP_ERROR_CODES
    critical_error_phrases: tuple[str, ...] = field(
        default_factory=lambda: CRITICAL_ERROR_PHRASES
    )
    api_token: str | None = None

    def __post_init__(self) -> None:
        """Normalize list values from JSON and reject unusable settings."""
        for name in ("skip_error_codes", "critical_error_phrases"):
            if isinstance(getattr(self, name), str):
                raise ValueError(f"{name} must be a list, not a single string")
        self.skip_error_codes = tuple(int(c) for c in self.skip_error_codes)
        self.critical_error_phrases = tuple(
            str(p).lower() for p in self.critical_error_phrases
        )
        if self.max_consecutive_failures < 1:
            raise ValueError(
                f"max_consecutive_failures must be at least 1, got {self.max_consecutive_failures}"
            )
        if self.persistence_retries < 0:
            raise ValueError(
                f"persistence_retries cannot be negative, got {self.persistence_retries}"
            )
        if self.request_timeout_seconds <= 0:
            raise ValueError("request_timeout_seconds must be positive")

"""Ingest progress classification.

Maps one status provider response onto the ordered ingest scale (0..7,
7 meaning archived) and decides whether the upload is verified, still in
progress, critically failed, or whether the provider itself failed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from ingestcheck.constants import ARCHIVED_STEP, CRITICAL_ERROR_PHRASES
from ingestcheck.models import UploadAttempt
from ingestcheck.status.client import IngestStatus, StatusLookupError

logger = logging.getLogger(__name__)

# Task name (lowercase) -> ingest step.  "ingest metadata" is special-cased
# because it only reaches ARCHIVED_STEP at 100 percent.
INGEST_TASK_STEPS: dict[str, int] = {
    "submitted": 0,
    "uploading": 1,
    "received": 2,
    "open tar": 3,
    "processing": 3,
    "policy validation": 4,
    "ingest files": 5,
}

INGEST_METADATA_TASK = "ingest metadata"

KNOWN_STATES = frozenset({"ok", "failed"})

UNKNOWN_FAILURE_MESSAGE = "Ingest failed; unknown reason"


class Verdict(str, Enum):
    """Classification of one status lookup."""

    VERIFIED = "verified"
    UNVERIFIED = "unverified"
    CRITICAL_ERROR = "critical_error"
    PROVIDER_FAILURE = "provider_failure"


@dataclass(frozen=True, slots=True)
class Classification:
    """Verdict plus the ingest progress it implies."""

    verdict: Verdict
    steps_completed: int
    message: str = ""


def determine_steps_completed(task: str, percent: float, previous: int = 0) -> int:
    """Map an ingest task and percent complete onto the ingest scale.

    Never returns less than *previous*.

    Args:
        task: Task name reported by the archive (case-insensitive).
        percent: Percent complete of the task, 0 to 100.
        previous: Progress already recorded for the upload.

    Returns:
        Step number between *previous* and ARCHIVED_STEP.
    """
    name = (task or "").strip().lower()

    if name == INGEST_METADATA_TASK:
        mapped = ARCHIVED_STEP if percent >= 100 else ARCHIVED_STEP - 1
    elif name in INGEST_TASK_STEPS:
        mapped = INGEST_TASK_STEPS[name]
    else:
        mapped = round(ARCHIVED_STEP * percent / 100.0)
        mapped = min(max(mapped, 0), ARCHIVED_STEP)

    return max(previous, mapped)


def is_critical_error(
    text: str, phrases: Iterable[str] = CRITICAL_ERROR_PHRASES
) -> bool:
    """Return True if *text* contains any critical-error phrase."""
    if not text:
        return False
    lowered = text.lower()
    return any(phrase.lower() in lowered for phrase in phrases if phrase)


def classify(
    attempt: UploadAttempt,
    response: IngestStatus | StatusLookupError,
    critical_phrases: Iterable[str] = CRITICAL_ERROR_PHRASES,
) -> Classification:
    """Classify one provider response (or lookup failure) for *attempt*."""
    previous = attempt.steps_completed

    if isinstance(response, StatusLookupError):
        return Classification(Verdict.PROVIDER_FAILURE, previous, str(response))

    state = response.state_lower
    steps = determine_steps_completed(response.task, response.task_percent, previous)

    if is_critical_error(response.exception, critical_phrases):
        return Classification(Verdict.CRITICAL_ERROR, steps, response.exception)

    if state == "failed":
        return Classification(
            Verdict.CRITICAL_ERROR, steps, response.exception or UNKNOWN_FAILURE_MESSAGE
        )

    if "error" in state:
        # The status server itself is having problems; try again later
        return Classification(
            Verdict.PROVIDER_FAILURE,
            previous,
            f"Status server reported state '{response.state}' for {attempt.status_uri}",
        )

    if state not in KNOWN_STATES:
        logger.warning(
            "Unrecognized ingest state '%s' for %s; treating as not yet verified",
            response.state,
            attempt.status_uri,
        )

    mapped = determine_steps_completed(response.task, response.task_percent)
    if mapped == ARCHIVED_STEP and state == "ok":
        return Classification(Verdict.VERIFIED, steps)

    return Classification(Verdict.UNVERIFIED, steps)

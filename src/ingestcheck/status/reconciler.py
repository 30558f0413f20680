"""Batch reconciliation of upload attempts against the archive.

Queries the status provider for each attempt in store order, partitions the
batch into verified / unverified / critical, then drops unverified attempts
that a verified upload of the same subdirectory has superseded.

Nothing here touches the store; see :mod:`ingestcheck.status.persistence`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Sequence

from ingestcheck.constants import CRITICAL_ERROR_PHRASES, MAX_CONSECUTIVE_FAILURES
from ingestcheck.models import UploadAttempt
from ingestcheck.status.breaker import ConsecutiveFailureBreaker
from ingestcheck.status.classifier import Verdict, classify
from ingestcheck.status.client import IngestStatus, StatusLookupError

logger = logging.getLogger(__name__)

StatusLookup = Callable[[str], IngestStatus]


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class BatchResult:
    """Partition of one batch of attempts.

    ``verified``, ``unverified`` and ``unchecked`` map status num to locator;
    ``critical_errors`` maps status num to the error text.  Every queried
    attempt lands in exactly one of the first three; attempts never queried
    because the breaker tripped land in ``unchecked``.
    """

    verified: dict[int, str] = field(default_factory=dict)
    unverified: dict[int, str] = field(default_factory=dict)
    critical_errors: dict[int, str] = field(default_factory=dict)
    unchecked: dict[int, str] = field(default_factory=dict)
    steps_completed: dict[int, int] = field(default_factory=dict)
    aborted: bool = False
    abort_message: str = ""


@dataclass
class ReconcileResult(BatchResult):
    """Batch partition after supersession.

    ``remaining_total`` counts the attempts that still have to be verified
    for the dataset to be complete (superseded attempts excluded).
    """

    superseded: list[int] = field(default_factory=list)
    remaining_total: int = 0

    def advanced_progress(self, attempts: Iterable[UploadAttempt]) -> dict[int, int]:
        """Return new progress for unverified attempts that moved past the stored value."""
        advanced: dict[int, int] = {}
        for attempt in attempts:
            if attempt.status_num not in self.unverified:
                continue
            steps = self.steps_completed.get(attempt.status_num, attempt.steps_completed)
            if steps > attempt.steps_completed:
                advanced[attempt.status_num] = steps
        return advanced


def max_steps_completed(result: BatchResult, status_nums: Iterable[int]) -> int:
    """Highest new progress among *status_nums* (0 when none are known)."""
    return max(
        (result.steps_completed.get(num, 0) for num in status_nums),
        default=0,
    )


# ---------------------------------------------------------------------------
# Batch check
# ---------------------------------------------------------------------------


def check_attempts(
    attempts: Sequence[UploadAttempt],
    lookup: StatusLookup,
    *,
    max_consecutive_failures: int = MAX_CONSECUTIVE_FAILURES,
    critical_phrases: Iterable[str] = CRITICAL_ERROR_PHRASES,
) -> BatchResult:
    """Query the provider for every attempt and partition the results.

    Args:
        attempts: Attempts in store order.
        lookup: Callable returning the ingest status for a locator; raises
            :class:`StatusLookupError` when the provider fails.
        max_consecutive_failures: Provider failures in a row that abort the batch.
        critical_phrases: Exception text fragments that mark a permanent failure.

    Returns:
        BatchResult.  A tripped breaker is reported through ``aborted`` and
        ``abort_message``, never raised.
    """
    phrases = tuple(critical_phrases)
    breaker = ConsecutiveFailureBreaker(max_consecutive_failures)
    result = BatchResult()

    for index, attempt in enumerate(attempts):
        try:
            response: IngestStatus | StatusLookupError = lookup(attempt.status_uri)
        except StatusLookupError as exc:
            response = exc

        classification = classify(attempt, response, phrases)
        result.steps_completed[attempt.status_num] = classification.steps_completed

        if classification.verdict == Verdict.PROVIDER_FAILURE:
            result.unverified[attempt.status_num] = attempt.status_uri
            breaker.record_failure(classification.message)
            if breaker.tripped:
                remaining = attempts[index + 1 :]
                for skipped in remaining:
                    result.unchecked[skipped.status_num] = skipped.status_uri
                result.aborted = True
                result.abort_message = (
                    f"Aborted after {breaker.consecutive_failures} consecutive status "
                    f"lookup failures; last error: {classification.message}"
                )
                logger.error(
                    "%s (%d attempt(s) not checked)", result.abort_message, len(remaining)
                )
                break
            continue

        breaker.record_success()

        if classification.verdict == Verdict.VERIFIED:
            result.verified[attempt.status_num] = attempt.status_uri
            logger.debug("Upload %s verified", attempt.status_uri)
        elif classification.verdict == Verdict.CRITICAL_ERROR:
            result.critical_errors[attempt.status_num] = classification.message
            logger.debug("Upload %s critical error: %s", attempt.status_uri, classification.message)
        else:
            result.unverified[attempt.status_num] = attempt.status_uri
            logger.debug(
                "Upload %s not yet verified (step %d)",
                attempt.status_uri,
                classification.steps_completed,
            )

    return result


# ---------------------------------------------------------------------------
# Supersession
# ---------------------------------------------------------------------------


def resolve_superseded(
    batch: BatchResult, attempts: Sequence[UploadAttempt]
) -> list[int]:
    """Return unverified status nums superseded by a verified upload.

    An unverified attempt is superseded when a different attempt for the
    same subdirectory is verified.  Only subdirectories are compared; the
    archive's status nums carry no ordering.  An empty subdirectory (the
    whole dataset) matches like any other value.
    """
    if not batch.unverified or not batch.verified:
        return []

    superseded: list[int] = []
    for attempt in attempts:
        if attempt.status_num not in batch.unverified:
            continue

        verified_match = next(
            (
                other
                for other in attempts
                if other.status_num != attempt.status_num
                and other.subdirectory == attempt.subdirectory
                and other.status_num in batch.verified
            ),
            None,
        )
        if verified_match is None:
            continue

        logger.info(
            "Upload %s (subdirectory '%s') superseded by verified upload %s",
            attempt.status_uri,
            attempt.subdirectory,
            verified_match.status_uri,
        )
        superseded.append(attempt.status_num)

    return superseded


def reconcile(
    attempts: Sequence[UploadAttempt],
    lookup: StatusLookup,
    *,
    max_consecutive_failures: int = MAX_CONSECUTIVE_FAILURES,
    critical_phrases: Iterable[str] = CRITICAL_ERROR_PHRASES,
) -> ReconcileResult:
    """Check every attempt, then remove superseded ones from the working set."""
    batch = check_attempts(
        attempts,
        lookup,
        max_consecutive_failures=max_consecutive_failures,
        critical_phrases=critical_phrases,
    )
    superseded = resolve_superseded(batch, attempts)

    unverified = {
        num: uri for num, uri in batch.unverified.items() if num not in superseded
    }
    return ReconcileResult(
        verified=batch.verified,
        unverified=unverified,
        critical_errors=batch.critical_errors,
        unchecked=batch.unchecked,
        steps_completed=batch.steps_completed,
        aborted=batch.aborted,
        abort_message=batch.abort_message,
        superseded=superseded,
        remaining_total=len(attempts) - len(superseded),
    )

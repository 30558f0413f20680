"""Writes reconciliation results back to the upload store.

Each write is retried on transient SQLite errors (locked database, busy
timeout).  Failures are logged with the operation name, dataset and job and
reported as ``False``; they never change the outcome of a status check.
Every write is idempotent, so a failed run can simply be repeated.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Callable, Mapping, Sequence

from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from ingestcheck.database import RESULT_OK, Database

logger = logging.getLogger(__name__)


class PersistenceApplier:
    """Applies verified / superseded / progress updates for one dataset.

    Usage::

        applier = PersistenceApplier(db, dataset_id=1234, job=5678)
        applier.mark_verified([1302995], ["https://.../get_state?job_id=1302995"], 7)

    Args:
        db: Open upload store.
        dataset_id: Dataset whose attempts are updated.
        job: Job step running the check (used for log context only).
        retries: Extra attempts after the first failed write.
        retry_wait: Seconds to wait between attempts.
    """

    def __init__(
        self,
        db: Database,
        dataset_id: int,
        job: int,
        retries: int = 2,
        retry_wait: float = 5.0,
    ) -> None:
        self._db = db
        self._dataset_id = dataset_id
        self._job = job
        self._retries = retries
        self._retry_wait = retry_wait

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def mark_verified(
        self, status_nums: Sequence[int], status_uris: Sequence[str], steps: int
    ) -> bool:
        """Flag attempts as verified and raise their progress to *steps*."""
        if not status_nums:
            return True
        return self._apply(
            "mark_verified",
            lambda: self._db.set_upload_verified(
                self._dataset_id,
                _join(status_nums),
                ", ".join(status_uris),
                steps,
            ),
        )

    def mark_superseded(self, status_nums: Sequence[int], steps: int) -> bool:
        """Record the superseded error code on unverified duplicates."""
        if not status_nums:
            return True
        return self._apply(
            "mark_superseded",
            lambda: self._db.set_upload_superseded(
                self._dataset_id, _join(status_nums), steps
            ),
        )

    def advance_progress(self, progress: Mapping[int, int]) -> bool:
        """Persist increased progress for attempts that are still unverified."""
        if not progress:
            return True
        return self._apply(
            "advance_progress",
            lambda: self._db.update_ingest_steps_completed_many(self._dataset_id, progress),
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _apply(self, operation: str, write: Callable[[], tuple[int, str]]) -> bool:
        try:
            for attempt in Retrying(
                wait=wait_fixed(self._retry_wait),
                stop=stop_after_attempt(self._retries + 1),
                retry=retry_if_exception_type(sqlite3.OperationalError),
                before_sleep=self._log_retry(operation),
            ):
                with attempt:
                    code, message = write()
        except (sqlite3.Error, RetryError) as exc:
            logger.error(
                "%s failed for dataset %d, job %d: %s",
                operation,
                self._dataset_id,
                self._job,
                exc,
            )
            return False

        if code != RESULT_OK:
            logger.error(
                "%s returned code %d for dataset %d, job %d: %s",
                operation,
                code,
                self._dataset_id,
                self._job,
                message,
            )
            return False

        logger.debug("%s for dataset %d: %s", operation, self._dataset_id, message)
        return True

    def _log_retry(self, operation: str):
        def _before_sleep(retry_state) -> None:
            logger.warning(
                "%s attempt %d for dataset %d failed (%s); retrying in %.1fs",
                operation,
                retry_state.attempt_number,
                self._dataset_id,
                retry_state.outcome.exception() if retry_state.outcome else "",
                self._retry_wait,
            )

        return _before_sleep


def _join(status_nums: Sequence[int]) -> str:
    return ", ".join(str(num) for num in status_nums)

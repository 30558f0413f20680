"""Archive status check for one dataset job step.

Composes the status primitives (store, status client, reconciler,
persistence applier, outcome reporter) into a single run:

* Reads the dataset's upload attempts once (retried on a busy database)
* Queries the archive for each attempt in store order
* Drops unverified attempts superseded by a verified upload
* Writes verified / superseded / progress updates back to the store
* Returns SUCCESS, NOT_READY or FAILED for the scheduler

A run keeps no state between invocations; it can be repeated at any time.
"""

from __future__ import annotations

import logging
import sqlite3

from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from ingestcheck.database import Database
from ingestcheck.models import CheckerConfig, CheckRequest, ToolReturnData, UploadAttempt
from ingestcheck.status.client import ArchiveStatusClient, status_num_from_locator
from ingestcheck.status.outcome import build_outcome, no_records_outcome
from ingestcheck.status.persistence import PersistenceApplier
from ingestcheck.status.reconciler import ReconcileResult, max_steps_completed, reconcile

logger = logging.getLogger(__name__)


class ArchiveStatusCheck:
    """Verifies that a dataset's uploads have been ingested by the archive.

    Usage::

        with Database(config.db_path) as db, ArchiveStatusClient.from_config(config) as client:
            check = ArchiveStatusCheck(db, client, config)
            outcome = check.run(CheckRequest(dataset_id=1234, job=5678))

    Args:
        db: Open upload store.
        client: Archive status client.
        config: Checker configuration.
    """

    def __init__(
        self,
        db: Database,
        client: ArchiveStatusClient,
        config: CheckerConfig | None = None,
    ) -> None:
        self._db = db
        self._client = client
        self._config = config or CheckerConfig()

    def run(self, request: CheckRequest) -> ToolReturnData:
        """Run one reconciliation for *request* and return the outcome."""
        logger.info(
            "Checking archive ingest status for dataset %d, job %d",
            request.dataset_id,
            request.job,
        )

        attempts = self.load_attempts(request)
        if not attempts:
            return no_records_outcome(request.dataset_id)

        logger.info("Checking %d upload(s) for dataset %d", len(attempts), request.dataset_id)
        result = reconcile(
            attempts,
            self._client.get_ingest_status,
            max_consecutive_failures=self._config.max_consecutive_failures,
            critical_phrases=self._config.critical_error_phrases,
        )

        self.persist(request, attempts, result)
        return build_outcome(result)

    # ------------------------------------------------------------------
    # Store read
    # ------------------------------------------------------------------

    def load_attempts(self, request: CheckRequest) -> tuple[UploadAttempt, ...]:
        """Read the attempts to check, or an empty tuple if there are none.

        With ``request.status_uri`` set only that upload is checked.

        Raises:
            ValueError: If ``request.status_uri`` holds no usable status num.
        """
        if request.status_uri:
            status_num = status_num_from_locator(request.status_uri)
            stored = self._read(
                lambda: self._db.get_upload_attempt(request.dataset_id, status_num)
            )
            if stored is None:
                return (UploadAttempt(status_num=status_num, status_uri=request.status_uri),)
            if stored.error_code in self._config.skip_error_codes:
                logger.warning(
                    "Upload %d for dataset %d has error code %d; not checking",
                    status_num,
                    request.dataset_id,
                    stored.error_code,
                )
                return ()
            return (stored,)

        attempts = self._read(
            lambda: self._db.get_upload_attempts(
                request.dataset_id, request.job, self._config.skip_error_codes
            )
        )
        return tuple(attempts or ())

    def _read(self, query):
        try:
            for attempt in Retrying(
                wait=wait_fixed(self._config.persistence_retry_wait_seconds),
                stop=stop_after_attempt(self._config.persistence_retries + 1),
                retry=retry_if_exception_type(sqlite3.OperationalError),
                reraise=True,
            ):
                with attempt:
                    return query()
        except (sqlite3.Error, RetryError) as exc:
            logger.error("Could not read upload attempts from %s: %s", self._config.db_path, exc)
        return None

    # ------------------------------------------------------------------
    # Store writes
    # ------------------------------------------------------------------

    def persist(
        self,
        request: CheckRequest,
        attempts: tuple[UploadAttempt, ...],
        result: ReconcileResult,
    ) -> None:
        """Write verified, superseded and advanced-progress updates."""
        applier = PersistenceApplier(
            self._db,
            request.dataset_id,
            request.job,
            retries=self._config.persistence_retries,
            retry_wait=self._config.persistence_retry_wait_seconds,
        )

        verified_nums = list(result.verified)
        applier.mark_verified(
            verified_nums,
            list(result.verified.values()),
            max_steps_completed(result, verified_nums),
        )
        applier.mark_superseded(
            result.superseded, max_steps_completed(result, result.superseded)
        )
        applier.advance_progress(result.advanced_progress(attempts))

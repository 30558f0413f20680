"""SQLite database layer for archive upload tracking.

Manages schema initialization, WAL mode pragmas, the upload attempt read
query, and the batched status writes used by the status checker.  The
write methods behave like stored procedures: they take comma-joined status
number lists and return a ``(result_code, message)`` pair where ``0`` means
success.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable, Mapping
from pathlib import Path

from ingestcheck.constants import (
    ERROR_CODE_NONE,
    ERROR_CODE_SKIPPED,
    ERROR_CODE_SUPERSEDED,
    SKIP_ERROR_CODES,
)
from ingestcheck.lifecycle import can_transition, state_from_row
from ingestcheck.models import AttemptState, UploadAttempt

logger = logging.getLogger(__name__)

RESULT_OK = 0
RESULT_INVALID_LIST = 1
RESULT_NO_MATCH = 2

SCHEMA_SQL = """
-- One row per archive upload issued for a dataset
CREATE TABLE IF NOT EXISTS upload_attempts (
    entry_id INTEGER PRIMARY KEY AUTOINCREMENT,
    job INTEGER NOT NULL,
    dataset_id INTEGER NOT NULL,
    subfolder TEXT NOT NULL DEFAULT '',
    status_num INTEGER,
    status_uri TEXT,
    ingest_steps_completed INTEGER NOT NULL DEFAULT 0
        CHECK(ingest_steps_completed >= 0),
    verified INTEGER NOT NULL DEFAULT 0 CHECK(verified IN (0, 1)),
    error_code INTEGER NOT NULL DEFAULT 0,

    -- Provenance (carried through, not used by the checker)
    eus_instrument_id INTEGER,
    eus_project_id TEXT,
    eus_uploader_id INTEGER,

    -- Timestamps (ISO 8601 with milliseconds)
    entered TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now')),
    verified_at TEXT,
    updated_at TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
);

CREATE INDEX IF NOT EXISTS idx_uploads_dataset ON upload_attempts(dataset_id);
CREATE INDEX IF NOT EXISTS idx_uploads_status_num ON upload_attempts(status_num);

-- Auto-update updated_at on any change
CREATE TRIGGER IF NOT EXISTS update_upload_attempts_timestamp
    AFTER UPDATE ON upload_attempts
    FOR EACH ROW
    BEGIN
        UPDATE upload_attempts SET updated_at = strftime('%Y-%m-%dT%H:%M:%f', 'now')
        WHERE entry_id = NEW.entry_id;
    END;

-- Verification/error code audit log
CREATE TABLE IF NOT EXISTS _upload_status_log (
    log_id INTEGER PRIMARY KEY AUTOINCREMENT,
    entry_id INTEGER NOT NULL,
    status_num INTEGER,
    old_verified INTEGER,
    new_verified INTEGER,
    old_error_code INTEGER,
    new_error_code INTEGER,
    timestamp TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now')),
    FOREIGN KEY (entry_id) REFERENCES upload_attempts(entry_id)
);

CREATE TRIGGER IF NOT EXISTS log_upload_status_change
    AFTER UPDATE OF verified, error_code ON upload_attempts
    FOR EACH ROW
    WHEN OLD.verified != NEW.verified OR OLD.error_code != NEW.error_code
    BEGIN
        INSERT INTO _upload_status_log(
            entry_id, status_num, old_verified, new_verified,
            old_error_code, new_error_code)
        VALUES (NEW.entry_id, NEW.status_num, OLD.verified, NEW.verified,
                OLD.error_code, NEW.error_code);
    END;
"""

ATTEMPT_COLUMNS_SQL = """
SELECT status_num, status_uri, subfolder,
       COALESCE(ingest_steps_completed, 0) AS ingest_steps_completed,
       eus_instrument_id, eus_project_id, eus_uploader_id, error_code
FROM upload_attempts
"""


def parse_status_num_list(status_num_list: str) -> list[int] | None:
    """Parse a comma-joined status number list such as ``"12, 15,20"``.

    Returns:
        The status numbers in order, or ``None`` if any entry is not an
        integer or the list is empty.
    """
    nums: list[int] = []
    for item in status_num_list.split(","):
        item = item.strip()
        if not item:
            continue
        try:
            nums.append(int(item))
        except ValueError:
            return None
    return nums or None


def _row_to_attempt(row: sqlite3.Row) -> UploadAttempt:
    return UploadAttempt(
        status_num=row["status_num"],
        status_uri=row["status_uri"],
        subdirectory=row["subfolder"] or "",
        steps_completed=row["ingest_steps_completed"],
        error_code=row["error_code"] or ERROR_CODE_NONE,
        eus_instrument_id=row["eus_instrument_id"] or 0,
        eus_project_id=row["eus_project_id"] or "",
        eus_uploader_id=row["eus_uploader_id"] or 0,
    )


class Database:
    """SQLite database wrapper for archive upload attempts.

    Usage:
        with Database("data/uploads.db") as db:
            attempts = db.get_upload_attempts(dataset_id=1234, job=5678)
            code, message = db.set_upload_verified(1234, "101, 102", "", 7)
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = str(db_path)
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self.conn = sqlite3.connect(
            self.db_path,
            autocommit=sqlite3.LEGACY_TRANSACTION_CONTROL,
        )
        self.conn.row_factory = sqlite3.Row
        self._setup_pragmas()
        self._setup_schema()

    def _setup_pragmas(self) -> None:
        """Configure SQLite pragmas for performance and reliability."""
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA synchronous=NORMAL")
        self.conn.execute("PRAGMA foreign_keys=ON")
        self.conn.execute("PRAGMA busy_timeout=5000")

        # Verify WAL mode
        result = self.conn.execute("PRAGMA journal_mode").fetchone()[0]
        if result != "wal":
            logger.warning("WAL mode not enabled, got: %s", result)

    def _setup_schema(self) -> None:
        """Create tables, indexes, and triggers if they don't exist."""
        self.conn.executescript(SCHEMA_SQL)
        self.conn.execute("PRAGMA user_version = 1")

    # ------------------------------------------------------------------
    # Upload side
    # ------------------------------------------------------------------

    def add_upload_attempt(
        self,
        job: int,
        dataset_id: int,
        status_num: int,
        status_uri: str,
        subfolder: str = "",
        ingest_steps_completed: int = 0,
        eus_instrument_id: int | None = None,
        eus_project_id: str | None = None,
        eus_uploader_id: int | None = None,
    ) -> int:
        """Record a newly issued archive upload.

        Returns:
            The ``entry_id`` of the new row.
        """
        with self.conn:
            cursor = self.conn.execute(
                """INSERT INTO upload_attempts(
                       job, dataset_id, subfolder, status_num, status_uri,
                       ingest_steps_completed, eus_instrument_id,
                       eus_project_id, eus_uploader_id)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    job,
                    dataset_id,
                    subfolder,
                    status_num,
                    status_uri,
                    ingest_steps_completed,
                    eus_instrument_id,
                    eus_project_id,
                    eus_uploader_id,
                ),
            )
        logger.debug(
            "Recorded upload %s for dataset %s (job %s)", status_num, dataset_id, job
        )
        return cursor.lastrowid

    # ------------------------------------------------------------------
    # Read queries
    # ------------------------------------------------------------------

    def get_upload_attempts(
        self,
        dataset_id: int,
        job: int,
        skip_error_codes: Iterable[int] = SKIP_ERROR_CODES,
    ) -> list[UploadAttempt]:
        """Return the uploads to check for a dataset, in insertion order.

        Only uploads created by *job* or an earlier job, with a positive
        status number and a locator, and whose error code is not a skip
        sentinel are returned.  A status number that appears on several
        rows is returned once, keeping its first position.
        """
        codes = tuple(skip_error_codes)
        code_filter = ""
        if codes:
            code_filter = f"AND error_code NOT IN ({', '.join('?' for _ in codes)})"
        rows = self.conn.execute(
            ATTEMPT_COLUMNS_SQL
            + f"""WHERE dataset_id = ?
                    AND job <= ?
                    AND COALESCE(status_num, 0) > 0
                    {code_filter}
                  ORDER BY entry_id""",
            (dataset_id, job, *codes),
        ).fetchall()

        attempts: dict[int, UploadAttempt] = {}
        for row in rows:
            if not row["status_uri"]:
                continue
            attempts[row["status_num"]] = _row_to_attempt(row)
        return list(attempts.values())

    def get_upload_attempt(self, dataset_id: int, status_num: int) -> UploadAttempt | None:
        """Return a single upload regardless of its error code, or ``None``."""
        row = self.conn.execute(
            ATTEMPT_COLUMNS_SQL
            + """WHERE dataset_id = ? AND status_num = ?
                 ORDER BY entry_id DESC
                 LIMIT 1""",
            (dataset_id, status_num),
        ).fetchone()
        if row is None:
            return None
        return _row_to_attempt(row)

    def list_upload_attempts(self, dataset_id: int) -> list[sqlite3.Row]:
        """Return every stored row for a dataset (all states), for display."""
        return self.conn.execute(
            """SELECT entry_id, job, status_num, status_uri, subfolder,
                      ingest_steps_completed, verified, error_code,
                      entered, verified_at
               FROM upload_attempts
               WHERE dataset_id = ?
               ORDER BY entry_id""",
            (dataset_id,),
        ).fetchall()

    def get_status_log(self, status_num: int) -> list[sqlite3.Row]:
        """Return audit log entries for a status number, oldest first."""
        return self.conn.execute(
            """SELECT old_verified, new_verified, old_error_code, new_error_code, timestamp
               FROM _upload_status_log
               WHERE status_num = ?
               ORDER BY log_id""",
            (status_num,),
        ).fetchall()

    # ------------------------------------------------------------------
    # Status writes
    # ------------------------------------------------------------------

    def _matching_rows(self, dataset_id: int, status_nums: list[int]) -> list[sqlite3.Row]:
        placeholders = ", ".join("?" for _ in status_nums)
        return self.conn.execute(
            f"""SELECT entry_id, status_num, status_uri, verified, error_code,
                       COALESCE(ingest_steps_completed, 0) AS ingest_steps_completed
                FROM upload_attempts
                WHERE dataset_id = ? AND status_num IN ({placeholders})
                ORDER BY entry_id""",
            (dataset_id, *status_nums),
        ).fetchall()

    def set_upload_verified(
        self,
        dataset_id: int,
        status_num_list: str,
        status_uri_list: str,
        ingest_steps_completed: int,
    ) -> tuple[int, str]:
        """Mark uploads as verified and raise their progress counter.

        Re-verifying an already verified upload with no progress increase
        leaves the row untouched.

        Args:
            dataset_id: Dataset the uploads belong to.
            status_num_list: Comma-joined status numbers.
            status_uri_list: Comma-joined locators, one per status number,
                or an empty string.
            ingest_steps_completed: Progress counter to store (never lowers
                a stored value).
        """
        status_nums = parse_status_num_list(status_num_list)
        if status_nums is None:
            return RESULT_INVALID_LIST, f"Invalid status num list: '{status_num_list}'"

        uris = [u.strip() for u in status_uri_list.split(",") if u.strip()]
        if uris and len(uris) != len(status_nums):
            return (
                RESULT_INVALID_LIST,
                f"Status num list has {len(status_nums)} entries but URI list has {len(uris)}",
            )

        rows = self._matching_rows(dataset_id, status_nums)
        if not rows:
            return RESULT_NO_MATCH, f"No uploads found for dataset {dataset_id}: {status_num_list}"

        updated = 0
        with self.conn:
            for row in rows:
                state = state_from_row(row["verified"], row["error_code"])
                if not can_transition(state, "verify"):
                    logger.debug(
                        "Not verifying status num %s in state %s", row["status_num"], state.value
                    )
                    continue
                if (
                    state == AttemptState.VERIFIED
                    and row["ingest_steps_completed"] >= ingest_steps_completed
                ):
                    continue
                self.conn.execute(
                    """UPDATE upload_attempts
                       SET verified = 1,
                           error_code = ?,
                           verified_at = COALESCE(verified_at, strftime('%Y-%m-%dT%H:%M:%f', 'now')),
                           ingest_steps_completed = MAX(COALESCE(ingest_steps_completed, 0), ?)
                       WHERE entry_id = ?""",
                    (ERROR_CODE_NONE, ingest_steps_completed, row["entry_id"]),
                )
                updated += 1

        return RESULT_OK, f"Verified {updated} upload(s) for dataset {dataset_id}"

    def set_upload_superseded(
        self,
        dataset_id: int,
        status_num_list: str,
        ingest_steps_completed: int,
    ) -> tuple[int, str]:
        """Set the superseded error code on uploads that are not verified.

        Verified or operator-skipped uploads are left as they are.
        """
        status_nums = parse_status_num_list(status_num_list)
        if status_nums is None:
            return RESULT_INVALID_LIST, f"Invalid status num list: '{status_num_list}'"

        rows = self._matching_rows(dataset_id, status_nums)
        if not rows:
            return RESULT_NO_MATCH, f"No uploads found for dataset {dataset_id}: {status_num_list}"

        updated = 0
        with self.conn:
            for row in rows:
                state = state_from_row(row["verified"], row["error_code"])
                if not can_transition(state, "supersede"):
                    logger.debug(
                        "Not superseding status num %s in state %s",
                        row["status_num"],
                        state.value,
                    )
                    continue
                self.conn.execute(
                    """UPDATE upload_attempts
                       SET error_code = ?,
                           ingest_steps_completed = MAX(COALESCE(ingest_steps_completed, 0), ?)
                       WHERE entry_id = ?""",
                    (ERROR_CODE_SUPERSEDED, ingest_steps_completed, row["entry_id"]),
                )
                updated += 1

        return RESULT_OK, f"Marked {updated} upload(s) superseded for dataset {dataset_id}"

    def update_ingest_steps_completed(
        self, dataset_id: int, status_num: int, ingest_steps_completed: int
    ) -> tuple[int, str]:
        """Raise the stored progress counter for one upload."""
        return self.update_ingest_steps_completed_many(
            dataset_id, {status_num: ingest_steps_completed}
        )

    def update_ingest_steps_completed_many(
        self, dataset_id: int, steps_by_status_num: Mapping[int, int]
    ) -> tuple[int, str]:
        """Raise stored progress counters for several uploads in one transaction.

        Values lower than the stored counter are ignored.
        """
        if not steps_by_status_num:
            return RESULT_INVALID_LIST, "No status nums to update"

        with self.conn:
            cursor = self.conn.executemany(
                """UPDATE upload_attempts
                   SET ingest_steps_completed = ?
                   WHERE dataset_id = ? AND status_num = ?
                     AND COALESCE(ingest_steps_completed, 0) < ?""",
                [
                    (steps, dataset_id, status_num, steps)
                    for status_num, steps in steps_by_status_num.items()
                ],
            )

        known = self._matching_rows(dataset_id, list(steps_by_status_num))
        if not known:
            return RESULT_NO_MATCH, f"No uploads found for dataset {dataset_id}"
        return RESULT_OK, f"Advanced progress on {cursor.rowcount} upload(s)"

    def skip_upload(self, dataset_id: int, status_num: int) -> tuple[int, str]:
        """Operator override: stop checking an unverified upload (error code -1)."""
        rows = self._matching_rows(dataset_id, [status_num])
        if not rows:
            return RESULT_NO_MATCH, f"No upload {status_num} for dataset {dataset_id}"

        updated = 0
        with self.conn:
            for row in rows:
                state = state_from_row(row["verified"], row["error_code"])
                if not can_transition(state, "skip"):
                    continue
                self.conn.execute(
                    "UPDATE upload_attempts SET error_code = ? WHERE entry_id = ?",
                    (ERROR_CODE_SKIPPED, row["entry_id"]),
                )
                updated += 1

        if updated == 0:
            return RESULT_INVALID_LIST, f"Upload {status_num} is already resolved; not skipped"
        return RESULT_OK, f"Skipped {updated} upload(s)"

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: object) -> None:
        self.close()

"""Project-wide named constants.

Constants defined here replace inline magic numbers across the codebase.
Values mirror the conventions of the archive upload tracking tables.
"""

# Error codes written into upload_attempts.error_code.
# -1 is set by an operator to skip verification of an upload;
# 101 marks an unverified upload superseded by a verified one.
ERROR_CODE_NONE: int = 0
ERROR_CODE_SKIPPED: int = -1
ERROR_CODE_SUPERSEDED: int = 101

SKIP_ERROR_CODES: tuple[int, ...] = (ERROR_CODE_SKIPPED, ERROR_CODE_SUPERSEDED)

# Historically the archive ingest process had seven steps; the progress
# counter runs 0..7 and reaches ARCHIVED_STEP only when ingest is complete.
ARCHIVED_STEP: int = 7

MAX_CONSECUTIVE_FAILURES: int = 3

CRITICAL_ERROR_PHRASES: tuple[str, ...] = (
    "error submitting ingest job",
    "do not have upload permissions",
    "invalid permissions",
)

"""Maps a reconciliation result onto the scheduler's closeout contract."""

from __future__ import annotations

import logging

from ingestcheck.models import CloseoutType, EvalCode, ToolReturnData
from ingestcheck.status.reconciler import ReconcileResult

logger = logging.getLogger(__name__)

UNKNOWN_LOCATOR = "??"


def no_records_outcome(dataset_id: int) -> ToolReturnData:
    """FAILED outcome for a dataset with no checkable uploads."""
    message = (
        f"Could not find any status locators for dataset {dataset_id}; "
        "cannot verify archive status. If all entries for the dataset have "
        "error code -1 or 101 this job step should be manually skipped"
    )
    logger.error(message)
    return ToolReturnData(
        closeout_type=CloseoutType.FAILED,
        closeout_msg=message,
        eval_code=EvalCode.FAILURE_DO_NOT_RETRY,
        eval_msg=message,
    )


def first_pending_locator(result: ReconcileResult) -> str:
    """Locator of the first unverified attempt, else the first unchecked one."""
    for locator in result.unverified.values():
        return locator
    for locator in result.unchecked.values():
        return locator
    return UNKNOWN_LOCATOR


def build_outcome(result: ReconcileResult) -> ToolReturnData:
    """Return SUCCESS, NOT_READY or FAILED for *result*.

    Critical errors win over everything else.  SUCCESS requires every
    attempt that survived supersession to be verified.
    """
    if result.critical_errors:
        for status_num, message in result.critical_errors.items():
            logger.error("Critical ingest error for status num %d: %s", status_num, message)
        first_message = next(iter(result.critical_errors.values()))
        return ToolReturnData(
            closeout_type=CloseoutType.FAILED,
            closeout_msg=first_message,
            eval_code=EvalCode.FAILURE_DO_NOT_RETRY,
            eval_msg=first_message,
        )

    verified_count = len(result.verified)
    if verified_count == result.remaining_total:
        logger.info("All %d upload(s) verified in the archive", verified_count)
        return ToolReturnData()

    locator = first_pending_locator(result)
    if verified_count == 0:
        message = f"Archive ingest status not yet verified; see {locator}"
    else:
        message = (
            f"Archive ingest status partially verified "
            f"(success count = {verified_count}, "
            f"unverified count = {result.remaining_total - verified_count}); "
            f"first not verified: {locator}"
        )
    if result.aborted and result.abort_message:
        message = f"{message}; {result.abort_message}"

    logger.info(message)
    return ToolReturnData(
        closeout_type=CloseoutType.NOT_READY,
        closeout_msg=message,
        eval_code=EvalCode.NOT_EVALUATED,
        eval_msg=message,
    )

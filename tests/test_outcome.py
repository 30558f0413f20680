"""Tests for mapping reconciliation results onto closeout outcomes."""

from __future__ import annotations

from ingestcheck.models import CloseoutType, EvalCode
from ingestcheck.status.outcome import UNKNOWN_LOCATOR, build_outcome, no_records_outcome
from ingestcheck.status.reconciler import ReconcileResult
from tests.helpers import locator


class TestBuildOutcome:
    def test_all_verified(self):
        result = ReconcileResult(verified={1: locator(1), 2: locator(2)}, remaining_total=2)
        outcome = build_outcome(result)
        assert outcome.closeout_type == CloseoutType.SUCCESS
        assert outcome.eval_code == EvalCode.SUCCESS
        assert outcome.closeout_msg == ""
        assert outcome.succeeded

    def test_critical_error_wins(self):
        result = ReconcileResult(
            verified={1: locator(1)},
            critical_errors={2: "Error submitting ingest job", 3: "second"},
            remaining_total=3,
        )
        outcome = build_outcome(result)
        assert outcome.closeout_type == CloseoutType.FAILED
        assert outcome.eval_code == EvalCode.FAILURE_DO_NOT_RETRY
        assert outcome.closeout_msg == "Error submitting ingest job"

    def test_nothing_verified(self):
        result = ReconcileResult(unverified={1: locator(1)}, remaining_total=1)
        outcome = build_outcome(result)
        assert outcome.closeout_type == CloseoutType.NOT_READY
        assert outcome.eval_code == EvalCode.NOT_EVALUATED
        assert outcome.closeout_msg == f"Archive ingest status not yet verified; see {locator(1)}"

    def test_partially_verified(self):
        result = ReconcileResult(
            verified={1: locator(1)},
            unverified={2: locator(2), 3: locator(3)},
            remaining_total=3,
        )
        outcome = build_outcome(result)
        assert outcome.closeout_type == CloseoutType.NOT_READY
        assert outcome.closeout_msg == (
            "Archive ingest status partially verified "
            "(success count = 1, unverified count = 2); "
            f"first not verified: {locator(2)}"
        )

    def test_aborted_batch_appends_reason(self):
        result = ReconcileResult(
            verified={1: locator(1)},
            unverified={2: locator(2), 3: locator(3), 4: locator(4)},
            unchecked={5: locator(5)},
            aborted=True,
            abort_message="Aborted after 3 consecutive status lookup failures",
            remaining_total=5,
        )
        outcome = build_outcome(result)
        assert outcome.closeout_type == CloseoutType.NOT_READY
        assert "unverified count = 4" in outcome.closeout_msg
        assert outcome.closeout_msg.endswith(
            "; Aborted after 3 consecutive status lookup failures"
        )

    def test_unchecked_locator_used_when_no_unverified(self):
        result = ReconcileResult(unchecked={9: locator(9)}, remaining_total=1)
        assert locator(9) in build_outcome(result).closeout_msg

    def test_unknown_locator(self):
        result = ReconcileResult(remaining_total=1)
        assert build_outcome(result).closeout_msg.endswith(UNKNOWN_LOCATOR)


def test_no_records_outcome():
    outcome = no_records_outcome(1234)
    assert outcome.closeout_type == CloseoutType.FAILED
    assert outcome.eval_code == EvalCode.FAILURE_DO_NOT_RETRY
    assert "dataset 1234" in outcome.closeout_msg
    assert "manually skipped" in outcome.closeout_msg

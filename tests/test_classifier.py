"""Tests for ingest progress mapping and per-attempt classification."""

from __future__ import annotations

import pytest

from ingestcheck.status.classifier import (
    UNKNOWN_FAILURE_MESSAGE,
    Verdict,
    classify,
    determine_steps_completed,
    is_critical_error,
)
from ingestcheck.status.client import IngestStatus, StatusLookupError
from tests.helpers import archived, failed, in_progress, make_attempt


class TestDetermineStepsCompleted:
    @pytest.mark.parametrize(
        ("task", "percent", "expected"),
        [
            ("submitted", 0, 0),
            ("Uploading", 40, 1),
            ("received", 100, 2),
            ("open tar", 10, 3),
            ("processing", 10, 3),
            ("policy validation", 0, 4),
            ("ingest files", 75, 5),
            ("ingest metadata", 99.9, 6),
            ("INGEST METADATA", 100, 7),
        ],
    )
    def test_known_tasks(self, task, percent, expected):
        assert determine_steps_completed(task, percent) == expected

    def test_unknown_task_scales_percent(self):
        assert determine_steps_completed("mystery", 50) == 4
        assert determine_steps_completed("", 0) == 0

    def test_unknown_task_clamped(self):
        assert determine_steps_completed("mystery", 250) == 7

    def test_never_below_previous(self):
        assert determine_steps_completed("uploading", 10, previous=5) == 5


class TestIsCriticalError:
    def test_case_insensitive(self):
        assert is_critical_error("Error Submitting Ingest Job: bad tar")

    def test_permission_phrase(self):
        assert is_critical_error("You(47943) do not have upload permissions to proposal 17797")

    def test_ordinary_text(self):
        assert not is_critical_error("temporary hiccup")
        assert not is_critical_error("")

    def test_custom_phrases(self):
        assert is_critical_error("disk quota exceeded", phrases=("quota exceeded",))


class TestClassify:
    def test_provider_failure_keeps_progress(self):
        attempt = make_attempt(1, steps_completed=3)
        result = classify(attempt, StatusLookupError("Error checking upload status; lookup timed out"))
        assert result.verdict == Verdict.PROVIDER_FAILURE
        assert result.steps_completed == 3
        assert "timed out" in result.message

    def test_archived_is_verified(self):
        result = classify(make_attempt(1), archived(1))
        assert result.verdict == Verdict.VERIFIED
        assert result.steps_completed == 7

    def test_in_progress_is_unverified(self):
        result = classify(make_attempt(1, steps_completed=2), in_progress("ingest files"))
        assert result.verdict == Verdict.UNVERIFIED
        assert result.steps_completed == 5

    def test_lower_progress_never_regresses(self):
        result = classify(make_attempt(1, steps_completed=6), in_progress("uploading", 10))
        assert result.verdict == Verdict.UNVERIFIED
        assert result.steps_completed == 6

    def test_stored_archived_progress_alone_does_not_verify(self):
        result = classify(make_attempt(1, steps_completed=7), in_progress("ingest files"))
        assert result.verdict == Verdict.UNVERIFIED
        assert result.steps_completed == 7

    def test_critical_phrase(self):
        response = IngestStatus(
            state="OK",
            task="uploading",
            task_percent=0,
            exception="Error submitting ingest job: bad manifest",
        )
        result = classify(make_attempt(1), response)
        assert result.verdict == Verdict.CRITICAL_ERROR
        assert result.message == "Error submitting ingest job: bad manifest"

    def test_failed_state(self):
        result = classify(make_attempt(1), failed("checksum mismatch"))
        assert result.verdict == Verdict.CRITICAL_ERROR
        assert result.message == "checksum mismatch"

    def test_failed_state_without_exception(self):
        result = classify(make_attempt(1), failed())
        assert result.message == UNKNOWN_FAILURE_MESSAGE

    def test_error_state_is_provider_failure(self):
        response = IngestStatus(state="ERROR", task="ingest files", task_percent=50)
        result = classify(make_attempt(1, steps_completed=2), response)
        assert result.verdict == Verdict.PROVIDER_FAILURE
        assert result.steps_completed == 2

    def test_unrecognized_state_logs_warning(self, caplog):
        response = IngestStatus(state="paused", task="ingest metadata", task_percent=100)
        with caplog.at_level("WARNING", logger="ingestcheck.status.classifier"):
            result = classify(make_attempt(1), response)
        assert result.verdict == Verdict.UNVERIFIED
        assert "Unrecognized ingest state" in caplog.text

"""Status response builders and a scripted status provider shared by tests."""

from __future__ import annotations

from ingestcheck.models import UploadAttempt
from ingestcheck.status.client import IngestStatus, StatusLookupError, build_status_locator

BASE_URL = "https://ingest.archive.test"


def locator(status_num: int) -> str:
    """Status locator for *status_num* on the test archive."""
    return build_status_locator(BASE_URL, status_num)


def make_attempt(
    status_num: int, subdirectory: str = "", steps_completed: int = 0
) -> UploadAttempt:
    """Build an UploadAttempt whose locator points at the test archive."""
    return UploadAttempt(
        status_num=status_num,
        status_uri=locator(status_num),
        subdirectory=subdirectory,
        steps_completed=steps_completed,
    )


def archived(status_num: int | None = None) -> IngestStatus:
    """Response for an upload whose ingest finished."""
    return IngestStatus(
        job_id=status_num, state="OK", task="ingest metadata", task_percent=100.0
    )


def in_progress(task: str = "ingest files", percent: float = 50.0) -> IngestStatus:
    """Response for an upload still being ingested."""
    return IngestStatus(state="OK", task=task, task_percent=percent)


def failed(exception: str = "") -> IngestStatus:
    """Response for an upload the archive gave up on."""
    return IngestStatus(state="FAILED", task="policy validation", task_percent=0.0, exception=exception)


class FakeStatusProvider:
    """Scripted stand-in for ArchiveStatusClient.get_ingest_status.

    *responses* maps a status locator to an IngestStatus, or to a
    StatusLookupError that is raised when the locator is queried.
    Locators with no scripted response raise a timeout error.
    """

    def __init__(self, responses: dict[str, IngestStatus | StatusLookupError] | None = None):
        self.responses = dict(responses or {})
        self.calls: list[str] = []

    def get_ingest_status(self, status_uri: str) -> IngestStatus:
        self.calls.append(status_uri)
        response = self.responses.get(
            status_uri,
            StatusLookupError("Error checking upload status; lookup timed out", status_uri),
        )
        if isinstance(response, StatusLookupError):
            raise response
        return response

    def close(self) -> None:
        pass

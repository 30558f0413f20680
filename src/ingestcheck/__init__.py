"""Archive ingest status checker for uploaded instrument datasets."""

__version__ = "0.1.0"

from ingestcheck.models import (
    AttemptState,
    CheckerConfig,
    CheckRequest,
    CloseoutType,
    EvalCode,
    ToolReturnData,
    UploadAttempt,
)

__all__ = [
    "AttemptState",
    "CheckRequest",
    "CheckerConfig",
    "CloseoutType",
    "EvalCode",
    "ToolReturnData",
    "UploadAttempt",
    "__version__",
]

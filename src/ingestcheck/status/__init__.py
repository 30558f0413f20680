"""Archive ingest status reconciliation.

Public API
----------
.. autoclass:: ArchiveStatusClient
.. autoclass:: ArchiveStatusCheck
.. autoclass:: ConsecutiveFailureBreaker
.. autoclass:: PersistenceApplier
.. autoclass:: BatchResult
.. autoclass:: ReconcileResult
"""

from ingestcheck.status.breaker import CircuitState, ConsecutiveFailureBreaker
from ingestcheck.status.classifier import (
    Classification,
    Verdict,
    classify,
    determine_steps_completed,
    is_critical_error,
)
from ingestcheck.status.client import (
    ArchiveStatusClient,
    IngestStatus,
    StatusLookupError,
    build_status_locator,
    status_num_from_locator,
)
from ingestcheck.status.orchestrator import ArchiveStatusCheck
from ingestcheck.status.outcome import build_outcome, no_records_outcome
from ingestcheck.status.persistence import PersistenceApplier
from ingestcheck.status.reconciler import (
    BatchResult,
    ReconcileResult,
    check_attempts,
    max_steps_completed,
    reconcile,
    resolve_superseded,
)

__all__ = [
    "ArchiveStatusCheck",
    "ArchiveStatusClient",
    "BatchResult",
    "CircuitState",
    "Classification",
    "ConsecutiveFailureBreaker",
    "IngestStatus",
    "PersistenceApplier",
    "ReconcileResult",
    "StatusLookupError",
    "Verdict",
    "build_outcome",
    "build_status_locator",
    "check_attempts",
    "classify",
    "determine_steps_completed",
    "is_critical_error",
    "max_steps_completed",
    "no_records_outcome",
    "reconcile",
    "resolve_superseded",
    "status_num_from_locator",
]

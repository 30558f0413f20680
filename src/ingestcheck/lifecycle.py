"""Upload attempt lifecycle finite state machine.

Each stored attempt gets an ephemeral FSM instance, initialized at the
attempt's current lifecycle state.  Used by :class:`~ingestcheck.database.Database`
to validate a status write before persisting it, so a verified upload is
never marked superseded and repeated writes stay harmless.

The FSM is purely a validation tool -- it does NOT perform DB writes.
"""

from __future__ import annotations

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from ingestcheck.constants import ERROR_CODE_SKIPPED, ERROR_CODE_SUPERSEDED
from ingestcheck.models import AttemptState


class AttemptLifecycleSM(StateMachine):
    """Four-state lifecycle for an upload attempt's verification.

    States:
        pending    -- Uploaded, archive ingest not yet confirmed.
        verified   -- Archive confirmed the attempt reached the archived stage.
        superseded -- Unverified duplicate of a verified attempt.
        skipped    -- An operator waived verification.

    ``superseded -> verified`` is legal: the archive may later confirm an
    attempt that was already written off as a duplicate.
    ``verified`` and ``skipped`` are final.
    """

    pending = State("pending", initial=True, value="pending")
    verified = State("verified", value="verified", final=True)
    superseded = State("superseded", value="superseded")
    skipped = State("skipped", value="skipped", final=True)

    verify = pending.to(verified) | superseded.to(verified)
    supersede = pending.to(superseded)
    skip = pending.to(skipped)


def create_fsm(current_state: str) -> AttemptLifecycleSM:
    """Create an FSM instance at the given state.

    Args:
        current_state: One of 'pending', 'verified', 'superseded', 'skipped'.
    """
    return AttemptLifecycleSM(start_value=current_state)


def state_from_row(
    verified: int, error_code: int, superseded_code: int = ERROR_CODE_SUPERSEDED
) -> AttemptState:
    """Derive the lifecycle state from the stored ``verified``/``error_code`` columns."""
    if verified:
        return AttemptState.VERIFIED
    if error_code == superseded_code:
        return AttemptState.SUPERSEDED
    if error_code == ERROR_CODE_SKIPPED:
        return AttemptState.SKIPPED
    return AttemptState.PENDING


def can_transition(current_state: AttemptState, event: str) -> bool:
    """Return True when *event* may fire from *current_state*.

    Firing an event whose target is the current state (e.g. verifying a
    verified attempt) counts as allowed; the write is idempotent.
    """
    targets = {
        "verify": AttemptState.VERIFIED,
        "supersede": AttemptState.SUPERSEDED,
        "skip": AttemptState.SKIPPED,
    }
    if targets.get(event) == current_state:
        return True

    fsm = create_fsm(current_state.value)
    if fsm.current_state.final:
        return False
    try:
        fsm.send(event)
    except TransitionNotAllowed:
        return False
    return True

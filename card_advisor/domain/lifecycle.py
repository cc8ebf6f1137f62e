"""Session status transition table"""

from typing import Dict, FrozenSet

from card_advisor.domain.models import SessionStatus

S = SessionStatus

# Non-terminal states may also "advance" to themselves to report progress.
TRANSITIONS: Dict[SessionStatus, FrozenSet[SessionStatus]] = {
    S.UPLOADING: frozenset({S.UPLOADING, S.QUEUED, S.FAILED}),
    S.QUEUED: frozenset({S.QUEUED, S.EXTRACTING, S.FAILED}),
    S.EXTRACTING: frozenset({S.EXTRACTING, S.CATEGORIZING, S.FAILED}),
    S.CATEGORIZING: frozenset({S.CATEGORIZING, S.MCC_DISCOVERY, S.FAILED}),
    S.MCC_DISCOVERY: frozenset({S.MCC_DISCOVERY, S.ANALYZING, S.FAILED}),
    S.ANALYZING: frozenset({S.ANALYZING, S.COMPLETED, S.FAILED}),
    S.COMPLETED: frozenset(),
    # Leaving failed is only possible through an explicit retry
    S.FAILED: frozenset({S.QUEUED}),
}

TERMINAL_STATUSES = frozenset({S.COMPLETED, S.FAILED})


def can_transition(current: SessionStatus, target: SessionStatus) -> bool:
    return target in TRANSITIONS[current]


def is_terminal(status: SessionStatus) -> bool:
    return status in TERMINAL_STATUSES

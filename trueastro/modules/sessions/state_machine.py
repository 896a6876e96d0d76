from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional, Tuple

from trueastro.modules.sessions.models import RequesterRole, SessionEvent, SessionStatus


@dataclass(frozen=True)
class Transition:
    source: SessionStatus
    event: SessionEvent
    target: SessionStatus
    allowed_roles: FrozenSet[RequesterRole]
    notice: str


_ASTROLOGER = frozenset({RequesterRole.astrologer})
_CUSTOMER = frozenset({RequesterRole.customer})
_PARTICIPANTS = frozenset({RequesterRole.customer, RequesterRole.astrologer})
_SYSTEM = frozenset({RequesterRole.system})


TRANSITIONS: Dict[Tuple[SessionStatus, SessionEvent], Transition] = {
    (t.source, t.event): t
    for t in (
        Transition(SessionStatus.pending, SessionEvent.accept, SessionStatus.active,
                   _ASTROLOGER, "{kind} session started"),
        Transition(SessionStatus.pending, SessionEvent.reject, SessionStatus.rejected,
                   _ASTROLOGER, "{kind} session was declined"),
        Transition(SessionStatus.pending, SessionEvent.cancel, SessionStatus.cancelled,
                   _CUSTOMER, "{kind} session was cancelled"),
        Transition(SessionStatus.active, SessionEvent.end, SessionStatus.completed,
                   _PARTICIPANTS, "{kind} session ended. Duration: {duration_minutes} minutes. Total: ₹{total_amount}"),
        Transition(SessionStatus.pending, SessionEvent.timeout, SessionStatus.expired,
                   _SYSTEM, "{kind} session expired"),
    )
}

TERMINAL_STATES = frozenset({
    SessionStatus.completed,
    SessionStatus.rejected,
    SessionStatus.cancelled,
    SessionStatus.expired,
})

# Events whose target is terminal; replaying one after it applied is a no-op
TERMINAL_EVENTS: Dict[SessionEvent, Transition] = {
    t.event: t for t in TRANSITIONS.values() if t.target in TERMINAL_STATES
}


def lookup(status: SessionStatus, event: SessionEvent) -> Optional[Transition]:
    return TRANSITIONS.get((status, event))


def is_replay(status: SessionStatus, event: SessionEvent, role: RequesterRole) -> bool:
    """True when `event` already brought the session to `status` and `role` may send it."""
    transition = TERMINAL_EVENTS.get(event)
    return transition is not None and transition.target == status and role in transition.allowed_roles


def allowed_events(status: SessionStatus) -> FrozenSet[SessionEvent]:
    return frozenset(event for (source, event) in TRANSITIONS if source == status)

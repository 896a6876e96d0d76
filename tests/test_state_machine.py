from trueastro.modules.sessions import state_machine
from trueastro.modules.sessions.models import RequesterRole, SessionEvent, SessionStatus


def test_transition_table_targets():
    expected = {
        (SessionStatus.pending, SessionEvent.accept): SessionStatus.active,
        (SessionStatus.pending, SessionEvent.reject): SessionStatus.rejected,
        (SessionStatus.pending, SessionEvent.cancel): SessionStatus.cancelled,
        (SessionStatus.active, SessionEvent.end): SessionStatus.completed,
        (SessionStatus.pending, SessionEvent.timeout): SessionStatus.expired,
    }
    assert {key: t.target for key, t in state_machine.TRANSITIONS.items()} == expected


def test_terminal_states_allow_no_events():
    for status in state_machine.TERMINAL_STATES:
        assert state_machine.allowed_events(status) == frozenset()


def test_only_end_leaves_active():
    assert state_machine.allowed_events(SessionStatus.active) == {SessionEvent.end}


def test_accept_and_reject_reserved_for_astrologer():
    for event in (SessionEvent.accept, SessionEvent.reject):
        transition = state_machine.lookup(SessionStatus.pending, event)
        assert transition.allowed_roles == {RequesterRole.astrologer}


def test_end_allowed_for_both_participants():
    transition = state_machine.lookup(SessionStatus.active, SessionEvent.end)
    assert transition.allowed_roles == {RequesterRole.customer, RequesterRole.astrologer}


def test_lookup_missing_pair():
    assert state_machine.lookup(SessionStatus.pending, SessionEvent.end) is None
    assert state_machine.lookup(SessionStatus.completed, SessionEvent.accept) is None


def test_replay_detection():
    assert state_machine.is_replay(SessionStatus.completed, SessionEvent.end, RequesterRole.customer)
    assert state_machine.is_replay(SessionStatus.rejected, SessionEvent.reject, RequesterRole.astrologer)
    # accept does not lead to a terminal state
    assert not state_machine.is_replay(SessionStatus.active, SessionEvent.accept, RequesterRole.astrologer)
    # a customer never sends reject, so it is not a replay for them
    assert not state_machine.is_replay(SessionStatus.rejected, SessionEvent.reject, RequesterRole.customer)
    assert not state_machine.is_replay(SessionStatus.expired, SessionEvent.end, RequesterRole.customer)

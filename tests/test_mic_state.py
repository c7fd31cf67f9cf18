import pytest

from souschef_voice.errors import IllegalTransitionError
from souschef_voice.runtime.mic_state import MicState, MicStateMachine


def test_starts_disabled_and_reports_changes() -> None:
    seen: list[tuple[MicState, MicState]] = []
    machine = MicStateMachine(on_change=lambda a, b: seen.append((a, b)))
    assert machine.state == MicState.DISABLED
    assert machine.transition(MicState.IDLE) is True
    assert machine.transition(MicState.LISTENING) is True
    assert machine.transition(MicState.PROCESSING) is True
    assert machine.transition(MicState.SPEAKING) is True
    assert machine.transition(MicState.IDLE) is True
    assert seen[0] == (MicState.DISABLED, MicState.IDLE)
    assert seen[-1] == (MicState.SPEAKING, MicState.IDLE)


def test_same_state_is_a_no_op() -> None:
    seen = []
    machine = MicStateMachine(on_change=lambda a, b: seen.append(b))
    assert machine.transition(MicState.DISABLED) is False
    assert seen == []


@pytest.mark.parametrize(
    "path, target",
    [
        ([], MicState.SPEAKING),
        ([], MicState.LISTENING),
        ([MicState.IDLE], MicState.SPEAKING),
        ([MicState.IDLE, MicState.ERROR], MicState.LISTENING),
    ],
)
def test_illegal_edges_raise(path, target) -> None:
    machine = MicStateMachine()
    for state in path:
        machine.transition(state)
    assert not machine.can_transition(target)
    with pytest.raises(IllegalTransitionError):
        machine.transition(target)


def test_every_enabled_state_can_be_switched_off() -> None:
    for state in (MicState.IDLE, MicState.LISTENING, MicState.ERROR):
        machine = MicStateMachine()
        machine.transition(MicState.IDLE)
        if state is not MicState.IDLE:
            machine.transition(state)
        assert machine.transition(MicState.DISABLED) is True

from enum import Enum, auto


class SessionState(Enum):
    IDLE = auto()
    CONNECTING = auto()
    RECORDING = auto()
    ERROR = auto()


VALID_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.IDLE: {SessionState.CONNECTING, SessionState.ERROR},
    SessionState.CONNECTING: {SessionState.RECORDING, SessionState.IDLE, SessionState.ERROR},
    SessionState.RECORDING: {SessionState.IDLE, SessionState.ERROR},
    SessionState.ERROR: {SessionState.IDLE, SessionState.CONNECTING, SessionState.ERROR},
}


class InvalidTransitionError(Exception):
    pass


def validate_transition(current: SessionState, target: SessionState) -> None:
    if target not in VALID_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(f"Cannot transition from {current.name} to {target.name}")

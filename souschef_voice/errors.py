"""Shared error codes, user-facing messages and exceptions."""

from __future__ import annotations

# Recognition error codes reported by the recognition capability.
NO_SPEECH = "no-speech"
ABORTED = "aborted"
NETWORK = "network"
NOT_ALLOWED = "not-allowed"
UNAVAILABLE = "unavailable"

BENIGN_RECOGNITION_ERRORS = frozenset({NO_SPEECH, ABORTED})

CONNECTION_FAILED_MESSAGE = "Failed to connect to the server."
GENERIC_FAILURE_MESSAGE = "Something went wrong."

ERROR_MESSAGES = {
    NETWORK: "Speech recognition lost its connection.",
    NOT_ALLOWED: "Microphone access was denied.",
    UNAVAILABLE: "Speech recognition is not available on this device.",
}


class SousChefError(Exception):
    """Base class for errors raised by the voice client."""


class CapabilityUnavailableError(SousChefError):
    """Recognition or synthesis is not supported by the runtime."""


class RecognitionStartError(SousChefError):
    """The recognition capability refused to start or restart."""


class IllegalTransitionError(SousChefError):
    """A mic state change outside the allowed edges was requested."""

    def __init__(self, from_state: object, to_state: object) -> None:
        super().__init__(f"illegal mic transition {from_state} -> {to_state}")
        self.from_state = from_state
        self.to_state = to_state


def describe_recognition_error(code: str) -> str:
    """Return the message shown to the user for a recognition error code."""
    return ERROR_MESSAGES.get(code, f"Speech recognition failed ({code}).")

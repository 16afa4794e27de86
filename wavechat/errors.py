"""Error taxonomy for hub event handlers.

Handlers raise these before mutating any state; the router turns them into
the matching outbound frame for the originating connection.
"""

from __future__ import annotations


class ChatError(Exception):
    """Base class for errors reported back to a single connection."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ChatError):
    """Bad nickname or message shape/content. Non-fatal."""


class NicknameInvalid(ValidationError):
    pass


class NicknameTaken(ValidationError):
    def __init__(self, message: str = "Nickname already taken") -> None:
        super().__init__(message)


class MessageRejected(ValidationError):
    """A chat message failed one of the moderation gates."""

    def __init__(self, gate: str, message: str) -> None:
        super().__init__(message)
        self.gate = gate


class AuthError(ChatError):
    """Missing/invalid credentials or insufficient privilege."""


class InvalidSession(AuthError):
    """The presented session token did not validate; the client drops it."""

    def __init__(self, message: str = "Invalid session") -> None:
        super().__init__(message)


class BannedError(ChatError):
    """The connection is banned and will be closed after notification."""

    def __init__(self, message: str = "banned") -> None:
        super().__init__(message)


class NotFoundError(ChatError):
    pass

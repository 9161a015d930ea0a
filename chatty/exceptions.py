"""
Chat errors - raised by repositories and services, mapped to HTTP status
codes in main.py and to `error` events on the live channel.
"""


class ChatError(Exception):
    """Base class for errors raised by the chat core."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ChatError):
    """Bad content, bad receiver id or a self-conversation. Maps to: HTTP 400"""


class NotFoundError(ChatError):
    """Unknown user id. Maps to: HTTP 404"""


class ConflictOnCreate(ChatError):
    """Lost a conversation-creation race. Recovered inside the registry, never surfaced."""


class StoreUnavailable(ChatError):
    """Persistence layer failure. Maps to: HTTP 500"""

    def __init__(self, message: str = "Storage is unavailable"):
        super().__init__(message)


class AuthRejected(ChatError):
    """Missing, invalid or expired credential. Maps to: HTTP 401 / close 4401"""

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)

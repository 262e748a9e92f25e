"""Room chat exception classes.

Each error names the outbound event that reports it to the requesting
connection.
"""

from typing import Any, Optional


class ChatError(Exception):
    """Base exception for all recoverable chat errors."""

    event = "protocol-error"

    def payload(self) -> Optional[Any]:
        """Data sent along with the outbound event, if any."""
        return None


class IdentityRequired(ChatError):
    """Raised when a connection has not set a nickname yet."""

    event = "nickname-required"


class RoomNotFound(ChatError):
    """Raised when a room id does not match any room."""

    event = "room-not-found"


class RoomFull(ChatError):
    """Raised when a non-member tries to join a room at capacity."""

    event = "room-full"


class InvalidName(ChatError):
    """Raised when a room name is empty after trimming."""

    event = "room-name-required"


class ProtocolError(ChatError):
    """Raised for malformed or unexpected inbound payloads."""

    event = "protocol-error"

    def __init__(self, inbound: str, detail: str):
        super().__init__(f"{inbound}: {detail}")
        self.inbound = inbound
        self.detail = detail

    def payload(self) -> dict[str, str]:
        return {"event": self.inbound, "detail": self.detail}

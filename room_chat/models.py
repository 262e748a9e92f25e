"""Data models for the room chat server."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a Z suffix."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class User:
    """A client identity known to the server."""

    user_id: str
    nickname: str
    connection_id: Optional[str] = None  # live socket handle
    last_seen: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "socketId": self.connection_id,
            "nickname": self.nickname,
            "lastSeen": self.last_seen,
        }

    @classmethod
    def from_dict(cls, user_id: str, data: dict[str, Any]) -> "User":
        """Create from dictionary."""
        return cls(
            user_id=user_id,
            nickname=data.get("nickname", ""),
            connection_id=data.get("socketId"),
            last_seen=data.get("lastSeen") or utc_now_iso(),
        )


@dataclass(frozen=True)
class Message:
    """A chat message. The nickname is captured at send time."""

    message: str
    id: str
    nickname: str
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "message": self.message,
            "id": self.id,
            "nickname": self.nickname,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        """Create from dictionary."""
        return cls(
            message=data["message"],
            id=data["id"],
            nickname=data["nickname"],
            timestamp=data["timestamp"],
        )


@dataclass
class Room:
    """A chat room.

    ``participants`` is durable membership (user ids, first-join order) and
    counts toward ``max_participants``. ``clients`` is the set of live
    connection handles and is never persisted.
    """

    room_id: str
    name: str
    max_participants: int
    participants: list[str] = field(default_factory=list)
    clients: list[str] = field(default_factory=list)
    messages: list[Message] = field(default_factory=list)

    def has_participant(self, user_id: str) -> bool:
        """Check if a user is a durable member of this room."""
        return user_id in self.participants

    @property
    def is_full(self) -> bool:
        return len(self.participants) >= self.max_participants

    def to_dict(self) -> dict[str, Any]:
        """Metadata form used for persistence (no messages, no clients)."""
        return {
            "id": self.room_id,
            "name": self.name,
            "participants": list(self.participants),
            "maxParticipants": self.max_participants,
        }

    def to_summary(self) -> dict[str, Any]:
        """Form used in room lists."""
        return {
            "id": self.room_id,
            "name": self.name,
            "clients": list(self.clients),
            "participants": list(self.participants),
            "maxParticipants": self.max_participants,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Room":
        """Create from persisted metadata. Live clients always start empty."""
        return cls(
            room_id=data["id"],
            name=data["name"],
            max_participants=data["maxParticipants"],
            participants=list(data.get("participants") or []),
        )


@dataclass
class ParticipantInfo:
    nickname: str
    is_online: bool

    def to_dict(self) -> dict[str, Any]:
        return {"nickname": self.nickname, "isOnline": self.is_online}


@dataclass
class RoomInfo:
    """Read-only projection of a room sent to clients."""

    name: str
    max_participants: int
    current_participants: int
    participants: list[ParticipantInfo]

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "maxParticipants": self.max_participants,
            "currentParticipants": self.current_participants,
            "participants": [p.to_dict() for p in self.participants],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RoomInfo":
        return cls(
            name=data["name"],
            max_participants=data["maxParticipants"],
            current_participants=data["currentParticipants"],
            participants=[
                ParticipantInfo(nickname=p["nickname"], is_online=p["isOnline"])
                for p in data.get("participants", [])
            ],
        )


@dataclass
class RoomLists:
    """Partition of all rooms from one user's point of view."""

    mine: list[Room] = field(default_factory=list)
    available: list[Room] = field(default_factory=list)
    full: list[Room] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "mine": [r.to_summary() for r in self.mine],
            "available": [r.to_summary() for r in self.available],
            "full": [r.to_summary() for r in self.full],
        }


@dataclass
class ChatState:
    """Process-wide chat state shared by the directory, registry and router."""

    rooms: dict[str, Room] = field(default_factory=dict)
    users: dict[str, User] = field(default_factory=dict)
    # connection_id -> user_id
    connections: dict[str, str] = field(default_factory=dict)

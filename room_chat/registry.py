"""Room registry: rooms, durable participants and live clients."""

import logging
import uuid
from typing import Iterable, Optional

from room_chat.directory import IdentityDirectory
from room_chat.exceptions import (
    IdentityRequired,
    InvalidName,
    ProtocolError,
    RoomFull,
    RoomNotFound,
)
from room_chat.models import (
    ChatState,
    Message,
    ParticipantInfo,
    Room,
    RoomInfo,
    RoomLists,
)

logger = logging.getLogger(__name__)


class RoomRegistry:
    """Owns the set of rooms.

    Membership is tracked twice per room: ``participants`` changes only
    through join logic and survives restarts, ``clients`` follows
    connections and is never persisted.
    """

    def __init__(self, state: ChatState, directory: IdentityDirectory) -> None:
        self._state = state
        self._directory = directory

    @property
    def rooms(self) -> list[Room]:
        return list(self._state.rooms.values())

    def load(self, rooms: Iterable[Room]) -> None:
        """Register rooms restored from persistence."""
        for room in rooms:
            room.clients = []
            self._state.rooms[room.room_id] = room

    def create_room(
        self,
        requester_user_id: Optional[str],
        name: Optional[str],
        max_participants: int,
        connection_id: str,
    ) -> Room:
        """Create a room with the requester as its only participant."""
        if requester_user_id is None:
            raise IdentityRequired()
        if not isinstance(name, str) or not name.strip():
            raise InvalidName()
        if (
            isinstance(max_participants, bool)
            or not isinstance(max_participants, int)
            or max_participants < 2
        ):
            raise ProtocolError(
                "create-room", "maxParticipants must be an integer >= 2"
            )

        room = Room(
            room_id=str(uuid.uuid4()),
            name=name.strip(),
            max_participants=max_participants,
            participants=[requester_user_id],
            clients=[connection_id],
        )
        self._state.rooms[room.room_id] = room

        logger.info(
            f"Room '{room.name}' ({room.room_id}) created by {requester_user_id}, "
            f"capacity {max_participants}"
        )
        return room

    def lookup_room(self, room_id: str) -> Optional[Room]:
        """Get a room by id.

        Args:
            room_id: The room to look up

        Returns:
            The room, or None if it does not exist
        """
        return self._state.rooms.get(room_id)

    def get_room(self, room_id: str) -> Room:
        """Like ``lookup_room`` but raises ``RoomNotFound``."""
        room = self.lookup_room(room_id)
        if room is None:
            raise RoomNotFound()
        return room

    def join_as_participant(
        self,
        room_id: str,
        user_id: str,
        connection_id: str,
        check_capacity: bool = True,
    ) -> Room:
        """Make ``user_id`` a participant and ``connection_id`` a live client.

        Capacity only applies to users who are not members yet.
        """
        room = self.get_room(room_id)

        if not room.has_participant(user_id):
            if check_capacity and room.is_full:
                raise RoomFull()
            room.participants.append(user_id)
            logger.info(f"User {user_id} joined room {room_id}")

        if connection_id not in room.clients:
            room.clients.append(connection_id)
        return room

    def attach_live_client(self, room_id: str, connection_id: str) -> Room:
        """Add a connection to a room's live clients without touching participants.

        Args:
            room_id: The room to attach to
            connection_id: The connection handle to add; a repeat is a no-op

        Returns:
            The room
        """
        room = self.get_room(room_id)
        if connection_id not in room.clients:
            room.clients.append(connection_id)
        return room

    def detach_live_client(self, room_id: str, connection_id: str) -> bool:
        """Remove a connection from a room's live clients.

        Returns True if the connection was live in the room.
        """
        room = self.get_room(room_id)
        if connection_id not in room.clients:
            return False
        room.clients.remove(connection_id)
        return True

    def detach_everywhere(self, connection_id: str) -> list[Room]:
        """Detach a connection from every room; return the rooms it was live in."""
        affected = []
        for room in self._state.rooms.values():
            if connection_id in room.clients:
                room.clients.remove(connection_id)
                affected.append(room)
        return affected

    def snapshot(self, room_id: str) -> RoomInfo:
        """Build the public view of a room.

        A participant is online when the connection it currently owns is one
        of the room's live clients.

        Args:
            room_id: The room to describe

        Returns:
            Name, capacity, participant count and per-participant presence
        """
        room = self.get_room(room_id)
        return RoomInfo(
            name=room.name,
            max_participants=room.max_participants,
            current_participants=len(room.participants),
            participants=[
                ParticipantInfo(
                    nickname=self._directory.nickname_of(user_id),
                    is_online=self._is_online(room, user_id),
                )
                for user_id in room.participants
            ],
        )

    def _is_online(self, room: Room, user_id: str) -> bool:
        connection_id = self._directory.connection_of(user_id)
        return connection_id is not None and connection_id in room.clients

    def list_for_user(self, user_id: str) -> RoomLists:
        """Partition all rooms into mine, available and full."""
        lists = RoomLists()
        for room in self._state.rooms.values():
            if room.has_participant(user_id):
                lists.mine.append(room)
            elif room.is_full:
                lists.full.append(room)
            else:
                lists.available.append(room)
        return lists

    def record_message(self, room_id: str, message: Message) -> None:
        """Append a message to the room's history."""
        room = self.get_room(room_id)
        room.messages.append(message)
        logger.debug(
            f"Message from {message.id} in room {room_id}: {message.message[:50]}"
        )

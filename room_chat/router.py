"""Event router: the room chat protocol.

Every inbound event is handled in four steps: resolve the sender's identity
from its connection, check the event's preconditions, mutate the registry or
directory and persist what changed, then emit the resulting events. Failed
preconditions are reported to the sender only, through the outbound event
named by the raised ``ChatError``.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol

from room_chat.config import RoomChatConfig, get_config
from room_chat.directory import IdentityDirectory
from room_chat.exceptions import ChatError, IdentityRequired, ProtocolError
from room_chat.models import ChatState, Message, Room
from room_chat.registry import RoomRegistry
from room_chat.storage import PersistenceGateway

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Named-event channel. ``to=None`` addresses every connection.

    ``socketio.AsyncServer`` implements this interface.
    """

    async def emit(
        self,
        event: str,
        data: Any = None,
        to: Optional[str] = None,
        skip_sid: Optional[str] = None,
    ) -> None: ...

    async def enter_room(self, sid: str, room: str) -> None: ...

    async def leave_room(self, sid: str, room: str) -> None: ...


Handler = Callable[..., Awaitable[None]]


def _require_str(event: str, value: Any, name: str) -> str:
    if not isinstance(value, str):
        raise ProtocolError(event, f"{name} must be a string")
    return value


def _typing_payload(event: str, payload: Any) -> tuple[str, Any]:
    if not isinstance(payload, dict):
        raise ProtocolError(event, "payload must be an object")
    room_id = _require_str(event, payload.get("roomId"), "roomId")
    return room_id, payload.get("nickname")


class EventRouter:
    """Dispatches inbound events against the shared chat state.

    Handlers run one at a time under a single lock, so each one sees and
    leaves a consistent state even though persistence and emits await.
    """

    def __init__(
        self,
        state: ChatState,
        directory: IdentityDirectory,
        registry: RoomRegistry,
        gateway: PersistenceGateway,
        transport: Transport,
        config: Optional[RoomChatConfig] = None,
    ) -> None:
        self._state = state
        self._directory = directory
        self._registry = registry
        self._gateway = gateway
        self._transport = transport
        self._config = config or get_config()
        self._lock = asyncio.Lock()

        self._handlers: dict[str, Handler] = {
            "set-nickname": self.on_set_nickname,
            "get-nickname": self.on_get_nickname,
            "create-room": self.on_create_room,
            "room-exists": self.on_room_exists,
            "join-room": self.on_join_room,
            "leave-room": self.on_leave_room,
            "send-message": self.on_send_message,
            "typing": self.on_typing,
            "stop-typing": self.on_stop_typing,
            "update-room-list": self.on_update_room_list,
        }

    @property
    def events(self) -> list[str]:
        """Names of the inbound events this router handles."""
        return list(self._handlers)

    async def dispatch(self, sid: str, event: str, *args: Any) -> None:
        """Handle one inbound event from connection ``sid``."""
        async with self._lock:
            try:
                handler = self._handlers.get(event)
                if handler is None:
                    raise ProtocolError(event, "unknown event")
                try:
                    inspect.signature(handler).bind(sid, *args)
                except TypeError:
                    raise ProtocolError(
                        event, f"unexpected arguments {args!r}"
                    ) from None
                await handler(sid, *args)
            except ChatError as e:
                logger.debug(f"{event} from {sid} rejected: {e.event}")
                await self._reply(sid, e.event, e.payload())

    async def connect(self, sid: str) -> None:
        logger.info(f"New client connected {sid}")

    async def disconnect(self, sid: str) -> None:
        """Connection closed: drop it from every room's live clients.

        Durable participant membership is left untouched.
        """
        async with self._lock:
            user_id = self._directory.mark_disconnected(sid)
            if user_id is not None:
                await self._gateway.save_users(self._state.users)

            affected = self._registry.detach_everywhere(sid)
            for room in affected:
                await self._broadcast_room_info(room)

            if user_id is not None or affected:
                await self._announce_room_list()
            logger.info(f"Client disconnected {sid} (user {user_id})")

    # Helpers

    async def _reply(self, sid: str, event: str, data: Any = None) -> None:
        await self._transport.emit(event, data, to=sid)

    async def _broadcast_room_info(self, room: Room) -> None:
        info = self._registry.snapshot(room.room_id)
        await self._transport.emit(
            "room-info-updated", info.to_dict(), to=room.room_id
        )

    async def _announce_room_list(self) -> None:
        """Tell every connection to refresh its room list."""
        await self._transport.emit("update-room-list")

    async def _send_room_list(self, sid: str, user_id: str) -> None:
        lists = self._registry.list_for_user(user_id)
        await self._reply(sid, "room-list", lists.to_dict())

    def _require_identity(self, sid: str) -> str:
        user_id = self._directory.resolve_identity(sid)
        if user_id is None:
            raise IdentityRequired()
        return user_id

    # Inbound events

    async def on_set_nickname(self, sid: str, nickname: Any, user_id: Any) -> None:
        nickname = _require_str("set-nickname", nickname, "nickname")
        user_id = _require_str("set-nickname", user_id, "userId")

        self._directory.set_nickname(user_id, sid, nickname)
        await self._gateway.save_users(self._state.users)

        await self._reply(sid, "nickname-set", nickname)
        await self._send_room_list(sid, user_id)

    async def on_get_nickname(self, sid: str) -> None:
        user_id = self._require_identity(sid)
        await self._reply(sid, "nickname-get", self._directory.nickname_of(user_id))

    async def on_create_room(
        self, sid: str, max_participants: Any = None, name: Any = None
    ) -> None:
        user_id = self._directory.resolve_identity(sid)
        if max_participants is None:
            max_participants = self._config.default_max_participants

        room = self._registry.create_room(user_id, name, max_participants, sid)
        await self._transport.enter_room(sid, room.room_id)
        await self._gateway.save_rooms(self._registry.rooms)

        await self._reply(sid, "room-created", room.room_id)
        await self._announce_room_list()

    async def on_room_exists(self, sid: str, room_id: Any) -> None:
        """Open a room: full history and room info for the sender.

        Unlike ``join-room`` this does not check capacity unless
        ``strict_capacity`` is configured.
        """
        room_id = _require_str("room-exists", room_id, "roomId")
        self._registry.get_room(room_id)
        user_id = self._require_identity(sid)

        room = self._registry.join_as_participant(
            room_id, user_id, sid, check_capacity=self._config.strict_capacity
        )
        await self._transport.enter_room(sid, room_id)
        await self._gateway.save_rooms(self._registry.rooms)

        info = self._registry.snapshot(room_id)
        await self._reply(
            sid,
            "room-exists",
            {
                "messages": [m.to_dict() for m in room.messages],
                "roomInfo": info.to_dict(),
            },
        )
        await self._broadcast_room_info(room)
        await self._announce_room_list()

    async def on_join_room(self, sid: str, room_id: Any) -> None:
        room_id = _require_str("join-room", room_id, "roomId")
        self._registry.get_room(room_id)
        user_id = self._require_identity(sid)

        room = self._registry.join_as_participant(room_id, user_id, sid)
        await self._transport.enter_room(sid, room_id)
        await self._gateway.save_rooms(self._registry.rooms)

        await self._reply(sid, "room-joined", room_id)
        await self._broadcast_room_info(room)
        await self._announce_room_list()

    async def on_leave_room(self, sid: str, room_id: Any) -> None:
        room_id = _require_str("leave-room", room_id, "roomId")
        room = self._registry.get_room(room_id)
        user_id = self._require_identity(sid)

        self._registry.detach_live_client(room_id, sid)
        await self._transport.leave_room(sid, room_id)
        logger.info(f"User {user_id} left room {room_id}")

        await self._broadcast_room_info(room)
        await self._announce_room_list()

    async def on_send_message(self, sid: str, room_id: Any, text: Any) -> None:
        room_id = _require_str("send-message", room_id, "roomId")
        text = _require_str("send-message", text, "message")
        self._registry.get_room(room_id)
        user_id = self._require_identity(sid)

        room = self._registry.join_as_participant(
            room_id, user_id, sid, check_capacity=self._config.strict_capacity
        )
        await self._transport.enter_room(sid, room_id)

        message = Message(
            message=text,
            id=user_id,
            nickname=self._directory.nickname_of(user_id),
        )
        self._registry.record_message(room_id, message)
        await self._gateway.save_history(room_id, room.messages)
        await self._gateway.save_rooms(self._registry.rooms)

        await self._transport.emit("receive-message", message.to_dict(), to=room_id)

    async def on_typing(self, sid: str, payload: Any) -> None:
        room_id, nickname = _typing_payload("typing", payload)
        user_id = self._directory.resolve_identity(sid)
        await self._transport.emit(
            "user-typing",
            {"nickname": nickname, "userId": user_id},
            to=room_id,
            skip_sid=sid,
        )

    async def on_stop_typing(self, sid: str, payload: Any) -> None:
        room_id, nickname = _typing_payload("stop-typing", payload)
        await self._transport.emit(
            "user-stop-typing", {"nickname": nickname}, to=room_id, skip_sid=sid
        )

    async def on_update_room_list(self, sid: str) -> None:
        user_id = self._require_identity(sid)
        await self._send_room_list(sid, user_id)

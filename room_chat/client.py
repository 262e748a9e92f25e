"""Asyncio Socket.IO client for the room chat server."""

import asyncio
import logging
from typing import Any, Optional

import socketio

from room_chat.config import RoomChatConfig, get_config
from room_chat.models import Message, RoomInfo
from room_chat.presence import TypingDebouncer, TypingTracker

logger = logging.getLogger(__name__)

ERROR_EVENTS = (
    "nickname-required",
    "room-not-found",
    "room-full",
    "room-name-required",
    "protocol-error",
)


class ChatClient:
    """Keeps a local view of the server state for one user.

    Room info, incoming messages and typing events carry no room id on the
    wire; they apply to the room most recently opened with ``open_room``.
    """

    def __init__(
        self,
        user_id: str,
        nickname: str,
        config: Optional[RoomChatConfig] = None,
        sio: Optional[socketio.AsyncClient] = None,
    ) -> None:
        self.user_id = user_id
        self.nickname = nickname
        self._config = config or get_config()
        self.sio = sio or socketio.AsyncClient()

        self.current_room: Optional[str] = None
        self.room_lists: dict[str, list[dict[str, Any]]] = {
            "mine": [],
            "available": [],
            "full": [],
        }
        self.room_info: Optional[RoomInfo] = None
        # room_id -> last known history
        self.messages: dict[str, list[Message]] = {}
        self.typing = TypingTracker(expiry=self._config.typing_expiry)
        self.errors: list[str] = []

        self._debouncers: dict[str, TypingDebouncer] = {}
        self._sweeper: Optional[asyncio.Task] = None

        self._register_handlers()

    def _register_handlers(self) -> None:
        self.sio.on("connect", self.on_connect)
        self.sio.on("room-list", self.on_room_list)
        self.sio.on("update-room-list", self.refresh_room_list)
        self.sio.on("room-created", self.open_room)
        self.sio.on("room-joined", self.open_room)
        self.sio.on("room-exists", self.on_room_exists)
        self.sio.on("room-info-updated", self.on_room_info_updated)
        self.sio.on("receive-message", self.on_receive_message)
        self.sio.on("user-typing", self.on_user_typing)
        self.sio.on("user-stop-typing", self.on_user_stop_typing)
        for event in ERROR_EVENTS:
            self.sio.on(event, self._error_handler(event))

    def _error_handler(self, event: str):
        async def handler(*args: Any) -> None:
            logger.warning(f"Server rejected request: {event} {args}")
            self.errors.append(event)

        return handler

    # Connection

    async def connect(
        self, url: str, transports: Optional[list[str]] = None
    ) -> None:
        await self.sio.connect(url, transports=transports)
        if self._sweeper is not None:
            self._sweeper.cancel()
        self._sweeper = asyncio.create_task(self._sweep_typing())

    async def disconnect(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            self._sweeper = None
        for debouncer in self._debouncers.values():
            debouncer.cancel()
        await self.sio.disconnect()

    async def _sweep_typing(self) -> None:
        while True:
            await asyncio.sleep(self._config.typing_sweep_interval)
            expired = self.typing.sweep()
            if expired:
                logger.debug(f"Typing expired: {expired}")

    # Requests

    async def set_nickname(self, nickname: Optional[str] = None) -> None:
        if nickname is not None:
            self.nickname = nickname
        await self.sio.emit("set-nickname", (self.nickname, self.user_id))

    async def create_room(self, name: str, max_participants: int = 2) -> None:
        await self.sio.emit("create-room", (max_participants, name))

    async def join_room(self, room_id: str) -> None:
        await self.sio.emit("join-room", room_id)

    async def open_room(self, room_id: str) -> None:
        """Switch to a room and request its full history."""
        if self.current_room != room_id:
            self.typing = TypingTracker(expiry=self._config.typing_expiry)
        self.current_room = room_id
        await self.sio.emit("room-exists", room_id)

    async def leave_room(self) -> None:
        if self.current_room is None:
            return
        room_id = self.current_room
        debouncer = self._debouncers.pop(room_id, None)
        if debouncer is not None:
            debouncer.cancel()
        self.current_room = None
        self.room_info = None
        await self.sio.emit("leave-room", room_id)

    async def send_message(self, text: str) -> None:
        room_id = self._require_room()
        await self._debouncer(room_id).stop()
        await self.sio.emit("send-message", (room_id, text))

    async def keystroke(self) -> None:
        """Report typing in the current room."""
        await self._debouncer(self._require_room()).keystroke()

    async def refresh_room_list(self) -> None:
        await self.sio.emit("update-room-list")

    def _require_room(self) -> str:
        if self.current_room is None:
            raise RuntimeError("No room open")
        return self.current_room

    def _debouncer(self, room_id: str) -> TypingDebouncer:
        if room_id not in self._debouncers:

            async def send(typing: bool) -> None:
                event = "typing" if typing else "stop-typing"
                await self.sio.emit(
                    event, {"roomId": room_id, "nickname": self.nickname}
                )

            self._debouncers[room_id] = TypingDebouncer(
                send, delay=self._config.typing_expiry
            )
        return self._debouncers[room_id]

    # Server events

    async def on_connect(self) -> None:
        # Rebind the identity to the new connection handle, then make that
        # handle live in the open room again
        await self.set_nickname()
        if self.current_room is not None:
            await self.open_room(self.current_room)

    async def on_room_list(self, data: dict[str, Any]) -> None:
        self.room_lists = data

    async def on_room_exists(self, data: dict[str, Any]) -> None:
        # Always a full history: replace the cache wholesale
        if self.current_room is None:
            return
        self.messages[self.current_room] = [
            Message.from_dict(m) for m in data["messages"]
        ]
        self.room_info = RoomInfo.from_dict(data["roomInfo"])

    async def on_room_info_updated(self, data: dict[str, Any]) -> None:
        if self.current_room is not None:
            self.room_info = RoomInfo.from_dict(data)

    async def on_receive_message(self, data: dict[str, Any]) -> None:
        if self.current_room is None:
            return
        message = Message.from_dict(data)
        self.messages.setdefault(self.current_room, []).append(message)

    async def on_user_typing(self, data: dict[str, Any]) -> None:
        if data.get("userId") == self.user_id:
            return
        self.typing.mark_typing(data["nickname"])

    async def on_user_stop_typing(self, data: dict[str, Any]) -> None:
        self.typing.mark_stopped(data["nickname"])

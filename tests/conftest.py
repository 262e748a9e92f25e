from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Optional

import pytest

from room_chat.config import RoomChatConfig
from room_chat.directory import IdentityDirectory
from room_chat.models import ChatState
from room_chat.registry import RoomRegistry
from room_chat.router import EventRouter
from room_chat.storage import MemoryStore, PersistenceGateway


@dataclass
class Emitted:
    event: str
    data: Any
    to: Optional[str]
    skip_sid: Optional[str]


class FakeTransport:
    """Records emits and resolves their fan-out at emit time.

    Like Socket.IO, every connection is implicitly in a room named after its
    own sid.
    """

    def __init__(self) -> None:
        self.emitted: list[Emitted] = []
        self.connected: list[str] = []
        self.rooms: dict[str, set[str]] = defaultdict(set)
        self.inbox: dict[str, list[tuple[str, Any]]] = defaultdict(list)

    def add_connection(self, sid: str) -> None:
        if sid not in self.connected:
            self.connected.append(sid)

    def drop_connection(self, sid: str) -> None:
        if sid in self.connected:
            self.connected.remove(sid)
        for members in self.rooms.values():
            members.discard(sid)

    async def emit(self, event, data=None, to=None, skip_sid=None) -> None:
        self.emitted.append(Emitted(event, data, to, skip_sid))
        if to is None:
            recipients = list(self.connected)
        elif to in self.connected:
            recipients = [to]
        else:
            recipients = [sid for sid in self.connected if sid in self.rooms[to]]
        for sid in recipients:
            if sid != skip_sid:
                self.inbox[sid].append((event, data))

    async def enter_room(self, sid: str, room: str) -> None:
        self.rooms[room].add(sid)

    async def leave_room(self, sid: str, room: str) -> None:
        self.rooms[room].discard(sid)

    def events(self, sid: str) -> list[str]:
        return [event for event, _ in self.inbox[sid]]

    def last(self, sid: str, event: str) -> Any:
        for name, data in reversed(self.inbox[sid]):
            if name == event:
                return data
        raise AssertionError(f"{sid} never received {event}: {self.events(sid)}")

    def clear(self) -> None:
        self.emitted.clear()
        self.inbox.clear()


@pytest.fixture
def config() -> RoomChatConfig:
    return RoomChatConfig(data_dir=None, log_level="DEBUG")


@pytest.fixture
def state() -> ChatState:
    return ChatState()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def gateway(store) -> PersistenceGateway:
    return PersistenceGateway(store)


@pytest.fixture
def directory(state) -> IdentityDirectory:
    return IdentityDirectory(state)


@pytest.fixture
def registry(state, directory) -> RoomRegistry:
    return RoomRegistry(state, directory)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def router(state, directory, registry, gateway, transport, config) -> EventRouter:
    return EventRouter(state, directory, registry, gateway, transport, config)


@pytest.fixture
def login(router, transport):
    """Connect a sid and set its nickname."""

    async def _login(sid: str, user_id: str, nickname: str) -> None:
        transport.add_connection(sid)
        await router.connect(sid)
        await router.dispatch(sid, "set-nickname", nickname, user_id)

    return _login


@pytest.fixture
def hang_up(router, transport):
    """Close a connection the way the Socket.IO server does."""

    async def _hang_up(sid: str) -> None:
        transport.drop_connection(sid)
        await router.disconnect(sid)

    return _hang_up

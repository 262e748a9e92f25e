import asyncio
import contextlib

import pytest
import socketio
import uvicorn

from room_chat.client import ChatClient
from room_chat.config import RoomChatConfig
from room_chat.server import build_server


async def _wait_for(predicate, timeout=5.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


@contextlib.asynccontextmanager
async def _serving(server):
    web = uvicorn.Server(
        uvicorn.Config(
            socketio.ASGIApp(server.sio),
            host="127.0.0.1",
            port=0,
            lifespan="off",
            log_level="warning",
        )
    )
    task = asyncio.create_task(web.serve())
    try:
        await _wait_for(lambda: web.started)
        port = web.servers[0].sockets[0].getsockname()[1]
        yield f"http://127.0.0.1:{port}"
    finally:
        web.should_exit = True
        await task


def _texts(client, room_id):
    return [m.message for m in client.messages.get(room_id, [])]


@pytest.mark.asyncio
async def test_messages_and_reconnect_over_socketio():
    config = RoomChatConfig(data_dir=None)
    server = build_server(config)
    directory = server.directory
    alice = ChatClient("A", "Alice", config=config)
    bob = ChatClient("B", "Bob", config=config)

    async with _serving(server) as url:
        await alice.connect(url, transports=["polling"])
        await bob.connect(url, transports=["polling"])
        await _wait_for(lambda: directory.get_user("A") and directory.get_user("B"))

        await alice.create_room("Test", 2)
        await _wait_for(lambda: alice.room_info is not None)
        room_id = alice.current_room
        room = server.registry.lookup_room(room_id)

        await bob.join_room(room_id)
        await _wait_for(lambda: bob.room_info is not None)
        assert room.participants == ["A", "B"]

        await alice.send_message("M1")
        await _wait_for(lambda: _texts(bob, room_id) == ["M1"])
        await bob.send_message("M2")
        await _wait_for(lambda: _texts(alice, room_id) == ["M1", "M2"])

        old_sid = directory.connection_of("B")
        await bob.sio.disconnect()
        await _wait_for(lambda: old_sid not in room.clients)
        await bob.connect(url, transports=["polling"])
        await _wait_for(
            lambda: directory.connection_of("B") != old_sid
            and directory.connection_of("B") in room.clients
        )

        await alice.send_message("M3")
        await _wait_for(lambda: _texts(bob, room_id) == ["M1", "M2", "M3"])
        await _wait_for(
            lambda: [p.is_online for p in alice.room_info.participants]
            == [True, True]
        )
        assert bob.current_room == room_id
        assert room.participants == ["A", "B"]

        await alice.disconnect()
        await bob.disconnect()

"""Room chat server: Socket.IO event channel plus a read-only MCP endpoint."""

from dataclasses import dataclass
from typing import Any, Dict, Optional
import logging

import socketio
from fastmcp import FastMCP

from room_chat.config import RoomChatConfig, get_config
from room_chat.directory import IdentityDirectory
from room_chat.exceptions import RoomNotFound
from room_chat.models import ChatState
from room_chat.registry import RoomRegistry
from room_chat.router import EventRouter
from room_chat.storage import JsonFileStore, MemoryStore, PersistenceGateway

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(config: RoomChatConfig) -> None:
    logging.basicConfig(level=config.log_level, format=LOG_FORMAT)


def room_status(registry: RoomRegistry, room_id: str) -> Dict[str, Any]:
    """Room info plus live-client and message counts."""
    room = registry.get_room(room_id)
    return {
        "room_id": room_id,
        **registry.snapshot(room_id).to_dict(),
        "online_clients": len(room.clients),
        "message_count": len(room.messages),
    }


def room_history(registry: RoomRegistry, room_id: str) -> Dict[str, Any]:
    room = registry.get_room(room_id)
    return {
        "room_id": room_id,
        "messages": [m.to_dict() for m in room.messages],
        "total_count": len(room.messages),
    }


def create_mcp(registry: RoomRegistry) -> Any:
    """Read-only MCP tools over the live chat state."""
    mcp: Any = FastMCP(name="room-chat", version="0.1.0")

    @mcp.tool()
    async def list_rooms() -> Dict[str, Any]:
        """List every chat room.

        Returns:
            rooms: id, name, participant count, capacity and online client
            count for each room, in creation order
        """
        return {
            "rooms": [
                {
                    "room_id": room.room_id,
                    "name": room.name,
                    "current_participants": len(room.participants),
                    "max_participants": room.max_participants,
                    "online_clients": len(room.clients),
                }
                for room in registry.rooms
            ]
        }

    @mcp.tool()
    async def get_room_info(room_id: str) -> Dict[str, Any]:
        """Lightweight status check for a chat room.

        Args:
            room_id: The ID of the room to check

        Returns:
            Room name, capacity, participants with online status and
            message_count, or an error if the room does not exist
        """
        try:
            return {"exists": True, **room_status(registry, room_id)}
        except RoomNotFound:
            return {"room_id": room_id, "exists": False, "error": "Room not found"}

    @mcp.tool()
    async def get_history(room_id: str) -> Dict[str, Any]:
        """Retrieve all messages of a chat room in chronological order.

        Args:
            room_id: The ID of the room to get history for

        Returns:
            room_id, messages list, and total_count
        """
        try:
            return room_history(registry, room_id)
        except RoomNotFound:
            return {"room_id": room_id, "error": "Room not found"}

    return mcp


@dataclass
class ChatServer:
    """All server components wired together around one ``ChatState``."""

    config: RoomChatConfig
    state: ChatState
    gateway: PersistenceGateway
    directory: IdentityDirectory
    registry: RoomRegistry
    router: EventRouter
    sio: socketio.AsyncServer
    mcp: Any

    def asgi_app(self) -> socketio.ASGIApp:
        """Socket.IO on ``/socket.io``; everything else goes to the MCP app."""
        return socketio.ASGIApp(
            self.sio, other_asgi_app=self.mcp.http_app(path=self.config.mcp_path)
        )


def _event_handler(router: EventRouter, event: str):
    async def handler(sid: str, *args: Any) -> None:
        await router.dispatch(sid, event, *args)

    return handler


def build_server(config: Optional[RoomChatConfig] = None) -> ChatServer:
    """Load persisted state and build the server components."""
    config = config or get_config()

    if config.data_dir:
        store: Any = JsonFileStore(config.data_dir)
    else:
        logger.warning("No data directory configured, state is kept in memory")
        store = MemoryStore()
    gateway = PersistenceGateway(store)

    state = ChatState()
    directory = IdentityDirectory(state)
    registry = RoomRegistry(state, directory)

    state.users.update(gateway.load_users())
    directory.rebuild_index()
    registry.load(gateway.load_rooms())

    sio = socketio.AsyncServer(
        async_mode="asgi", cors_allowed_origins=config.cors_allowed_origins
    )
    router = EventRouter(state, directory, registry, gateway, sio, config)

    @sio.event
    async def connect(sid: str, environ: dict, *args: Any) -> None:
        await router.connect(sid)

    @sio.event
    async def disconnect(sid: str, *args: Any) -> None:
        await router.disconnect(sid)

    for event in router.events:
        sio.on(event, _event_handler(router, event))

    return ChatServer(
        config=config,
        state=state,
        gateway=gateway,
        directory=directory,
        registry=registry,
        router=router,
        sio=sio,
        mcp=create_mcp(registry),
    )


def create_app(config: Optional[RoomChatConfig] = None) -> socketio.ASGIApp:
    """ASGI application factory."""
    config = config or get_config()
    configure_logging(config)
    server = build_server(config)
    logger.info(
        f"Room chat server ready: {len(server.state.rooms)} rooms, "
        f"{len(server.state.users)} users"
    )
    return server.asgi_app()


def main() -> None:
    """Main entry point for the server."""
    import uvicorn

    config = get_config()
    uvicorn.run(
        "room_chat.server:create_app",
        factory=True,
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()

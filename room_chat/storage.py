"""Snapshot persistence for rooms, chat history and the user directory."""

import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Protocol

from room_chat.models import Message, Room, User

logger = logging.getLogger(__name__)

ROOMS_KEY = "rooms"
USERS_KEY = "users"
HISTORY_PREFIX = "chat_history:"


def history_key(room_id: str) -> str:
    """Store key of a room's message history."""
    return f"{HISTORY_PREFIX}{room_id}"


class SnapshotStore(Protocol):
    """Key-value blob store with load/save-whole-object semantics."""

    def load(self, key: str, default: Any) -> Any: ...

    def save(self, key: str, value: Any) -> None: ...


class MemoryStore:
    """In-process store. Values are kept JSON-encoded so callers never share
    mutable objects with the store."""

    def __init__(self) -> None:
        self._blobs: dict[str, str] = {}

    def load(self, key: str, default: Any) -> Any:
        if key not in self._blobs:
            return default
        return json.loads(self._blobs[key])

    def save(self, key: str, value: Any) -> None:
        self._blobs[key] = json.dumps(value, ensure_ascii=False)

    def keys(self) -> list[str]:
        return list(self._blobs)


class JsonFileStore:
    """Stores each key as a JSON file.

    Layout under ``base_path``: ``rooms.json``, ``users.json`` and
    ``chat_history/{room_id}.json``.
    """

    def __init__(self, base_path: Path | str) -> None:
        self._base_path = Path(base_path)
        self._base_path.mkdir(parents=True, exist_ok=True)
        (self._base_path / "chat_history").mkdir(exist_ok=True)

        logger.info(f"JsonFileStore initialized with path: {self._base_path}")

    @property
    def base_path(self) -> Path:
        return self._base_path

    def _get_file_path(self, key: str) -> Path:
        """Get the JSON file path for a key."""
        if key.startswith(HISTORY_PREFIX):
            room_id = key[len(HISTORY_PREFIX) :]
            directory = self._base_path / "chat_history"
            name = room_id
        else:
            directory = self._base_path
            name = key
        # Sanitize to be filesystem-safe
        safe_name = "".join(c if c.isalnum() or c in "-_" else "_" for c in name)
        return directory / f"{safe_name}.json"

    def load(self, key: str, default: Any) -> Any:
        """Load a value. Missing or corrupted files yield ``default``."""
        file_path = self._get_file_path(key)

        if not file_path.exists():
            return default

        try:
            content = file_path.read_text(encoding="utf-8")
            return json.loads(content)
        except json.JSONDecodeError as e:
            logger.warning(f"Corrupted snapshot for {key}: {e}")
            # Keep the corrupted file for potential recovery
            corrupted_path = file_path.with_suffix(
                f".corrupted.{datetime.now().strftime('%Y%m%d_%H%M%S')}.json"
            )
            try:
                file_path.rename(corrupted_path)
                logger.info(f"Renamed corrupted file to {corrupted_path}")
            except OSError as rename_error:
                logger.error(f"Error renaming corrupted {key}: {rename_error}")
            return default
        except OSError as e:
            logger.error(f"Error loading {key}: {e}")
            return default

    def save(self, key: str, value: Any) -> None:
        """Save a value with an atomic write."""
        file_path = self._get_file_path(key)
        temp_path = file_path.with_suffix(".tmp")

        try:
            temp_path.write_text(json.dumps(value, ensure_ascii=False), encoding="utf-8")
            temp_path.replace(file_path)
        except Exception:
            if temp_path.exists():
                temp_path.unlink()
            raise


class PersistenceGateway:
    """Loads and saves the three persisted aggregates.

    Save failures are logged and swallowed: the in-memory state stays
    authoritative and the next successful save of the same aggregate
    overwrites the stale snapshot.
    """

    def __init__(self, store: SnapshotStore) -> None:
        self._store = store

        # Per-key locks so concurrent saves of one aggregate never interleave
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def store(self) -> SnapshotStore:
        return self._store

    def _get_lock(self, key: str) -> asyncio.Lock:
        """Get or create a lock for a key."""
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    async def _save(self, key: str, value: Any) -> bool:
        lock = self._get_lock(key)
        async with lock:
            try:
                self._store.save(key, value)
            except Exception as e:
                logger.error(f"Error saving {key}: {e}")
                return False
        logger.debug(f"Saved snapshot {key}")
        return True

    def load_history(self, room_id: str) -> list[Message]:
        data = self._store.load(history_key(room_id), [])
        return [Message.from_dict(m) for m in data]

    def load_rooms(self) -> list[Room]:
        """Load room metadata together with each room's history."""
        rooms = []
        for data in self._store.load(ROOMS_KEY, []):
            room = Room.from_dict(data)
            room.messages = self.load_history(room.room_id)
            rooms.append(room)
        logger.info(f"Loaded {len(rooms)} rooms")
        return rooms

    def load_users(self) -> dict[str, User]:
        data = self._store.load(USERS_KEY, {})
        users = {user_id: User.from_dict(user_id, u) for user_id, u in data.items()}
        logger.info(f"Loaded {len(users)} users")
        return users

    async def save_rooms(self, rooms: Iterable[Room]) -> bool:
        return await self._save(ROOMS_KEY, [room.to_dict() for room in rooms])

    async def save_history(self, room_id: str, messages: Iterable[Message]) -> bool:
        return await self._save(history_key(room_id), [m.to_dict() for m in messages])

    async def save_users(self, users: dict[str, User]) -> bool:
        return await self._save(
            USERS_KEY, {user_id: user.to_dict() for user_id, user in users.items()}
        )

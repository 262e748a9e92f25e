"""Identity directory: durable user ids mapped to live connections."""

import logging
from typing import Optional

from room_chat.models import ChatState, User, utc_now_iso

logger = logging.getLogger(__name__)

UNKNOWN_NICKNAME = "Unknown"


class IdentityDirectory:
    """Tracks users and which connection each one currently owns.

    A connection handle belongs to at most one user. ``state.connections``
    is the inverse index and is updated together with ``User.connection_id``.
    """

    def __init__(self, state: ChatState) -> None:
        self._state = state

    def rebuild_index(self) -> None:
        """Rebuild the connection index from the user records."""
        self._state.connections = {
            user.connection_id: user_id
            for user_id, user in self._state.users.items()
            if user.connection_id
        }

    def set_nickname(self, user_id: str, connection_id: str, nickname: str) -> User:
        """Create or update a user and bind it to ``connection_id``."""
        users = self._state.users
        index = self._state.connections

        # The handle may have been bound to a different user before
        previous_owner = index.get(connection_id)
        if previous_owner is not None and previous_owner != user_id:
            users[previous_owner].connection_id = None
            logger.debug(f"Connection {connection_id} unbound from {previous_owner}")

        user = users.get(user_id)
        if user is None:
            user = User(user_id=user_id, nickname=nickname, connection_id=connection_id)
            users[user_id] = user
            logger.info(f"New user {user_id} as '{nickname}'")
        else:
            if user.connection_id and user.connection_id != connection_id:
                # Orphan the old handle
                index.pop(user.connection_id, None)
            user.connection_id = connection_id
            user.nickname = nickname
            user.last_seen = utc_now_iso()

        index[connection_id] = user_id
        return user

    def resolve_identity(self, connection_id: str) -> Optional[str]:
        """Get the user id bound to a connection.

        Args:
            connection_id: The connection handle

        Returns:
            The owning user id, or None if the connection never set a nickname
        """
        return self._state.connections.get(connection_id)

    def mark_disconnected(self, connection_id: str) -> Optional[str]:
        """Record the disconnect time of the connection's owner, if any."""
        user_id = self.resolve_identity(connection_id)
        if user_id is None:
            return None
        self._state.users[user_id].last_seen = utc_now_iso()
        return user_id

    def get_user(self, user_id: str) -> Optional[User]:
        """Get a user record by id."""
        return self._state.users.get(user_id)

    def nickname_of(self, user_id: Optional[str]) -> str:
        """Get a user's nickname, or "Unknown" for an unknown id."""
        user = self._state.users.get(user_id) if user_id else None
        return user.nickname if user else UNKNOWN_NICKNAME

    def connection_of(self, user_id: str) -> Optional[str]:
        """Get the connection handle a user currently owns.

        Args:
            user_id: The user to look up

        Returns:
            The last connection id bound to the user, or None if there is none
        """
        user = self._state.users.get(user_id)
        return user.connection_id if user else None

"""Typing indicators.

The server relays ``typing``/``stop-typing`` without keeping state. Each
observer keeps its own view in a ``TypingTracker`` and sweeps it on a fixed
interval, so an indicator disappears after ``expiry`` seconds even when the
matching ``stop-typing`` never arrives. The sending side uses a
``TypingDebouncer`` to emit ``stop-typing`` once keystrokes pause.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional

DEFAULT_TYPING_EXPIRY = 3.0
DEFAULT_SWEEP_INTERVAL = 1.0


class TypingTracker:
    """Who is typing in one room, as seen by one observer."""

    def __init__(
        self,
        expiry: float = DEFAULT_TYPING_EXPIRY,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._expiry = expiry
        self._clock = clock
        # nickname -> last time a typing event arrived
        self._entries: dict[str, float] = {}

    def mark_typing(self, nickname: str) -> None:
        """Add or refresh a typing entry.

        A refreshed nickname moves to the end, so ``nicknames`` lists the
        most recent typer last.
        """
        self._entries.pop(nickname, None)
        self._entries[nickname] = self._clock()

    def mark_stopped(self, nickname: str) -> None:
        self._entries.pop(nickname, None)

    def sweep(self) -> list[str]:
        """Drop entries older than the expiry; return the dropped nicknames."""
        now = self._clock()
        expired = [
            nickname
            for nickname, last in self._entries.items()
            if now - last >= self._expiry
        ]
        for nickname in expired:
            del self._entries[nickname]
        return expired

    def nicknames(self) -> list[str]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


class TypingDebouncer:
    """Sends ``typing`` on every keystroke and ``stop-typing`` after a pause.

    ``send`` is called with ``True`` for typing and ``False`` for
    stop-typing. Each keystroke re-arms the single pending stop timer.
    """

    def __init__(
        self,
        send: Callable[[bool], Awaitable[None]],
        delay: float = DEFAULT_TYPING_EXPIRY,
    ) -> None:
        self._send = send
        self._delay = delay
        self._timer: Optional[asyncio.Task] = None

    @property
    def armed(self) -> bool:
        return self._timer is not None and not self._timer.done()

    async def keystroke(self) -> None:
        self.cancel()
        await self._send(True)
        self._timer = asyncio.create_task(self._stop_later())

    async def stop(self) -> None:
        """Send ``stop-typing`` now, e.g. when the message is sent."""
        self.cancel()
        await self._send(False)

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def _stop_later(self) -> None:
        await asyncio.sleep(self._delay)
        self._timer = None
        await self._send(False)

# teamchat/client/typing.py
import asyncio
from enum import Enum
from typing import Awaitable, Callable, Optional, Set
import logging
import time

from teamchat.config import settings

logger = logging.getLogger(__name__)


class TypingState(str, Enum):
    IDLE = "idle"
    TYPING = "typing"


class TypingSignaler:
    """Turns keystrokes into throttled typing=true/false signals.

    typing=true goes out on the first keystroke and then at most once per
    `debounce` seconds; `idle_timeout` seconds without a keystroke send
    typing=false. Signal failures are logged and otherwise ignored.
    """

    def __init__(
        self,
        send: Callable[[bool], Awaitable[None]],
        debounce: float = settings.TYPING_DEBOUNCE_SECONDS,
        idle_timeout: float = settings.TYPING_IDLE_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._send = send
        self.debounce = debounce
        self.idle_timeout = idle_timeout
        self._clock = clock
        self.state = TypingState.IDLE
        self._last_signal_at: Optional[float] = None
        self._idle_handle: Optional[asyncio.TimerHandle] = None
        self._pending: Set[asyncio.Task] = set()

    def on_input(self) -> None:
        """Call on every change of the composer text."""
        self.state = TypingState.TYPING
        now = self._clock()
        if self._last_signal_at is None or now - self._last_signal_at >= self.debounce:
            self._last_signal_at = now
            self._dispatch(True)

        if self._idle_handle:
            self._idle_handle.cancel()
        self._idle_handle = asyncio.get_running_loop().call_later(self.idle_timeout, self._on_idle)

    def reset(self, notify: bool = False) -> None:
        """Back to idle at once, e.g. after sending or leaving the conversation."""
        if self._idle_handle:
            self._idle_handle.cancel()
            self._idle_handle = None
        was_typing = self.state == TypingState.TYPING
        self.state = TypingState.IDLE
        self._last_signal_at = None
        if notify and was_typing:
            self._dispatch(False)

    async def drain(self) -> None:
        """Wait for signals already handed to the network."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    def _on_idle(self) -> None:
        self._idle_handle = None
        self.state = TypingState.IDLE
        self._last_signal_at = None
        self._dispatch(False)

    def _dispatch(self, is_typing: bool) -> None:
        task = asyncio.get_running_loop().create_task(self._send_safely(is_typing))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _send_safely(self, is_typing: bool) -> None:
        try:
            await self._send(is_typing)
        except Exception as e:
            logger.error(f"Failed to send typing indicator ({is_typing}): {e}")

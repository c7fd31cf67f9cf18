"""Bounded listening window opened after a bare wake phrase."""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

ExpireCallback = Callable[[int], None]


class FollowUpWindow:
    """Single-shot, cancellable timer; at most one deadline is outstanding.

    ``open`` restarts the deadline when the window is already open. When
    the deadline passes without ``cancel`` the window deactivates and
    ``on_expire`` receives the generation that expired.
    """

    def __init__(
        self,
        duration: float,
        on_expire: ExpireCallback,
        *,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self.duration = duration
        self._on_expire = on_expire
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def is_active(self) -> bool:
        return self._handle is not None

    def open(self) -> int:
        self.cancel()
        loop = self._loop or asyncio.get_running_loop()
        self._generation += 1
        self._handle = loop.call_later(self.duration, self._expire, self._generation)
        return self._generation

    def cancel(self) -> bool:
        """Cancel the pending deadline; returns False when none was open."""
        if self._handle is None:
            return False
        self._handle.cancel()
        self._handle = None
        return True

    def _expire(self, generation: int) -> None:
        if generation != self._generation or self._handle is None:
            return
        self._handle = None
        self._on_expire(generation)

"""Frame scheduler: run a callback on the next rendering frame.

Interactive hosts (a TUI, a GUI bridge) supply a ``request_frame`` hook that
runs the callback on their next paint. Everywhere else the scheduler falls
back to a fixed timer on the running event loop.
"""

import asyncio
from collections.abc import Callable
from typing import Any

from turnstream.config import DEFAULT_FRAME_INTERVAL


FrameCallback = Callable[[], None]
RequestFrame = Callable[[FrameCallback], Any]


class FrameScheduler:
    """Schedules one-shot callbacks aligned to rendering frames."""

    def __init__(
        self,
        request_frame: RequestFrame | None = None,
        frame_interval: float = DEFAULT_FRAME_INTERVAL,
    ):
        self._request_frame = request_frame
        self._frame_interval = frame_interval

    @property
    def uses_frame_hook(self) -> bool:
        return self._request_frame is not None

    @property
    def frame_interval(self) -> float:
        return self._frame_interval

    def schedule(self, callback: FrameCallback) -> None:
        """Run ``callback`` once, on the next frame.

        Must be called from inside a running event loop when no frame hook
        is configured.
        """
        if self._request_frame is not None:
            self._request_frame(callback)
            return

        loop = asyncio.get_running_loop()
        loop.call_later(self._frame_interval, callback)

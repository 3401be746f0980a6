from __future__ import annotations

from itertools import count
from typing import Dict

from holdermap.ports.frame_scheduler_port import FrameCallback, FrameSchedulerPort


class ManualFrameScheduler(FrameSchedulerPort):
    """
    Frames advance only when ``pump`` is called (tests, batch rendering).
    """

    def __init__(self) -> None:
        self._ids = count(1)
        self._pending: Dict[int, FrameCallback] = {}
        self.frames = 0

    @property
    def pending(self) -> int:
        return len(self._pending)

    def request_frame(self, callback: FrameCallback) -> int:
        handle = next(self._ids)
        self._pending[handle] = callback
        return handle

    def cancel_frame(self, handle: int) -> None:
        self._pending.pop(handle, None)

    def pump(self, frames: int = 1) -> int:
        ran = 0
        for _ in range(frames):
            if not self._pending:
                break
            batch = self._pending
            self._pending = {}
            self.frames += 1
            for cb in batch.values():
                cb()
                ran += 1
        return ran

    def pump_until_idle(self, max_frames: int = 10_000) -> int:
        return self.pump(max_frames)

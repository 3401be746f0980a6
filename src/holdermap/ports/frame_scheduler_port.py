from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable


FrameCallback = Callable[[], None]


class FrameSchedulerPort(ABC):
    """
    Abstract host frame loop (requestAnimationFrame-style, one-shot callbacks).
    """

    @abstractmethod
    def request_frame(self, callback: FrameCallback) -> int:
        raise NotImplementedError

    @abstractmethod
    def cancel_frame(self, handle: int) -> None:
        raise NotImplementedError

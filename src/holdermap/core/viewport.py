from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from holdermap.config import settings


Point = Tuple[float, float]


@dataclass(frozen=True)
class ViewportBounds:
    x1: float
    y1: float
    x2: float
    y2: float

    def contains(self, x: float, y: float, margin: float = 0.0) -> bool:
        return (
            self.x1 - margin <= x <= self.x2 + margin
            and self.y1 - margin <= y <= self.y2 + margin
        )


@dataclass(frozen=True)
class ViewportTransform:
    """
    Screen = world * scale + translate.
    """

    translate_x: float = 0.0
    translate_y: float = 0.0
    scale: float = 1.0

    def apply(self, point: Point) -> Point:
        x, y = point
        return (x * self.scale + self.translate_x, y * self.scale + self.translate_y)

    def invert(self, point: Point) -> Point:
        x, y = point
        return ((x - self.translate_x) / self.scale, (y - self.translate_y) / self.scale)

    def translated(self, dx: float, dy: float) -> "ViewportTransform":
        return ViewportTransform(self.translate_x + dx, self.translate_y + dy, self.scale)

    def zoomed_at(
        self,
        factor: float,
        pointer: Point,
        min_scale: float = settings.ZOOM_MIN,
        max_scale: float = settings.ZOOM_MAX,
    ) -> "ViewportTransform":
        """
        Scale by ``factor`` while keeping the world point under ``pointer`` fixed.
        """
        new_scale = min(max_scale, max(min_scale, self.scale * factor))
        wx, wy = self.invert(pointer)
        px, py = pointer
        return ViewportTransform(px - wx * new_scale, py - wy * new_scale, new_scale)

    def bounds(self, width: float, height: float) -> ViewportBounds:
        x1, y1 = self.invert((0.0, 0.0))
        x2, y2 = self.invert((width, height))
        return ViewportBounds(x1=x1, y1=y1, x2=x2, y2=y2)

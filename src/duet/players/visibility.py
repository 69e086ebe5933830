"""Viewport intersection math for grid cards."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def right(self) -> float:
        return self.x + self.width


def visibility_ratio(frame: Rect, viewport: Rect) -> float:
    """Fraction of ``frame``'s height inside ``viewport`` (0.0 - 1.0).

    Cards scroll vertically, so only the vertical overlap counts; a frame
    entirely outside the viewport horizontally reports 0.
    """
    if frame.height <= 0:
        return 0.0
    if frame.right <= viewport.x or frame.x >= viewport.right:
        return 0.0
    overlap = min(frame.bottom, viewport.bottom) - max(frame.y, viewport.y)
    if overlap <= 0:
        return 0.0
    return min(overlap / frame.height, 1.0)

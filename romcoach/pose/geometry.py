from __future__ import annotations
import math
from typing import Optional, Sequence

from romcoach.pose.landmarks import Point2D

# Utility math

EMA_ALPHA = 0.35


def angle_3pt(a: Optional[Sequence[float]], b: Optional[Sequence[float]], c: Optional[Sequence[float]]) -> Optional[float]:
    """Return angle ABC in degrees with B as vertex, or None if a point is missing."""
    if a is None or b is None or c is None:
        return None
    ang = math.degrees(
        math.atan2(c[1] - b[1], c[0] - b[0]) - math.atan2(a[1] - b[1], a[0] - b[0])
    )
    ang = abs(ang)
    if ang > 180:
        ang = 360 - ang
    return ang


def distance(a: Optional[Sequence[float]], b: Optional[Sequence[float]]) -> Optional[float]:
    if a is None or b is None:
        return None
    return math.hypot(b[0] - a[0], b[1] - a[1])


def clamp01(v) -> float:
    try:
        v = float(v)
    except (TypeError, ValueError):
        return 0.5
    if not math.isfinite(v):
        return 0.5
    return max(0.0, min(1.0, v))


def ema(prev: Optional[Point2D], nxt: Optional[Point2D], alpha: float = EMA_ALPHA) -> Optional[Point2D]:
    """Exponential moving average on a point; the first sample seeds the filter."""
    if nxt is None:
        return prev
    if prev is None:
        return nxt
    return Point2D(
        prev.x + alpha * (nxt.x - prev.x),
        prev.y + alpha * (nxt.y - prev.y),
        nxt.visibility,
    )


def lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * max(0.0, min(1.0, t))

from __future__ import annotations
import math
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Iterable, NamedTuple, Optional, Tuple

NUM_LANDMARKS = 33


class PoseLandmark(IntEnum):
    """BlazePose indices used by calibration and feedback."""
    NOSE = 0
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_ELBOW = 13
    RIGHT_ELBOW = 14
    LEFT_WRIST = 15
    RIGHT_WRIST = 16
    LEFT_HIP = 23
    RIGHT_HIP = 24
    LEFT_KNEE = 25
    RIGHT_KNEE = 26
    LEFT_ANKLE = 27
    RIGHT_ANKLE = 28


class Point2D(NamedTuple):
    x: float
    y: float
    visibility: float = 0.0


def _field(raw: Any, name: str):
    if isinstance(raw, dict):
        return raw.get(name)
    return getattr(raw, name, None)


def _to_point(raw: Any) -> Optional[Point2D]:
    if raw is None:
        return None
    if isinstance(raw, Point2D):
        return raw
    x, y = _field(raw, "x"), _field(raw, "y")
    if x is None or y is None:
        return None
    try:
        x, y = float(x), float(y)
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(x) and math.isfinite(y)):
        return None
    vis = _field(raw, "visibility")
    try:
        vis = float(vis) if vis is not None else 0.0
    except (TypeError, ValueError):
        vis = 0.0
    return Point2D(x, y, vis)


@dataclass(frozen=True)
class LandmarkFrame:
    """
    One inference result: a fixed block of 33 optional points in normalized
    screen space. Undetected slots are None.
    """
    points: Tuple[Optional[Point2D], ...]

    def __getitem__(self, idx: int) -> Optional[Point2D]:
        idx = int(idx)
        if 0 <= idx < len(self.points):
            return self.points[idx]
        return None

    def __len__(self) -> int:
        return len(self.points)

    @classmethod
    def from_list(cls, raw: Optional[Iterable[Any]]) -> "LandmarkFrame":
        """
        Accepts browser JSON (list of dicts / nulls) or MediaPipe landmark
        objects (anything with .x, .y, .visibility).
        """
        pts = [_to_point(r) for r in list(raw or [])[:NUM_LANDMARKS]]
        pts += [None] * (NUM_LANDMARKS - len(pts))
        return cls(tuple(pts))

    @classmethod
    def empty(cls) -> "LandmarkFrame":
        return cls((None,) * NUM_LANDMARKS)

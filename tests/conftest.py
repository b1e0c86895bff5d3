from __future__ import annotations
from typing import Dict, Optional, Tuple

import pytest

from romcoach.calibration.ladder import LadderConfig
from romcoach.calibration.record import CalibrationRecord, RomSummary
from romcoach.data.db import CalibrationStore
from romcoach.pose.landmarks import LandmarkFrame, PoseLandmark as LM

Pt = Tuple[float, float]


def make_frame(points: Dict[int, Tuple[float, float, float]]) -> LandmarkFrame:
    raw = [None] * 33
    for idx, (x, y, vis) in points.items():
        raw[int(idx)] = {"x": x, "y": y, "visibility": vis}
    return LandmarkFrame.from_list(raw)


def ladder_frame(left: Optional[Pt], right: Optional[Pt], hip_vis: float = 0.9,
                 wrist_vis: float = 0.9, hip_y: float = 0.8) -> LandmarkFrame:
    pts = {
        LM.LEFT_HIP: (0.45, hip_y, hip_vis),
        LM.RIGHT_HIP: (0.55, hip_y, hip_vis),
    }
    if left is not None:
        pts[LM.LEFT_WRIST] = (left[0], left[1], wrist_vis)
    if right is not None:
        pts[LM.RIGHT_WRIST] = (right[0], right[1], wrist_vis)
    return make_frame(pts)


@pytest.fixture
def ladder_cfg() -> LadderConfig:
    return LadderConfig()


@pytest.fixture
def store(tmp_path) -> CalibrationStore:
    s = CalibrationStore(tmp_path / "romcoach.db")
    yield s
    s.close()


@pytest.fixture
def calib() -> CalibrationRecord:
    return CalibrationRecord(
        t=1700000000000,
        mirror=True,
        count=8,
        y_top=0.12,
        y_bottom=0.85,
        left_x=0.18,
        right_x=0.82,
        hit_radius=0.12,
        left_index=5,
        right_index=6,
        left_y=0.43,
        right_y=0.33,
        rom=RomSummary(neutral_y=0.8, max_reach_left_y=0.2, max_reach_right_y=0.3),
    )

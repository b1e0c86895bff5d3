from __future__ import annotations
import logging
import math
from dataclasses import dataclass, field
from typing import Literal, Optional, Tuple

from romcoach.calibration.record import CalibrationRecord
from romcoach.feedback.gate import Feedback, MessageGate
from romcoach.feedback.rules import RuleContext, evaluate, rules_for
from romcoach.pose.geometry import lerp
from romcoach.pose.landmarks import LandmarkFrame

logger = logging.getLogger(__name__)

Phase = Literal["up", "waitDown"]
PHASES = ("up", "waitDown")


@dataclass(frozen=True)
class FeedbackConfig:
    # Thresholds (normalized y; smaller y == higher on screen)
    angle_tolerance: float = 20.0      # deg short of straight before an arm counts as bent
    level_tolerance: float = 0.05      # max shoulder height difference
    visibility_threshold: float = 0.5
    up_tolerance: float = 0.02         # slack above target_y
    down_buffer: float = 0.02          # must go this far below neutral to reset
    require_down_frames: int = 8
    require_up_frames: int = 5
    squat_min_knee_deg: float = 140.0
    squat_max_knee_deg: float = 170.0
    # Message pacing
    min_gap_ms: int = 500
    display_ms: int = 1500
    # Used when no calibration is available
    default_neutral_y: float = 0.78
    default_max_reach_y: float = 0.18
    # Share of the neutral->max span asked for at the first and last level
    min_frac: float = 0.15
    frac_span: float = 0.50

    @property
    def straight_arm_deg(self) -> float:
        return 180.0 - self.angle_tolerance


@dataclass
class FeedbackSession:
    level: int = 1
    levels: int = 3
    calib: Optional[CalibrationRecord] = None
    neutral_y: float = 0.78
    target_y: float = 0.6
    phase: Phase = "up"
    down_counter: int = 0
    up_counter: int = 0
    gate: MessageGate = field(default_factory=MessageGate)


@dataclass
class FeedbackStatus:
    exercise: str
    phase: Phase
    target_y: float
    neutral_y: float
    feedback: Optional[Feedback]   # what the cascade picked this frame
    shown: bool                    # passed the rate limiter
    displayed: Optional[Feedback]  # what the display currently holds
    up_counter: int
    down_counter: int


def _safe_num(v, fallback: float) -> float:
    try:
        v = float(v)
    except (TypeError, ValueError):
        return fallback
    return v if math.isfinite(v) else fallback


def compute_target(level: int, levels: int, calib: Optional[CalibrationRecord],
                   cfg: Optional[FeedbackConfig] = None) -> Tuple[float, float]:
    """
    Map a difficulty level onto a hand height. Returns (neutral_y, target_y).

    The target ramps from 15% to 65% of the neutral->max-reach span; the
    ceiling is the higher (smaller y) of the two arms' reach.
    """
    cfg = cfg or FeedbackConfig()
    level = max(1, int(_safe_num(level, 1)))
    levels = max(level, int(_safe_num(levels, level)))
    rom = calib.rom if calib is not None else None
    neutral = _safe_num(rom.neutral_y if rom else None, cfg.default_neutral_y)
    max_l = _safe_num(rom.max_reach_left_y if rom else None, cfg.default_max_reach_y)
    max_r = _safe_num(rom.max_reach_right_y if rom else None, cfg.default_max_reach_y)
    max_y = min(max_l, max_r)

    t = (level - 1) / max(1, levels - 1)
    frac = cfg.min_frac + cfg.frac_span * t
    return neutral, lerp(neutral, max_y, frac)


class FeedbackClassifier:
    """
    Phase-aware coaching. Each frame walks the exercise's rule cascade and
    offers the winning message to the session's rate-limited display.
    """
    def __init__(self, cfg: Optional[FeedbackConfig] = None):
        self.cfg = cfg or FeedbackConfig()

    def start_session(self, level: int = 1, levels: int = 3,
                      calib: Optional[CalibrationRecord] = None) -> FeedbackSession:
        s = FeedbackSession(gate=MessageGate(min_gap_ms=self.cfg.min_gap_ms, display_ms=self.cfg.display_ms))
        self.set_level(s, level, levels, calib)
        return s

    def set_level(self, s: FeedbackSession, level, levels, calib: Optional[CalibrationRecord] = None):
        s.level = max(1, int(_safe_num(level, 1)))
        s.levels = max(s.level, int(_safe_num(levels, s.level)))
        s.calib = calib or s.calib
        if s.calib is None:
            logger.info("no calibration on record; using default ROM targets")
        s.neutral_y, s.target_y = compute_target(s.level, s.levels, s.calib, self.cfg)

    def set_phase(self, s: FeedbackSession, phase: str) -> bool:
        if phase not in PHASES:
            return False
        s.phase = phase  # type: ignore[assignment]
        s.down_counter = 0
        s.up_counter = 0
        return True

    def evaluate(self, s: FeedbackSession, exercise: str, frame: LandmarkFrame) -> Optional[Feedback]:
        return evaluate(rules_for(exercise), RuleContext(frame=frame, session=s, cfg=self.cfg))

    def update(self, s: FeedbackSession, exercise: str, frame: Optional[LandmarkFrame], now: float) -> FeedbackStatus:
        fb = self.evaluate(s, exercise, frame) if frame is not None else None
        shown = s.gate.offer(fb, now)
        return FeedbackStatus(
            exercise=exercise,
            phase=s.phase,
            target_y=s.target_y,
            neutral_y=s.neutral_y,
            feedback=fb,
            shown=shown,
            displayed=s.gate.displayed(now),
            up_counter=s.up_counter,
            down_counter=s.down_counter,
        )

    def clear(self, s: FeedbackSession):
        s.gate.clear()
        s.down_counter = 0
        s.up_counter = 0

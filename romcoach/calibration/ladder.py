from __future__ import annotations
import time
from dataclasses import dataclass, field
from typing import Callable, List, Literal, Optional

from romcoach.calibration.record import CalibrationRecord, RomSummary, RECORD_VERSION
from romcoach.calibration.rom import RomAccumulator
from romcoach.pose.geometry import clamp01, distance, ema, EMA_ALPHA
from romcoach.pose.landmarks import LandmarkFrame, Point2D, PoseLandmark as LM

Step = Literal["left", "right", "done"]


@dataclass(frozen=True)
class LadderConfig:
    count: int = 8
    y_top: float = 0.12
    y_bottom: float = 0.85
    left_x: float = 0.18
    right_x: float = 0.82
    hit_radius: float = 0.12
    hold_seconds: float = 5.0
    k_frames: int = 6              # consecutive steady frames before the hold timer runs
    max_speed_per_sec: float = 0.60
    min_vis: float = 0.55
    needs_hips: bool = True

    def __post_init__(self):
        if self.count < 2:
            raise ValueError("ladder needs at least 2 rungs")
        if self.hold_seconds <= 0:
            raise ValueError("hold_seconds must be positive")

    @property
    def rungs(self) -> List[float]:
        """Rung y-coordinates, index 0 is rung 1 (bottom)."""
        span = self.y_bottom - self.y_top
        return [self.y_bottom - (i / (self.count - 1)) * span for i in range(self.count)]

    def y_at_index(self, idx: Optional[int]) -> float:
        i = max(1, min(self.count, idx or 0))
        return self.rungs[i - 1]


@dataclass
class LadderSession:
    step: Step = "left"
    left_active: Optional[int] = None
    right_active: Optional[int] = None
    left_saved: Optional[int] = None
    right_saved: Optional[int] = None
    last_ts: Optional[float] = None
    smooth_left: Optional[Point2D] = None
    smooth_right: Optional[Point2D] = None
    steady_frames: int = 0
    hold: float = 0.0
    candidate: Optional[int] = None
    hips_ok: bool = False
    mirrored: bool = True          # mirroring in effect on the last tested frame
    rom: RomAccumulator = field(default_factory=RomAccumulator)

    def reset_progress(self):
        self.candidate = None
        self.steady_frames = 0
        self.hold = 0.0


@dataclass
class LadderStatus:
    side: Step
    saved: bool
    progress: float
    countdown: float
    step: Step
    left_active: Optional[int]
    right_active: Optional[int]
    left_saved: Optional[int]
    right_saved: Optional[int]
    max_rung_left: Optional[int]
    max_rung_right: Optional[int]
    hips_ok: bool


class CalibrationLadder:
    """
    Hands-free ladder calibration. The user holds one wrist steady on a rung
    of a vertical dot ladder for hold_seconds; the rung is saved for that arm
    and the ladder moves on (left -> right -> done).

    Tracking loss never raises: the frame simply makes no progress.
    """
    def __init__(self, cfg: Optional[LadderConfig] = None, debug_cb: Optional[Callable[[dict], None]] = None):
        self.cfg = cfg or LadderConfig()
        self._rungs = self.cfg.rungs
        self._dbg = debug_cb or (lambda *_: None)

    def new_session(self) -> LadderSession:
        return LadderSession()

    # ---------- geometry ----------

    def hit_index(self, x: float, y: float, lane_x: float) -> Optional[int]:
        best, best_d = None, float("inf")
        for i, ry in enumerate(self._rungs):
            d = distance((x, y), (lane_x, ry))
            if d < best_d:
                best, best_d = i, d
        return (best + 1) if best_d <= self.cfg.hit_radius else None

    def nearest_rung(self, y: float) -> int:
        return min(range(self.cfg.count), key=lambda i: abs(self._rungs[i] - y)) + 1

    # ---------- per-frame update ----------

    def _visible(self, pt: Optional[Point2D]) -> bool:
        return pt is not None and pt.visibility >= self.cfg.min_vis

    def _status(self, s: LadderSession, side: Step, progress: float, saved: bool = False) -> LadderStatus:
        progress = max(0.0, min(1.0, progress))
        return LadderStatus(
            side=side,
            saved=saved,
            progress=progress,
            countdown=max(0.0, self.cfg.hold_seconds * (1 - progress)),
            step=s.step,
            left_active=s.left_active,
            right_active=s.right_active,
            left_saved=s.left_saved,
            right_saved=s.right_saved,
            max_rung_left=s.rom.max_rung_left,
            max_rung_right=s.rom.max_rung_right,
            hips_ok=s.hips_ok,
        )

    def _abort(self, s: LadderSession) -> LadderStatus:
        s.reset_progress()
        return self._status(s, s.step, 0.0)

    def step(self, s: LadderSession, frame: LandmarkFrame, t: Optional[float] = None, mirrored: bool = True) -> LadderStatus:
        """Feed one landmark frame observed at timestamp t (sec)."""
        if s.step == "done":
            return self._status(s, "done", 0.0)

        s.mirrored = mirrored
        cfg = self.cfg
        lw, rw = frame[LM.LEFT_WRIST], frame[LM.RIGHT_WRIST]
        lh, rh = frame[LM.LEFT_HIP], frame[LM.RIGHT_HIP]

        s.hips_ok = self._visible(lh) and self._visible(rh)
        if lw is None or rw is None:
            return self._abort(s)
        if cfg.needs_hips and not s.hips_ok:
            return self._abort(s)
        if lh is not None and rh is not None:
            s.rom.sample_neutral(max(clamp01(lh.y), clamp01(rh.y)))

        side = s.step
        if not self._visible(lw if side == "left" else rw):
            return self._abort(s)

        def nrm(pt: Point2D) -> Point2D:
            return Point2D(clamp01(1 - pt.x if mirrored else pt.x), clamp01(pt.y), pt.visibility)

        raw_l, raw_r = nrm(lw), nrm(rw)

        t = float(t) if t is not None else time.monotonic()
        dt = (t - s.last_ts) if s.last_ts is not None else 0.0
        s.last_ts = t

        prev_l, prev_r = s.smooth_left, s.smooth_right
        s.smooth_left = ema(prev_l, raw_l, EMA_ALPHA)
        s.smooth_right = ema(prev_r, raw_r, EMA_ALPHA)
        sl, sr = s.smooth_left, s.smooth_right
        # speed: previous smoothed point to this raw sample
        spd_l = distance(prev_l, raw_l) / dt if (prev_l is not None and dt > 0) else 0.0
        spd_r = distance(prev_r, raw_r) / dt if (prev_r is not None and dt > 0) else 0.0

        s.left_active = self.hit_index(sl.x, sl.y, cfg.left_x)
        s.right_active = self.hit_index(sr.x, sr.y, cfg.right_x)
        s.rom.observe_hands(sl.y, sr.y, self.nearest_rung)

        active = s.left_active if side == "left" else s.right_active
        spd = spd_l if side == "left" else spd_r

        if active is None:
            return self._abort(s)
        if s.candidate != active:
            s.candidate = active
            s.steady_frames = 0
            s.hold = 0.0

        if spd <= cfg.max_speed_per_sec:
            if s.steady_frames >= cfg.k_frames:
                s.hold += dt
            s.steady_frames += 1
        else:
            s.steady_frames = 0

        if s.hold >= cfg.hold_seconds:
            if side == "left":
                s.left_saved = s.candidate
            else:
                s.right_saved = s.candidate
            s.reset_progress()
            s.step = "right" if side == "left" else "done"
            self._dbg({"type": "trace", "msg": f"ladder: saved {side} rung → step={s.step}"})
            return self._status(s, side, 1.0, saved=True)

        return self._status(s, side, s.hold / cfg.hold_seconds)

    # ---------- result ----------

    def build_record(self, s: LadderSession, mirrored: Optional[bool] = None,
                     now_ms: Optional[int] = None) -> CalibrationRecord:
        cfg = self.cfg
        if mirrored is None:
            mirrored = s.mirrored
        done = s.step == "done"
        left_idx = s.left_saved if done else None
        right_idx = s.right_saved if done else None
        return CalibrationRecord(
            t=int(now_ms if now_ms is not None else time.time() * 1000),
            mirror=mirrored,
            count=cfg.count,
            y_top=cfg.y_top,
            y_bottom=cfg.y_bottom,
            left_x=cfg.left_x,
            right_x=cfg.right_x,
            hit_radius=cfg.hit_radius,
            left_index=left_idx,
            right_index=right_idx,
            left_y=cfg.y_at_index(left_idx),
            right_y=cfg.y_at_index(right_idx),
            rom=RomSummary(
                neutral_y=s.rom.neutral_y(cfg.y_bottom),
                max_reach_left_y=s.rom.min_y_left,
                max_reach_right_y=s.rom.min_y_right,
            ),
            version=RECORD_VERSION,
        )

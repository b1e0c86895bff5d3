from __future__ import annotations
import time
from typing import Callable, Optional, Tuple

from romcoach.pose.landmarks import LandmarkFrame
from romcoach.runtime.session import SessionManager, Status


class LatestFrameSlot:
    """
    Holds the newest inference result. The pose source overwrites it; readers
    get the same frame again until a newer one lands (no queue).
    """
    def __init__(self):
        self._latest: Optional[Tuple[LandmarkFrame, float]] = None

    def put(self, frame: LandmarkFrame, ts: Optional[float] = None):
        self._latest = (frame, ts if ts is not None else time.monotonic())

    def get(self) -> Optional[Tuple[LandmarkFrame, float]]:
        return self._latest

    def clear(self):
        self._latest = None


class FrameLoop:
    """
    Single-threaded frame driver. Each tick hands the latest frame to the
    session manager. stop() takes effect on the next tick.
    """
    def __init__(
        self,
        manager: SessionManager,
        slot: LatestFrameSlot,
        fps: float = 30.0,
        on_status: Optional[Callable[[Status], None]] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.manager = manager
        self.slot = slot
        self.interval = 1.0 / max(1.0, fps)
        self.on_status = on_status
        self._clock = clock
        self._sleep = sleep
        self.running = False

    def start(self):
        self.running = True

    def stop(self):
        self.running = False

    def tick(self, now: Optional[float] = None) -> bool:
        """Run one frame. Returns False once the loop has been stopped."""
        if not self.running:
            return False
        latest = self.slot.get()
        if latest is None:
            return True
        frame, _ = latest
        st = self.manager.push_frame(frame, now if now is not None else self._clock())
        if st is not None and self.on_status:
            self.on_status(st)
        return True

    def run(self, max_ticks: Optional[int] = None):
        self.start()
        n = 0
        while self.tick():
            n += 1
            if max_ticks is not None and n >= max_ticks:
                break
            self._sleep(self.interval)

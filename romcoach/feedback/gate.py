from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple


class Severity(str, Enum):
    WARNING = "warning"
    CORRECTION = "correction"
    SUCCESS = "success"


@dataclass(frozen=True)
class Feedback:
    message: str
    severity: Severity = Severity.CORRECTION


@dataclass
class MessageGate:
    """
    Anti-spam for coaching text. A message is shown only if it is non-empty and
    min_gap_ms has passed since the last shown one. Every shown message arms its
    own clear timer; when it fires, the display is cleared only if it still
    shows that same text. Time is passed in (seconds) so the gate runs off the
    frame clock instead of wall timers.
    """
    min_gap_ms: int = 500
    display_ms: int = 1500
    current: Optional[Feedback] = None
    last_shown_ms: Optional[float] = None
    _timers: List[Tuple[float, str]] = field(default_factory=list)

    def poll(self, now: float):
        now_ms = now * 1000.0
        due = [tm for tm in self._timers if tm[0] <= now_ms]
        if not due:
            return
        self._timers = [tm for tm in self._timers if tm[0] > now_ms]
        for _, msg in sorted(due):
            if self.current is not None and self.current.message == msg:
                self.current = None

    def offer(self, fb: Optional[Feedback], now: float) -> bool:
        """Try to display fb at time now. Returns True if it was shown."""
        self.poll(now)
        if fb is None or not fb.message:
            return False
        now_ms = now * 1000.0
        if self.last_shown_ms is not None and now_ms - self.last_shown_ms < self.min_gap_ms:
            return False
        self.current = fb
        self.last_shown_ms = now_ms
        self._timers.append((now_ms + self.display_ms, fb.message))
        return True

    def displayed(self, now: float) -> Optional[Feedback]:
        self.poll(now)
        return self.current

    def clear(self):
        self.current = None
        self._timers.clear()

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import numpy as np


@dataclass
class RomAccumulator:
    """
    Running range-of-motion stats collected while the ladder runs.
    Smaller y is higher on screen, so max reach is the minimum y seen.
    """
    neutral_samples: List[float] = field(default_factory=list)
    min_y_left: float = 1.0
    min_y_right: float = 1.0
    max_rung_left: Optional[int] = None
    max_rung_right: Optional[int] = None

    def sample_neutral(self, y: float):
        self.neutral_samples.append(float(y))

    def observe_hands(self, y_left: float, y_right: float, nearest_rung: Callable[[float], int]):
        if y_left < self.min_y_left:
            self.min_y_left = y_left
            self.max_rung_left = nearest_rung(y_left)
        if y_right < self.min_y_right:
            self.min_y_right = y_right
            self.max_rung_right = nearest_rung(y_right)

    def neutral_y(self, fallback: float) -> float:
        if not self.neutral_samples:
            return fallback
        return float(np.mean(self.neutral_samples))

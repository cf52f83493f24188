"""
Exponentially weighted moving average kernel.

The calculated value of each point is the EWMA of the series up to it; a point
is anomalous when it sits more than one standard deviation away from it.
"""

from dataclasses import dataclass
from typing import Any

import numpy as np
import pandas as pd

from .base import AnomalyDetectionMethod, DetectionResult


@dataclass
class EWMAConfig:
    alpha: float = 0.5
    min_points: int = 2


class EWMAMethod(AnomalyDetectionMethod):
    def __init__(self, config: dict):
        self.config = EWMAConfig(**config)
        if not 0 < self.config.alpha <= 1:
            raise ValueError(f"EWMA alpha must be in (0, 1], got {self.config.alpha}")
        self.min_points = self.config.min_points

    @property
    def name(self) -> str:
        return "EWMA"

    def get_config(self) -> dict[str, Any]:
        return {"alpha": self.config.alpha, "min_points": self.config.min_points}

    def calculate(self, values: np.ndarray) -> DetectionResult:
        calc = pd.Series(values).ewm(alpha=self.config.alpha, adjust=False).mean().to_numpy()
        return DetectionResult(
            algo_calc=[float(c) for c in calc],
            anomaly=self.flag_deviations(values, calc),
        )

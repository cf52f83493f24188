"""
ARIMA kernel.

Fits an ARIMA model on the series and uses its one-step-ahead in-sample
predictions as the calculated values. A point is anomalous when it deviates
from its prediction by more than one standard deviation of the series.
"""

import warnings
from dataclasses import dataclass
from typing import Any

import numpy as np
import structlog
from statsmodels.tsa.arima.model import ARIMA

from .base import AnomalyDetectionMethod, DetectionResult

logger = structlog.get_logger(__name__)


@dataclass
class ARIMAConfig:
    order: tuple[int, int, int] = (1, 1, 1)
    min_points: int = 3


class ARIMAMethod(AnomalyDetectionMethod):
    def __init__(self, config: dict):
        config = dict(config)
        if "order" in config:
            config["order"] = tuple(config["order"])
        self.config = ARIMAConfig(**config)
        self.min_points = self.config.min_points

    @property
    def name(self) -> str:
        return "ARIMA"

    def get_config(self) -> dict[str, Any]:
        return {"order": list(self.config.order), "min_points": self.config.min_points}

    def calculate(self, values: np.ndarray) -> DetectionResult:
        with warnings.catch_warnings():
            # Short flow series routinely trip convergence warnings
            warnings.simplefilter("ignore")
            fitted = ARIMA(values, order=self.config.order).fit()
            calc = np.asarray(fitted.predict(start=0, end=len(values) - 1), dtype=float)

        # With differencing the first prediction has no history to draw on
        if self.config.order[1] > 0:
            calc[: self.config.order[1]] = values[: self.config.order[1]]

        logger.debug("ARIMA fitted", points=len(values), aic=round(float(fitted.aic), 2))
        return DetectionResult(
            algo_calc=[float(c) for c in calc],
            anomaly=self.flag_deviations(values, calc),
        )

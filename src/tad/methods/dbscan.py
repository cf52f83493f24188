"""
DBSCAN kernel.

Clusters the throughput values of a series; points that DBSCAN labels as
noise are anomalous. The calculated value is the mean of the point's cluster,
or the series mean for noise points.
"""

from dataclasses import dataclass
from typing import Any

import numpy as np
from sklearn.cluster import DBSCAN

from .base import AnomalyDetectionMethod, DetectionResult

NOISE = -1


@dataclass
class DBSCANConfig:
    # eps as a fraction of the series median
    eps_ratio: float = 0.1
    min_samples: int = 4
    min_points: int = 4


class DBSCANMethod(AnomalyDetectionMethod):
    def __init__(self, config: dict):
        self.config = DBSCANConfig(**config)
        if self.config.eps_ratio <= 0:
            raise ValueError(f"DBSCAN eps_ratio must be positive, got {self.config.eps_ratio}")
        self.min_points = self.config.min_points

    @property
    def name(self) -> str:
        return "DBSCAN"

    def get_config(self) -> dict[str, Any]:
        return {
            "eps_ratio": self.config.eps_ratio,
            "min_samples": self.config.min_samples,
            "min_points": self.config.min_points,
        }

    def calculate(self, values: np.ndarray) -> DetectionResult:
        eps = max(abs(float(np.median(values))) * self.config.eps_ratio, 1e-9)
        labels = DBSCAN(eps=eps, min_samples=self.config.min_samples).fit_predict(
            values.reshape(-1, 1)
        )

        overall_mean = float(np.mean(values))
        cluster_means = {
            label: float(values[labels == label].mean()) for label in set(labels) if label != NOISE
        }
        calc = [cluster_means.get(label, overall_mean) for label in labels]
        return DetectionResult(
            algo_calc=calc,
            anomaly=[bool(label == NOISE) for label in labels],
        )

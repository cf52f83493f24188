"""
Base abstract interface for throughput anomaly detection kernels.

All kernels must inherit from AnomalyDetectionMethod and implement detect():
given one throughput series ordered by time, return the kernel's calculated
value and an anomaly flag for every point.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import numpy as np
import pandas as pd


@dataclass
class DetectionResult:
    """Per-point output of a kernel, aligned with the input series"""

    algo_calc: list[float]
    anomaly: list[bool]


class AnomalyDetectionMethod(ABC):
    """Abstract base class for all detection kernels"""

    #: Series shorter than this are passed through without flagging anything
    min_points: int = 2

    @abstractmethod
    def calculate(self, values: np.ndarray) -> DetectionResult:
        """Run the kernel on a series that passed validation"""
        pass

    @abstractmethod
    def get_config(self) -> dict[str, Any]:
        """Get the current configuration of this kernel"""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Name of the kernel, as stored in the algoType column"""
        pass

    def detect(self, throughput: pd.Series) -> DetectionResult:
        """Detect anomalies in a throughput series

        Args:
            throughput: Values ordered by flow end time

        Returns:
            DetectionResult with one entry per input point
        """
        values = self.validate_series(throughput)
        if len(values) < self.min_points:
            return DetectionResult(
                algo_calc=[float(v) for v in values],
                anomaly=[False] * len(values),
            )
        return self.calculate(values)

    def validate_series(self, throughput: pd.Series) -> np.ndarray:
        """Validate the series and return it as a float array

        Raises:
            ValueError: If the series holds missing or non-numeric values
        """
        values = pd.to_numeric(throughput, errors="coerce").to_numpy(dtype=float)
        if np.isnan(values).any():
            raise ValueError("Throughput series has missing or non-numeric values")
        return values

    @staticmethod
    def flag_deviations(values: np.ndarray, calc: np.ndarray) -> list[bool]:
        """Flag points whose distance to the calculated value exceeds one
        standard deviation of the series"""
        std = float(np.std(values))
        return [bool(abs(v - c) > std) for v, c in zip(values, calc, strict=True)]

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(config={self.get_config()})"

"""
Detection kernel registry and factory.
"""

from ..models import Algorithm
from .arima import ARIMAMethod
from .base import AnomalyDetectionMethod, DetectionResult
from .dbscan import DBSCANMethod
from .ewma import EWMAMethod

METHOD_REGISTRY = {
    Algorithm.ARIMA: ARIMAMethod,
    Algorithm.EWMA: EWMAMethod,
    Algorithm.DBSCAN: DBSCANMethod,
}


def get_method(algorithm: Algorithm, config: dict | None = None) -> AnomalyDetectionMethod:
    """Factory to create a detection kernel

    Args:
        algorithm: Algorithm to instantiate
        config: Kernel configuration; keys match the kernel's config dataclass

    Returns:
        Instance of the kernel

    Raises:
        ValueError: If the algorithm has no registered kernel
    """
    if algorithm not in METHOD_REGISTRY:
        available = ", ".join(a.value for a in METHOD_REGISTRY)
        raise ValueError(f"Unknown algorithm '{algorithm}'. Available algorithms: {available}")

    return METHOD_REGISTRY[algorithm](config or {})


def list_methods() -> list[str]:
    """List all available kernels"""
    return [algorithm.value for algorithm in METHOD_REGISTRY]


__all__ = [
    "AnomalyDetectionMethod",
    "DetectionResult",
    "ARIMAMethod",
    "DBSCANMethod",
    "EWMAMethod",
    "METHOD_REGISTRY",
    "get_method",
    "list_methods",
]

"""
base_detector.py
-----------------
Abstract base class for the anomaly detectors.

Both detectors share one statistical contract: build a baseline sample,
score the current value as a z-score against it, band |z| into a severity and
order the results most severe first. Only the baseline construction and the
severity policy differ, so concrete detectors implement:
    - detect(): the mode's public entry point and baseline construction
    - _determine_severity(): the mode's severity bands
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Sequence

from config.config_loader import get_anomaly_detection_config, get_currency_config
from core.models import Anomaly
from core.statistics import BaselineComparison, compare_to_baseline


class BaseAnomalyDetector(ABC):
    """
    Handles config loading, baseline scoring and result ordering.

    Subclasses set `severity_order` (most severe first) and implement
    detect() and _determine_severity().
    """

    severity_order: Sequence[str] = ()

    def __init__(self, mode: str, config: Dict[str, Any] | None = None):
        self.mode = mode
        self.config = config or get_anomaly_detection_config(mode)
        self.currency = get_currency_config()

    # -------------------------------------------------------------------------
    # ABSTRACT METHODS
    # -------------------------------------------------------------------------

    @abstractmethod
    def detect(self, *args, **kwargs) -> List[Anomaly]:
        ...

    @abstractmethod
    def _determine_severity(self, metric: str, z: float) -> str | None:
        """Severity for a z-score, or None if it does not qualify."""
        ...

    # -------------------------------------------------------------------------
    # SHARED HELPERS
    # -------------------------------------------------------------------------

    @staticmethod
    def _score(value: float, baseline: Sequence[float]) -> BaselineComparison | None:
        """z-score against the baseline. None for an empty or flat baseline."""
        return compare_to_baseline(value, baseline)

    def _sort(self, anomalies: List[Anomaly]) -> List[Anomaly]:
        """Most severe first; within a severity, largest |z| first. Stable."""
        rank = {name: i for i, name in enumerate(self.severity_order)}
        return sorted(
            anomalies,
            key=lambda a: (rank.get(a.severity, len(rank)), -abs(a.deviation_stddev)),
        )

    @staticmethod
    def _percent_difference(current: float, expected: float) -> float | None:
        """|current - expected| / expected as a percentage. None when expected is 0."""
        if expected == 0:
            return None
        return abs((current - expected) / expected * 100)

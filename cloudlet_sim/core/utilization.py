"""Utilization models: fraction of a requested resource actually consumed over time."""

from abc import ABC, abstractmethod
from typing import Dict, Optional, Sequence
import numpy as np

from .errors import ConfigurationError


class UtilizationModel(ABC):
    """Maps simulated time to a utilization fraction in [0, 1]."""

    @abstractmethod
    def get_utilization(self, time: float) -> float:
        pass

    def __call__(self, time: float) -> float:
        return self.get_utilization(time)


class UtilizationModelFull(UtilizationModel):
    """Always uses 100% of the requested resource."""

    def get_utilization(self, time: float) -> float:
        return 1.0


class UtilizationModelNull(UtilizationModel):
    """Never uses the resource."""

    def get_utilization(self, time: float) -> float:
        return 0.0


class UtilizationModelConstant(UtilizationModel):
    """Uses a fixed fraction of the requested resource."""

    def __init__(self, fraction: float):
        if not 0.0 <= fraction <= 1.0:
            raise ConfigurationError(f"Utilization fraction must be within [0, 1], got {fraction}")
        self.fraction = float(fraction)

    def get_utilization(self, time: float) -> float:
        return self.fraction


class UtilizationModelStochastic(UtilizationModel):
    """Uniformly random utilization, drawn once per time instant.

    Draws are remembered so that asking twice for the same instant gives the
    same answer and a run with the same seed replays exactly.
    """

    def __init__(self, seed: Optional[int] = None, low: float = 0.0, high: float = 1.0):
        if not 0.0 <= low <= high <= 1.0:
            raise ConfigurationError(
                f"Stochastic utilization bounds must satisfy 0 <= low <= high <= 1, got {low}, {high}"
            )
        self.seed = seed
        self.low = low
        self.high = high
        self._rng = np.random.default_rng(seed)
        self._history: Dict[float, float] = {}

    def get_utilization(self, time: float) -> float:
        if time not in self._history:
            self._history[time] = float(self._rng.uniform(self.low, self.high))
        return self._history[time]


class UtilizationModelTrace(UtilizationModel):
    """Utilization replayed from samples taken every ``interval`` seconds.

    Values between samples are linearly interpolated; past the last sample the
    last value holds.
    """

    def __init__(self, samples: Sequence[float], interval: float):
        if interval <= 0:
            raise ConfigurationError(f"Trace interval must be positive, got {interval}")
        values = np.asarray(samples, dtype=float)
        if values.size == 0:
            raise ConfigurationError("Trace needs at least one sample")
        if np.any(values < 0.0) or np.any(values > 1.0):
            raise ConfigurationError("Trace samples must be within [0, 1]")
        self.interval = float(interval)
        self.values = values
        self.times = np.arange(values.size, dtype=float) * self.interval

    def get_utilization(self, time: float) -> float:
        return float(np.interp(time, self.times, self.values))

"""
Driver safety scores.

Scores come from an external scoring pipeline. The engine only consumes them
through ``SafetyScoreProvider``; until a pipeline is wired in, the
``UnscoredSafetyProvider`` stub reports no score for anyone.
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional

from fleetops.app.domain.fleet.entities import Driver

HIGH_RISK_BELOW = 70
SAFE_AT_OR_ABOVE = 85


class SafetyScoreProvider(ABC):

    @abstractmethod
    def score(self, driver: Driver) -> Optional[float]:
        """0-100 score for the driver, or None if unscored."""
        ...


class UnscoredSafetyProvider(SafetyScoreProvider):
    """Stub provider: no driver has a score."""

    def score(self, driver: Driver) -> Optional[float]:
        return None


class StaticSafetyProvider(SafetyScoreProvider):
    """Scores supplied up front, keyed by driver id (imports, tests)."""

    def __init__(self, scores: Dict[int, float]):
        self._scores = dict(scores)

    def score(self, driver: Driver) -> Optional[float]:
        return self._scores.get(driver.id)


def collect_scores(drivers: Iterable[Driver], provider: SafetyScoreProvider) -> Dict[int, float]:
    scores = {}
    for driver in drivers:
        value = provider.score(driver)
        if value is not None:
            scores[driver.id] = float(value)
    return scores

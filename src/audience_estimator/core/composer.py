from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StateBreakdown:
    state: str
    population: int
    matching_population: float
    percentage: float


@dataclass(frozen=True)
class EstimationResult:
    """
    Outcome of one estimate() call.

    state_breakdown only lists states with a positive matching population,
    largest first.
    """
    total_population: int
    matching_population: float
    percentage: float
    state_breakdown: List[StateBreakdown] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalPopulation": self.total_population,
            "matchingPopulation": self.matching_population,
            "percentage": self.percentage,
            "stateBreakdown": [
                {
                    "state": s.state,
                    "population": s.population,
                    "matchingPopulation": s.matching_population,
                    "percentage": s.percentage,
                }
                for s in self.state_breakdown
            ],
        }


def empty_result() -> EstimationResult:
    return EstimationResult(total_population=0, matching_population=0.0, percentage=0.0, state_breakdown=[])


def compose(per_state_percentage: Mapping[str, float], state_populations: Mapping[str, int]) -> EstimationResult:
    """
    Scale per-state percentages by population.

    Every state in per_state_percentage counts toward the total, matched or
    not; a state without a population entry counts as 0.
    """
    total_population = 0
    matching_population = 0.0
    breakdown: List[StateBreakdown] = []

    for state, pct in per_state_percentage.items():
        population = int(state_populations.get(state, 0))
        if state not in state_populations:
            logger.warning("No population entry for state %s; counted as 0.", state)
        matching = (pct / 100.0) * population

        if matching > 0:
            breakdown.append(
                StateBreakdown(
                    state=state,
                    population=population,
                    matching_population=matching,
                    percentage=pct,
                )
            )

        total_population += population
        matching_population += matching

    breakdown.sort(key=lambda s: s.matching_population, reverse=True)
    percentage = (matching_population / total_population) * 100.0 if total_population > 0 else 0.0

    return EstimationResult(
        total_population=total_population,
        matching_population=matching_population,
        percentage=percentage,
        state_breakdown=breakdown,
    )

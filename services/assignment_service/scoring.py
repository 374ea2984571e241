"""
Scoring of one candidate distributor against an order location.

Higher score = better candidate. A candidate whose route could not be
measured is not given a low number; it comes back as an explicit invalid
outcome so it can never be ranked above a reachable distributor.

    distance_score = 100 - min(distance_km, 100)
    workload_score = (max_capacity - current_capacity) / max_capacity * 100
    score          = 0.6 * distance_score + 0.4 * workload_score
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from services.geo_service.schemas import RouteMeasurement

DISTANCE_WEIGHT: float = 0.6
WORKLOAD_WEIGHT: float = 0.4
DISTANCE_CAP_KM: float = 100.0


@dataclass(frozen=True)
class CandidateScore:
    distributor_id: int
    value: Optional[float]
    measurement: Optional[RouteMeasurement] = None
    reason: Optional[str] = None

    @classmethod
    def valid(cls, distributor_id: int, value: float, measurement: RouteMeasurement) -> "CandidateScore":
        return cls(distributor_id=distributor_id, value=value, measurement=measurement)

    @classmethod
    def invalid(cls, distributor_id: int, reason: str) -> "CandidateScore":
        return cls(distributor_id=distributor_id, value=None, reason=reason)

    @property
    def is_valid(self) -> bool:
        return self.value is not None

    @property
    def is_rankable(self) -> bool:
        return self.is_valid and self.value > 0


def distance_score(distance_km: float) -> float:
    return 100.0 - min(distance_km, DISTANCE_CAP_KM)


def workload_score(current_capacity: int, max_capacity: int) -> float:
    # Full distributors are filtered out by the directory before we get here
    return (max_capacity - current_capacity) / max_capacity * 100.0


def score_candidate(
    distributor_id: int,
    current_capacity: int,
    max_capacity: int,
    measurement: Optional[RouteMeasurement],
) -> CandidateScore:
    if measurement is None:
        return CandidateScore.invalid(distributor_id, "no route")
    if max_capacity <= 0 or current_capacity >= max_capacity:
        return CandidateScore.invalid(distributor_id, "no free capacity")

    value = (
        DISTANCE_WEIGHT * distance_score(measurement.kilometers)
        + WORKLOAD_WEIGHT * workload_score(current_capacity, max_capacity)
    )
    return CandidateScore.valid(distributor_id, value, measurement)


def pick_best(scores: list[CandidateScore]) -> Optional[CandidateScore]:
    """Strictly highest rankable score wins; on a tie the earlier candidate keeps it."""
    best: Optional[CandidateScore] = None
    for candidate in scores:
        if not candidate.is_rankable:
            continue
        if best is None or candidate.value > best.value:
            best = candidate
    return best

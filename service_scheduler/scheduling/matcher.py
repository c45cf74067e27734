"""
Technician matching and ranking.

A technician is eligible for a slot when they hold a skill in one of the
requested categories at or above the minimum proficiency, are not offline,
and have no overlapping appointment. Eligible technicians are ordered by:

    1. recommended first (skill-match score above the threshold)
    2. lower current workload
    3. more years of experience
    4. higher best proficiency among the requested categories
    5. technician id, for a deterministic order
"""

from datetime import date
from typing import Iterable, Optional

from service_scheduler.config import settings
from service_scheduler.data.technicians import TechnicianRoster
from service_scheduler.logging_context import get_request_logger
from service_scheduler.schemas.appointment_schema import Appointment
from service_scheduler.schemas.catalog_schema import ServiceCategory
from service_scheduler.schemas.technician_schema import (
    AvailabilityStatus,
    Technician,
    TechnicianCandidate,
)
from service_scheduler.scheduling.conflicts import ConflictDetector, evaluate

logger = get_request_logger(__name__)

MAX_PROFICIENCY = 5


def skill_match_score(technician: Technician, categories: Iterable[ServiceCategory]) -> float:
    """Average proficiency over the matching skills, as a percentage of the maximum."""
    wanted = set(categories)
    matching = [s for s in technician.skills if s.category in wanted]
    if not matching:
        return 0.0
    total = sum(s.proficiency for s in matching)
    return total / (len(matching) * MAX_PROFICIENCY) * 100


def max_matching_proficiency(
    technician: Technician, categories: Iterable[ServiceCategory]
) -> int:
    wanted = set(categories)
    return max((s.proficiency for s in technician.skills if s.category in wanted), default=0)


def is_skill_eligible(technician: Technician, categories: list[ServiceCategory]) -> bool:
    if not categories:
        return True
    threshold = settings.scheduling.min_skill_proficiency
    return any(
        s.category in categories and s.proficiency >= threshold for s in technician.skills
    )


def _sort_key(candidate: TechnicianCandidate) -> tuple:
    return (
        not candidate.recommended,
        candidate.workload_percentage,
        -candidate.years_experience,
        -candidate.max_proficiency,
        candidate.technician_id,
    )


class TechnicianMatcher:
    """Scores and ranks technicians for a requested slot."""

    def __init__(self, roster: TechnicianRoster, detector: ConflictDetector) -> None:
        self._roster = roster
        self._detector = detector

    def rank_technicians(
        self,
        center_id: str,
        day: date,
        start: int,
        duration_minutes: int,
        categories: list[ServiceCategory],
        reservations: Optional[list[Appointment]] = None,
    ) -> list[TechnicianCandidate]:
        """
        Rank eligible technicians, best first.

        Args:
            reservations: Reservation snapshot to check against. Booking passes
                the snapshot it took under its lock; otherwise a fresh one is read.
        """
        if reservations is None:
            reservations = self._detector.reservations(center_id, day)
        end = start + duration_minutes
        threshold = settings.scheduling.recommended_match_threshold

        candidates: list[TechnicianCandidate] = []
        for tech in self._roster.for_center(center_id):
            if tech.status == AvailabilityStatus.OFFLINE:
                continue
            if not is_skill_eligible(tech, categories):
                continue
            if evaluate(reservations, start, end, 0, tech.id).has_conflict:
                continue

            score = skill_match_score(tech, categories)
            candidates.append(TechnicianCandidate(
                technician_id=tech.id,
                name=tech.name,
                status=tech.status,
                workload_percentage=tech.workload_percentage,
                years_experience=tech.years_experience,
                skills=tech.skills,
                skill_match_score=round(score, 2),
                max_proficiency=max_matching_proficiency(tech, categories),
                recommended=score > threshold,
            ))

        candidates.sort(key=_sort_key)
        logger.debug(
            "Ranked %d eligible technicians for %s on %s: %s",
            len(candidates), [c.value for c in categories], day.isoformat(),
            [c.technician_id for c in candidates],
        )
        return candidates

    def best(
        self,
        center_id: str,
        day: date,
        start: int,
        duration_minutes: int,
        categories: list[ServiceCategory],
        reservations: Optional[list[Appointment]] = None,
    ) -> Optional[TechnicianCandidate]:
        """Head of the ranking, or None when nobody is eligible."""
        ranked = self.rank_technicians(
            center_id, day, start, duration_minutes, categories, reservations
        )
        return ranked[0] if ranked else None

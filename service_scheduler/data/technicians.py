"""
Technician roster with lock-guarded workload counters.

Workload is the only piece of technician state mutated by more than one
flow (booking assigns, completion and cancellation release). All changes
go through ``adjust_workload`` under the roster lock, which swaps in a new
immutable snapshot.
"""

import logging
import threading
from typing import Iterable, Optional

from service_scheduler.config import settings
from service_scheduler.data.centers import DEFAULT_CENTER_ID
from service_scheduler.errors import NotFoundError
from service_scheduler.schemas.catalog_schema import ServiceCategory
from service_scheduler.schemas.technician_schema import (
    AvailabilityStatus,
    Technician,
    TechnicianSkill,
)

logger = logging.getLogger(__name__)


def _skill(category: ServiceCategory, level: int, certified: bool = False) -> TechnicianSkill:
    return TechnicianSkill(category=category, proficiency=level, certified=certified)


SEED_TECHNICIANS: list[dict] = [
    {
        "id": "tech-an",
        "name": "Nguyen Van An",
        "specializations": {ServiceCategory.BATTERY, ServiceCategory.CHARGING},
        "skills": (
            _skill(ServiceCategory.BATTERY, 5, certified=True),
            _skill(ServiceCategory.CHARGING, 4),
            _skill(ServiceCategory.MAINTENANCE, 3),
        ),
        "years_experience": 9,
    },
    {
        "id": "tech-binh",
        "name": "Tran Thi Binh",
        "specializations": {ServiceCategory.MOTOR, ServiceCategory.DIAGNOSTIC},
        "skills": (
            _skill(ServiceCategory.MOTOR, 5, certified=True),
            _skill(ServiceCategory.DIAGNOSTIC, 4, certified=True),
            _skill(ServiceCategory.ELECTRONICS, 3),
        ),
        "years_experience": 7,
    },
    {
        "id": "tech-cuong",
        "name": "Le Minh Cuong",
        "specializations": {ServiceCategory.ELECTRONICS},
        "skills": (
            _skill(ServiceCategory.ELECTRONICS, 4),
            _skill(ServiceCategory.DIAGNOSTIC, 3),
            _skill(ServiceCategory.GENERAL, 4),
        ),
        "years_experience": 4,
    },
    {
        "id": "tech-dung",
        "name": "Pham Quoc Dung",
        "specializations": {ServiceCategory.MAINTENANCE, ServiceCategory.GENERAL},
        "skills": (
            _skill(ServiceCategory.MAINTENANCE, 4),
            _skill(ServiceCategory.GENERAL, 5),
            _skill(ServiceCategory.BATTERY, 2),
        ),
        "years_experience": 2,
    },
]


def seed_roster() -> list[Technician]:
    capacity = settings.technicians.default_daily_capacity
    return [
        Technician(
            center_id=DEFAULT_CENTER_ID,
            workload_capacity=capacity,
            **{**row, "specializations": frozenset(row["specializations"])},
        )
        for row in SEED_TECHNICIANS
    ]


class TechnicianRoster:
    """In-memory technician table."""

    def __init__(self, technicians: Optional[Iterable[Technician]] = None) -> None:
        self._lock = threading.Lock()
        self._seed = list(technicians) if technicians is not None else seed_roster()
        self._technicians: dict[str, Technician] = {t.id: t for t in self._seed}

    def get(self, technician_id: str) -> Technician:
        technician = self._technicians.get(technician_id)
        if technician is None:
            raise NotFoundError("Technician", technician_id)
        return technician

    def for_center(self, center_id: str) -> list[Technician]:
        return sorted(
            (t for t in self._technicians.values() if t.center_id == center_id),
            key=lambda t: t.id,
        )

    def add(self, technician: Technician) -> None:
        with self._lock:
            self._technicians[technician.id] = technician

    def set_status(self, technician_id: str, status: AvailabilityStatus) -> Technician:
        with self._lock:
            updated = self.get(technician_id).model_copy(update={"status": status})
            self._technicians[technician_id] = updated
        logger.info("Technician %s status -> %s", technician_id, status.value)
        return updated

    def adjust_workload(self, technician_id: str, delta: int) -> Technician:
        """Apply a workload change. The count is floored at 0; only the percentage is capped."""
        with self._lock:
            current = self.get(technician_id)
            count = max(0, current.workload_current + delta)
            status = current.status
            if status != AvailabilityStatus.OFFLINE:
                status = AvailabilityStatus.BUSY if count > 0 else AvailabilityStatus.AVAILABLE
            updated = current.model_copy(update={"workload_current": count, "status": status})
            self._technicians[technician_id] = updated
        logger.debug(
            "Technician %s workload %d -> %d (%.0f%%)",
            technician_id, current.workload_current, count, updated.workload_percentage,
        )
        return updated

    def reset(self) -> None:
        """Restore the seed roster. Used by test fixtures for isolation."""
        with self._lock:
            self._technicians = {t.id: t for t in self._seed}

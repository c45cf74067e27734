"""EV service catalog with durations, required skill levels, and pricing."""

import logging
from typing import Iterable, Optional

from service_scheduler.errors import ValidationError
from service_scheduler.schemas.catalog_schema import Service, ServiceCategory, SkillLevel

logger = logging.getLogger(__name__)

SERVICE_CATALOG: dict[str, dict] = {
    "svc-periodic-maintenance": {
        "name": "Periodic Maintenance",
        "category": ServiceCategory.MAINTENANCE,
        "estimated_duration": 60,
        "skill_level": SkillLevel.BASIC,
        "base_price": 450_000,
    },
    "svc-battery-health": {
        "name": "Battery Health Check",
        "category": ServiceCategory.BATTERY,
        "estimated_duration": 60,
        "skill_level": SkillLevel.INTERMEDIATE,
        "base_price": 600_000,
    },
    "svc-battery-replacement": {
        "name": "Battery Module Replacement",
        "category": ServiceCategory.BATTERY,
        "estimated_duration": 180,
        "skill_level": SkillLevel.EXPERT,
        "base_price": 12_000_000,
    },
    "svc-motor-inspection": {
        "name": "Drive Motor Inspection",
        "category": ServiceCategory.MOTOR,
        "estimated_duration": 90,
        "skill_level": SkillLevel.ADVANCED,
        "base_price": 900_000,
    },
    "svc-charging-port": {
        "name": "Charging Port Repair",
        "category": ServiceCategory.CHARGING,
        "estimated_duration": 60,
        "skill_level": SkillLevel.INTERMEDIATE,
        "base_price": 750_000,
    },
    "svc-electronics-diagnostic": {
        "name": "Onboard Electronics Diagnostic",
        "category": ServiceCategory.ELECTRONICS,
        "estimated_duration": 30,
        "skill_level": SkillLevel.INTERMEDIATE,
        "base_price": 350_000,
    },
    "svc-full-diagnostic": {
        "name": "Full Vehicle Diagnostic",
        "category": ServiceCategory.DIAGNOSTIC,
        "estimated_duration": 120,
        "skill_level": SkillLevel.ADVANCED,
        "base_price": 1_200_000,
    },
    "svc-tire-rotation": {
        "name": "Tire Rotation",
        "category": ServiceCategory.GENERAL,
        "estimated_duration": 30,
        "skill_level": SkillLevel.BASIC,
        "base_price": 200_000,
    },
}


class ServiceCatalog:
    """Read-only lookup over catalog entries."""

    def __init__(self, entries: Optional[Iterable[Service]] = None) -> None:
        if entries is None:
            entries = [Service(id=sid, **info) for sid, info in SERVICE_CATALOG.items()]
        self._services: dict[str, Service] = {s.id: s for s in entries}

    def get(self, service_id: str) -> Optional[Service]:
        return self._services.get(service_id)

    def all(self) -> list[Service]:
        return list(self._services.values())

    def resolve(self, service_ids: list[str]) -> list[Service]:
        """Resolve every id or fail with the unknown ones listed."""
        missing = [sid for sid in service_ids if sid not in self._services]
        if missing:
            raise ValidationError(
                "services", missing, f"Unknown service id(s): {', '.join(missing)}"
            )
        return [self._services[sid] for sid in service_ids]

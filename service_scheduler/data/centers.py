"""Service center directory with working hours and bay capacity."""

from typing import Iterable, Optional

from service_scheduler.config import settings
from service_scheduler.errors import NotFoundError
from service_scheduler.schemas.catalog_schema import ServiceCenter, WorkingHours

DEFAULT_CENTER_ID = "center-main"

DEFAULT_WORKING_HOURS: dict[str, WorkingHours] = {
    "monday": WorkingHours(open="08:00", close="18:00"),
    "tuesday": WorkingHours(open="08:00", close="18:00"),
    "wednesday": WorkingHours(open="08:00", close="18:00"),
    "thursday": WorkingHours(open="08:00", close="18:00"),
    "friday": WorkingHours(open="08:00", close="18:00"),
    "saturday": WorkingHours(open="08:00", close="16:00"),
    "sunday": WorkingHours(open="09:00", close="15:00", is_open=False),
}


def default_center() -> ServiceCenter:
    return ServiceCenter(
        id=DEFAULT_CENTER_ID,
        name="EV Service Center",
        timezone=settings.scheduling.default_timezone,
        total_bays=10,
        working_hours=DEFAULT_WORKING_HOURS,
    )


class CenterDirectory:
    """Lookup of service centers by id."""

    def __init__(self, centers: Optional[Iterable[ServiceCenter]] = None) -> None:
        self._seed = list(centers) if centers is not None else [default_center()]
        self._centers: dict[str, ServiceCenter] = {c.id: c for c in self._seed}

    def get(self, center_id: str) -> ServiceCenter:
        center = self._centers.get(center_id)
        if center is None:
            raise NotFoundError("ServiceCenter", center_id)
        return center

    def add(self, center: ServiceCenter) -> None:
        self._centers[center.id] = center

    def all(self) -> list[ServiceCenter]:
        return sorted(self._centers.values(), key=lambda c: c.id)

    def reset(self) -> None:
        """Restore the seed centers. Used by test fixtures for isolation."""
        self._centers = {c.id: c for c in self._seed}

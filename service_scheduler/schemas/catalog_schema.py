"""Service catalog and service center reference data models."""

from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from service_scheduler.utils import parse_time

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


class ServiceCategory(str, Enum):
    MAINTENANCE = "maintenance"
    BATTERY = "battery"
    MOTOR = "motor"
    CHARGING = "charging"
    ELECTRONICS = "electronics"
    DIAGNOSTIC = "diagnostic"
    GENERAL = "general"


class SkillLevel(str, Enum):
    BASIC = "basic"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"


class Service(BaseModel):
    """Catalog entry. Immutable reference data maintained by staff."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str
    category: ServiceCategory
    estimated_duration: int = Field(gt=0, description="Minutes")
    skill_level: SkillLevel = SkillLevel.BASIC
    base_price: float = Field(ge=0)


class WorkingHours(BaseModel):
    """Opening window for a single weekday."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    open: str = "08:00"
    close: str = "18:00"
    is_open: bool = True

    @property
    def open_minutes(self) -> int:
        return parse_time(self.open, "open")

    @property
    def close_minutes(self) -> int:
        return parse_time(self.close, "close")


class ServiceCenter(BaseModel):
    """A multi-bay service center with its weekly opening schedule."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str
    timezone: str
    total_bays: int = Field(ge=1)
    working_hours: dict[str, WorkingHours]
    closed_dates: frozenset[date] = frozenset()

    def hours_for(self, day: date) -> Optional[WorkingHours]:
        """Return the opening window for ``day``, or None when the center is closed."""
        if day in self.closed_dates:
            return None
        hours = self.working_hours.get(WEEKDAYS[day.weekday()])
        if hours is None or not hours.is_open:
            return None
        return hours

"""Technician roster and matching result models."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

from service_scheduler.schemas.catalog_schema import ServiceCategory


class AvailabilityStatus(str, Enum):
    AVAILABLE = "available"
    BUSY = "busy"
    OFFLINE = "offline"


class TechnicianSkill(BaseModel):
    """One row of a technician's skill matrix."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    category: ServiceCategory
    proficiency: int = Field(ge=1, le=5)
    certified: bool = False


class Technician(BaseModel):
    """
    Technician snapshot.

    Snapshots are immutable; the roster replaces the whole record when
    workload or availability changes so readers never observe a partial
    update.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str
    center_id: str
    specializations: frozenset[ServiceCategory] = frozenset()
    skills: tuple[TechnicianSkill, ...] = ()
    years_experience: int = Field(default=0, ge=0, le=50)
    status: AvailabilityStatus = AvailabilityStatus.AVAILABLE
    workload_current: int = Field(default=0, ge=0)
    workload_capacity: int = Field(default=8, ge=1)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def workload_percentage(self) -> float:
        return round(min(100.0, self.workload_current / self.workload_capacity * 100), 2)

    def skill_for(self, category: ServiceCategory) -> Optional[TechnicianSkill]:
        for skill in self.skills:
            if skill.category == category:
                return skill
        return None


class TechnicianCandidate(BaseModel):
    """A ranked, eligible technician for a requested slot."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    technician_id: str
    name: str
    status: AvailabilityStatus
    workload_percentage: float
    years_experience: int
    skills: tuple[TechnicianSkill, ...]
    skill_match_score: float
    max_proficiency: int
    recommended: bool

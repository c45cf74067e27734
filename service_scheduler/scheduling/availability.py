"""
Slot availability calculator.

Generates candidate start times from opening to closing time at a fixed
granularity and marks each one available or not against a single snapshot
of the center's reservations. End-of-day slots whose service would run past
closing time are still emitted, flagged ``requires_approval``, so the client
can offer them as spillover bookings.
"""

from datetime import date, datetime, time
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from service_scheduler.config import settings
from service_scheduler.data.centers import CenterDirectory
from service_scheduler.errors import ValidationError
from service_scheduler.logging_context import get_request_logger
from service_scheduler.schemas.appointment_schema import TimeSlot
from service_scheduler.schemas.catalog_schema import ServiceCenter
from service_scheduler.scheduling.conflicts import ConflictDetector, evaluate
from service_scheduler.utils import MINUTES_PER_DAY, format_minutes, parse_date

logger = get_request_logger(__name__)


def center_now(center: ServiceCenter, now: datetime) -> datetime:
    """Express an aware ``now`` in the center's local zone."""
    return now.astimezone(ZoneInfo(center.timezone))


def slot_start(center: ServiceCenter, day: date, start: int) -> datetime:
    """Aware local datetime for a slot start."""
    return datetime.combine(
        day, time(start // 60, start % 60), tzinfo=ZoneInfo(center.timezone)
    )


def validate_duration(duration_minutes: int) -> None:
    if not isinstance(duration_minutes, int) or duration_minutes <= 0:
        raise ValidationError("duration_minutes", duration_minutes, "Duration must be > 0 minutes")


class SlotAvailabilityCalculator:
    """Pure read: computes the slot board for a center and day."""

    def __init__(
        self,
        centers: CenterDirectory,
        detector: ConflictDetector,
        clock: Callable[[], datetime],
    ) -> None:
        self._centers = centers
        self._detector = detector
        self._clock = clock

    def compute_slots(
        self,
        center_id: str,
        date_str: str,
        duration_minutes: int,
        granularity_minutes: Optional[int] = None,
    ) -> list[TimeSlot]:
        """
        Compute the ordered slot board.

        Returns:
            Slots ascending by start time. Empty when the center is closed.

        Raises:
            ValidationError: On a malformed date or non-positive duration.
        """
        day = parse_date(date_str, "date")
        validate_duration(duration_minutes)
        step = granularity_minutes or settings.scheduling.slot_granularity_minutes
        if step <= 0:
            raise ValidationError("granularity_minutes", step, "Granularity must be > 0 minutes")

        center = self._centers.get(center_id)
        hours = center.hours_for(day)
        if hours is None:
            logger.debug("Center %s closed on %s", center_id, date_str)
            return []

        now_local = center_now(center, self._clock())
        reservations = self._detector.reservations(center_id, day)
        close = hours.close_minutes
        allow_spillover = settings.scheduling.allow_spillover

        slots: list[TimeSlot] = []
        for start in range(hours.open_minutes, close, step):
            end = start + duration_minutes
            check = evaluate(reservations, start, end, center.total_bays)
            spills = end > close
            is_past = slot_start(center, day, start) < now_local

            available = not (
                check.has_conflict
                or is_past
                or (spills and not allow_spillover)
                or end > MINUTES_PER_DAY
            )
            slots.append(TimeSlot(
                date=date_str,
                time=format_minutes(start),
                end_time=format_minutes(min(end, MINUTES_PER_DAY)),
                available=available,
                conflict_count=check.conflict_count,
                requires_approval=spills,
                is_past=is_past,
            ))

        logger.debug(
            "Computed %d slots for %s on %s (%d available, duration %d)",
            len(slots), center_id, date_str, sum(s.available for s in slots), duration_minutes,
        )
        return slots

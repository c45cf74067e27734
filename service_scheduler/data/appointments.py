"""
In-memory appointment table.

Appointments are never deleted once committed; ``remove`` exists only to
roll back an insert whose critical section failed before completing.
Reservations are not stored separately: ``active_for`` projects them from
the non-terminal appointments on a given center and day.
"""

import logging
import threading
from collections import defaultdict
from contextlib import AbstractContextManager
from datetime import date
from typing import Optional

from service_scheduler.config import settings
from service_scheduler.errors import NotFoundError, StaleAppointmentError
from service_scheduler.locks import KeyedLockManager
from service_scheduler.schemas.appointment_schema import Appointment, AppointmentStatus

logger = logging.getLogger(__name__)


class AppointmentStore:
    """Appointment records keyed by id, with per-day number sequences."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._appointments: dict[str, Appointment] = {}
        self._sequences: dict[tuple[str, date], int] = defaultdict(int)
        self._row_locks = KeyedLockManager(settings.booking.lock_timeout_sec)

    def locked(self, appointment_id: str) -> AbstractContextManager[None]:
        """Per-appointment exclusive lock with bounded acquisition."""
        return self._row_locks.hold(appointment_id)

    def next_number(self, center_id: str, day: date) -> str:
        """Allocate the next ``APT-YYYYMMDD-NNN`` number for a center and day."""
        with self._lock:
            self._sequences[(center_id, day)] += 1
            seq = self._sequences[(center_id, day)]
        return f"APT-{day.strftime('%Y%m%d')}-{seq:03d}"

    def insert(self, appointment: Appointment) -> Appointment:
        with self._lock:
            if appointment.id in self._appointments:
                raise ValueError(f"Duplicate appointment id: {appointment.id}")
            self._appointments[appointment.id] = appointment
        logger.debug("Inserted appointment %s", appointment.number)
        return appointment

    def remove(self, appointment_id: str) -> None:
        with self._lock:
            self._appointments.pop(appointment_id, None)
        logger.warning("Rolled back appointment %s", appointment_id)

    def get(self, appointment_id: str) -> Appointment:
        appointment = self._appointments.get(appointment_id)
        if appointment is None:
            raise NotFoundError("Appointment", appointment_id)
        return appointment

    def replace(self, updated: Appointment) -> Appointment:
        """
        Store a new version of an appointment.

        ``updated`` must derive from the currently stored version; the
        stored copy gets ``version + 1``.
        """
        with self._lock:
            current = self._appointments.get(updated.id)
            if current is None:
                raise NotFoundError("Appointment", updated.id)
            if current.version != updated.version:
                raise StaleAppointmentError(updated.id, updated.version, current.version)
            stored = updated.model_copy(update={"version": current.version + 1})
            self._appointments[updated.id] = stored
        return stored

    def active_for(
        self, center_id: str, day: date, exclude_id: Optional[str] = None
    ) -> list[Appointment]:
        """Non-terminal appointments on ``day``: the reservation projection."""
        with self._lock:
            rows = list(self._appointments.values())
        return sorted(
            (
                a for a in rows
                if a.center_id == center_id
                and a.scheduled_date == day
                and not a.is_terminal
                and a.id != exclude_id
            ),
            key=lambda a: (a.start_minutes, a.number),
        )

    def list(
        self,
        center_id: Optional[str] = None,
        day: Optional[date] = None,
        status: Optional[AppointmentStatus] = None,
    ) -> list[Appointment]:
        with self._lock:
            rows = list(self._appointments.values())
        return sorted(
            (
                a for a in rows
                if (center_id is None or a.center_id == center_id)
                and (day is None or a.scheduled_date == day)
                and (status is None or a.status == status)
            ),
            key=lambda a: (a.scheduled_date, a.start_minutes, a.number),
        )

    def reset(self) -> None:
        """Clear all appointments. Used by test fixtures for isolation."""
        with self._lock:
            self._appointments.clear()
            self._sequences.clear()

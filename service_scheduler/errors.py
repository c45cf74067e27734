"""
Structured error taxonomy for the scheduling engine.

Every error carries a machine-readable code, an HTTP status for the API
layer, a retryable flag, and enough detail (conflicting appointment,
offending field) for callers to react without parsing the message.
"""

from typing import Any, Optional


class SchedulingError(Exception):
    """Base class for all engine errors."""

    code: str = "SCHEDULING_ERROR"
    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def details(self) -> dict[str, Any]:
        return {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            **self.details(),
        }


class ValidationError(SchedulingError):
    """Malformed or policy-violating input. Never retried."""

    code = "VALIDATION_ERROR"
    status_code = 422

    def __init__(self, field: str, value: Any, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.value = value

    def details(self) -> dict[str, Any]:
        return {"field": self.field, "value": self.value}


class NotFoundError(SchedulingError):
    """A referenced appointment, technician or center does not exist."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} '{entity_id}' not found")
        self.entity = entity
        self.entity_id = entity_id

    def details(self) -> dict[str, Any]:
        return {"entity": self.entity, "entityId": self.entity_id}


class ConflictError(SchedulingError):
    """The requested slot or technician is already taken."""

    code = "TIME_SLOT_CONFLICT"
    status_code = 409

    def __init__(
        self,
        message: str,
        conflicting_appointment: Optional[dict[str, Any]] = None,
        conflict_count: int = 0,
        technician_id: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.conflicting_appointment = conflicting_appointment
        self.conflict_count = conflict_count
        self.technician_id = technician_id
        if technician_id is not None:
            self.code = "TECHNICIAN_CONFLICT"

    def details(self) -> dict[str, Any]:
        return {
            "conflictingAppointment": self.conflicting_appointment,
            "conflictCount": self.conflict_count,
        }


class NoTechnicianAvailable(SchedulingError):
    """Technician ranking produced an empty eligible set."""

    code = "NO_TECHNICIAN_AVAILABLE"
    status_code = 409

    def __init__(self, categories: list[str], date: str, time: str) -> None:
        super().__init__(
            f"No eligible technician for {', '.join(categories) or 'any category'} "
            f"on {date} at {time}"
        )
        self.categories = categories
        self.date = date
        self.time = time

    def details(self) -> dict[str, Any]:
        return {"categories": self.categories, "date": self.date, "time": self.time}


class InvalidTransitionError(SchedulingError):
    """Raised when a status change is not reachable or not permitted."""

    code = "INVALID_TRANSITION"
    status_code = 409

    def __init__(
        self,
        current_status: str,
        requested_status: str,
        role: Optional[str] = None,
        reason: str = "",
    ) -> None:
        message = f"Cannot transition from '{current_status}' to '{requested_status}'"
        if role:
            message += f" as {role}"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.current_status = current_status
        self.requested_status = requested_status
        self.role = role
        self.reason = reason

    def details(self) -> dict[str, Any]:
        return {
            "currentStatus": self.current_status,
            "requestedStatus": self.requested_status,
            "role": self.role,
            "reason": self.reason,
        }


class StaleAppointmentError(SchedulingError):
    """Optimistic version check failed; the appointment changed underneath the caller."""

    code = "STALE_APPOINTMENT"
    status_code = 409

    def __init__(self, appointment_id: str, expected_version: int, actual_version: int) -> None:
        super().__init__(
            f"Appointment '{appointment_id}' is at version {actual_version}, "
            f"expected {expected_version}"
        )
        self.expected_version = expected_version
        self.actual_version = actual_version

    def details(self) -> dict[str, Any]:
        return {"expectedVersion": self.expected_version, "actualVersion": self.actual_version}


class LockTimeoutError(SchedulingError):
    """A bounded lock acquisition expired. Transient; safe to retry."""

    code = "LOCK_TIMEOUT"
    status_code = 503
    retryable = True

    def __init__(self, lock_key: str, timeout_sec: float) -> None:
        super().__init__(f"Timed out after {timeout_sec:.1f}s waiting for lock {lock_key}")
        self.lock_key = lock_key

    def details(self) -> dict[str, Any]:
        return {"lockKey": self.lock_key}

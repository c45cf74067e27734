"""HTTP routes for availability, booking and the appointment workflow."""

from typing import Any, Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from service_scheduler.engine import SchedulingEngine
from service_scheduler.errors import ValidationError
from service_scheduler.schemas.appointment_schema import (
    Actor,
    AppointmentDraft,
    AppointmentStatus,
    Role,
)
from service_scheduler.workflow import TransitionContext

router = APIRouter(tags=["scheduling"])


class _Body(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class PreValidateBody(_Body):
    center_id: str
    date: str
    time: str
    duration_minutes: int
    technician_id: Optional[str] = None


class StatusUpdateBody(_Body):
    status: AppointmentStatus
    notes: Optional[str] = None
    expected_version: Optional[int] = None
    inspection_submitted: bool = False
    parts_shortfall: bool = False
    parts_fulfilled: bool = False
    invoice_id: Optional[str] = None
    checklist_resolved: bool = True
    new_date: Optional[str] = None
    new_time: Optional[str] = None

    def context(self) -> TransitionContext:
        return TransitionContext(
            inspection_submitted=self.inspection_submitted,
            parts_shortfall=self.parts_shortfall,
            parts_fulfilled=self.parts_fulfilled,
            invoice_id=self.invoice_id,
            checklist_resolved=self.checklist_resolved,
        )


class AssignTechnicianBody(_Body):
    technician_id: Optional[str] = None
    auto_assign: bool = False
    expected_version: Optional[int] = None


class RescheduleBody(_Body):
    new_date: str
    new_time: str
    reason: Optional[str] = None
    expected_version: Optional[int] = None


def get_engine(request: Request) -> SchedulingEngine:
    return request.app.state.engine


def get_actor(
    actor_id: str = Header(..., alias="X-Actor-Id"),
    actor_role: Role = Header(..., alias="X-Actor-Role"),
) -> Actor:
    return Actor(id=actor_id, role=actor_role)


def get_viewer(
    actor_id: Optional[str] = Header(None, alias="X-Actor-Id"),
    actor_role: Optional[Role] = Header(None, alias="X-Actor-Role"),
) -> Optional[Actor]:
    if actor_id is None or actor_role is None:
        return None
    return Actor(id=actor_id, role=actor_role)


def _ok(data: Any) -> dict[str, Any]:
    if isinstance(data, BaseModel):
        data = data.model_dump(by_alias=True, mode="json")
    elif isinstance(data, list):
        data = [
            item.model_dump(by_alias=True, mode="json") if isinstance(item, BaseModel) else item
            for item in data
        ]
    return {"success": True, "data": data}


@router.get("/availability")
def get_availability(
    center_id: str = Query(..., alias="centerId"),
    date: str = Query(...),
    duration: int = Query(..., description="Service duration in minutes"),
    granularity: Optional[int] = Query(None),
    engine: SchedulingEngine = Depends(get_engine),
):
    slots = engine.availability(center_id, date, duration, granularity)
    return _ok({
        "centerId": center_id,
        "date": date,
        "durationMinutes": duration,
        "slots": [s.model_dump(by_alias=True, mode="json") for s in slots],
    })


@router.post("/appointments/pre-validate")
def pre_validate(body: PreValidateBody, engine: SchedulingEngine = Depends(get_engine)):
    return _ok(engine.pre_validate(
        body.center_id, body.date, body.time, body.duration_minutes, body.technician_id
    ))


@router.get("/technicians/available")
def available_technicians(
    center_id: str = Query(..., alias="centerId"),
    date: str = Query(...),
    time: str = Query(...),
    duration: int = Query(...),
    categories: str = Query("", description="Comma-separated service categories"),
    engine: SchedulingEngine = Depends(get_engine),
):
    wanted = [c.strip() for c in categories.split(",") if c.strip()]
    return _ok(engine.available_technicians(center_id, date, time, duration, wanted))


@router.post("/appointments", status_code=201)
def create_appointment(
    draft: AppointmentDraft,
    actor: Actor = Depends(get_actor),
    engine: SchedulingEngine = Depends(get_engine),
):
    return _ok(engine.create_appointment(draft, actor))


@router.get("/appointments")
def list_appointments(
    center_id: str = Query(..., alias="centerId"),
    date: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    engine: SchedulingEngine = Depends(get_engine),
):
    return _ok(engine.list_appointments(center_id, date, status))


@router.get("/appointments/{appointment_id}")
def get_appointment(
    appointment_id: str,
    viewer: Optional[Actor] = Depends(get_viewer),
    engine: SchedulingEngine = Depends(get_engine),
):
    return _ok(engine.get_appointment(appointment_id, viewer))


@router.put("/appointments/{appointment_id}/status")
def update_status(
    appointment_id: str,
    body: StatusUpdateBody,
    actor: Actor = Depends(get_actor),
    engine: SchedulingEngine = Depends(get_engine),
):
    if body.status == AppointmentStatus.RESCHEDULED:
        if not body.new_date or not body.new_time:
            raise ValidationError(
                "newDate", body.new_date, "Rescheduling requires newDate and newTime"
            )
        return _ok(engine.reschedule(
            appointment_id, body.new_date, body.new_time, actor,
            reason=body.notes, expected_version=body.expected_version,
        ))
    return _ok(engine.update_status(
        appointment_id, body.status, actor,
        notes=body.notes, context=body.context(), expected_version=body.expected_version,
    ))


@router.put("/appointments/{appointment_id}/assign-technician")
def assign_technician(
    appointment_id: str,
    body: AssignTechnicianBody,
    actor: Actor = Depends(get_actor),
    engine: SchedulingEngine = Depends(get_engine),
):
    return _ok(engine.assign_technician(
        appointment_id, actor, body.technician_id, body.auto_assign, body.expected_version
    ))


@router.put("/appointments/{appointment_id}/reschedule")
def reschedule(
    appointment_id: str,
    body: RescheduleBody,
    actor: Actor = Depends(get_actor),
    engine: SchedulingEngine = Depends(get_engine),
):
    return _ok(engine.reschedule(
        appointment_id, body.new_date, body.new_time, actor,
        reason=body.reason, expected_version=body.expected_version,
    ))

from service_scheduler.workflow.state_machine import (
    ACTIONS,
    AppointmentStateMachine,
    TransitionContext,
    resolve_action,
)

__all__ = [
    "AppointmentStateMachine",
    "TransitionContext",
    "ACTIONS",
    "resolve_action",
]

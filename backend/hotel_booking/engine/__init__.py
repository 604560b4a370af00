from hotel_booking.engine.state_machine import (
    StateMachine, StateMachineConfig, StateTransition, InvalidTransition,
    BOOKING_STATUS_MACHINE, DRAFT_PROMOTION_MACHINE
)

__all__ = [
    'StateMachine', 'StateMachineConfig', 'StateTransition', 'InvalidTransition',
    'BOOKING_STATUS_MACHINE', 'DRAFT_PROMOTION_MACHINE'
]

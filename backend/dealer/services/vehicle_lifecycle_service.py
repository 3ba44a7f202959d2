# Overview: Service-layer operations for the vehicle status lifecycle.

"""
Vehicle Lifecycle Service

================================================================================
PURPOSE: Enforce available -> reserved -> sold for vehicles
================================================================================

STATE MACHINE:
    available -> reserved      (settled as pre-sale)
    available -> sold          (settled as sale)
    reserved  -> sold          (pre-sale closed as sale)
    reserved  -> available     (compensating: sale deleted)
    sold      -> available     (compensating: sale deleted)

RULES:
1. Only the transitions above are legal; everything else raises LifecycleError.
2. Same-state transitions are rejected (a sold vehicle cannot be sold again,
   a reserved vehicle cannot be reserved by a second pre-sale).
3. A vehicle can be sold only from available or reserved.
4. Transfer exits never touch a vehicle.

================================================================================
"""

from __future__ import annotations
from typing import Literal

from flask import current_app

from ..models import Vehicle
from ..validation import ValidationError


STATUS_AVAILABLE = "available"
STATUS_RESERVED = "reserved"
STATUS_SOLD = "sold"

VALID_STATUSES = {STATUS_AVAILABLE, STATUS_RESERVED, STATUS_SOLD}
VehicleStatus = Literal["available", "reserved", "sold"]

SELLABLE_STATUSES = {STATUS_AVAILABLE, STATUS_RESERVED}

_VALID_TRANSITIONS = {
    (STATUS_AVAILABLE, STATUS_RESERVED),
    (STATUS_AVAILABLE, STATUS_SOLD),
    (STATUS_RESERVED, STATUS_SOLD),
    (STATUS_RESERVED, STATUS_AVAILABLE),
    (STATUS_SOLD, STATUS_AVAILABLE),
}


class LifecycleError(ValidationError):
    """
    Raised when an invalid vehicle status transition is attempted.

    This is a domain error, not a technical error. It indicates
    that the user attempted an operation that violates business rules.
    """

    def __init__(self, message: str):
        super().__init__(message, field="status")


def validate_status(status: str) -> None:
    if status not in VALID_STATUSES:
        raise LifecycleError(
            f"Invalid vehicle status '{status}'. Must be one of: {', '.join(sorted(VALID_STATUSES))}"
        )


def can_transition(from_status: str, to_status: str) -> bool:
    validate_status(from_status)
    validate_status(to_status)
    return (from_status, to_status) in _VALID_TRANSITIONS


def ensure_sellable(vehicle: Vehicle) -> None:
    """Precondition for pre-sale/sale: vehicle must be available or reserved."""
    if vehicle.status not in SELLABLE_STATUSES:
        raise LifecycleError(
            f"Vehicle {vehicle.id} is not available for sale (status '{vehicle.status}')"
        )


def status_for_exit(exit_kind: str) -> str:
    """Target vehicle status for a settlement exit kind."""
    if exit_kind == "presale":
        return STATUS_RESERVED
    if exit_kind == "sale":
        return STATUS_SOLD
    raise LifecycleError(f"Exit kind '{exit_kind}' does not change vehicle status")


def transition(vehicle: Vehicle, to_status: str) -> Vehicle:
    """
    Move a vehicle to to_status or raise LifecycleError.

    New (unsaved) vehicles start as available, so the same rules apply to them.
    Does not commit; the caller owns the transaction.
    """
    from_status = vehicle.status or STATUS_AVAILABLE
    if not can_transition(from_status, to_status):
        raise LifecycleError(
            f"Cannot move vehicle {vehicle.id or '(new)'} from '{from_status}' to '{to_status}'"
        )
    vehicle.status = to_status
    current_app.logger.info("Vehicle %s status %s -> %s", vehicle.id or "(new)", from_status, to_status)
    return vehicle


def revert_to_available(vehicle: Vehicle) -> Vehicle:
    """
    Compensating action for sale deletion.

    Already-available vehicles are left alone (e.g. the sale was attached
    to a vehicle that a later workflow released).
    """
    if vehicle.status == STATUS_AVAILABLE:
        return vehicle
    return transition(vehicle, STATUS_AVAILABLE)

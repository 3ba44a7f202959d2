# Overview: Read-side queries over the vehicle fleet.

from __future__ import annotations

from sqlalchemy import func, or_

from ..extensions import db
from ..models import Vehicle
from ..validation import NotFoundError, ValidationError
from .vehicle_lifecycle_service import STATUS_AVAILABLE, VALID_STATUSES


def get_vehicle(vehicle_id: int) -> Vehicle:
    vehicle = db.session.get(Vehicle, vehicle_id)
    if vehicle is None:
        raise NotFoundError(f"Vehicle {vehicle_id} not found")
    return vehicle


def list_vehicles(status: str | None = None, search: str | None = None) -> list[Vehicle]:
    query = db.session.query(Vehicle)
    if status:
        if status not in VALID_STATUSES:
            raise ValidationError(
                f"status must be one of: {', '.join(sorted(VALID_STATUSES))}", field="status"
            )
        query = query.filter(Vehicle.status == status)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Vehicle.brand.ilike(like),
                Vehicle.model.ilike(like),
                Vehicle.plate.ilike(like),
            )
        )
    return query.order_by(Vehicle.created_at.desc(), Vehicle.id.desc()).all()


def vehicle_stats() -> dict:
    """Counts by status plus the acquisition cost tied up in available vehicles."""
    counts = {status: 0 for status in sorted(VALID_STATUSES)}
    rows = db.session.query(Vehicle.status, func.count(Vehicle.id)).group_by(Vehicle.status).all()
    for status, count in rows:
        counts[status] = int(count)

    available_cost = (
        db.session.query(func.coalesce(func.sum(Vehicle.acquisition_cost_cents), 0))
        .filter(Vehicle.status == STATUS_AVAILABLE)
        .scalar()
    )
    return {
        "total": sum(counts.values()),
        "by_status": counts,
        "available_cost_cents": int(available_cost or 0),
    }

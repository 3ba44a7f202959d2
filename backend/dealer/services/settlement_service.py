# Overview: Service-layer operations for stock exits; settles a stock item as a sale, pre-sale or transfer.

"""
Settlement Service

================================================================================
PURPOSE: Turn a held stock item into a sale (vehicle + sale + payments) or a
         transfer record, as ONE atomic unit of work
================================================================================

EXIT KINDS:
    sale      -> vehicle sold,     sale completed
    presale   -> vehicle reserved, sale in_progress
    transfer  -> stock item leaves inventory; no vehicle, sale or ledger rows

ORDER OF WORK (sale / presale):
    1. lock the stock item (NotFound if it is gone)
    2. reference checks: customer, seller, trade-in, trade vehicles
    3. resolve or create the vehicle, move it to reserved/sold
    4. purchase price from the stock acquisition value (else vehicle cost)
    5. persist sale, accept trade-in, persist instruments + schedules
    6. one pending receivable per instrument
    7. delete the stock item

CONCURRENCY:
- Everything runs inside run_atomic() under the global write lock, so two
  settlements of the same stock item serialize; the loser sees NotFound.
- Any failure rolls back the whole unit: the stock item stays live and no
  vehicle is left reserved/sold without its sale.
================================================================================
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Sale, StockItem, StockTransfer, Vehicle
from ..validation import (
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    require_positive_int,
    validate_payload,
)
from . import payment_instrument_service as instruments
from . import sales_service
from . import vehicle_lifecycle_service as lifecycle
from .concurrency import lock_for_update, run_atomic
from .sales_service import EXIT_TRANSFER, VALID_EXIT_KINDS, SaleTerms


SETTLEMENT_POLICY = ModelValidationPolicy(
    writable_fields={
        "customer_id",
        "seller_id",
        "trade_in_id",
        "sale_price_cents",
        "table_value_cents",
        "discount_cents",
        "sale_date",
        "notes",
    },
    required_on_create={"customer_id", "seller_id"},
    extra_fields={"vehicle_id", "payment_instruments"},
)

_TRANSFER_FIELDS = {"transfer_destination", "transfer_notes"}


def parse_sale_details(details: dict) -> tuple[SaleTerms, int | None]:
    """
    Validate the sale/pre-sale part of a settlement request.

    Wire name sale_value_cents maps to the sale price. Returns the terms and
    the explicit vehicle id, if the caller linked one.
    """
    payload = dict(details)
    if "sale_value_cents" in payload:
        if "sale_price_cents" in payload:
            raise ValidationError(
                "Send sale_value_cents or sale_price_cents, not both", field="sale_value_cents"
            )
        payload["sale_price_cents"] = payload.pop("sale_value_cents")

    stray = _TRANSFER_FIELDS & set(payload)
    if stray:
        name = sorted(stray)[0]
        raise ValidationError(f"{name} is only valid for transfer exits", field=name)

    patch = validate_payload(model=Sale, payload=payload, policy=SETTLEMENT_POLICY, partial=False)

    vehicle_id = patch.pop("vehicle_id", None)
    if vehicle_id is not None:
        vehicle_id = require_positive_int(vehicle_id, "vehicle_id")

    specs = instruments.parse_instruments(patch.pop("payment_instruments", None))
    return sales_service.terms_from_patch(patch, specs), vehicle_id


def parse_transfer_details(details: dict) -> dict:
    unknown = set(details) - _TRANSFER_FIELDS
    if unknown:
        name = sorted(unknown)[0]
        raise ValidationError(f"Field not allowed for transfer exits: {name}", field=name)

    cleaned = {}
    for key, column in (("transfer_destination", StockTransfer.destination), ("transfer_notes", StockTransfer.notes)):
        value = details.get(key)
        if value is None:
            cleaned[key] = None
            continue
        if not isinstance(value, str):
            raise ValidationError(f"{key} must be a string", field=key)
        value = value.strip() or None
        limit = getattr(column.type, "length", None)
        if value and limit and len(value) > limit:
            raise ValidationError(f"{key} exceeds max length {limit}", field=key)
        cleaned[key] = value
    return cleaned


def _load_stock_item_locked(stock_item_id: int) -> StockItem:
    item = lock_for_update(db.session.query(StockItem).filter_by(id=stock_item_id)).first()
    if item is None:
        raise NotFoundError(f"Stock item {stock_item_id} not found")
    return item


def find_matching_vehicle(item: StockItem) -> Vehicle | None:
    """
    Attribute match on (brand, model, year, plate) among sellable vehicles.

    Without a plate there is no match: plateless vehicles of the same model
    would collide. Sold vehicles are past sales, not candidates.
    """
    plate = (item.plate or "").strip()
    if not plate:
        return None
    query = db.session.query(Vehicle).filter(
        Vehicle.brand == item.brand,
        Vehicle.model == item.model,
        Vehicle.year == item.year,
        Vehicle.plate == plate,
        Vehicle.status.in_(lifecycle.SELLABLE_STATUSES),
    )
    return lock_for_update(query.order_by(Vehicle.id.desc())).first()


def vehicle_from_stock_item(item: StockItem) -> Vehicle:
    vehicle = Vehicle(
        brand=item.brand,
        model=item.model,
        year=item.year,
        plate=item.plate,
        km=item.km,
        color=item.color,
        acquisition_cost_cents=item.acquisition_value_cents,
        status=lifecycle.STATUS_AVAILABLE,
        origin_stock_item_id=item.id,
        media_blobs=list(item.media_blobs or []),
        notes=item.notes,
    )
    db.session.add(vehicle)
    return vehicle


def refresh_vehicle_from_stock_item(vehicle: Vehicle, item: StockItem) -> None:
    if item.acquisition_value_cents is not None:
        vehicle.acquisition_cost_cents = item.acquisition_value_cents
    if item.km is not None:
        vehicle.km = item.km
    if item.color:
        vehicle.color = item.color
    if item.media_blobs and not vehicle.media_blobs:
        vehicle.media_blobs = list(item.media_blobs)
    vehicle.origin_stock_item_id = item.id


def _settle_as_sale(stock_item_id: int, exit_kind: str, terms: SaleTerms, vehicle_id: int | None) -> dict:
    item = _load_stock_item_locked(stock_item_id)

    if vehicle_id is not None:
        vehicle = lock_for_update(db.session.query(Vehicle).filter_by(id=vehicle_id)).first()
        if vehicle is None:
            raise NotFoundError(f"Vehicle {vehicle_id} not found")
    else:
        vehicle = find_matching_vehicle(item)

    trade_in = sales_service.check_references(terms, vehicle.id if vehicle is not None else None)

    if vehicle is not None:
        lifecycle.ensure_sellable(vehicle)
        previous_cost = vehicle.acquisition_cost_cents
        refresh_vehicle_from_stock_item(vehicle, item)
    else:
        previous_cost = None
        vehicle = vehicle_from_stock_item(item)

    lifecycle.transition(vehicle, lifecycle.status_for_exit(exit_kind))
    sales_service.apply_terms_to_vehicle(vehicle, terms)
    db.session.flush()

    purchase = item.acquisition_value_cents
    if purchase is None:
        purchase = previous_cost

    sale = sales_service.open_sale(
        vehicle,
        terms,
        status=sales_service.SALE_STATUS_FOR_EXIT[exit_kind],
        purchase_price_cents=purchase,
        trade_in=trade_in,
        origin_stock_item_id=item.id,
    )

    db.session.delete(item)
    db.session.flush()
    return {"sale": sale, "vehicle": vehicle}


def _settle_as_transfer(stock_item_id: int, details: dict) -> dict:
    item = _load_stock_item_locked(stock_item_id)

    record = StockTransfer(
        origin_stock_item_id=item.id,
        brand=item.brand,
        model=item.model,
        year=item.year,
        plate=item.plate,
        acquisition_value_cents=item.acquisition_value_cents,
        destination=details.get("transfer_destination"),
        notes=details.get("transfer_notes"),
    )
    db.session.add(record)
    db.session.delete(item)
    db.session.flush()
    return {"transfer_record": record}


def settle_stock_item(stock_item_id: int, exit_kind: str, details: dict | None = None) -> dict:
    """
    Settle a stock item.

    Returns {"sale", "vehicle"} for sale/presale, {"transfer_record"} for
    transfer.

    Raises:
        ValidationError: bad exit kind or request fields, illegal vehicle
            status, non-pending trade-in
        NotFoundError: stock item (or a referenced record) does not exist
        ConflictError: concurrent modification; retry the whole call
        InternalError: persistence failure (rolled back)
    """
    if details is None:
        details = {}
    if not isinstance(details, dict):
        raise ValidationError("Invalid JSON payload")
    if not isinstance(exit_kind, str) or exit_kind not in VALID_EXIT_KINDS:
        raise ValidationError(
            f"exit_kind must be one of: {', '.join(sorted(VALID_EXIT_KINDS))}", field="exit_kind"
        )

    if exit_kind == EXIT_TRANSFER:
        cleaned = parse_transfer_details(details)
        result = run_atomic(lambda: _settle_as_transfer(stock_item_id, cleaned))
        record = result["transfer_record"]
        current_app.logger.info(
            "Stock item %s transferred out (destination=%s, transfer=%s)",
            stock_item_id,
            record.destination,
            record.id,
        )
        return result

    terms, vehicle_id = parse_sale_details(details)
    result = run_atomic(lambda: _settle_as_sale(stock_item_id, exit_kind, terms, vehicle_id))

    sale = result["sale"]
    vehicle = result["vehicle"]
    current_app.logger.info(
        "Stock item %s settled as %s: sale %s, vehicle %s (%s), profit=%s",
        stock_item_id,
        exit_kind,
        sale.id,
        vehicle.id,
        vehicle.status,
        sale.profit_cents,
    )
    return result


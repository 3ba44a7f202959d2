# Overview: Service-layer operations for sales; encapsulates business logic and database work.

"""
Sales Service

WHY: A sale ties a vehicle, a customer and a seller together, carries the
price/profit figures and owns the payment instruments through which it is
paid. Sales are opened either by settling a stock item (settlement_service)
or directly for a vehicle already in the fleet (create_sale below); both go
through open_sale() so the steps are identical.

SALE STATUS:
    in_progress  (pre-sale, vehicle reserved)
    completed    (vehicle sold)

RULES:
1. profit_cents is never stored; it is derived from sale/purchase price.
2. Supplying payment_instruments on update replaces the whole list; omitting
   it (or sending null) leaves the existing instruments untouched.
3. Deleting a sale reverts its vehicle to available (compensating action),
   drops pending receivables and detaches paid ones.
4. All reference checks run before the first write of a workflow.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from flask import current_app

from ..extensions import db
from ..models import Customer, Installment, Sale, TradeIn, User, Vehicle
from ..time_utils import today
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_amounts,
    enforce_rules_installment_plan,
    require_positive_int,
    validate_payload,
)
from . import financial_service
from . import payment_instrument_service as instruments
from . import vehicle_lifecycle_service as lifecycle
from .concurrency import lock_for_update, run_atomic
from .installment_service import validate_cadence
from .payment_instrument_service import InstrumentSpec


SALE_STATUS_IN_PROGRESS = "in_progress"
SALE_STATUS_COMPLETED = "completed"
VALID_SALE_STATUSES = {SALE_STATUS_IN_PROGRESS, SALE_STATUS_COMPLETED}

EXIT_TRANSFER = "transfer"
EXIT_SALE = "sale"
EXIT_PRESALE = "presale"
VALID_EXIT_KINDS = {EXIT_TRANSFER, EXIT_SALE, EXIT_PRESALE}

SALE_STATUS_FOR_EXIT = {
    EXIT_SALE: SALE_STATUS_COMPLETED,
    EXIT_PRESALE: SALE_STATUS_IN_PROGRESS,
}
EXIT_FOR_SALE_STATUS = {status: kind for kind, status in SALE_STATUS_FOR_EXIT.items()}

TRADE_IN_PENDING = "pending"
TRADE_IN_ACCEPTED = "accepted"

_TERM_FIELDS = {
    "customer_id",
    "seller_id",
    "trade_in_id",
    "sale_price_cents",
    "table_value_cents",
    "discount_cents",
    "sale_date",
    "notes",
}

SALE_CREATE_POLICY = ModelValidationPolicy(
    writable_fields=_TERM_FIELDS | {"purchase_price_cents", "status"},
    required_on_create={"customer_id", "seller_id"},
    extra_fields={"vehicle_id", "payment_instruments"},
)

SALE_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "seller_id",
        "sale_price_cents",
        "purchase_price_cents",
        "table_value_cents",
        "discount_cents",
        "sale_date",
        "notes",
        "status",
    },
    extra_fields={"payment_instruments"},
)

PLAN_UPDATE_FIELDS = {
    "financed_amount_cents",
    "installment_count",
    "cadence",
    "installment_amount_cents",
    "first_document_number",
}


# =============================================================================
# SHARED SALE STEPS
# =============================================================================

@dataclass
class SaleTerms:
    """Validated commercial terms of a sale being opened."""
    customer_id: int
    seller_id: int
    trade_in_id: int | None = None
    sale_price_cents: int | None = None
    purchase_price_cents: int | None = None
    table_value_cents: int | None = None
    discount_cents: int | None = None
    sale_date: date | None = None
    notes: str | None = None
    instruments: list[InstrumentSpec] = field(default_factory=list)


def terms_from_patch(patch: dict, instrument_specs: list[InstrumentSpec] | None) -> SaleTerms:
    enforce_rules_amounts(patch)
    return SaleTerms(
        customer_id=patch["customer_id"],
        seller_id=patch["seller_id"],
        trade_in_id=patch.get("trade_in_id"),
        sale_price_cents=patch.get("sale_price_cents"),
        purchase_price_cents=patch.get("purchase_price_cents"),
        table_value_cents=patch.get("table_value_cents"),
        discount_cents=patch.get("discount_cents"),
        sale_date=patch.get("sale_date") or today(),
        notes=patch.get("notes"),
        instruments=instrument_specs or [],
    )


def _get_seller(seller_id: int) -> User:
    seller = db.session.get(User, seller_id)
    if seller is None:
        raise NotFoundError(f"Seller {seller_id} not found")
    if not seller.is_active:
        raise ValidationError(f"Seller {seller_id} is inactive", field="seller_id")
    return seller


def _ensure_no_open_sale(vehicle_id: int) -> None:
    open_sale_id = (
        db.session.query(Sale.id)
        .filter(Sale.vehicle_id == vehicle_id, Sale.status == SALE_STATUS_IN_PROGRESS)
        .order_by(Sale.id)
        .limit(1)
        .scalar()
    )
    if open_sale_id is not None:
        raise lifecycle.LifecycleError(
            f"Vehicle {vehicle_id} is reserved by open sale {open_sale_id}; "
            "complete or delete that sale first"
        )


def check_references(terms: SaleTerms, vehicle_id: int | None = None) -> TradeIn | None:
    """
    Existence/state checks for everything a sale links to. Read-only.

    A vehicle already held by an in-progress sale cannot be sold again.

    Returns the (locked) trade-in when one is referenced.
    """
    if db.session.get(Customer, terms.customer_id) is None:
        raise NotFoundError(f"Customer {terms.customer_id} not found")
    _get_seller(terms.seller_id)

    trade_in = None
    if terms.trade_in_id is not None:
        trade_in = lock_for_update(db.session.query(TradeIn).filter_by(id=terms.trade_in_id)).first()
        if trade_in is None:
            raise NotFoundError(f"Trade-in {terms.trade_in_id} not found")
        if trade_in.status != TRADE_IN_PENDING:
            raise ValidationError(
                f"Trade-in {trade_in.id} is '{trade_in.status}'; only pending trade-ins can settle a sale",
                field="trade_in_id",
            )

    if vehicle_id is not None:
        _ensure_no_open_sale(vehicle_id)
    instruments.check_references(terms.instruments, vehicle_id)
    return trade_in


def apply_terms_to_vehicle(vehicle: Vehicle, terms: SaleTerms) -> None:
    """Caller-supplied prices win over what the vehicle already carries."""
    if terms.sale_price_cents is not None:
        vehicle.sale_price_cents = terms.sale_price_cents
    if terms.table_value_cents is not None:
        vehicle.table_value_cents = terms.table_value_cents
    vehicle.customer_id = terms.customer_id


def open_sale(
    vehicle: Vehicle,
    terms: SaleTerms,
    *,
    status: str,
    purchase_price_cents: int | None,
    trade_in: TradeIn | None = None,
    origin_stock_item_id: int | None = None,
) -> Sale:
    """
    Persist the sale row, accept the trade-in and materialize instruments.

    The vehicle must already be in its post-sale status. Does not commit.
    """
    sale = Sale(
        customer_id=terms.customer_id,
        seller_id=terms.seller_id,
        trade_in_id=terms.trade_in_id,
        vehicle=vehicle,
        sale_price_cents=terms.sale_price_cents,
        purchase_price_cents=purchase_price_cents,
        table_value_cents=terms.table_value_cents,
        discount_cents=terms.discount_cents,
        status=status,
        sale_date=terms.sale_date or today(),
        origin_stock_item_id=origin_stock_item_id,
        notes=terms.notes,
        entry_total_cents=0,
        remaining_total_cents=0,
    )
    db.session.add(sale)
    db.session.flush()

    if trade_in is not None:
        trade_in.status = TRADE_IN_ACCEPTED
        current_app.logger.info("Trade-in %s accepted by sale %s", trade_in.id, sale.id)

    if terms.instruments:
        instruments.materialize(sale, terms.instruments)

    db.session.flush()
    return sale


# =============================================================================
# READS
# =============================================================================

def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found")
    return sale


def list_sales(
    *,
    status: str | None = None,
    seller_id: int | None = None,
    customer_id: int | None = None,
    start: date | None = None,
    end: date | None = None,
) -> list[Sale]:
    query = db.session.query(Sale)
    if status:
        query = query.filter(Sale.status == status)
    if seller_id is not None:
        query = query.filter(Sale.seller_id == seller_id)
    if customer_id is not None:
        query = query.filter(Sale.customer_id == customer_id)
    if start is not None:
        query = query.filter(Sale.sale_date >= start)
    if end is not None:
        query = query.filter(Sale.sale_date <= end)
    return query.order_by(Sale.sale_date.desc(), Sale.id.desc()).all()


def _load_sale_locked(sale_id: int) -> Sale:
    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found")
    return sale


def _load_vehicle_locked(vehicle_id: int) -> Vehicle:
    vehicle = lock_for_update(db.session.query(Vehicle).filter_by(id=vehicle_id)).first()
    if vehicle is None:
        raise NotFoundError(f"Vehicle {vehicle_id} not found")
    return vehicle


# =============================================================================
# CREATE (vehicle already in the fleet)
# =============================================================================

def create_sale(payload: dict) -> Sale:
    """
    Open a sale for an existing fleet vehicle.

    status "completed" (default) sells the vehicle; "in_progress" reserves it.
    purchase_price_cents defaults to the vehicle's acquisition cost.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    if payload.get("vehicle_id") in (None, ""):
        raise ValidationError("Missing required fields: vehicle_id", field="vehicle_id")

    patch = validate_payload(model=Sale, payload=payload, policy=SALE_CREATE_POLICY, partial=False)
    vehicle_id = require_positive_int(patch.pop("vehicle_id"), "vehicle_id")
    specs = instruments.parse_instruments(patch.pop("payment_instruments", None))

    status = patch.pop("status", None) or SALE_STATUS_COMPLETED
    if status not in VALID_SALE_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(sorted(VALID_SALE_STATUSES))}", field="status"
        )
    terms = terms_from_patch(patch, specs)

    def _op():
        vehicle = _load_vehicle_locked(vehicle_id)
        trade_in = check_references(terms, vehicle.id)
        lifecycle.ensure_sellable(vehicle)

        previous_cost = vehicle.acquisition_cost_cents
        lifecycle.transition(vehicle, lifecycle.status_for_exit(EXIT_FOR_SALE_STATUS[status]))
        apply_terms_to_vehicle(vehicle, terms)

        purchase = terms.purchase_price_cents
        if purchase is None:
            purchase = previous_cost

        return open_sale(vehicle, terms, status=status, purchase_price_cents=purchase, trade_in=trade_in)

    sale = run_atomic(_op)
    current_app.logger.info(
        "Sale %s created for vehicle %s (status=%s, profit=%s)",
        sale.id,
        sale.vehicle_id,
        sale.status,
        sale.profit_cents,
    )
    return sale


# =============================================================================
# UPDATE
# =============================================================================

def update_sale(sale_id: int, payload: dict) -> Sale:
    """
    Partially update a sale.

    - sale/purchase price changes re-derive profit; a missing purchase price
      falls back to the sale's current one, then the vehicle's cost
    - status in_progress -> completed sells the reserved vehicle
    - payment_instruments (when present and not null) is a full replace
    """
    patch = validate_payload(model=Sale, payload=payload, policy=SALE_UPDATE_POLICY, partial=True)
    enforce_rules_amounts(patch)

    raw_instruments = patch.pop("payment_instruments", None)
    specs = instruments.parse_instruments(raw_instruments)

    new_status = patch.pop("status", None)
    if new_status is not None and new_status not in VALID_SALE_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(sorted(VALID_SALE_STATUSES))}", field="status"
        )
    if "sale_date" in patch and patch["sale_date"] is None:
        raise ValidationError("sale_date cannot be null", field="sale_date")

    def _op():
        sale = _load_sale_locked(sale_id)
        vehicle = sale.vehicle

        # Checks first: nothing below may fail after a write
        if "seller_id" in patch and patch["seller_id"] is not None:
            _get_seller(patch["seller_id"])
        if specs is not None:
            instruments.check_references(specs, sale.vehicle_id)
        if new_status is not None and new_status != sale.status:
            target = lifecycle.status_for_exit(EXIT_FOR_SALE_STATUS[new_status])
            if not lifecycle.can_transition(vehicle.status or lifecycle.STATUS_AVAILABLE, target):
                raise lifecycle.LifecycleError(
                    f"Cannot move sale {sale.id} from '{sale.status}' to '{new_status}' "
                    f"(vehicle is '{vehicle.status}')"
                )

        if "sale_price_cents" in patch or "purchase_price_cents" in patch:
            if patch.get("purchase_price_cents") is None:
                fallback = sale.purchase_price_cents
                if fallback is None:
                    fallback = vehicle.acquisition_cost_cents
                patch["purchase_price_cents"] = fallback

        for key, value in patch.items():
            setattr(sale, key, value)

        if "sale_price_cents" in patch and patch["sale_price_cents"] is not None:
            vehicle.sale_price_cents = patch["sale_price_cents"]

        if new_status is not None and new_status != sale.status:
            lifecycle.transition(vehicle, lifecycle.status_for_exit(EXIT_FOR_SALE_STATUS[new_status]))
            sale.status = new_status

        if specs is not None:
            instruments.replace_instruments(sale, specs)

        db.session.flush()
        return sale

    sale = run_atomic(_op)
    current_app.logger.info(
        "Sale %s updated (profit=%s, instruments %s)",
        sale.id,
        sale.profit_cents,
        "replaced" if specs is not None else "unchanged",
    )
    return sale


# =============================================================================
# DELETE (compensating action)
# =============================================================================

def delete_sale(sale_id: int) -> None:
    """
    Delete a sale and revert its vehicle to available.

    Instruments and installments go with the sale. Pending receivables are
    deleted; paid ones are kept and detached.
    """
    def _op():
        sale = _load_sale_locked(sale_id)
        vehicle = sale.vehicle

        released = financial_service.release_sale_receivables(sale.id)
        financial_service.detach_paid_receivables(sale.id)

        vehicle_id = None
        if vehicle is not None:
            lifecycle.revert_to_available(vehicle)
            vehicle_id = vehicle.id

        db.session.delete(sale)
        db.session.flush()
        return vehicle_id, released

    vehicle_id, released = run_atomic(_op)
    current_app.logger.info(
        "Sale %s deleted; vehicle %s reverted to available; %d pending receivable(s) dropped",
        sale_id,
        vehicle_id,
        released,
    )


# =============================================================================
# INSTALLMENTS
# =============================================================================

def _load_plan_instrument(sale_id: int, instrument_id: int):
    _load_sale_locked(sale_id)
    instrument = instruments.get_instrument(sale_id, instrument_id)
    if not instrument.has_schedule:
        raise ValidationError(
            f"Payment instrument {instrument_id} ({instrument.kind}) has no installment schedule",
            field="kind",
        )
    return instrument


def edit_installment(sale_id: int, instrument_id: int, index: int, payload: dict) -> Installment:
    """
    Edit the amount and/or document number of one installment.

    Edited values are flagged so regeneration keeps them.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = set(payload) - {"amount_cents", "document_number"}
    if unknown:
        name = sorted(unknown)[0]
        raise ValidationError(f"Field not allowed: {name}", field=name)
    if not payload:
        raise ValidationError("Nothing to update: send amount_cents and/or document_number")

    amount = payload.get("amount_cents")
    if "amount_cents" in payload:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ValidationError("amount_cents must be an integer", field="amount_cents")
        enforce_rules_amounts({"amount_cents": amount})

    def _op():
        instrument = _load_plan_instrument(sale_id, instrument_id)
        row = next((i for i in instrument.installments if i.index == index), None)
        if row is None:
            raise NotFoundError(f"Installment {index} not found on payment instrument {instrument_id}")

        if "amount_cents" in payload:
            row.amount_cents = amount
            row.amount_edited = True
        if "document_number" in payload:
            document = payload["document_number"]
            row.document_number = str(document).strip() if document is not None else None
            row.document_edited = True

        db.session.flush()
        return row

    row = run_atomic(_op)
    current_app.logger.info(
        "Installment %s of instrument %s edited (sale %s)", index, instrument_id, sale_id
    )
    return row


def regenerate_installments(sale_id: int, instrument_id: int, payload: dict | None = None):
    """
    Regenerate an instrument's schedule, optionally with new plan fields.

    Edited installments are kept unless discard_edits is true.
    """
    payload = dict(payload or {})
    discard_edits = payload.pop("discard_edits", False)
    if not isinstance(discard_edits, bool):
        raise ValidationError("discard_edits must be a boolean", field="discard_edits")

    unknown = set(payload) - PLAN_UPDATE_FIELDS
    if unknown:
        name = sorted(unknown)[0]
        raise ValidationError(f"Field not allowed: {name}", field=name)

    def _op():
        instrument = _load_plan_instrument(sale_id, instrument_id)
        policy = ModelValidationPolicy(writable_fields=PLAN_UPDATE_FIELDS)
        patch = validate_payload(model=type(instrument), payload=payload, policy=policy, partial=True)
        enforce_rules_installment_plan(patch)
        if "cadence" in patch:
            patch["cadence"] = validate_cadence(patch["cadence"])

        for key, value in patch.items():
            setattr(instrument, key, value)

        instruments.sync_schedule(instrument, discard_edits=discard_edits)
        return instrument

    try:
        instrument = run_atomic(_op)
    except ConflictError:
        current_app.logger.warning("Installment regeneration conflict on instrument %s", instrument_id)
        raise

    current_app.logger.info(
        "Instrument %s schedule regenerated: %d installment(s), discard_edits=%s",
        instrument.id,
        len(instrument.installments),
        discard_edits,
    )
    return instrument

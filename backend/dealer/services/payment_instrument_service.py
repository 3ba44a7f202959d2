# Overview: Service-layer operations for sale payment instruments and their installment schedules.

"""
Payment Instrument Service

WHY: A sale is paid through one or more instruments (cash, cards, financing,
a trade vehicle, ...). Each kind carries its own fields, and the plan kinds
expand into dated installments.

DESIGN PRINCIPLES:
- Parse everything first, mutate later: parse_instruments() validates the
  whole list without touching the session, so a bad instrument aborts the
  workflow before any write.
- Kind is a tagged variant: fields that do not belong to the declared kind
  are rejected instead of silently stored.
- Replacing the list is a full replace; pending receivables follow the
  instruments they were emitted for.
- Nothing here commits; callers wrap the work in run_atomic().
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from ..extensions import db
from ..models import (
    Sale,
    Vehicle,
    PaymentInstrument,
    Installment,
    CashPayment,
    InstantTransferPayment,
    DebitCardPayment,
    CreditCardPayment,
    CheckPayment,
    BankFinancingPayment,
    OwnFinancingPayment,
    PromissoryNotePayment,
    ConsortiumPayment,
    TradeVehiclePayment,
)
from ..time_utils import today
from ..validation import (
    ValidationError,
    NotFoundError,
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_amounts,
    enforce_rules_installment_plan,
)
from . import financial_service
from .installment_service import (
    InstallmentEdit,
    default_installment_amount,
    generate_schedule,
    validate_cadence,
)


# =============================================================================
# KIND REGISTRY
# =============================================================================

KIND_CASH = "cash"
KIND_INSTANT_TRANSFER = "instant_transfer"
KIND_DEBIT_CARD = "debit_card"
KIND_CREDIT_CARD = "credit_card"
KIND_CHECK = "check"
KIND_BANK_FINANCING = "bank_financing"
KIND_OWN_FINANCING = "own_financing"
KIND_PROMISSORY_NOTE = "promissory_note"
KIND_CONSORTIUM = "consortium"
KIND_TRADE_VEHICLE = "trade_vehicle"

INSTRUMENT_CLASSES: dict[str, type[PaymentInstrument]] = {
    KIND_CASH: CashPayment,
    KIND_INSTANT_TRANSFER: InstantTransferPayment,
    KIND_DEBIT_CARD: DebitCardPayment,
    KIND_CREDIT_CARD: CreditCardPayment,
    KIND_CHECK: CheckPayment,
    KIND_BANK_FINANCING: BankFinancingPayment,
    KIND_OWN_FINANCING: OwnFinancingPayment,
    KIND_PROMISSORY_NOTE: PromissoryNotePayment,
    KIND_CONSORTIUM: ConsortiumPayment,
    KIND_TRADE_VEHICLE: TradeVehiclePayment,
}

VALID_KINDS = set(INSTRUMENT_CLASSES)

COMMON_FIELDS = {"payment_date", "amount_cents", "description", "document_number"}

PLAN_FIELDS = {
    "financed_amount_cents",
    "installment_count",
    "cadence",
    "installment_amount_cents",
    "first_document_number",
}

_VARIANT_FIELDS: dict[str, set[str]] = {
    KIND_CASH: set(),
    KIND_INSTANT_TRANSFER: {"authorization_code"},
    KIND_DEBIT_CARD: {"authorization_code"},
    KIND_CREDIT_CARD: {"authorization_code"} | PLAN_FIELDS,
    KIND_CHECK: {"bank_name", "branch", "account", "check_number", "payable_to"},
    KIND_BANK_FINANCING: PLAN_FIELDS | {
        "bank_name",
        "return_type",
        "return_cents",
        "tac_cents",
        "plus_cents",
        "tif_cents",
        "intermediation_fee_cents",
        "store_receipt",
    },
    KIND_OWN_FINANCING: PLAN_FIELDS | {"guarantor", "additional_guarantor", "collection_method"},
    KIND_PROMISSORY_NOTE: PLAN_FIELDS | {"guarantor"},
    KIND_CONSORTIUM: {"consortium_name"},
    KIND_TRADE_VEHICLE: {"trade_vehicle_id"},
}

POLICIES: dict[str, ModelValidationPolicy] = {
    kind: ModelValidationPolicy(
        writable_fields=COMMON_FIELDS | fields,
        required_on_create={"amount_cents", "payment_date"},
        extra_fields={"installments"} if INSTRUMENT_CLASSES[kind].has_schedule else set(),
    )
    for kind, fields in _VARIANT_FIELDS.items()
}


def is_entry_kind(kind: str) -> bool:
    return INSTRUMENT_CLASSES[kind].is_entry


def has_schedule(kind: str) -> bool:
    return INSTRUMENT_CLASSES[kind].has_schedule


# =============================================================================
# PARSING (no session access)
# =============================================================================

@dataclass
class InstrumentSpec:
    """A validated payment instrument, ready to be materialized."""
    kind: str
    fields: dict
    edits: list[InstallmentEdit] = field(default_factory=list)

    @property
    def model(self) -> type[PaymentInstrument]:
        return INSTRUMENT_CLASSES[self.kind]


def _strict_int(value, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field_name} must be an integer", field=field_name)
    return value


def parse_installment_edits(raw, *, count: int, prefix: str = "installments") -> list[InstallmentEdit]:
    """Validate caller edits to individual installments of one plan."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError(f"{prefix} must be a list", field=prefix)

    edits: list[InstallmentEdit] = []
    seen: set[int] = set()
    for pos, item in enumerate(raw):
        where = f"{prefix}[{pos}]"
        if not isinstance(item, dict):
            raise ValidationError(f"{where} must be an object", field=where)
        unknown = set(item) - {"index", "amount_cents", "document_number"}
        if unknown:
            raise ValidationError(f"Field not allowed: {sorted(unknown)[0]}", field=f"{where}.{sorted(unknown)[0]}")

        index = _strict_int(item.get("index"), f"{where}.index")
        if index < 0 or index >= count:
            raise ValidationError(
                f"{where}.index must be between 0 and {count - 1}", field=f"{where}.index"
            )
        if index in seen:
            raise ValidationError(f"Duplicate installment index {index}", field=f"{where}.index")
        seen.add(index)

        amount = item.get("amount_cents")
        if amount is not None:
            amount = _strict_int(amount, f"{where}.amount_cents")
            enforce_rules_amounts({"amount_cents": amount})

        document = item.get("document_number")
        if document is not None:
            document = str(document).strip() or None

        edits.append(InstallmentEdit(index=index, amount_cents=amount, document_number=document))
    return edits


def parse_instrument(raw, position: int = 0) -> InstrumentSpec:
    where = f"payment_instruments[{position}]"
    if not isinstance(raw, dict):
        raise ValidationError(f"{where} must be an object", field=where)

    payload = dict(raw)
    kind = payload.pop("kind", None)
    if not isinstance(kind, str) or kind not in VALID_KINDS:
        raise ValidationError(
            f"{where}.kind must be one of: {', '.join(sorted(VALID_KINDS))}", field=f"{where}.kind"
        )

    # Wire name is "date"; the column is payment_date
    if "date" in payload:
        payload["payment_date"] = payload.pop("date")
    if payload.get("payment_date") in (None, ""):
        payload["payment_date"] = today()

    try:
        patch = validate_payload(
            model=INSTRUMENT_CLASSES[kind],
            payload=payload,
            policy=POLICIES[kind],
            partial=False,
        )
        enforce_rules_amounts(patch)
    except ValidationError as e:
        raise ValidationError(f"{where}: {e}", field=f"{where}.{e.field}" if e.field else where)

    raw_edits = patch.pop("installments", None)
    edits: list[InstallmentEdit] = []

    if has_schedule(kind):
        try:
            enforce_rules_installment_plan(patch)
            patch["cadence"] = validate_cadence(patch.get("cadence"))
        except ValidationError as e:
            raise ValidationError(f"{where}: {e}", field=f"{where}.{e.field}" if e.field else where)
        edits = parse_installment_edits(
            raw_edits,
            count=patch.get("installment_count") or 0,
            prefix=f"{where}.installments",
        )

    return InstrumentSpec(kind=kind, fields=patch, edits=edits)


def parse_instruments(raw_list) -> list[InstrumentSpec] | None:
    """
    Validate a full payment instrument list.

    None means "no list supplied" and is returned as None so update callers
    can leave existing instruments untouched.
    """
    if raw_list is None:
        return None
    if not isinstance(raw_list, list):
        raise ValidationError("payment_instruments must be a list", field="payment_instruments")
    return [parse_instrument(raw, pos) for pos, raw in enumerate(raw_list)]


# =============================================================================
# SCHEDULES
# =============================================================================

def sync_schedule(instrument: PaymentInstrument, existing=None, *, discard_edits: bool = False) -> list[Installment]:
    """
    (Re)generate the installment rows of a plan instrument in place.

    existing: edits to merge (defaults to the instrument's current rows).
    discard_edits=True resets every installment to its computed values.
    Rows are updated by index so the (instrument, index) key never collides.
    """
    if not instrument.has_schedule:
        return []

    count = instrument.installment_count or 0
    default_amount = default_installment_amount(
        count=count,
        financed_amount_cents=instrument.financed_amount_cents,
        installment_amount_cents=instrument.installment_amount_cents,
        fallback_amount_cents=instrument.amount_cents,
    )
    if discard_edits:
        merge_from = ()
    elif existing is None:
        merge_from = list(instrument.installments)
    else:
        merge_from = existing

    schedule = generate_schedule(
        instrument.payment_date,
        count,
        instrument.cadence,
        default_amount,
        existing=merge_from,
        first_document_number=instrument.first_document_number,
    )

    rows = {row.index: row for row in instrument.installments}
    for row in [r for idx, r in rows.items() if idx >= count]:
        instrument.installments.remove(row)

    for item in schedule:
        row = rows.get(item.index)
        if row is None:
            row = Installment(index=item.index)
            instrument.installments.append(row)
        row.due_date = item.due_date
        row.amount_cents = item.amount_cents
        row.document_number = item.document_number
        row.amount_edited = item.amount_edited
        row.document_edited = item.document_edited

    db.session.flush()
    return list(instrument.installments)


# =============================================================================
# MATERIALIZATION
# =============================================================================

def _ensure_trade_vehicle(spec: InstrumentSpec, sale_vehicle_id: int | None) -> None:
    vehicle_id = spec.fields.get("trade_vehicle_id")
    if vehicle_id is None:
        return
    if db.session.get(Vehicle, vehicle_id) is None:
        raise NotFoundError(f"Trade vehicle {vehicle_id} not found")
    if sale_vehicle_id is not None and vehicle_id == sale_vehicle_id:
        raise ValidationError(
            "trade_vehicle_id cannot be the vehicle being sold", field="trade_vehicle_id"
        )


def check_references(specs: list[InstrumentSpec] | None, sale_vehicle_id: int | None = None) -> None:
    """Read-only existence checks for ids carried by instruments."""
    for spec in specs or []:
        if spec.kind == KIND_TRADE_VEHICLE:
            _ensure_trade_vehicle(spec, sale_vehicle_id)


def summarize(instruments: list[PaymentInstrument]) -> tuple[int, int, int | None]:
    """
    Split instrument amounts into (entry_total, remaining_total, financed).

    Cash-equivalent kinds count as entry; everything else as remaining.
    financed mirrors the amount of the bank financing instrument when there
    is exactly one.
    """
    entry = sum(p.amount_cents for p in instruments if p.is_entry)
    remaining = sum(p.amount_cents for p in instruments if not p.is_entry)
    bank = [p for p in instruments if p.kind == KIND_BANK_FINANCING]
    financed = bank[0].amount_cents if len(bank) == 1 else None
    return entry, remaining, financed


def materialize(sale: Sale, specs: list[InstrumentSpec]) -> list[PaymentInstrument]:
    """
    Persist instruments for a sale, expand their schedules, refresh the
    sale totals and emit one receivable per instrument.
    """
    created: list[PaymentInstrument] = []
    for spec in specs:
        instrument = spec.model(**spec.fields)
        sale.payment_instruments.append(instrument)
        created.append(instrument)
    db.session.flush()

    for spec, instrument in zip(specs, created):
        if instrument.has_schedule:
            sync_schedule(instrument, existing=spec.edits)

    entry, remaining, financed = summarize(list(sale.payment_instruments))
    sale.entry_total_cents = entry
    sale.remaining_total_cents = remaining
    sale.financed_amount_cents = financed

    for instrument in created:
        financial_service.emit_receivable(sale, instrument)

    current_app.logger.info(
        "Sale %s: %d payment instrument(s), entry=%d remaining=%d financed=%s",
        sale.id,
        len(created),
        entry,
        remaining,
        financed,
    )
    return created


def replace_instruments(sale: Sale, specs: list[InstrumentSpec]) -> list[PaymentInstrument]:
    """
    Full replace: drop every instrument of the sale (installments cascade)
    and its pending receivables, then materialize the new list.
    """
    financial_service.release_sale_receivables(sale.id)
    sale.payment_instruments.clear()
    db.session.flush()
    return materialize(sale, specs)


def get_instrument(sale_id: int, instrument_id: int) -> PaymentInstrument:
    instrument = db.session.get(PaymentInstrument, instrument_id)
    if instrument is None or instrument.sale_id != sale_id:
        raise NotFoundError(f"Payment instrument {instrument_id} not found on sale {sale_id}")
    return instrument

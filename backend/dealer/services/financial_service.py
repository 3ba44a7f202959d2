# Overview: Service-layer operations for financial obligations handed to the ledger.

"""
Financial obligation invariants (authoritative)

- One pending receivable per payment instrument of a sale, due on the
  instrument date, for the instrument amount.
- One pending payable per stock acquisition with a positive cost.
- Rows are written inside the same DB transaction as the domain event that
  produces them; nothing here commits.
- Paid rows are never deleted by sale workflows.
"""

from __future__ import annotations

from datetime import date

from ..extensions import db
from ..models import FinancialTransaction, PaymentInstrument, Sale, StockItem
from ..time_utils import today


KIND_RECEIVABLE = "receivable"
KIND_PAYABLE = "payable"
VALID_KINDS = {KIND_RECEIVABLE, KIND_PAYABLE}

STATUS_PENDING = "pending"
STATUS_PAID = "paid"
VALID_STATUSES = {STATUS_PENDING, STATUS_PAID}

_KIND_LABELS = {
    "cash": "Cash",
    "instant_transfer": "Instant transfer",
    "debit_card": "Debit card",
    "credit_card": "Credit card",
    "check": "Check",
    "bank_financing": "Bank financing",
    "own_financing": "Own financing",
    "promissory_note": "Promissory note",
    "consortium": "Consortium",
    "trade_vehicle": "Trade vehicle",
}


def kind_label(kind: str) -> str:
    return _KIND_LABELS.get(kind, kind)


def emit_receivable(sale: Sale, instrument: PaymentInstrument) -> FinancialTransaction:
    """Record the amount owed to the dealer through one payment instrument."""
    vehicle = sale.vehicle
    description = f"Sale #{sale.id} - {kind_label(instrument.kind)}"
    if vehicle is not None:
        description = f"{description} - {vehicle.label}"

    txn = FinancialTransaction(
        kind=KIND_RECEIVABLE,
        description=description[:255],
        amount_cents=instrument.amount_cents,
        due_date=instrument.payment_date,
        status=STATUS_PENDING,
        sale_id=sale.id,
        payment_instrument_id=instrument.id,
    )
    db.session.add(txn)
    db.session.flush()
    return txn


def emit_stock_acquisition_payable(stock_item: StockItem, due_date: date | None = None) -> FinancialTransaction | None:
    """Record what the dealer owes for a stock acquisition; no-op without a cost."""
    cost = stock_item.acquisition_value_cents
    if not cost or cost <= 0:
        return None

    txn = FinancialTransaction(
        kind=KIND_PAYABLE,
        description=f"Vehicle purchase: {stock_item.label}"[:255],
        amount_cents=cost,
        due_date=due_date or today(),
        status=STATUS_PENDING,
        stock_item_id=stock_item.id,
    )
    db.session.add(txn)
    db.session.flush()
    return txn


def release_sale_receivables(sale_id: int) -> int:
    """
    Drop the still-pending receivables of a sale.

    Paid receivables stay (money already moved) but are detached from the
    sale when the sale itself goes away; see detach_paid_receivables().
    Returns how many rows were deleted.
    """
    deleted = db.session.query(FinancialTransaction).filter(
        FinancialTransaction.sale_id == sale_id,
        FinancialTransaction.kind == KIND_RECEIVABLE,
        FinancialTransaction.status == STATUS_PENDING,
    ).delete(synchronize_session="fetch")
    return int(deleted or 0)


def detach_paid_receivables(sale_id: int) -> None:
    db.session.query(FinancialTransaction).filter(
        FinancialTransaction.sale_id == sale_id,
    ).update({FinancialTransaction.sale_id: None}, synchronize_session="fetch")


def list_financial_transactions(
    *,
    kind: str | None = None,
    status: str | None = None,
    sale_id: int | None = None,
    due_from: date | None = None,
    due_to: date | None = None,
) -> list[FinancialTransaction]:
    query = db.session.query(FinancialTransaction)
    if kind:
        query = query.filter(FinancialTransaction.kind == kind)
    if status:
        query = query.filter(FinancialTransaction.status == status)
    if sale_id is not None:
        query = query.filter(FinancialTransaction.sale_id == sale_id)
    if due_from is not None:
        query = query.filter(FinancialTransaction.due_date >= due_from)
    if due_to is not None:
        query = query.filter(FinancialTransaction.due_date <= due_to)
    return query.order_by(FinancialTransaction.due_date.desc(), FinancialTransaction.id.desc()).all()

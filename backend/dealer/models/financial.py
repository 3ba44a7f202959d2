from __future__ import annotations

from ..extensions import db
from dealer.time_utils import to_utc_z, to_iso_date


class FinancialTransaction(db.Model):
    """
    Receivable/payable obligation handed to the financial ledger.

    KINDS:
    - receivable: one per payment instrument of a sale (due on the instrument date)
    - payable: one per stock acquisition with a cost

    payment_instrument_id and stock_item_id are soft references: instruments are
    replaced wholesale on sale update and stock items are deleted on exit, while
    paid obligations outlive both.
    """
    __tablename__ = "financial_transactions"
    __table_args__ = (
        db.Index("ix_financial_transactions_kind_status_due", "kind", "status", "due_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # receivable, payable
    kind = db.Column(db.String(16), nullable=False)
    description = db.Column(db.String(255), nullable=False)
    amount_cents = db.Column(db.BigInteger, nullable=False)
    due_date = db.Column(db.Date, nullable=False)

    # pending, paid
    status = db.Column(db.String(16), nullable=False, default="pending")
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    payment_instrument_id = db.Column(db.Integer, nullable=True, index=True)
    stock_item_id = db.Column(db.Integer, nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", backref=db.backref("financial_transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "due_date": to_iso_date(self.due_date),
            "status": self.status,
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "sale_id": self.sale_id,
            "payment_instrument_id": self.payment_instrument_id,
            "stock_item_id": self.stock_item_id,
            "created_at": to_utc_z(self.created_at),
        }

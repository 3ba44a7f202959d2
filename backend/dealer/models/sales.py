from __future__ import annotations

from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import declared_attr

from ..extensions import db
from dealer.time_utils import to_utc_z, to_iso_date


class Sale(db.Model):
    """
    Sale of a vehicle to a customer.

    STATUS: in_progress (pre-sale, vehicle reserved) or completed (vehicle sold).

    profit_cents is derived from sale_price_cents and purchase_price_cents and
    is never stored, so it cannot drift from the prices it depends on.
    entry_total_cents / remaining_total_cents / financed_amount_cents are
    rewritten every time the payment instrument list is replaced.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status_date", "status", "sale_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    vehicle_id = db.Column(db.Integer, db.ForeignKey("vehicles.id"), nullable=False, index=True)
    trade_in_id = db.Column(db.Integer, db.ForeignKey("trade_ins.id"), nullable=True, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Money in cents
    sale_price_cents = db.Column(db.BigInteger, nullable=True)
    purchase_price_cents = db.Column(db.BigInteger, nullable=True)
    table_value_cents = db.Column(db.BigInteger, nullable=True)
    discount_cents = db.Column(db.BigInteger, nullable=True)

    # Payment breakdown (derived from payment instruments)
    entry_total_cents = db.Column(db.BigInteger, nullable=False, default=0)
    remaining_total_cents = db.Column(db.BigInteger, nullable=False, default=0)
    financed_amount_cents = db.Column(db.BigInteger, nullable=True)

    # in_progress, completed
    status = db.Column(db.String(16), nullable=False, default="in_progress", index=True)
    sale_date = db.Column(db.Date, nullable=False)

    origin_stock_item_id = db.Column(db.Integer, nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    vehicle = db.relationship("Vehicle", backref=db.backref("sales", lazy=True))
    trade_in = db.relationship("TradeIn")
    seller = db.relationship("User", backref=db.backref("sales", lazy=True))
    payment_instruments = db.relationship(
        "PaymentInstrument",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="PaymentInstrument.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @hybrid_property
    def profit_cents(self):
        if self.sale_price_cents is None or self.purchase_price_cents is None:
            return None
        return self.sale_price_cents - self.purchase_price_cents

    @profit_cents.inplace.expression
    @classmethod
    def _profit_cents_expression(cls):
        return db.case(
            (
                db.and_(cls.sale_price_cents.isnot(None), cls.purchase_price_cents.isnot(None)),
                cls.sale_price_cents - cls.purchase_price_cents,
            ),
            else_=None,
        )

    def to_dict(self, include_instruments: bool = True) -> dict:
        data = {
            "id": self.id,
            "customer_id": self.customer_id,
            "vehicle_id": self.vehicle_id,
            "trade_in_id": self.trade_in_id,
            "seller_id": self.seller_id,
            "sale_price_cents": self.sale_price_cents,
            "purchase_price_cents": self.purchase_price_cents,
            "profit_cents": self.profit_cents,
            "table_value_cents": self.table_value_cents,
            "discount_cents": self.discount_cents,
            "entry_total_cents": self.entry_total_cents,
            "remaining_total_cents": self.remaining_total_cents,
            "financed_amount_cents": self.financed_amount_cents,
            "status": self.status,
            "sale_date": to_iso_date(self.sale_date),
            "origin_stock_item_id": self.origin_stock_item_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_instruments:
            data["payment_instruments"] = [p.to_dict() for p in self.payment_instruments]
        return data


class PaymentInstrument(db.Model):
    """
    One payment method attached to a sale.

    Tagged variant: `kind` is the discriminator of a single-table inheritance
    hierarchy. Each subclass maps only the columns meaningful for its kind, so
    e.g. a CashPayment has no installment plan and a CheckPayment has no
    guarantor. Columns shared by several variants come from mixins that reuse
    the column already on the table.
    """
    __tablename__ = "payment_instruments"
    __table_args__ = (
        db.Index("ix_payment_instruments_sale_kind", "sale_id", "kind"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)

    kind = db.Column(db.String(32), nullable=False)
    payment_date = db.Column(db.Date, nullable=False)
    amount_cents = db.Column(db.BigInteger, nullable=False)
    description = db.Column(db.String(255), nullable=True)
    document_number = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    sale = db.relationship("Sale", back_populates="payment_instruments")
    installments = db.relationship(
        "Installment",
        back_populates="payment_instrument",
        cascade="all, delete-orphan",
        order_by="Installment.index",
    )

    __mapper_args__ = {
        "polymorphic_on": kind,
        "version_id_col": version_id,
    }

    # Cash-equivalent kinds count toward the sale's entry total
    is_entry = False
    # Plan variants expand into an installment schedule
    has_schedule = False

    def _variant_fields(self) -> dict:
        return {}

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "sale_id": self.sale_id,
            "kind": self.kind,
            "date": to_iso_date(self.payment_date),
            "amount_cents": self.amount_cents,
            "description": self.description,
            "document_number": self.document_number,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
        data.update(self._variant_fields())
        return data


def _shared_column(name, type_):
    # Single-table variants share one physical column; the first variant to map it adds it.
    return PaymentInstrument.__table__.c.get(name, db.Column(name, type_, nullable=True))


class AuthorizationMixin:
    @declared_attr
    def authorization_code(cls):
        return _shared_column("authorization_code", db.String(64))


class BankAccountMixin:
    @declared_attr
    def bank_name(cls):
        return _shared_column("bank_name", db.String(128))


class GuarantorMixin:
    @declared_attr
    def guarantor(cls):
        return _shared_column("guarantor", db.String(255))


class InstallmentPlanMixin:
    """Fields of a payment that is repaid on a dated installment schedule."""

    @declared_attr
    def financed_amount_cents(cls):
        return _shared_column("financed_amount_cents", db.BigInteger)

    @declared_attr
    def installment_count(cls):
        return _shared_column("installment_count", db.Integer)

    # monthly, biweekly
    @declared_attr
    def cadence(cls):
        return _shared_column("cadence", db.String(16))

    @declared_attr
    def installment_amount_cents(cls):
        return _shared_column("installment_amount_cents", db.BigInteger)

    @declared_attr
    def first_document_number(cls):
        return _shared_column("first_document_number", db.String(64))

    has_schedule = True

    def _plan_fields(self) -> dict:
        return {
            "financed_amount_cents": self.financed_amount_cents,
            "installment_count": self.installment_count,
            "cadence": self.cadence,
            "installment_amount_cents": self.installment_amount_cents,
            "first_document_number": self.first_document_number,
            "installments": [i.to_dict() for i in self.installments],
        }


class CashPayment(PaymentInstrument):
    __mapper_args__ = {"polymorphic_identity": "cash"}
    is_entry = True


class InstantTransferPayment(AuthorizationMixin, PaymentInstrument):
    __mapper_args__ = {"polymorphic_identity": "instant_transfer"}
    is_entry = True

    def _variant_fields(self) -> dict:
        return {"authorization_code": self.authorization_code}


class DebitCardPayment(AuthorizationMixin, PaymentInstrument):
    __mapper_args__ = {"polymorphic_identity": "debit_card"}

    def _variant_fields(self) -> dict:
        return {"authorization_code": self.authorization_code}


class CreditCardPayment(AuthorizationMixin, InstallmentPlanMixin, PaymentInstrument):
    __mapper_args__ = {"polymorphic_identity": "credit_card"}

    def _variant_fields(self) -> dict:
        data = {"authorization_code": self.authorization_code}
        data.update(self._plan_fields())
        return data


class CheckPayment(BankAccountMixin, PaymentInstrument):
    __mapper_args__ = {"polymorphic_identity": "check"}

    branch = db.Column(db.String(16), nullable=True)
    account = db.Column(db.String(32), nullable=True)
    check_number = db.Column(db.String(32), nullable=True)
    payable_to = db.Column(db.String(255), nullable=True)

    def _variant_fields(self) -> dict:
        return {
            "bank_name": self.bank_name,
            "branch": self.branch,
            "account": self.account,
            "check_number": self.check_number,
            "payable_to": self.payable_to,
        }


class BankFinancingPayment(BankAccountMixin, InstallmentPlanMixin, PaymentInstrument):
    """Financing granted by a bank; the dealer receives the financed amount."""
    __mapper_args__ = {"polymorphic_identity": "bank_financing"}

    return_type = db.Column(db.String(32), nullable=True)
    return_cents = db.Column(db.BigInteger, nullable=True)
    tac_cents = db.Column(db.BigInteger, nullable=True)
    plus_cents = db.Column(db.BigInteger, nullable=True)
    tif_cents = db.Column(db.BigInteger, nullable=True)
    intermediation_fee_cents = db.Column(db.BigInteger, nullable=True)
    store_receipt = db.Column(db.String(128), nullable=True)

    def _variant_fields(self) -> dict:
        data = {
            "bank_name": self.bank_name,
            "return_type": self.return_type,
            "return_cents": self.return_cents,
            "tac_cents": self.tac_cents,
            "plus_cents": self.plus_cents,
            "tif_cents": self.tif_cents,
            "intermediation_fee_cents": self.intermediation_fee_cents,
            "store_receipt": self.store_receipt,
        }
        data.update(self._plan_fields())
        return data


class OwnFinancingPayment(GuarantorMixin, InstallmentPlanMixin, PaymentInstrument):
    """Financing carried by the dealer itself."""
    __mapper_args__ = {"polymorphic_identity": "own_financing"}

    additional_guarantor = db.Column(db.String(255), nullable=True)
    collection_method = db.Column(db.String(64), nullable=True)

    def _variant_fields(self) -> dict:
        data = {
            "guarantor": self.guarantor,
            "additional_guarantor": self.additional_guarantor,
            "collection_method": self.collection_method,
        }
        data.update(self._plan_fields())
        return data


class PromissoryNotePayment(GuarantorMixin, InstallmentPlanMixin, PaymentInstrument):
    __mapper_args__ = {"polymorphic_identity": "promissory_note"}

    def _variant_fields(self) -> dict:
        data = {"guarantor": self.guarantor}
        data.update(self._plan_fields())
        return data


class ConsortiumPayment(PaymentInstrument):
    __mapper_args__ = {"polymorphic_identity": "consortium"}

    consortium_name = db.Column(db.String(128), nullable=True)

    def _variant_fields(self) -> dict:
        return {"consortium_name": self.consortium_name}


class TradeVehiclePayment(PaymentInstrument):
    """A vehicle from the fleet handed over as part of the payment."""
    __mapper_args__ = {"polymorphic_identity": "trade_vehicle"}

    trade_vehicle_id = db.Column(db.Integer, db.ForeignKey("vehicles.id"), nullable=True)

    def _variant_fields(self) -> dict:
        return {"trade_vehicle_id": self.trade_vehicle_id}


class Installment(db.Model):
    """
    One dated repayment unit of a scheduled payment instrument.

    amount_edited / document_edited mark values set by a person; schedule
    regeneration keeps them instead of recomputing.
    """
    __tablename__ = "installments"
    __table_args__ = (
        db.UniqueConstraint("payment_instrument_id", "installment_index", name="uq_installments_instrument_index"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    payment_instrument_id = db.Column(
        db.Integer,
        db.ForeignKey("payment_instruments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    index = db.Column("installment_index", db.Integer, nullable=False)
    due_date = db.Column(db.Date, nullable=False)
    amount_cents = db.Column(db.BigInteger, nullable=False)
    document_number = db.Column(db.String(64), nullable=True)

    amount_edited = db.Column(db.Boolean, nullable=False, default=False)
    document_edited = db.Column(db.Boolean, nullable=False, default=False)

    payment_instrument = db.relationship("PaymentInstrument", back_populates="installments")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "payment_instrument_id": self.payment_instrument_id,
            "index": self.index,
            "due_date": to_iso_date(self.due_date),
            "amount_cents": self.amount_cents,
            "document_number": self.document_number,
            "amount_edited": self.amount_edited,
            "document_edited": self.document_edited,
        }


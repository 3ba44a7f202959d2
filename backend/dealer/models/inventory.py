from __future__ import annotations

from ..extensions import db
from dealer.time_utils import to_utc_z


class StockItem(db.Model):
    """
    Pending inventory record awaiting sale or transfer.

    WHY: Intake happens before a vehicle is tied to a customer/sale lifecycle.
    A stock item is consumed exactly once by a successful settlement (converted
    to a Vehicle + Sale, or transferred out) and is deleted at that point.

    total_encoded_bytes is the estimated decoded size of media_blobs; the sum
    over all live rows is bounded by the storage budget (see quota_service).
    """
    __tablename__ = "stock_items"
    __table_args__ = (
        db.Index("ix_stock_items_brand_model", "brand", "model"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    brand = db.Column(db.String(64), nullable=False)
    model = db.Column(db.String(128), nullable=False)
    year = db.Column(db.Integer, nullable=False)
    plate = db.Column(db.String(16), nullable=True)
    km = db.Column(db.Integer, nullable=True)
    color = db.Column(db.String(32), nullable=True)

    # Money in cents
    acquisition_value_cents = db.Column(db.BigInteger, nullable=True)
    promotion_value_cents = db.Column(db.BigInteger, nullable=True)
    discount_cents = db.Column(db.BigInteger, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)

    # Encoded media (data URIs or bare base64)
    media_blobs = db.Column(db.JSON, nullable=False, default=list)
    total_encoded_bytes = db.Column(db.BigInteger, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<StockItem id={self.id} {self.brand} {self.model} {self.year} plate={self.plate!r}>"

    @property
    def label(self) -> str:
        text = f"{self.brand} {self.model} {self.year}"
        return f"{text} - {self.plate}" if self.plate else text

    def to_dict(self, include_media: bool = True) -> dict:
        data = {
            "id": self.id,
            "brand": self.brand,
            "model": self.model,
            "year": self.year,
            "plate": self.plate,
            "km": self.km,
            "color": self.color,
            "acquisition_value_cents": self.acquisition_value_cents,
            "promotion_value_cents": self.promotion_value_cents,
            "discount_cents": self.discount_cents,
            "notes": self.notes,
            "media_count": len(self.media_blobs or []),
            "total_encoded_bytes": self.total_encoded_bytes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_media:
            data["media_blobs"] = list(self.media_blobs or [])
        return data


class Vehicle(db.Model):
    """
    Vehicle tied to the customer/sale lifecycle.

    STATUS: available -> reserved -> sold, with compensating reverts to
    available (see vehicle_lifecycle_service). Status is only changed through
    that service.

    origin_stock_item_id keeps the explicit StockItem -> Vehicle linkage so a
    later settlement of the same physical car does not depend on attribute
    matching alone.
    """
    __tablename__ = "vehicles"
    __table_args__ = (
        db.Index("ix_vehicles_identity", "brand", "model", "year", "plate"),
        db.Index("ix_vehicles_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    brand = db.Column(db.String(64), nullable=False)
    model = db.Column(db.String(128), nullable=False)
    year = db.Column(db.Integer, nullable=False)
    plate = db.Column(db.String(16), nullable=True)
    km = db.Column(db.Integer, nullable=True)
    color = db.Column(db.String(32), nullable=True)

    sale_price_cents = db.Column(db.BigInteger, nullable=True)
    acquisition_cost_cents = db.Column(db.BigInteger, nullable=True)
    table_value_cents = db.Column(db.BigInteger, nullable=True)

    # available, reserved, sold
    status = db.Column(db.String(16), nullable=False, default="available")

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    origin_stock_item_id = db.Column(db.Integer, nullable=True, index=True)

    media_blobs = db.Column(db.JSON, nullable=False, default=list)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("vehicles", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Vehicle id={self.id} {self.brand} {self.model} {self.year} status={self.status}>"

    @property
    def label(self) -> str:
        text = f"{self.brand} {self.model} {self.year}"
        return f"{text} - {self.plate}" if self.plate else text

    def to_dict(self, include_media: bool = False) -> dict:
        data = {
            "id": self.id,
            "brand": self.brand,
            "model": self.model,
            "year": self.year,
            "plate": self.plate,
            "km": self.km,
            "color": self.color,
            "sale_price_cents": self.sale_price_cents,
            "acquisition_cost_cents": self.acquisition_cost_cents,
            "table_value_cents": self.table_value_cents,
            "status": self.status,
            "customer_id": self.customer_id,
            "origin_stock_item_id": self.origin_stock_item_id,
            "media_count": len(self.media_blobs or []),
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_media:
            data["media_blobs"] = list(self.media_blobs or [])
        return data


class TradeIn(db.Model):
    """
    Vehicle offered by a customer as part of a deal.

    STATUS: pending -> accepted (when it settles a sale) | rejected.
    """
    __tablename__ = "trade_ins"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    brand = db.Column(db.String(64), nullable=False)
    model = db.Column(db.String(128), nullable=False)
    year = db.Column(db.Integer, nullable=False)
    km = db.Column(db.Integer, nullable=True)

    table_value_cents = db.Column(db.BigInteger, nullable=True)
    offer_value_cents = db.Column(db.BigInteger, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("trade_ins", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "brand": self.brand,
            "model": self.model,
            "year": self.year,
            "km": self.km,
            "table_value_cents": self.table_value_cents,
            "offer_value_cents": self.offer_value_cents,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class StockTransfer(db.Model):
    """
    Record of a stock item leaving inventory without a sale.

    IMMUTABLE: written once by a transfer-type exit. The source stock item is
    gone afterwards, so its identifying fields are snapshotted here.
    """
    __tablename__ = "stock_transfers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    origin_stock_item_id = db.Column(db.Integer, nullable=False, index=True)

    brand = db.Column(db.String(64), nullable=False)
    model = db.Column(db.String(128), nullable=False)
    year = db.Column(db.Integer, nullable=False)
    plate = db.Column(db.String(16), nullable=True)
    acquisition_value_cents = db.Column(db.BigInteger, nullable=True)

    destination = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    transferred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "origin_stock_item_id": self.origin_stock_item_id,
            "brand": self.brand,
            "model": self.model,
            "year": self.year,
            "plate": self.plate,
            "acquisition_value_cents": self.acquisition_value_cents,
            "destination": self.destination,
            "notes": self.notes,
            "transferred_at": to_utc_z(self.transferred_at),
        }

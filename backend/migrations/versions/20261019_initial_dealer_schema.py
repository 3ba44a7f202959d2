"""Initial dealership schema: stock, vehicles, sales, payment instruments, ledger

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
    ]


def upgrade():
    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("document", sa.String(32), nullable=True),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("customers", schema=None) as batch_op:
        batch_op.create_index("ix_customers_document", ["document"], unique=False)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("role", sa.String(32), nullable=False, server_default="seller"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "stock_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("brand", sa.String(64), nullable=False),
        sa.Column("model", sa.String(128), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("plate", sa.String(16), nullable=True),
        sa.Column("km", sa.Integer(), nullable=True),
        sa.Column("color", sa.String(32), nullable=True),
        sa.Column("acquisition_value_cents", sa.BigInteger(), nullable=True),
        sa.Column("promotion_value_cents", sa.BigInteger(), nullable=True),
        sa.Column("discount_cents", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("media_blobs", sa.JSON(), nullable=False),
        sa.Column("total_encoded_bytes", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_items", schema=None) as batch_op:
        batch_op.create_index("ix_stock_items_brand_model", ["brand", "model"], unique=False)

    op.create_table(
        "vehicles",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("brand", sa.String(64), nullable=False),
        sa.Column("model", sa.String(128), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("plate", sa.String(16), nullable=True),
        sa.Column("km", sa.Integer(), nullable=True),
        sa.Column("color", sa.String(32), nullable=True),
        sa.Column("sale_price_cents", sa.BigInteger(), nullable=True),
        sa.Column("acquisition_cost_cents", sa.BigInteger(), nullable=True),
        sa.Column("table_value_cents", sa.BigInteger(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="available"),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("origin_stock_item_id", sa.Integer(), nullable=True),
        sa.Column("media_blobs", sa.JSON(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("vehicles", schema=None) as batch_op:
        batch_op.create_index("ix_vehicles_identity", ["brand", "model", "year", "plate"], unique=False)
        batch_op.create_index("ix_vehicles_status", ["status"], unique=False)
        batch_op.create_index("ix_vehicles_customer_id", ["customer_id"], unique=False)
        batch_op.create_index("ix_vehicles_origin_stock_item_id", ["origin_stock_item_id"], unique=False)

    op.create_table(
        "trade_ins",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("brand", sa.String(64), nullable=False),
        sa.Column("model", sa.String(128), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("km", sa.Integer(), nullable=True),
        sa.Column("table_value_cents", sa.BigInteger(), nullable=True),
        sa.Column("offer_value_cents", sa.BigInteger(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("trade_ins", schema=None) as batch_op:
        batch_op.create_index("ix_trade_ins_customer_id", ["customer_id"], unique=False)
        batch_op.create_index("ix_trade_ins_status", ["status"], unique=False)

    op.create_table(
        "stock_transfers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("origin_stock_item_id", sa.Integer(), nullable=False),
        sa.Column("brand", sa.String(64), nullable=False),
        sa.Column("model", sa.String(128), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("plate", sa.String(16), nullable=True),
        sa.Column("acquisition_value_cents", sa.BigInteger(), nullable=True),
        sa.Column("destination", sa.String(255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("transferred_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_transfers", schema=None) as batch_op:
        batch_op.create_index("ix_stock_transfers_origin_stock_item_id", ["origin_stock_item_id"], unique=False)
        batch_op.create_index("ix_stock_transfers_transferred_at", ["transferred_at"], unique=False)

    op.create_table(
        "sales",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("vehicle_id", sa.Integer(), nullable=False),
        sa.Column("trade_in_id", sa.Integer(), nullable=True),
        sa.Column("seller_id", sa.Integer(), nullable=False),
        sa.Column("sale_price_cents", sa.BigInteger(), nullable=True),
        sa.Column("purchase_price_cents", sa.BigInteger(), nullable=True),
        sa.Column("table_value_cents", sa.BigInteger(), nullable=True),
        sa.Column("discount_cents", sa.BigInteger(), nullable=True),
        sa.Column("entry_total_cents", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("remaining_total_cents", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("financed_amount_cents", sa.BigInteger(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="in_progress"),
        sa.Column("sale_date", sa.Date(), nullable=False),
        sa.Column("origin_stock_item_id", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.ForeignKeyConstraint(["vehicle_id"], ["vehicles.id"]),
        sa.ForeignKeyConstraint(["trade_in_id"], ["trade_ins.id"]),
        sa.ForeignKeyConstraint(["seller_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("sales", schema=None) as batch_op:
        batch_op.create_index("ix_sales_customer_id", ["customer_id"], unique=False)
        batch_op.create_index("ix_sales_vehicle_id", ["vehicle_id"], unique=False)
        batch_op.create_index("ix_sales_trade_in_id", ["trade_in_id"], unique=False)
        batch_op.create_index("ix_sales_seller_id", ["seller_id"], unique=False)
        batch_op.create_index("ix_sales_status", ["status"], unique=False)
        batch_op.create_index("ix_sales_origin_stock_item_id", ["origin_stock_item_id"], unique=False)
        batch_op.create_index("ix_sales_status_date", ["status", "sale_date"], unique=False)

    # Single-table inheritance: one row per instrument, variant columns nullable
    op.create_table(
        "payment_instruments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sale_id", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(32), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("document_number", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        # shared variant columns
        sa.Column("authorization_code", sa.String(64), nullable=True),
        sa.Column("bank_name", sa.String(128), nullable=True),
        sa.Column("guarantor", sa.String(255), nullable=True),
        # installment plan
        sa.Column("financed_amount_cents", sa.BigInteger(), nullable=True),
        sa.Column("installment_count", sa.Integer(), nullable=True),
        sa.Column("cadence", sa.String(16), nullable=True),
        sa.Column("installment_amount_cents", sa.BigInteger(), nullable=True),
        sa.Column("first_document_number", sa.String(64), nullable=True),
        # check
        sa.Column("branch", sa.String(16), nullable=True),
        sa.Column("account", sa.String(32), nullable=True),
        sa.Column("check_number", sa.String(32), nullable=True),
        sa.Column("payable_to", sa.String(255), nullable=True),
        # bank financing
        sa.Column("return_type", sa.String(32), nullable=True),
        sa.Column("return_cents", sa.BigInteger(), nullable=True),
        sa.Column("tac_cents", sa.BigInteger(), nullable=True),
        sa.Column("plus_cents", sa.BigInteger(), nullable=True),
        sa.Column("tif_cents", sa.BigInteger(), nullable=True),
        sa.Column("intermediation_fee_cents", sa.BigInteger(), nullable=True),
        sa.Column("store_receipt", sa.String(128), nullable=True),
        # own financing
        sa.Column("additional_guarantor", sa.String(255), nullable=True),
        sa.Column("collection_method", sa.String(64), nullable=True),
        # consortium
        sa.Column("consortium_name", sa.String(128), nullable=True),
        # trade vehicle
        sa.Column("trade_vehicle_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["trade_vehicle_id"], ["vehicles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("payment_instruments", schema=None) as batch_op:
        batch_op.create_index("ix_payment_instruments_sale_id", ["sale_id"], unique=False)
        batch_op.create_index("ix_payment_instruments_sale_kind", ["sale_id", "kind"], unique=False)

    op.create_table(
        "installments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("payment_instrument_id", sa.Integer(), nullable=False),
        sa.Column("installment_index", sa.Integer(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("document_number", sa.String(64), nullable=True),
        sa.Column("amount_edited", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("document_edited", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.ForeignKeyConstraint(["payment_instrument_id"], ["payment_instruments.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("payment_instrument_id", "installment_index", name="uq_installments_instrument_index"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("installments", schema=None) as batch_op:
        batch_op.create_index("ix_installments_payment_instrument_id", ["payment_instrument_id"], unique=False)

    op.create_table(
        "financial_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(16), nullable=False),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sale_id", sa.Integer(), nullable=True),
        sa.Column("payment_instrument_id", sa.Integer(), nullable=True),
        sa.Column("stock_item_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("financial_transactions", schema=None) as batch_op:
        batch_op.create_index("ix_financial_transactions_sale_id", ["sale_id"], unique=False)
        batch_op.create_index("ix_financial_transactions_payment_instrument_id", ["payment_instrument_id"], unique=False)
        batch_op.create_index("ix_financial_transactions_stock_item_id", ["stock_item_id"], unique=False)
        batch_op.create_index(
            "ix_financial_transactions_kind_status_due", ["kind", "status", "due_date"], unique=False
        )


def downgrade():
    op.drop_table("financial_transactions")
    op.drop_table("installments")
    op.drop_table("payment_instruments")
    op.drop_table("sales")
    op.drop_table("stock_transfers")
    op.drop_table("trade_ins")
    op.drop_table("vehicles")
    op.drop_table("stock_items")
    op.drop_table("users")
    op.drop_table("customers")

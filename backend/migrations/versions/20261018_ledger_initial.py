"""Ledger entries, cash sessions, document sequences, inventory movements, customers

Revision ID: 20261018_ledger_initial
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_ledger_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "customers",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("first_name", sa.String(length=128), nullable=True),
        sa.Column("last_name", sa.String(length=128), nullable=True),
        sa.Column("business_name", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )

    # Cash sessions
    op.create_table(
        "cash_sessions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("point_of_sale_id", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="OPEN"),
        sa.Column("opened_by_id", sa.String(length=64), nullable=False),
        sa.Column("closed_by_id", sa.String(length=64), nullable=True),
        sa.Column("opening_amount", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("closing_amount", sa.Numeric(15, 2), nullable=True),
        sa.Column("expected_amount", sa.Numeric(15, 2), nullable=True),
        sa.Column("difference", sa.Numeric(15, 2), nullable=True),
        sa.Column("opened_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("closed_at", sa.DateTime(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )
    op.create_index("ix_cash_sessions_point_of_sale_id", "cash_sessions", ["point_of_sale_id"], unique=False)
    op.create_index("ix_cash_sessions_status", "cash_sessions", ["status"], unique=False)
    op.create_index("ix_cash_sessions_opened_at", "cash_sessions", ["opened_at"], unique=False)
    # One OPEN session per point of sale
    op.create_index(
        "uq_cash_sessions_open_pos",
        "cash_sessions",
        ["point_of_sale_id"],
        unique=True,
        sqlite_where=sa.text("status = 'OPEN'"),
        postgresql_where=sa.text("status = 'OPEN'"),
    )

    # Ledger entries
    op.create_table(
        "ledger_entries",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("entry_type", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="DRAFT"),
        sa.Column("document_number", sa.String(length=64), nullable=True),
        sa.Column("subtotal", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("discount_amount", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("tax_amount", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("total", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("amount_paid", sa.Numeric(15, 2), nullable=True),
        sa.Column("change_amount", sa.Numeric(15, 2), nullable=True),
        sa.Column("payment_method", sa.String(length=32), nullable=True),
        sa.Column("branch_id", sa.String(length=64), nullable=True),
        sa.Column("point_of_sale_id", sa.String(length=64), nullable=True),
        sa.Column("cash_session_id", sa.String(length=36), nullable=True),
        sa.Column("storage_id", sa.String(length=64), nullable=True),
        sa.Column("target_storage_id", sa.String(length=64), nullable=True),
        sa.Column("customer_id", sa.String(length=64), nullable=True),
        sa.Column("supplier_id", sa.String(length=64), nullable=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("cost_center_id", sa.String(length=64), nullable=True),
        sa.Column("expense_category_id", sa.String(length=64), nullable=True),
        sa.Column("related_entry_id", sa.String(length=36), nullable=True),
        sa.Column("external_reference", sa.String(length=128), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["cash_session_id"], ["cash_sessions.id"]),
        sa.ForeignKeyConstraint(["related_entry_id"], ["ledger_entries.id"]),
        sa.UniqueConstraint("entry_type", "document_number", name="uq_ledger_entries_type_number"),
    )
    for column in (
        "entry_type",
        "status",
        "document_number",
        "payment_method",
        "point_of_sale_id",
        "cash_session_id",
        "customer_id",
        "supplier_id",
        "related_entry_id",
        "created_at",
    ):
        op.create_index(f"ix_ledger_entries_{column}", "ledger_entries", [column], unique=False)
    op.create_index("ix_ledger_entries_type_created", "ledger_entries", ["entry_type", "created_at"], unique=False)

    op.create_table(
        "ledger_entry_lines",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("entry_id", sa.String(length=36), nullable=False),
        sa.Column("line_number", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.String(length=64), nullable=True),
        sa.Column("product_name", sa.String(length=255), nullable=True),
        sa.Column("product_sku", sa.String(length=64), nullable=True),
        sa.Column("quantity", sa.Numeric(15, 4), nullable=False),
        sa.Column("unit_price", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("unit_cost", sa.Numeric(15, 2), nullable=True),
        sa.Column("discount_amount", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("tax_amount", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("subtotal", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("total", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["entry_id"], ["ledger_entries.id"]),
        sa.UniqueConstraint("entry_id", "line_number", name="uq_ledger_entry_lines_entry_line"),
    )
    op.create_index("ix_ledger_entry_lines_entry_id", "ledger_entry_lines", ["entry_id"], unique=False)
    op.create_index("ix_ledger_entry_lines_product_id", "ledger_entry_lines", ["product_id"], unique=False)

    # Document sequences
    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("entry_type", sa.String(length=32), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.UniqueConstraint("entry_type", name="uq_document_sequences_entry_type"),
    )

    # Inventory movements
    op.create_table(
        "inventory_movements",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("entry_id", sa.String(length=36), nullable=False),
        sa.Column("line_id", sa.String(length=36), nullable=True),
        sa.Column("storage_id", sa.String(length=64), nullable=False),
        sa.Column("product_id", sa.String(length=64), nullable=False),
        sa.Column("quantity_delta", sa.Numeric(15, 4), nullable=False),
        sa.Column("occurred_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["entry_id"], ["ledger_entries.id"]),
        sa.ForeignKeyConstraint(["line_id"], ["ledger_entry_lines.id"]),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_inventory_movements_entry_id", "inventory_movements", ["entry_id"], unique=False)
    op.create_index("ix_inventory_movements_occurred_at", "inventory_movements", ["occurred_at"], unique=False)
    op.create_index(
        "ix_inventory_movements_storage_product",
        "inventory_movements",
        ["storage_id", "product_id"],
        unique=False,
    )


def downgrade():
    op.drop_index("ix_inventory_movements_storage_product", table_name="inventory_movements")
    op.drop_index("ix_inventory_movements_occurred_at", table_name="inventory_movements")
    op.drop_index("ix_inventory_movements_entry_id", table_name="inventory_movements")
    op.drop_table("inventory_movements")

    op.drop_table("document_sequences")

    op.drop_index("ix_ledger_entry_lines_product_id", table_name="ledger_entry_lines")
    op.drop_index("ix_ledger_entry_lines_entry_id", table_name="ledger_entry_lines")
    op.drop_table("ledger_entry_lines")

    op.drop_index("ix_ledger_entries_type_created", table_name="ledger_entries")
    for column in (
        "entry_type",
        "status",
        "document_number",
        "payment_method",
        "point_of_sale_id",
        "cash_session_id",
        "customer_id",
        "supplier_id",
        "related_entry_id",
        "created_at",
    ):
        op.drop_index(f"ix_ledger_entries_{column}", table_name="ledger_entries")
    op.drop_table("ledger_entries")

    op.drop_index("uq_cash_sessions_open_pos", table_name="cash_sessions")
    op.drop_index("ix_cash_sessions_opened_at", table_name="cash_sessions")
    op.drop_index("ix_cash_sessions_status", table_name="cash_sessions")
    op.drop_index("ix_cash_sessions_point_of_sale_id", table_name="cash_sessions")
    op.drop_table("cash_sessions")

    op.drop_table("customers")

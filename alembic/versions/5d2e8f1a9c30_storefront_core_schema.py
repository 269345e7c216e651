"""storefront_core_schema

Revision ID: 5d2e8f1a9c30
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "5d2e8f1a9c30"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None

APPEND_ONLY_TABLES = ("promotion_records", "coin_ledger_entries", "account_network_origins")


def upgrade() -> None:
    op.create_table(
        "accounts",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("real_id", sa.String(32), nullable=False),
        sa.Column("visual_id", sa.String(32), nullable=True),
        sa.Column("coin_balance", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_redeem_disabled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("coin_balance >= 0", name="ck_accounts_coin_balance_non_negative"),
        sa.CheckConstraint(
            "visual_id IS NULL OR visual_id <> real_id",
            name="ck_accounts_visual_id_differs",
        ),
        sa.UniqueConstraint("real_id", name="uq_accounts_real_id"),
        sa.UniqueConstraint("visual_id", name="uq_accounts_visual_id"),
    )
    op.create_index("idx_accounts_created_at", "accounts", ["created_at"])

    op.create_table(
        "account_network_origins",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("account_id", sa.BigInteger(), nullable=False),
        sa.Column("ip", sa.String(45), nullable=False),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"]),
    )
    op.create_index(
        "idx_account_network_origins_account_recorded",
        "account_network_origins",
        ["account_id", "recorded_at"],
    )
    op.create_index("idx_account_network_origins_ip", "account_network_origins", ["ip"])

    op.create_table(
        "blocked_identifiers",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("kind", sa.String(16), nullable=False),
        sa.Column("value", sa.String(256), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("created_by", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "kind IN ('IP','FINGERPRINT','ACCOUNT_ID')",
            name="ck_blocked_identifiers_kind",
        ),
        sa.CheckConstraint("length(reason) > 0", name="ck_blocked_identifiers_reason_present"),
        sa.UniqueConstraint("value", name="uq_blocked_identifiers_value"),
    )
    op.create_index("idx_blocked_identifiers_kind_value", "blocked_identifiers", ["kind", "value"])
    op.create_index("idx_blocked_identifiers_created_at", "blocked_identifiers", ["created_at"])

    op.create_table(
        "promotion_records",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("account_id", sa.BigInteger(), nullable=False),
        sa.Column("old_real_id", sa.String(32), nullable=False),
        sa.Column("new_real_id", sa.String(32), nullable=False),
        sa.Column("trigger", sa.String(32), nullable=False),
        sa.Column("promoted_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "trigger IN ('LOGOUT','PRE_REGISTRATION')",
            name="ck_promotion_records_trigger",
        ),
        sa.CheckConstraint("old_real_id <> new_real_id", name="ck_promotion_records_ids_differ"),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"]),
    )
    op.create_index("idx_promotion_records_old_real_id", "promotion_records", ["old_real_id"])
    op.create_index("idx_promotion_records_new_real_id", "promotion_records", ["new_real_id"])
    op.create_index("idx_promotion_records_promoted_at", "promotion_records", ["promoted_at"])

    op.create_table(
        "products",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column("max_coin_discount", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_coin_product", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("purchase_price", sa.Integer(), nullable=True),
        sa.Column("only_upi", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("purchase_limit", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("price > 0", name="ck_products_price_positive"),
        sa.CheckConstraint("max_coin_discount >= 0", name="ck_products_max_coin_discount_non_negative"),
        sa.CheckConstraint(
            "purchase_price IS NULL OR purchase_price > 0",
            name="ck_products_purchase_price_positive",
        ),
        sa.CheckConstraint(
            "purchase_limit IS NULL OR purchase_limit > 0",
            name="ck_products_purchase_limit_positive",
        ),
    )
    op.create_index("idx_products_active", "products", ["is_active"])

    op.create_table(
        "product_controls",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("product_id", sa.BigInteger(), nullable=False),
        sa.Column("account_real_id", sa.String(32), nullable=False),
        sa.Column("is_hidden", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.UniqueConstraint(
            "product_id",
            "account_real_id",
            name="uq_product_controls_product_account",
        ),
    )

    op.create_table(
        "orders",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("product_id", sa.BigInteger(), nullable=False),
        sa.Column("account_id", sa.BigInteger(), nullable=False),
        sa.Column("attempt_id", sa.String(64), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("coins_applied", sa.Integer(), nullable=False),
        sa.Column("payment_method", sa.String(16), nullable=False),
        sa.Column("payment_reference", sa.String(128), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("amount >= 0", name="ck_orders_amount_non_negative"),
        sa.CheckConstraint("coins_applied >= 0", name="ck_orders_coins_applied_non_negative"),
        sa.CheckConstraint(
            "payment_method IN ('UPI','REDEEM_CODE')",
            name="ck_orders_payment_method",
        ),
        sa.CheckConstraint(
            "status IN ('PROCESSING','COMPLETED','FAILED')",
            name="ck_orders_status",
        ),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"]),
        sa.UniqueConstraint(
            "payment_method",
            "payment_reference",
            name="uq_orders_payment_reference",
        ),
        sa.UniqueConstraint("attempt_id", name="uq_orders_attempt_id"),
    )
    op.create_index("idx_orders_account_product", "orders", ["account_id", "product_id"])
    op.create_index("idx_orders_status_created", "orders", ["status", "created_at"])

    op.create_table(
        "coin_ledger_entries",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("account_id", sa.BigInteger(), nullable=False),
        sa.Column("counterparty_account_id", sa.BigInteger(), nullable=True),
        sa.Column("order_id", sa.BigInteger(), nullable=True),
        sa.Column("entry_type", sa.String(32), nullable=False),
        sa.Column("direction", sa.String(8), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("idempotency_key", sa.String(96), nullable=False),
        sa.Column(
            "metadata",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_coin_ledger_entries_amount_positive"),
        sa.CheckConstraint("balance_after >= 0", name="ck_coin_ledger_entries_balance_non_negative"),
        sa.CheckConstraint("direction IN ('CREDIT','DEBIT')", name="ck_coin_ledger_entries_direction"),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["counterparty_account_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.UniqueConstraint("idempotency_key", name="uq_coin_ledger_entries_idempotency_key"),
    )
    op.create_index(
        "idx_coin_ledger_account_created",
        "coin_ledger_entries",
        ["account_id", "created_at"],
    )
    op.create_index("idx_coin_ledger_order", "coin_ledger_entries", ["order_id"])
    op.create_index("idx_coin_ledger_type", "coin_ledger_entries", ["entry_type"])

    op.create_table(
        "custom_ads",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("video_url", sa.Text(), nullable=False),
        sa.Column("cta_text", sa.String(64), nullable=False),
        sa.Column("cta_link", sa.Text(), nullable=False),
        sa.Column("total_duration_sec", sa.Integer(), nullable=False),
        sa.Column("reward_time_sec", sa.Integer(), nullable=True),
        sa.Column("hide_cta_button", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("total_duration_sec >= 5", name="ck_custom_ads_total_duration_min"),
        sa.CheckConstraint(
            "reward_time_sec IS NULL OR (reward_time_sec >= 1 AND reward_time_sec <= total_duration_sec)",
            name="ck_custom_ads_reward_time_range",
        ),
    )

    for table_name in APPEND_ONLY_TABLES:
        op.execute(
            f"""
            CREATE OR REPLACE FUNCTION fn_{table_name}_append_only()
            RETURNS trigger
            LANGUAGE plpgsql
            AS $$
            BEGIN
                RAISE EXCEPTION '{table_name} is append-only';
            END;
            $$;
            """
        )
        op.execute(
            f"""
            CREATE TRIGGER trg_{table_name}_append_only
            BEFORE UPDATE OR DELETE ON {table_name}
            FOR EACH ROW
            EXECUTE FUNCTION fn_{table_name}_append_only();
            """
        )


def downgrade() -> None:
    for table_name in APPEND_ONLY_TABLES:
        op.execute(f"DROP TRIGGER IF EXISTS trg_{table_name}_append_only ON {table_name};")
        op.execute(f"DROP FUNCTION IF EXISTS fn_{table_name}_append_only();")

    op.drop_table("custom_ads")
    op.drop_index("idx_coin_ledger_type", table_name="coin_ledger_entries")
    op.drop_index("idx_coin_ledger_order", table_name="coin_ledger_entries")
    op.drop_index("idx_coin_ledger_account_created", table_name="coin_ledger_entries")
    op.drop_table("coin_ledger_entries")
    op.drop_index("idx_orders_status_created", table_name="orders")
    op.drop_index("idx_orders_account_product", table_name="orders")
    op.drop_table("orders")
    op.drop_table("product_controls")
    op.drop_index("idx_products_active", table_name="products")
    op.drop_table("products")
    op.drop_index("idx_promotion_records_promoted_at", table_name="promotion_records")
    op.drop_index("idx_promotion_records_new_real_id", table_name="promotion_records")
    op.drop_index("idx_promotion_records_old_real_id", table_name="promotion_records")
    op.drop_table("promotion_records")
    op.drop_index("idx_blocked_identifiers_created_at", table_name="blocked_identifiers")
    op.drop_index("idx_blocked_identifiers_kind_value", table_name="blocked_identifiers")
    op.drop_table("blocked_identifiers")
    op.drop_index("idx_account_network_origins_ip", table_name="account_network_origins")
    op.drop_index(
        "idx_account_network_origins_account_recorded",
        table_name="account_network_origins",
    )
    op.drop_table("account_network_origins")
    op.drop_index("idx_accounts_created_at", table_name="accounts")
    op.drop_table("accounts")

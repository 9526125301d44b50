"""marketplace core: users, products, bids, wallets, transactions, notifications, ratings

Revision ID: 0001_marketplace_core
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '0001_marketplace_core'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _ts(name, nullable=False, default_now=True):
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=sa.text("now()") if default_now else None,
        nullable=nullable,
    )


def _money(name, nullable=False, default=None):
    return sa.Column(
        name,
        sa.Numeric(20, 2),
        server_default=sa.text(default) if default is not None else None,
        nullable=nullable,
    )


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=128), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False),
        sa.Column("display_name", sa.String(length=256), server_default=sa.text("''"), nullable=False),
        sa.Column("rating_average", sa.Numeric(3, 1), server_default=sa.text("0"), nullable=False),
        sa.Column("rating_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.CheckConstraint("role IN ('farmer', 'merchant')", name="ck_users_role_valid"),
    )
    op.create_index("ix_users_role", "users", ["role"])

    op.create_table(
        "products",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("seller_id", sa.String(length=128), nullable=False),
        sa.Column("name", sa.String(length=256), nullable=False),
        sa.Column("description", sa.Text(), server_default=sa.text("''"), nullable=False),
        _money("starting_price"),
        _money("quantity"),
        sa.Column("unit_type", sa.String(length=32), nullable=False),
        sa.Column("grade", sa.String(length=64), server_default=sa.text("''"), nullable=False),
        sa.Column("images", postgresql.JSONB, server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column("duration_hours", sa.Integer(), nullable=False),
        _ts("created_at"),
        _ts("end_time", default_now=False),
        sa.Column("status", sa.String(length=16), server_default=sa.text("'active'"), nullable=False),
        _money("highest_bid_amount", nullable=True),
        sa.Column("highest_bidder_id", sa.String(length=128), nullable=True),
        _ts("highest_bid_at", nullable=True, default_now=False),
        sa.Column("bid_accepted", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        _ts("bid_responded_at", nullable=True, default_now=False),
        sa.Column("product_delivered", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        _ts("delivered_at", nullable=True, default_now=False),
        _ts("delivery_expired_at", nullable=True, default_now=False),
        sa.Column("payment_status", sa.String(length=16), server_default=sa.text("'none'"), nullable=False),
        sa.Column("escrow_transaction_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("version", sa.Integer(), server_default=sa.text("1"), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_products"),
        sa.CheckConstraint("starting_price > 0", name="ck_products_starting_price_positive"),
        sa.CheckConstraint("quantity > 0", name="ck_products_quantity_positive"),
        sa.CheckConstraint("duration_hours > 0", name="ck_products_duration_positive"),
    )
    op.create_index("ix_products_status_created", "products", ["status", "created_at"])
    op.create_index("ix_products_seller", "products", ["seller_id", "created_at"])
    op.create_index("ix_products_highest_bidder", "products", ["highest_bidder_id"])
    op.create_index("ix_products_delivery_sweep", "products", ["bid_accepted", "product_delivered"])

    op.create_table(
        "bids",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("product_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("bidder_id", sa.String(length=128), nullable=False),
        _money("amount"),
        _ts("created_at"),
        sa.PrimaryKeyConstraint("id", name="pk_bids"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], name="fk_bids_product_id_products"),
        sa.CheckConstraint("amount > 0", name="ck_bids_amount_positive"),
    )
    op.create_index("ix_bids_product_created", "bids", ["product_id", "created_at"])
    op.create_index("ix_bids_bidder", "bids", ["bidder_id"])

    op.create_table(
        "wallets",
        sa.Column("user_id", sa.String(length=128), nullable=False),
        _money("balance", default="0"),
        _money("frozen_balance", default="0"),
        sa.Column("currency", sa.String(length=8), server_default=sa.text("'INR'"), nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
        sa.PrimaryKeyConstraint("user_id", name="pk_wallets"),
        sa.CheckConstraint("balance >= 0", name="ck_wallets_balance_nonnegative"),
        sa.CheckConstraint("frozen_balance >= 0", name="ck_wallets_frozen_nonnegative"),
    )

    op.create_table(
        "transactions",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        _money("amount"),
        sa.Column("currency", sa.String(length=8), server_default=sa.text("'INR'"), nullable=False),
        sa.Column("from_user_id", sa.String(length=128), nullable=False),
        sa.Column("to_user_id", sa.String(length=128), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("product_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("escrow_id", postgresql.UUID(as_uuid=True), nullable=True),
        _ts("created_at"),
        _ts("completed_at", nullable=True, default_now=False),
        sa.Column("metadata_json", postgresql.JSONB, server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_transactions"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], name="fk_transactions_product_id_products"),
        sa.ForeignKeyConstraint(["escrow_id"], ["transactions.id"], name="fk_transactions_escrow_id_transactions"),
        sa.CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        sa.CheckConstraint("type IN ('deposit', 'freeze', 'release', 'refund')", name="ck_transactions_type_valid"),
        sa.CheckConstraint("status IN ('pending', 'completed', 'refunded')", name="ck_transactions_status_valid"),
    )
    op.create_index("ix_transactions_from_created", "transactions", ["from_user_id", "created_at"])
    op.create_index("ix_transactions_to_created", "transactions", ["to_user_id", "created_at"])
    op.create_index("ix_transactions_product", "transactions", ["product_id"])

    # products <-> transactions reference each other; close the cycle last
    op.create_foreign_key(
        "fk_products_escrow_transaction_id_transactions",
        "products",
        "transactions",
        ["escrow_transaction_id"],
        ["id"],
    )

    op.create_table(
        "notifications",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("recipient_id", sa.String(length=128), nullable=True),
        sa.Column("recipient_type", sa.String(length=16), nullable=True),
        sa.Column("originator_id", sa.String(length=128), nullable=True),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("title", sa.String(length=256), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("product_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("image", sa.Text(), nullable=True),
        sa.Column("read", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        _ts("created_at"),
        sa.PrimaryKeyConstraint("id", name="pk_notifications"),
        sa.CheckConstraint(
            "(recipient_id IS NOT NULL AND recipient_type IS NULL)"
            " OR (recipient_id IS NULL AND recipient_type IS NOT NULL)",
            name="ck_notifications_one_recipient_selector",
        ),
    )
    op.create_index("ix_notifications_recipient_created", "notifications", ["recipient_id", "created_at"])
    op.create_index("ix_notifications_type_created", "notifications", ["recipient_type", "created_at"])

    op.create_table(
        "notification_receipts",
        sa.Column("notification_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        _ts("read_at"),
        sa.PrimaryKeyConstraint("notification_id", "user_id", name="pk_notification_receipts"),
        sa.ForeignKeyConstraint(
            ["notification_id"],
            ["notifications.id"],
            name="fk_notification_receipts_notification_id_notifications",
            ondelete="CASCADE",
        ),
    )

    op.create_table(
        "ratings",
        sa.Column("product_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("from_user_id", sa.String(length=128), nullable=False),
        sa.Column("to_user_id", sa.String(length=128), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("review", sa.String(length=200), nullable=False),
        sa.Column("from_role", sa.String(length=16), nullable=False),
        sa.Column("to_role", sa.String(length=16), nullable=False),
        _ts("created_at"),
        sa.PrimaryKeyConstraint("product_id", "from_user_id", "to_user_id", name="pk_ratings"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], name="fk_ratings_product_id_products"),
        sa.CheckConstraint("rating BETWEEN 1 AND 5", name="ck_ratings_rating_range"),
    )
    op.create_index("ix_ratings_to_user_created", "ratings", ["to_user_id", "created_at"])

    op.create_table(
        "idempotency_key_records",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("endpoint_key", sa.String(length=64), nullable=False),
        sa.Column("idem_key", sa.String(length=128), nullable=False),
        sa.Column("request_hash", sa.String(length=128), nullable=False),
        sa.Column("response_status", sa.String(length=16), server_default=sa.text("'200'"), nullable=False),
        sa.Column("response_json", postgresql.JSONB, server_default=sa.text("'{}'::jsonb"), nullable=False),
        _ts("created_at"),
        sa.PrimaryKeyConstraint("id", name="pk_idempotency_key_records"),
        sa.UniqueConstraint("user_id", "endpoint_key", "idem_key", name="uq_idem_scope"),
    )


def downgrade():
    op.drop_table("idempotency_key_records")
    op.drop_index("ix_ratings_to_user_created", table_name="ratings")
    op.drop_table("ratings")
    op.drop_table("notification_receipts")
    op.drop_index("ix_notifications_type_created", table_name="notifications")
    op.drop_index("ix_notifications_recipient_created", table_name="notifications")
    op.drop_table("notifications")
    op.drop_constraint("fk_products_escrow_transaction_id_transactions", "products", type_="foreignkey")
    op.drop_index("ix_transactions_product", table_name="transactions")
    op.drop_index("ix_transactions_to_created", table_name="transactions")
    op.drop_index("ix_transactions_from_created", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("wallets")
    op.drop_index("ix_bids_bidder", table_name="bids")
    op.drop_index("ix_bids_product_created", table_name="bids")
    op.drop_table("bids")
    op.drop_index("ix_products_delivery_sweep", table_name="products")
    op.drop_index("ix_products_highest_bidder", table_name="products")
    op.drop_index("ix_products_seller", table_name="products")
    op.drop_index("ix_products_status_created", table_name="products")
    op.drop_table("products")
    op.drop_index("ix_users_role", table_name="users")
    op.drop_table("users")

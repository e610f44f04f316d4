"""Create stores, products and order_intents tables.

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create stores, products and order_intents tables."""
    op.create_table(
        "stores",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("shop_domain", sa.String(255), nullable=False, unique=True),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("category", sa.String(100), nullable=True, index=True),
        sa.Column("pay_to_address", sa.String(66), nullable=False),
        sa.Column("admin_access_token", sa.String(255), nullable=True),
        sa.Column(
            "agent_metadata",
            postgresql.JSONB,
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "products",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "store_id",
            sa.String(36),
            sa.ForeignKey("stores.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("external_product_id", sa.String(100), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("vendor", sa.String(255), nullable=True),
        sa.Column("product_type", sa.String(255), nullable=True),
        sa.Column("tags", postgresql.JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("images", postgresql.JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column(
            "variants", postgresql.JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "order_intents",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("store_id", sa.String(36), nullable=False, index=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending", index=True),
        # Pricing snapshot
        sa.Column("items", postgresql.JSONB, nullable=False),
        sa.Column("total_amount", sa.String(78), nullable=False),
        sa.Column("currency", sa.String(20), nullable=False),
        sa.Column("network", sa.String(50), nullable=False),
        sa.Column("asset", sa.String(255), nullable=False),
        sa.Column("pay_to_address", sa.String(66), nullable=False),
        # Outcome
        sa.Column("shipping_address", postgresql.JSONB, nullable=True),
        sa.Column("payment_proof", postgresql.JSONB, nullable=True),
        sa.Column("failure_reason", sa.Text, nullable=True),
        sa.Column("fulfillment", postgresql.JSONB, nullable=True),
        # Finalize claim
        sa.Column("finalize_claim_id", sa.String(36), nullable=True),
        sa.Column("finalize_claimed_at", sa.DateTime(timezone=True), nullable=True),
        # Timestamps
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    # Store listings filter by status, newest first
    op.create_index(
        "ix_order_intents_store_status_created",
        "order_intents",
        ["store_id", "status", "created_at"],
    )


def downgrade() -> None:
    """Drop order_intents, products and stores tables."""
    op.drop_index("ix_order_intents_store_status_created", table_name="order_intents")
    op.drop_table("order_intents")
    op.drop_table("products")
    op.drop_table("stores")

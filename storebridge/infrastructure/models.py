"""SQLAlchemy models for database tables.

Provides ORM models for stores, products and order intents. JSON
columns use JSONB on PostgreSQL and plain JSON elsewhere.
"""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB

from storebridge.infrastructure.database import Base

JsonType = JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Catalog Models
# ============================================================================


class StoreModel(Base):
    """A connected storefront.

    The admin access token is used for fulfillment only and is never
    returned through the API.
    """

    __tablename__ = "stores"

    id = Column(String(36), primary_key=True)
    shop_domain = Column(String(255), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True, index=True)
    pay_to_address = Column(String(66), nullable=False)
    admin_access_token = Column(String(255), nullable=True)
    agent_metadata = Column(JsonType, nullable=False, default=dict)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self) -> str:
        return f"<Store(id={self.id}, shop_domain={self.shop_domain})>"


class ProductModel(Base):
    """A product synced from a storefront, with its variants inlined."""

    __tablename__ = "products"

    id = Column(String(36), primary_key=True)
    store_id = Column(
        String(36),
        ForeignKey("stores.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    external_product_id = Column(String(100), nullable=False)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    vendor = Column(String(255), nullable=True)
    product_type = Column(String(255), nullable=True)
    tags = Column(JsonType, nullable=False, default=list)
    images = Column(JsonType, nullable=False, default=list)
    variants = Column(JsonType, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, title={self.title})>"


# ============================================================================
# Order Intent Model
# ============================================================================


class OrderIntentModel(Base):
    """Persisted order intent.

    Status changes are written with conditional UPDATE statements; see
    ``SqlOrderIntentRepository``.
    """

    __tablename__ = "order_intents"

    id = Column(String(36), primary_key=True)
    store_id = Column(String(36), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="pending", index=True)

    items = Column(JsonType, nullable=False)
    total_amount = Column(String(78), nullable=False)
    currency = Column(String(20), nullable=False)
    network = Column(String(50), nullable=False)
    asset = Column(String(255), nullable=False)
    pay_to_address = Column(String(66), nullable=False)

    shipping_address = Column(JsonType, nullable=True)
    payment_proof = Column(JsonType, nullable=True)
    failure_reason = Column(Text, nullable=True)
    fulfillment = Column(JsonType, nullable=True)

    finalize_claim_id = Column(String(36), nullable=True)
    finalize_claimed_at = Column(DateTime(timezone=True), nullable=True)

    version = Column(Integer, nullable=False, default=1)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self) -> str:
        return f"<OrderIntent(id={self.id}, status={self.status})>"

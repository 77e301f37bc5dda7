"""
SQLAlchemy Database Models

Order Store tables for gate delivery:
- Orders with immutable line item snapshots
- Product catalog read by the ordering core
"""

import enum
import uuid

from sqlalchemy import Column, String, Float, DateTime, Text, Enum, JSON
from sqlalchemy.sql import func

from app.database import Base


def generate_id() -> str:
    """Opaque identifier assigned by the store on insert."""
    return uuid.uuid4().hex


class OrderStatus(str, enum.Enum):
    """Order status workflow (strictly linear, see state_machine)."""
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    DELIVERED = "delivered"


class Order(Base):
    """
    Authoritative order record.

    ``line_items`` holds ``{product_id, name, quantity, unit_price}`` snapshots
    taken at order time. Only ``status`` changes after creation.
    """
    __tablename__ = "orders"

    id = Column(String(32), primary_key=True, default=generate_id)

    # =========================================================================
    # CUSTOMER INFORMATION
    # =========================================================================
    customer_id = Column(String(255), nullable=False, index=True)
    customer_name = Column(String(100), nullable=False)

    # =========================================================================
    # ORDER DETAILS
    # =========================================================================
    line_items = Column(JSON, nullable=False)
    total = Column(Float, nullable=False)
    gate = Column(String(50), nullable=False)

    # =========================================================================
    # ORDER STATUS
    # =========================================================================
    status = Column(
        Enum(OrderStatus, values_callable=lambda e: [s.value for s in e]),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True
    )

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<Order #{self.id} - {self.customer_name} - gate {self.gate} - {self.status.value}>"


class Product(Base):
    """Menu entry. Orders copy name and price at order time."""
    __tablename__ = "products"

    id = Column(String(32), primary_key=True, default=generate_id)
    name = Column(String(100), nullable=False)
    price = Column(Float, nullable=False)
    description = Column(Text, nullable=False, default="")

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<Product {self.name} - ${self.price:.2f}>"

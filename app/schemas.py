"""
Pydantic Schemas for Request/Response Validation

The order document (``OrderDocument``) is the single serialized form of an
order: Order Store responses and Live Feed mirror entries are both produced
by ``OrderDocument.model_dump(mode="json")``.

Request schemas accept snake_case or camelCase field names. Business rules
(non-empty cart, positive quantities, gate present) are enforced by the
order service so they surface as ``ValidationError`` rather than 422s.
"""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

from app.models import OrderStatus


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class CartItem(BaseModel):
    """One cart entry: which product and how many."""
    product_id: str = Field(..., examples=["6f1c0f6a2b9e4d3c8a7b5e4d3c2b1a09"])
    quantity: int = Field(..., examples=[2])

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class OrderCreate(BaseModel):
    """Request schema for placing a gate-delivery order."""

    customer_id: str = Field(..., examples=["traveler@example.com"])
    customer_name: str = Field(..., examples=["Ana Souza"])
    items: List[CartItem] = Field(default_factory=list)
    gate: str = Field(default="", examples=["B12"])

    # Accepted for compatibility with older clients, never used for pricing
    total: Optional[float] = Field(default=None)

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class StatusUpdate(BaseModel):
    """Request schema for moving an order to its next status."""
    status: str = Field(..., examples=["preparing"])


class ProductCreate(BaseModel):
    """Request schema for creating or replacing a catalog product."""
    name: str = Field(..., min_length=1, max_length=100, examples=["Pão de Queijo"])
    price: float = Field(..., gt=0, examples=[5.00])
    description: str = Field(default="", max_length=500)


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class LineItem(BaseModel):
    """Product snapshot stored on the order."""
    product_id: str
    name: str
    quantity: int
    unit_price: float

    @property
    def total_price(self) -> float:
        return round(self.quantity * self.unit_price, 2)


class OrderDocument(BaseModel):
    """Persisted order document shared by the Order Store and the Live Feed."""
    id: str
    customer_id: str
    customer_name: str
    line_items: List[LineItem]
    total: float
    status: OrderStatus
    gate: str
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        # SQLite drops tzinfo; every stored timestamp is UTC
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    class Config:
        from_attributes = True


class OrderListResponse(BaseModel):
    """Response for listing multiple orders."""
    total: int
    orders: List[OrderDocument]


class ProductResponse(BaseModel):
    """Response schema for a catalog product."""
    id: str
    name: str
    price: float
    description: str

    class Config:
        from_attributes = True


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    live_feed: str
    live_feed_provider: str
    timestamp: datetime

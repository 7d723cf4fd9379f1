"""Pydantic models for checkout, stock validation and coupon requests."""

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class StockItem(BaseModel):
    """Cart line submitted for stock validation."""

    product_id: str = Field(..., alias="productId")
    quantity: int = Field(..., gt=0)
    sku: Optional[str] = None

    class Config:
        populate_by_name = True


class StockValidationRequest(BaseModel):
    items: List[StockItem] = Field(default_factory=list)


class LineVerdict(BaseModel):
    """Validation result for one cart line."""

    product_id: str = Field(..., alias="productId")
    valid: bool
    reason: Optional[str] = None
    message: Optional[str] = None
    available: Optional[int] = None
    source: Optional[str] = None

    class Config:
        populate_by_name = True


class StockValidationResponse(BaseModel):
    valid: bool
    error: Optional[str] = None
    message: Optional[str] = None
    results: Optional[List[LineVerdict]] = None
    source: Optional[str] = None


class CheckoutItem(BaseModel):
    """Order line as submitted by the checkout page."""

    product_id: Optional[str] = None
    product_name: str
    product_price: Decimal
    quantity: int = Field(..., gt=0)
    subtotal: Decimal


class CheckoutRequest(BaseModel):
    """Order submission: customer data, totals and items."""

    customer_name: str
    customer_email: str
    customer_phone: str
    customer_address: str
    customer_city: str
    customer_state: str
    customer_zip: str
    subtotal: Decimal
    shipping_cost: Decimal = Decimal("0")
    total: Decimal
    notes: Optional[str] = None
    coupon_code: Optional[str] = Field(None, alias="couponCode")
    items: List[CheckoutItem] = Field(..., min_length=1)

    class Config:
        populate_by_name = True


class CouponValidationRequest(BaseModel):
    code: str
    order_total: Decimal = Field(..., alias="orderTotal")

    class Config:
        populate_by_name = True


class StockMovementRequest(BaseModel):
    product_id: str = Field(..., alias="productId")
    movement_type: str = Field(..., alias="movementType", pattern="^(entrada|saida|ajuste)$")
    quantity: int = Field(..., ge=0)
    notes: Optional[str] = None
    created_by: Optional[str] = Field(None, alias="createdBy")

    class Config:
        populate_by_name = True

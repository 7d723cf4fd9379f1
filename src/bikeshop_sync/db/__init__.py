"""Database module."""

from .base import Base, get_engine, get_session_factory, init_db
from .models import (
    BlingOrder,
    BlingProductCache,
    Category,
    DiscountCoupon,
    OAuthToken,
    Order,
    OrderItem,
    Product,
    ProductImage,
    StockMovement,
    StoreSettings,
)
from .repository import (
    CouponRepository,
    OrderRepository,
    ProductRepository,
    StockMovementRepository,
    StoreSettingsRepository,
    TokenRepository,
)

__all__ = [
    "Base",
    "get_engine",
    "get_session_factory",
    "init_db",
    "BlingOrder",
    "BlingProductCache",
    "Category",
    "DiscountCoupon",
    "OAuthToken",
    "Order",
    "OrderItem",
    "Product",
    "ProductImage",
    "StockMovement",
    "StoreSettings",
    "CouponRepository",
    "OrderRepository",
    "ProductRepository",
    "StockMovementRepository",
    "StoreSettingsRepository",
    "TokenRepository",
]

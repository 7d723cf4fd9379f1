"""Checkout pricing: shipping, effective prices and discount coupons."""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Tuple, TypedDict

from sqlalchemy.ext.asyncio import AsyncSession

from bikeshop_sync.config.constants import (
    CURRENCY_QUANTUM,
    FLAT_SHIPPING_COST,
    FREE_SHIPPING_THRESHOLD,
)
from bikeshop_sync.core.logger import setup_logger
from bikeshop_sync.db.models import DiscountCoupon, Product
from bikeshop_sync.db.repository import CouponRepository
from bikeshop_sync.utils.dates import as_utc

logger = setup_logger(__name__)

DISCOUNT_PERCENTAGE = "percentage"
DISCOUNT_FIXED = "fixed"


class CouponVerdict(TypedDict, total=False):
    """Outcome of a coupon check, returned to the checkout page as-is."""

    valid: bool
    code: str
    reason: str
    message: str
    discount: Decimal
    discountType: str
    discountValue: Decimal


def to_money(value: Decimal) -> Decimal:
    """Round to cents, half up."""
    return Decimal(value).quantize(CURRENCY_QUANTUM, rounding=ROUND_HALF_UP)


def calculate_shipping(subtotal: Decimal) -> Decimal:
    """Free shipping from R$ 299.00, flat rate otherwise."""
    if Decimal(subtotal) >= FREE_SHIPPING_THRESHOLD:
        return Decimal("0.00")
    return FLAT_SHIPPING_COST


def effective_price(product: Product) -> Decimal:
    """Selling price: the promotional price when one is set."""
    if product.promotional_price is not None:
        return product.promotional_price
    return product.price


def calculate_discount(coupon: DiscountCoupon, order_total: Decimal) -> Decimal:
    """
    Discount granted by a coupon on an order total.

    Percentage coupons take value% of the total; fixed coupons never
    discount more than the total itself.
    """
    order_total = Decimal(order_total)
    value = Decimal(coupon.discount_value)
    if coupon.discount_type == DISCOUNT_PERCENTAGE:
        return to_money(order_total * value / Decimal(100))
    return to_money(min(value, order_total))


def _rejected(code: str, reason: str, message: str) -> CouponVerdict:
    return CouponVerdict(valid=False, code=code, reason=reason, message=message)


def check_coupon(
    coupon: Optional[DiscountCoupon],
    code: str,
    order_total: Decimal,
    now: Optional[datetime] = None,
) -> CouponVerdict:
    """
    Apply the redemption rules to an already loaded coupon.

    A coupon is redeemable when it is active, `now` lies between starts_at
    and expires_at, it has uses left and the order reaches the minimum value.
    """
    now = now or datetime.now(timezone.utc)
    order_total = Decimal(order_total)

    if coupon is None:
        return _rejected(code, "not_found", "Cupom inválido ou expirado")
    if not coupon.is_active:
        return _rejected(code, "inactive", "Cupom inválido ou expirado")
    if coupon.starts_at and as_utc(coupon.starts_at) > now:
        return _rejected(code, "not_started", "Este cupom ainda não está ativo")
    if coupon.expires_at and as_utc(coupon.expires_at) < now:
        return _rejected(code, "expired", "Este cupom expirou")
    if coupon.max_uses is not None and coupon.current_uses >= coupon.max_uses:
        return _rejected(code, "usage_limit_reached", "Este cupom atingiu o limite de uso")

    min_order_value = Decimal(coupon.min_order_value or 0)
    if order_total < min_order_value:
        return _rejected(
            code,
            "below_minimum",
            f"Pedido mínimo de R$ {min_order_value:.2f} para usar este cupom",
        )

    return CouponVerdict(
        valid=True,
        code=coupon.code,
        discount=calculate_discount(coupon, order_total),
        discountType=coupon.discount_type,
        discountValue=Decimal(coupon.discount_value),
    )


async def validate_coupon(
    session: AsyncSession,
    code: str,
    order_total: Decimal,
    now: Optional[datetime] = None,
) -> Tuple[CouponVerdict, Optional[DiscountCoupon]]:
    """
    Look up a coupon by code (case-insensitive) and check it.

    Returns:
        Tuple of (verdict, coupon); the coupon is None unless the verdict is valid
    """
    normalized = (code or "").strip().upper()
    if not normalized:
        return _rejected(normalized, "not_found", "Digite um código de cupom"), None

    coupon = await CouponRepository(session).get_by_code(normalized)
    verdict = check_coupon(coupon, normalized, order_total, now)

    if not verdict["valid"]:
        logger.info(f"Coupon {normalized} rejected: {verdict['reason']}")
        return verdict, None

    logger.info(f"Coupon {normalized} accepted, discount {verdict['discount']}")
    return verdict, coupon

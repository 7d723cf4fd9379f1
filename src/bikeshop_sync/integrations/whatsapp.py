"""
WhatsApp deep links for buyer notification.

After checkout the buyer is sent to wa.me with the order summary already
typed, so the shop receives the order details on WhatsApp.
"""

import re
from decimal import Decimal
from typing import Optional
from urllib.parse import quote

from bikeshop_sync.config.settings import settings
from bikeshop_sync.core.logger import setup_logger
from bikeshop_sync.db.models import Order

logger = setup_logger(__name__)

WHATSAPP_BASE_URL = "https://wa.me"


def format_brl(value: Decimal) -> str:
    """Format as Brazilian currency: R$ 1.234,56."""
    formatted = f"{Decimal(value):,.2f}"
    return "R$ " + formatted.replace(",", "X").replace(".", ",").replace("X", ".")


def display_order_number(order_id: str, erp_order_number: Optional[str] = None) -> str:
    """ERP number when known, else the first 8 chars of the local id."""
    if erp_order_number:
        return str(erp_order_number)
    return order_id[:8].upper()


def format_order_message(
    order: Order,
    erp_order_number: Optional[str] = None,
    nfe_number: Optional[str] = None,
) -> str:
    """Plain-text order summary sent as the WhatsApp message."""
    message = "Olá! Acabei de fazer um pedido pelo site.\n\n"
    message += f"*Pedido:* {display_order_number(order.id, erp_order_number)}\n"
    message += f"*Cliente:* {order.customer_name}\n"

    message += "\n*Itens:*\n"
    for item in order.items:
        message += f"- {item.quantity}x {item.product_name} ({format_brl(item.subtotal)})\n"

    if order.shipping_cost:
        message += f"\n*Frete:* {format_brl(order.shipping_cost)}\n"
    else:
        message += "\n*Frete:* Grátis\n"
    if order.discount_amount:
        message += f"*Desconto:* -{format_brl(order.discount_amount)}\n"
    message += f"*Total:* {format_brl(order.total)}\n"

    if nfe_number:
        message += f"*NF-e:* {nfe_number}\n"

    return message


def build_order_whatsapp_url(
    store_number: Optional[str],
    order: Order,
    erp_order_number: Optional[str] = None,
    nfe_number: Optional[str] = None,
) -> str:
    """
    Build the wa.me link for an order.

    Args:
        store_number: Shop WhatsApp number in any format; falls back to the
            configured default when empty
        order: Persisted order with its items loaded
        erp_order_number: Bling sales order number, if one was created
        nfe_number: NF-e number, if one was issued

    Returns:
        https://wa.me/<digits>?text=<urlencoded message>
    """
    digits = re.sub(r"\D", "", store_number or "") or settings.default_whatsapp_number
    text = format_order_message(order, erp_order_number, nfe_number)
    logger.debug(f"WhatsApp link built for order {order.id}", extra={"order_id": order.id})
    return f"{WHATSAPP_BASE_URL}/{digits}?text={quote(text)}"

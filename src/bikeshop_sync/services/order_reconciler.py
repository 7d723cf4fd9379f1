"""
Order reconciliation with Bling.

A checkout is always persisted locally first. The Bling side (contact,
sales order, NF-e, link row) is best effort: any failure there is logged
and reported, and the buyer still gets their order back.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional, TypedDict

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bikeshop_sync.api.client import BlingAPIClient
from bikeshop_sync.config.constants import (
    LINK_STATUS_NFE_ISSUED,
    LINK_STATUS_ORDER_CREATED,
    ORDER_STATUS_CONFIRMED,
    ORDER_STATUS_PENDING,
)
from bikeshop_sync.core.exceptions import (
    OrderNotFoundError,
    OrderPersistenceFailed,
)
from bikeshop_sync.core.logger import setup_logger
from bikeshop_sync.core.monitoring import capture_exception, set_order_context
from bikeshop_sync.db.models import BlingOrder, DiscountCoupon, Order
from bikeshop_sync.db.repository import OrderRepository, ProductRepository, StoreSettingsRepository
from bikeshop_sync.integrations.whatsapp import build_order_whatsapp_url
from bikeshop_sync.models.bling import ContactInput, SalesOrderLine
from bikeshop_sync.models.checkout import CheckoutRequest
from bikeshop_sync.services.pricing import (
    calculate_shipping,
    effective_price,
    to_money,
    validate_coupon,
)

logger = setup_logger(__name__)


class ErpSyncInfo(TypedDict, total=False):
    """Bling identifiers obtained for an order; empty when Bling was skipped."""

    blingOrderId: str
    blingOrderNumber: str
    blingContactId: str
    nfeId: str
    nfeNumber: str
    nfeIssued: bool


class ReconciliationResult(TypedDict, total=False):
    """Local order plus whatever the Bling flow produced."""

    order: Order
    erp: ErpSyncInfo
    whatsappUrl: str


def serialize_order(order: Order) -> Dict[str, Any]:
    """JSON-friendly view of an order and its items."""
    return {
        "id": order.id,
        "customer_name": order.customer_name,
        "customer_email": order.customer_email,
        "customer_phone": order.customer_phone,
        "customer_address": order.customer_address,
        "customer_city": order.customer_city,
        "customer_state": order.customer_state,
        "customer_zip": order.customer_zip,
        "subtotal": float(order.subtotal),
        "shipping_cost": float(order.shipping_cost),
        "discount_amount": float(order.discount_amount or 0),
        "coupon_code": order.coupon_code,
        "total": float(order.total),
        "notes": order.notes,
        "status": order.status,
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "items": [
            {
                "id": item.id,
                "product_id": item.product_id,
                "product_name": item.product_name,
                "product_price": float(item.product_price),
                "quantity": item.quantity,
                "subtotal": float(item.subtotal),
            }
            for item in order.items
        ],
    }


def link_to_erp_info(link: BlingOrder) -> ErpSyncInfo:
    """ErpSyncInfo rebuilt from a stored link row."""
    info = ErpSyncInfo(
        blingOrderId=link.bling_order_id,
        blingOrderNumber=link.bling_order_number or link.bling_order_id,
        nfeIssued=bool(link.bling_nfe_number),
    )
    if link.bling_contact_id:
        info["blingContactId"] = link.bling_contact_id
    if link.bling_nfe_id:
        info["nfeId"] = link.bling_nfe_id
    if link.bling_nfe_number:
        info["nfeNumber"] = link.bling_nfe_number
    return info


class OrderReconciler:
    """Persists checkouts and mirrors them into Bling."""

    def __init__(
        self,
        session: AsyncSession,
        api_client: BlingAPIClient,
    ):
        """Initialize reconciler with a request-scoped session and the Bling client."""
        self.session = session
        self.api_client = api_client
        self.orders = OrderRepository(session)
        self.products = ProductRepository(session)

    async def create_order(self, request: CheckoutRequest) -> ReconciliationResult:
        """
        Persist a checkout and push it to Bling.

        Args:
            request: Validated checkout payload

        Returns:
            ReconciliationResult; `erp` is empty when Bling was skipped or failed

        Raises:
            OrderPersistenceFailed: The local order could not be written
        """
        order = await self._persist(request)
        logger.info(
            f"Order {order.id} persisted with {len(order.items)} items, total {order.total}",
            extra={"order_id": order.id},
        )

        erp = await self._push_to_bling(order)
        return await self._result(order, erp)

    async def sync_existing(self, order_id: str) -> ReconciliationResult:
        """
        Run the Bling flow for an order that is already persisted.

        Orders that already have a link are not sent again; the stored link
        data is returned instead.

        Raises:
            OrderNotFoundError: Unknown order id
        """
        order = await self.orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order not found: {order_id}")

        link = await self.orders.get_link(order_id)
        if link is not None:
            logger.info(
                f"Order {order_id} already linked to Bling order {link.bling_order_id}",
                extra={"order_id": order_id, "bling_order_id": link.bling_order_id},
            )
            return await self._result(order, link_to_erp_info(link))

        erp = await self._push_to_bling(order)
        return await self._result(order, erp)

    async def _price_items(self, request: CheckoutRequest) -> List[Dict[str, Any]]:
        """
        Order lines priced from the catalog.

        Lines pointing at a known product are charged its current selling
        price; other lines keep the submitted price.
        """
        products = await self.products.get_by_ids([item.product_id for item in request.items])
        items_data = []
        for item in request.items:
            product = products.get(item.product_id) if item.product_id else None
            price = to_money(effective_price(product) if product else item.product_price)
            if product and price != to_money(item.product_price):
                logger.warning(
                    f"Repricing {item.product_name}: submitted {item.product_price}, catalog {price}",
                    extra={"product_id": product.id},
                )
            items_data.append(
                {
                    "product_id": item.product_id,
                    "product_name": item.product_name,
                    "product_price": price,
                    "quantity": item.quantity,
                    "subtotal": to_money(price * item.quantity),
                }
            )
        return items_data

    async def _persist(self, request: CheckoutRequest) -> Order:
        """
        Write the order with server-side totals.

        Shipping follows the free-shipping threshold and the total is
        subtotal + shipping - discount, whatever the client submitted.
        """
        discount = Decimal("0")
        coupon: Optional[DiscountCoupon] = None

        try:
            items_data = await self._price_items(request)
            subtotal = to_money(sum((item["subtotal"] for item in items_data), Decimal("0")))

            if request.coupon_code:
                verdict, coupon = await validate_coupon(self.session, request.coupon_code, subtotal)
                if coupon is not None:
                    discount = verdict["discount"]
                else:
                    logger.warning(
                        f"Ignoring coupon {request.coupon_code}: {verdict.get('reason')}"
                    )
        except SQLAlchemyError as e:
            logger.error(f"Failed to price order: {e}", exc_info=True)
            raise OrderPersistenceFailed(f"Failed to persist order: {e}") from e

        shipping_cost = calculate_shipping(subtotal)
        total = to_money(subtotal + shipping_cost - discount)
        if total != to_money(request.total):
            logger.warning(f"Submitted total {request.total} differs from computed total {total}")

        order_data = {
            "customer_name": request.customer_name,
            "customer_email": request.customer_email,
            "customer_phone": request.customer_phone,
            "customer_address": request.customer_address,
            "customer_city": request.customer_city,
            "customer_state": request.customer_state,
            "customer_zip": request.customer_zip,
            "subtotal": subtotal,
            "shipping_cost": shipping_cost,
            "discount_amount": discount,
            "coupon_code": coupon.code if coupon is not None else None,
            "total": total,
            "notes": request.notes,
            "status": ORDER_STATUS_PENDING,
        }

        try:
            return await self.orders.create_with_items(order_data, items_data, coupon=coupon)
        except SQLAlchemyError as e:
            logger.error(f"Failed to persist order: {e}", exc_info=True)
            raise OrderPersistenceFailed(f"Failed to persist order: {e}") from e

    async def _sales_order_lines(self, order: Order) -> List[SalesOrderLine]:
        """Order items enriched with the current SKU of each product."""
        products = await self.products.get_by_ids([item.product_id for item in order.items])
        lines = []
        for item in order.items:
            product = products.get(item.product_id) if item.product_id else None
            lines.append(
                SalesOrderLine(
                    sku=product.sku if product else None,
                    name=item.product_name,
                    quantity=item.quantity,
                    price=item.product_price,
                )
            )
        return lines

    async def _push_to_bling(self, order: Order) -> ErpSyncInfo:
        """
        Contact, sales order, NF-e and link, in that order.

        Never raises: a failed step ends the flow and leaves the order as it is.
        """
        set_order_context(order.id)
        log_extra = {"order_id": order.id}

        try:
            contact_id = await self.api_client.find_or_create_contact(
                ContactInput(
                    name=order.customer_name,
                    email=order.customer_email,
                    phone=order.customer_phone,
                    address=order.customer_address,
                    city=order.customer_city,
                    state=order.customer_state,
                    zip=order.customer_zip,
                )
            )
        except Exception as e:
            logger.error(
                f"Skipping Bling for order {order.id}, contact failed: {e}",
                exc_info=True,
                extra=log_extra,
            )
            capture_exception(e, context={"order_id": order.id, "step": "contact"}, level="warning")
            return ErpSyncInfo()

        try:
            lines = await self._sales_order_lines(order)
            bling_order_id, bling_order_number = await self.api_client.create_sales_order(
                contact_id, lines, order.shipping_cost, order.notes
            )
        except Exception as e:
            logger.error(
                f"Bling sales order failed for order {order.id}: {e}",
                exc_info=True,
                extra=log_extra,
            )
            capture_exception(e, context={"order_id": order.id, "step": "sales_order"})
            return ErpSyncInfo()

        set_order_context(order.id, bling_order_id)
        log_extra["bling_order_id"] = bling_order_id

        nfe_id, nfe_number = await self.api_client.issue_invoice(bling_order_id)
        if not nfe_number:
            logger.warning(f"NF-e not issued for Bling order {bling_order_id}", extra=log_extra)

        erp = ErpSyncInfo(
            blingOrderId=bling_order_id,
            blingOrderNumber=bling_order_number,
            blingContactId=contact_id,
            nfeId=nfe_id,
            nfeNumber=nfe_number,
            nfeIssued=bool(nfe_number),
        )

        await self._link_and_confirm(order, erp)
        return erp

    async def _link_and_confirm(self, order: Order, erp: ErpSyncInfo) -> None:
        try:
            await self.orders.create_link(
                order_id=order.id,
                bling_order_id=erp["blingOrderId"],
                bling_order_number=erp["blingOrderNumber"],
                bling_contact_id=erp["blingContactId"] or None,
                bling_nfe_id=erp["nfeId"] or None,
                bling_nfe_number=erp["nfeNumber"] or None,
                status=LINK_STATUS_NFE_ISSUED if erp["nfeIssued"] else LINK_STATUS_ORDER_CREATED,
            )
            await self.orders.set_status(order.id, ORDER_STATUS_CONFIRMED)
            logger.info(
                f"Order {order.id} linked to Bling order {erp['blingOrderId']} and confirmed",
                extra={"order_id": order.id, "bling_order_id": erp["blingOrderId"]},
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to link order {order.id} to Bling: {e}", exc_info=True)
            capture_exception(e, context={"order_id": order.id, "step": "link"})
            # Rollback expired the instance; reload it with its items
            await self.session.refresh(order)

    async def _result(self, order: Order, erp: ErpSyncInfo) -> ReconciliationResult:
        store = await StoreSettingsRepository(self.session).get()
        whatsapp_url = build_order_whatsapp_url(
            store.whatsapp if store else None,
            order,
            erp.get("blingOrderNumber"),
            erp.get("nfeNumber"),
        )
        return ReconciliationResult(order=order, erp=erp, whatsappUrl=whatsapp_url)

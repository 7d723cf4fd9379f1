"""Repositories for storefront and Bling linkage data access."""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from bikeshop_sync.utils.dates import utcnow

from .models import (
    BlingOrder,
    BlingProductCache,
    DiscountCoupon,
    OAuthToken,
    Order,
    OrderItem,
    Product,
    ProductImage,
    StockMovement,
    StoreSettings,
)


class TokenRepository:
    """Data access layer for the Bling OAuth token row."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with async session."""
        self.session = session

    async def get_latest(self) -> Optional[OAuthToken]:
        """Return the most recently created token, or None."""
        query = (
            select(OAuthToken)
            .order_by(OAuthToken.created_at.desc(), OAuthToken.id.desc())
            .limit(1)
        )
        result = await self.session.execute(query)
        return result.scalars().first()

    async def replace(
        self,
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
    ) -> OAuthToken:
        """
        Supersede every stored token with a new pair.

        Delete and insert are committed together so readers never observe
        an empty table between the two statements.
        """
        try:
            await self.session.execute(delete(OAuthToken))
            token = OAuthToken(
                access_token=access_token,
                refresh_token=refresh_token,
                expires_at=expires_at,
                created_at=utcnow(),
            )
            self.session.add(token)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        await self.session.refresh(token)
        return token


class StoreSettingsRepository:
    """Data access layer for the single store settings row."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self) -> Optional[StoreSettings]:
        result = await self.session.execute(select(StoreSettings).limit(1))
        return result.scalars().first()

    async def is_store_open(self) -> bool:
        """A store without a settings row is considered closed."""
        store = await self.get()
        return store.is_store_open if store else False


class ProductRepository:
    """Data access layer for Product, ProductImage and the Bling payload cache."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, product_id: str) -> Optional[Product]:
        return await self.session.get(Product, product_id)

    async def get_by_ids(self, product_ids: Sequence[str]) -> Dict[str, Product]:
        """Map product id to product for the ids that exist."""
        ids = [pid for pid in product_ids if pid]
        if not ids:
            return {}
        result = await self.session.execute(select(Product).where(Product.id.in_(ids)))
        return {product.id: product for product in result.scalars().all()}

    async def get_by_sku(self, sku: str) -> Optional[Product]:
        result = await self.session.execute(select(Product).where(Product.sku == sku))
        return result.scalars().first()

    async def update_stock(self, product_id: str, stock_quantity: int) -> None:
        """Blind overwrite of the cached stock level."""
        await self.session.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock_quantity=stock_quantity, updated_at=utcnow())
        )
        await self.session.commit()

    async def create(self, values: Dict[str, Any], image_url: Optional[str] = None) -> Product:
        """Insert a product and, if given, its primary image in one commit."""
        product = Product(**values)
        self.session.add(product)
        try:
            await self.session.flush()
            if image_url:
                self.session.add(
                    ProductImage(
                        product_id=product.id,
                        image_url=image_url,
                        is_primary=True,
                        display_order=0,
                    )
                )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return product

    async def update_fields(self, product: Product, values: Dict[str, Any]) -> Product:
        for field, value in values.items():
            setattr(product, field, value)
        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return product

    async def upsert_cache(self, bling_product_id: str, data: Dict[str, Any]) -> None:
        """Insert or replace the cached raw payload for a Bling product."""
        result = await self.session.execute(
            select(BlingProductCache).where(BlingProductCache.bling_product_id == bling_product_id)
        )
        entry = result.scalars().first()
        now = utcnow()
        if entry:
            entry.data = data
            entry.synced_at = now
        else:
            self.session.add(
                BlingProductCache(bling_product_id=bling_product_id, data=data, synced_at=now)
            )
        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise


class OrderRepository:
    """Data access layer for Order, OrderItem and BlingOrder."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_with_items(
        self,
        order_data: Dict[str, Any],
        items_data: List[Dict[str, Any]],
        coupon: Optional[DiscountCoupon] = None,
    ) -> Order:
        """
        Insert an order with its items in a single transaction.

        When a coupon is given its usage counter is incremented in the same
        transaction.

        Raises:
            Any database error, after rolling back.
        """
        order = Order(**order_data)
        order.items = [OrderItem(**item) for item in items_data]
        self.session.add(order)

        try:
            if coupon is not None:
                await self.session.execute(
                    update(DiscountCoupon)
                    .where(DiscountCoupon.id == coupon.id)
                    .values(current_uses=DiscountCoupon.current_uses + 1)
                )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        return order

    async def get(self, order_id: str) -> Optional[Order]:
        return await self.session.get(Order, order_id)

    async def set_status(self, order_id: str, status: str) -> None:
        await self.session.execute(
            update(Order)
            .where(Order.id == order_id)
            .values(status=status, updated_at=utcnow())
        )
        await self.session.commit()

    async def get_link(self, order_id: str) -> Optional[BlingOrder]:
        result = await self.session.execute(
            select(BlingOrder).where(BlingOrder.order_id == order_id)
        )
        return result.scalars().first()

    async def create_link(self, **values: Any) -> BlingOrder:
        link = BlingOrder(**values)
        self.session.add(link)
        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return link


class CouponRepository:
    """Data access layer for DiscountCoupon."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_code(self, code: str) -> Optional[DiscountCoupon]:
        """Case-insensitive lookup by coupon code."""
        normalized = code.strip().upper()
        result = await self.session.execute(
            select(DiscountCoupon).where(func.upper(DiscountCoupon.code) == normalized)
        )
        return result.scalars().first()


class StockMovementRepository:
    """Data access layer for the stock ledger."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(self, product: Product, movement: StockMovement) -> StockMovement:
        """Append a ledger row and move the product's stock to its new_quantity."""
        self.session.add(movement)
        product.stock_quantity = movement.new_quantity
        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return movement

    async def list_recent(
        self,
        product_id: Optional[str] = None,
        limit: int = 50,
    ) -> List[StockMovement]:
        query = select(StockMovement)
        if product_id:
            query = query.where(StockMovement.product_id == product_id)
        query = query.order_by(StockMovement.created_at.desc()).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

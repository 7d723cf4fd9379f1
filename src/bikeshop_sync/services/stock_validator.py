"""Cart stock validation against Bling live stock with local fallback."""

from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from bikeshop_sync.api.client import BlingAPIClient
from bikeshop_sync.core.exceptions import BikeshopError, NotConnected, RefreshFailed
from bikeshop_sync.core.logger import setup_logger
from bikeshop_sync.core.token_manager import TokenManager
from bikeshop_sync.db.models import Product
from bikeshop_sync.db.repository import ProductRepository, StoreSettingsRepository
from bikeshop_sync.models.checkout import LineVerdict, StockItem, StockValidationResponse

logger = setup_logger(__name__)

SOURCE_BLING = "bling"
SOURCE_LOCAL = "local"

STORE_CLOSED_MESSAGE = "A loja está fechada no momento. Tente novamente mais tarde."


def product_not_found(item: StockItem) -> LineVerdict:
    return LineVerdict(
        product_id=item.product_id,
        valid=False,
        reason="product_not_found",
        message="Produto não encontrado",
    )


def product_inactive(item: StockItem, product: Product) -> LineVerdict:
    return LineVerdict(
        product_id=item.product_id,
        valid=False,
        reason="product_inactive",
        message=f"{product.name} não está disponível para venda",
    )


def check_quantity(item: StockItem, product: Product, available: int, source: str) -> LineVerdict:
    """Compare requested quantity with an available stock figure."""
    if available < item.quantity:
        return LineVerdict(
            product_id=item.product_id,
            valid=False,
            reason="insufficient_stock",
            message=f"{product.name}: estoque insuficiente (disponível: {available})",
            available=available,
            source=source,
        )
    return LineVerdict(
        product_id=item.product_id,
        valid=True,
        available=available,
        source=source,
    )


class StockValidator:
    """
    Validates cart lines before checkout.

    Stock figures are advisory: nothing is reserved, so two buyers may both
    pass validation for the last unit.
    """

    def __init__(
        self,
        session: AsyncSession,
        token_manager: TokenManager,
        api_client: BlingAPIClient,
    ):
        self.session = session
        self.token_manager = token_manager
        self.api_client = api_client
        self.products = ProductRepository(session)

    async def _bling_connected(self) -> bool:
        try:
            await self.token_manager.get_valid_access_token()
            return True
        except NotConnected:
            logger.info("Bling not connected, using local stock")
        except RefreshFailed as e:
            logger.warning(f"Bling token refresh failed, using local stock: {e}")
        return False

    async def validate(self, items: Sequence[StockItem]) -> StockValidationResponse:
        """
        Validate every line; the cart is valid only if all lines are.

        Returns:
            Response with per-line verdicts, or a bare store_closed verdict
        """
        if not await StoreSettingsRepository(self.session).is_store_open():
            logger.info("Stock validation refused: store closed")
            return StockValidationResponse(
                valid=False,
                error="store_closed",
                message=STORE_CLOSED_MESSAGE,
            )

        logger.info(f"Validating stock for {len(items)} items")

        if not await self._bling_connected():
            results = [await self._validate_local(item) for item in items]
            return StockValidationResponse(
                valid=all(result.valid for result in results),
                results=results,
                source=SOURCE_LOCAL,
            )

        results = [await self._validate_with_bling(item) for item in items]
        valid = all(result.valid for result in results)
        logger.info(f"Stock validation complete: valid={valid}")
        return StockValidationResponse(valid=valid, results=results)

    async def _validate_local(self, item: StockItem) -> LineVerdict:
        product = await self.products.get_by_id(item.product_id)
        if product is None:
            return product_not_found(item)
        if not product.is_active:
            return product_inactive(item, product)
        return check_quantity(item, product, product.stock_quantity, SOURCE_LOCAL)

    async def _validate_with_bling(self, item: StockItem) -> LineVerdict:
        product = await self.products.get_by_id(item.product_id)
        if product is None:
            return product_not_found(item)
        if not product.is_active:
            return product_inactive(item, product)

        live_stock = await self._fetch_live_stock(product)
        if live_stock is None:
            return check_quantity(item, product, product.stock_quantity, SOURCE_LOCAL)
        return check_quantity(item, product, live_stock, SOURCE_BLING)

    async def _fetch_live_stock(self, product: Product) -> Optional[int]:
        """
        Live Bling stock for a product, mirrored into the local row.

        Returns None when the product has no SKU or Bling cannot answer.
        """
        if not product.sku:
            return None

        try:
            live_stock = await self.api_client.get_live_stock(product.sku)
        except BikeshopError as e:
            logger.error(
                f"Error checking Bling stock for {product.sku}: {e}",
                extra={"product_id": product.id},
            )
            return None

        await self.products.update_stock(product.id, live_stock)
        return live_stock


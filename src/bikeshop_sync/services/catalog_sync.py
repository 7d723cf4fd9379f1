"""Catalog import from Bling into the local products table."""

import re
import unicodedata
from decimal import Decimal
from typing import Any, Dict, List, TypedDict

from sqlalchemy.ext.asyncio import AsyncSession

from bikeshop_sync.api.client import BlingAPIClient
from bikeshop_sync.config.constants import (
    MAX_PRODUCT_PAGES,
    PRODUCT_ACTIVE_STATUS,
    PRODUCT_PAGE_SIZE,
)
from bikeshop_sync.core.exceptions import BikeshopError
from bikeshop_sync.core.logger import setup_logger
from bikeshop_sync.core.monitoring import capture_message
from bikeshop_sync.db.repository import ProductRepository
from bikeshop_sync.models.bling import BlingProduct

logger = setup_logger(__name__)


class SyncSummary(TypedDict):
    synced: int
    failed: int
    total: int


def slugify(name: str, remote_id: str) -> str:
    """
    URL slug made unique by the Bling id.

    "Bicicleta Caloi Elite" with id 123 -> "bicicleta-caloi-elite-123".
    """
    folded = unicodedata.normalize("NFD", name.lower())
    folded = "".join(char for char in folded if not unicodedata.combining(char))
    slug = re.sub(r"[^a-z0-9]+", "-", folded).strip("-")
    return f"{slug}-{remote_id}"


def product_values(product: BlingProduct) -> Dict[str, Any]:
    """Map a Bling product onto Product columns."""
    remote_id = str(product.id)
    return {
        "sku": product.codigo or remote_id,
        "name": product.nome,
        "slug": slugify(product.nome, remote_id),
        "description": product.descricaoCurta or product.observacoes or None,
        "price": product.preco or Decimal("0"),
        "promotional_price": product.precoPromocional or None,
        "stock_quantity": product.live_stock,
        "is_active": product.situacao == PRODUCT_ACTIVE_STATUS,
        "brand": product.marca or None,
    }


class CatalogSync:
    """Pulls the Bling product listing and upserts it by SKU."""

    def __init__(
        self,
        session: AsyncSession,
        api_client: BlingAPIClient,
        page_size: int = PRODUCT_PAGE_SIZE,
        max_pages: int = MAX_PRODUCT_PAGES,
    ):
        self.session = session
        self.api_client = api_client
        self.page_size = page_size
        self.max_pages = max_pages
        self.products = ProductRepository(session)

    async def fetch_all(self) -> List[BlingProduct]:
        """
        Page through the listing until a short or empty page.

        A failing page ends pagination; products already fetched are kept.
        """
        fetched: List[BlingProduct] = []
        for page in range(1, self.max_pages + 1):
            try:
                batch = await self.api_client.list_products(page, self.page_size)
            except BikeshopError as e:
                logger.error(f"Failed to fetch products page {page}: {e}")
                break

            fetched.extend(batch)
            logger.info(f"Fetched page {page} with {len(batch)} products")

            if len(batch) < self.page_size:
                break
        else:
            logger.warning(f"Stopped product sync at the {self.max_pages} page limit")

        return fetched

    async def sync_product(self, product: BlingProduct) -> None:
        """Cache the raw payload, then update by SKU or insert."""
        remote_id = str(product.id)
        await self.products.upsert_cache(remote_id, product.model_dump(mode="json"))

        values = product_values(product)
        existing = await self.products.get_by_sku(values["sku"])

        if existing:
            update = {
                key: values[key]
                for key in (
                    "name",
                    "description",
                    "price",
                    "promotional_price",
                    "stock_quantity",
                    "is_active",
                    "brand",
                )
            }
            await self.products.update_fields(existing, update)
        else:
            await self.products.create(values, image_url=product.imagemURL)

    async def sync_all(self) -> SyncSummary:
        """
        Import the whole Bling catalog.

        Each product is synced independently; a failure only counts
        against that product.
        """
        logger.info("Starting Bling product sync...")
        remote_products = await self.fetch_all()

        synced = 0
        failed = 0
        for product in remote_products:
            try:
                await self.sync_product(product)
                synced += 1
            except Exception as e:
                logger.error(f"Error syncing product {product.id}: {e}", exc_info=True)
                failed += 1

        logger.info(f"Sync complete. Synced: {synced}, Failed: {failed}")
        if failed:
            capture_message(
                f"Product sync finished with {failed} failures",
                level="warning",
                context={"synced": synced, "failed": failed, "total": len(remote_products)},
            )
        return SyncSummary(synced=synced, failed=failed, total=len(remote_products))

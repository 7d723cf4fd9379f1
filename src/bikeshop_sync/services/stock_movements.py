"""Manual stock ledger: inbound, outbound and absolute adjustments."""

from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from bikeshop_sync.core.exceptions import ProductNotFoundError
from bikeshop_sync.core.logger import setup_logger
from bikeshop_sync.db.models import StockMovement
from bikeshop_sync.db.repository import ProductRepository, StockMovementRepository

logger = setup_logger(__name__)

MOVEMENT_INBOUND = "entrada"
MOVEMENT_OUTBOUND = "saida"
MOVEMENT_ADJUSTMENT = "ajuste"
MOVEMENT_TYPES = (MOVEMENT_INBOUND, MOVEMENT_OUTBOUND, MOVEMENT_ADJUSTMENT)


def compute_new_quantity(movement_type: str, previous: int, quantity: int) -> int:
    """
    Stock level after a movement.

    entrada adds, saida subtracts without going below zero, ajuste sets
    the level outright.
    """
    if quantity < 0:
        raise ValueError(f"Movement quantity must not be negative: {quantity}")
    if movement_type == MOVEMENT_INBOUND:
        return previous + quantity
    if movement_type == MOVEMENT_OUTBOUND:
        return max(0, previous - quantity)
    if movement_type == MOVEMENT_ADJUSTMENT:
        return quantity
    raise ValueError(f"Unknown movement type: {movement_type}")


async def record_movement(
    session: AsyncSession,
    product_id: str,
    movement_type: str,
    quantity: int,
    notes: Optional[str] = None,
    created_by: Optional[str] = None,
) -> StockMovement:
    """
    Append a ledger row and move the product's stock level accordingly.

    Raises:
        ProductNotFoundError: Unknown product id
        ValueError: Unknown movement type or negative quantity
    """
    product = await ProductRepository(session).get_by_id(product_id)
    if product is None:
        raise ProductNotFoundError(f"Product not found: {product_id}")

    previous = product.stock_quantity
    new_quantity = compute_new_quantity(movement_type, previous, quantity)

    movement = StockMovement(
        product_id=product.id,
        movement_type=movement_type,
        quantity=quantity,
        previous_quantity=previous,
        new_quantity=new_quantity,
        notes=notes,
        created_by=created_by,
    )
    await StockMovementRepository(session).record(product, movement)

    logger.info(
        f"Stock movement {movement_type} on {product.name}: {previous} -> {new_quantity}",
        extra={"product_id": product.id},
    )
    return movement


async def list_movements(
    session: AsyncSession,
    product_id: Optional[str] = None,
    limit: int = 50,
) -> List[StockMovement]:
    """Newest movements first, optionally for a single product."""
    return await StockMovementRepository(session).list_recent(product_id=product_id, limit=limit)

"""API routes for checkout, Bling connection and admin operations."""

from decimal import Decimal
from html import escape
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse, JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from bikeshop_sync.api.client import BlingAPIClient
from bikeshop_sync.config.settings import settings
from bikeshop_sync.core.exceptions import (
    OrderNotFoundError,
    OrderPersistenceFailed,
    ProductNotFoundError,
    TokenExchangeFailed,
)
from bikeshop_sync.core.logger import setup_logger
from bikeshop_sync.core.token_manager import TokenManager
from bikeshop_sync.db.models import StockMovement
from bikeshop_sync.models.checkout import (
    CheckoutRequest,
    CouponValidationRequest,
    StockMovementRequest,
    StockValidationRequest,
)
from bikeshop_sync.server.auth import verify_api_key
from bikeshop_sync.server.dependencies import get_api_client, get_session, get_token_manager
from bikeshop_sync.services.catalog_sync import CatalogSync
from bikeshop_sync.services.order_reconciler import (
    OrderReconciler,
    ReconciliationResult,
    serialize_order,
)
from bikeshop_sync.services.pricing import validate_coupon
from bikeshop_sync.services.stock_movements import list_movements, record_movement
from bikeshop_sync.services.stock_validator import StockValidator

logger = setup_logger(__name__)
router = APIRouter()

OAUTH_SUCCESS_PAGE = """<html>
  <head>
    <meta charset="utf-8">
    <title>Bling Conectado</title>
    <style>
      body { font-family: system-ui, sans-serif; display: flex; justify-content: center;
             align-items: center; height: 100vh; margin: 0; background: #f0fdf4; }
      .container { text-align: center; padding: 2rem; background: white;
                   border-radius: 1rem; box-shadow: 0 4px 6px rgba(0,0,0,0.1); }
      h1 { color: #16a34a; }
    </style>
  </head>
  <body>
    <div class="container">
      <h1>&#10003; Bling Conectado com Sucesso!</h1>
      <p>Você já pode fechar esta janela.</p>
      <p>A integração está ativa e funcionando.</p>
    </div>
  </body>
</html>"""


def error_page(message: str, status_code: int) -> HTMLResponse:
    return HTMLResponse(
        f"<html><body><h1>Erro</h1><p>{escape(message)}</p></body></html>",
        status_code=status_code,
    )


def error_response(error: str, status_code: int = 500) -> JSONResponse:
    return JSONResponse({"success": False, "error": error}, status_code=status_code)


def _jsonable(values: Dict[str, Any]) -> Dict[str, Any]:
    """Decimals to floats for JSON output."""
    return {key: float(value) if isinstance(value, Decimal) else value for key, value in values.items()}


def reconciliation_response(result: ReconciliationResult) -> Dict[str, Any]:
    """Order fields plus the Bling identifiers and WhatsApp link."""
    return {
        "success": True,
        **serialize_order(result["order"]),
        **result["erp"],
        "whatsappUrl": result["whatsappUrl"],
    }


def serialize_movement(movement: StockMovement) -> Dict[str, Any]:
    return {
        "id": movement.id,
        "productId": movement.product_id,
        "movementType": movement.movement_type,
        "quantity": movement.quantity,
        "previousQuantity": movement.previous_quantity,
        "newQuantity": movement.new_quantity,
        "notes": movement.notes,
        "createdBy": movement.created_by,
        "createdAt": movement.created_at.isoformat() if movement.created_at else None,
    }


@router.get("/")
async def root() -> dict:
    """Root endpoint with basic service info."""
    return {
        "service": "Bike Shop Bling Sync",
        "version": "1.0.0",
        "endpoints": {
            "health": "GET /health",
            "stock_validation": "POST /stock/validate",
            "orders": "POST /orders",
            "coupons": "POST /coupons/validate",
            "oauth_callback": "GET /bling/oauth/callback",
            "docs": "GET /docs",
        },
    }


@router.get("/health")
async def health_check(
    session: AsyncSession = Depends(get_session),
    token_manager: TokenManager = Depends(get_token_manager),
) -> dict:
    """Health check endpoint for monitoring."""
    health_status = {
        "status": "healthy",
        "service": "bikeshop-bling-sync",
        "checks": {},
    }

    try:
        await session.execute(text("SELECT 1"))
        health_status["checks"]["database"] = "ok"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        health_status["checks"]["database"] = "error"
        health_status["status"] = "unhealthy"

    try:
        connection = await token_manager.connection_status()
        health_status["checks"]["bling"] = "connected" if connection["connected"] else "disconnected"
    except Exception as e:
        logger.error(f"Bling health check failed: {e}")
        health_status["checks"]["bling"] = "error"

    env_checks = {
        "bling_client_id": "ok" if settings.bling_client_id else "missing",
        "bling_client_secret": "ok" if settings.bling_client_secret else "missing",
        "admin_api_key": "ok" if settings.admin_api_key else "missing",
    }
    if "missing" in env_checks.values() and health_status["status"] == "healthy":
        health_status["status"] = "degraded"
    health_status["checks"]["environment"] = env_checks

    return health_status


# ------------------------------------------------------------------
# Bling connection
# ------------------------------------------------------------------


@router.get("/bling/oauth/callback", response_class=HTMLResponse)
async def bling_oauth_callback(
    code: Optional[str] = Query(None),
    token_manager: TokenManager = Depends(get_token_manager),
) -> HTMLResponse:
    """Bling redirects here after the admin authorizes the application."""
    if not code:
        logger.error("Authorization code not provided")
        return error_page("Código de autorização não fornecido.", 400)

    try:
        await token_manager.exchange_code(code)
    except TokenExchangeFailed as e:
        logger.error(f"OAuth callback error: {e}")
        return error_page(str(e), 500)

    logger.info("Bling OAuth connection established")
    return HTMLResponse(OAUTH_SUCCESS_PAGE)


@router.get("/bling/connection", dependencies=[Depends(verify_api_key)])
async def bling_connection(
    token_manager: TokenManager = Depends(get_token_manager),
):
    """Whether a usable token is stored, plus the authorization URL."""
    try:
        return await token_manager.connection_status()
    except Exception as e:
        logger.error(f"Check connection error: {e}", exc_info=True)
        return JSONResponse({"connected": False, "error": str(e)}, status_code=500)


@router.post("/bling/sync-products", dependencies=[Depends(verify_api_key)])
async def bling_sync_products(
    session: AsyncSession = Depends(get_session),
    api_client: BlingAPIClient = Depends(get_api_client),
):
    """Import the Bling catalog into the products table."""
    try:
        summary = await CatalogSync(session, api_client).sync_all()
    except Exception as e:
        logger.error(f"Product sync error: {e}", exc_info=True)
        return error_response(str(e))
    return {"success": True, **summary}


# ------------------------------------------------------------------
# Checkout
# ------------------------------------------------------------------


@router.post("/stock/validate")
async def stock_validate(
    payload: StockValidationRequest,
    session: AsyncSession = Depends(get_session),
    token_manager: TokenManager = Depends(get_token_manager),
    api_client: BlingAPIClient = Depends(get_api_client),
):
    """Validate cart lines before checkout."""
    if not payload.items:
        return JSONResponse(
            {"valid": False, "error": "items array is required"},
            status_code=400,
        )

    try:
        result = await StockValidator(session, token_manager, api_client).validate(payload.items)
    except Exception as e:
        logger.error(f"Stock validation error: {e}", exc_info=True)
        return JSONResponse({"valid": False, "error": str(e)}, status_code=500)

    return result.model_dump(by_alias=True, exclude_none=True)


@router.post("/orders")
async def create_order(
    payload: CheckoutRequest,
    session: AsyncSession = Depends(get_session),
    api_client: BlingAPIClient = Depends(get_api_client),
):
    """Persist a checkout and mirror it into Bling."""
    try:
        result = await OrderReconciler(session, api_client).create_order(payload)
    except OrderPersistenceFailed as e:
        return error_response(str(e))
    except Exception as e:
        logger.error(f"Order processing error: {e}", exc_info=True)
        return error_response(str(e))

    return reconciliation_response(result)


@router.post("/orders/{order_id}/bling-sync", dependencies=[Depends(verify_api_key)])
async def sync_order_to_bling(
    order_id: str,
    session: AsyncSession = Depends(get_session),
    api_client: BlingAPIClient = Depends(get_api_client),
):
    """Send an existing order to Bling (back-fill)."""
    try:
        result = await OrderReconciler(session, api_client).sync_existing(order_id)
    except OrderNotFoundError as e:
        return error_response(str(e), status_code=404)
    except Exception as e:
        logger.error(f"Order processing error: {e}", exc_info=True)
        return error_response(str(e))

    return reconciliation_response(result)


@router.post("/coupons/validate")
async def coupons_validate(
    payload: CouponValidationRequest,
    session: AsyncSession = Depends(get_session),
):
    """Check a coupon code against an order total."""
    verdict, _ = await validate_coupon(session, payload.code, payload.order_total)
    return _jsonable(dict(verdict))


# ------------------------------------------------------------------
# Admin stock ledger
# ------------------------------------------------------------------


@router.post("/admin/stock/movements", dependencies=[Depends(verify_api_key)])
async def create_stock_movement(
    payload: StockMovementRequest,
    session: AsyncSession = Depends(get_session),
):
    """Record an inbound, outbound or adjustment movement."""
    try:
        movement = await record_movement(
            session,
            payload.product_id,
            payload.movement_type,
            payload.quantity,
            notes=payload.notes,
            created_by=payload.created_by,
        )
    except ProductNotFoundError as e:
        return error_response(str(e), status_code=404)
    except ValueError as e:
        return error_response(str(e), status_code=400)

    return serialize_movement(movement)


@router.get("/admin/stock/movements", dependencies=[Depends(verify_api_key)])
async def get_stock_movements(
    product_id: Optional[str] = Query(None, alias="productId"),
    limit: int = Query(50, ge=1, le=500),
    session: AsyncSession = Depends(get_session),
):
    """Most recent movements, newest first."""
    movements = await list_movements(session, product_id=product_id, limit=limit)
    return [serialize_movement(movement) for movement in movements]

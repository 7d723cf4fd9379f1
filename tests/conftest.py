"""
Shared fixtures: a throwaway SQLite database per test and a scripted Bling API
served through httpx.MockTransport.
"""

import inspect
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, AsyncIterator, Callable, Dict, List, Tuple, Union

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from bikeshop_sync.api.client import BlingAPIClient
from bikeshop_sync.core.token_manager import TokenManager
from bikeshop_sync.db import (
    DiscountCoupon,
    Product,
    StoreSettings,
    StoreSettingsRepository,
    TokenRepository,
    get_engine,
    get_session_factory,
    init_db,
)

BLING_BASE = "https://www.bling.com.br/Api/v3"
BLING_PATH_PREFIX = "/Api/v3"

Handler = Callable[[httpx.Request], Any]
Scripted = Union[Tuple[int, Any], Handler]


class FakeBling:
    """
    Scripted Bling API.

    Routes map (method, path) to either a (status, json) pair or a handler
    taking the request. A handler may be async and may raise httpx errors to
    simulate transport failures. Unscripted calls get a 404.
    """

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], Scripted] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, path: str, status: int = 200, json: Any = None) -> None:
        self.routes[(method, path)] = (status, json)

    def on(self, method: str, path: str, handler: Handler) -> None:
        self.routes[(method, path)] = handler

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [
            request
            for request in self.requests
            if request.method == method and self._path(request) == path
        ]

    @staticmethod
    def _path(request: httpx.Request) -> str:
        path = request.url.path
        if path.startswith(BLING_PATH_PREFIX):
            path = path[len(BLING_PATH_PREFIX):]
        return path

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        entry = self.routes.get((request.method, self._path(request)))
        if entry is None:
            return httpx.Response(404, json={"error": {"type": "RESOURCE_NOT_FOUND"}})
        if callable(entry):
            response = entry(request)
            if inspect.isawaitable(response):
                response = await response
            return response
        status, body = entry
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)


@pytest.fixture(name="anyio_backend")
def anyio_backend_fixture() -> str:
    """Run async tests on asyncio only."""
    return "asyncio"


@pytest.fixture(name="engine")
async def engine_fixture(tmp_path, anyio_backend) -> AsyncIterator[AsyncEngine]:
    """Fresh SQLite database with every table created."""
    engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture(name="session_factory")
def session_factory_fixture(engine: AsyncEngine) -> async_sessionmaker:
    return get_session_factory(engine)


@pytest.fixture(name="session")
async def session_fixture(session_factory: async_sessionmaker, anyio_backend) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest.fixture(name="fake_bling")
def fake_bling_fixture() -> FakeBling:
    return FakeBling()


@pytest.fixture(name="http_client")
async def http_client_fixture(fake_bling: FakeBling, anyio_backend) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(transport=fake_bling.transport()) as client:
        yield client


@pytest.fixture(name="token_manager")
def token_manager_fixture(
    session_factory: async_sessionmaker,
    http_client: httpx.AsyncClient,
) -> TokenManager:
    return TokenManager(
        session_factory,
        client_id="client-id",
        client_secret="client-secret",
        api_base=BLING_BASE,
        redirect_uri="https://shop.example/bling/oauth/callback",
        http_client=http_client,
    )


@pytest.fixture(name="api_client")
def api_client_fixture(token_manager: TokenManager, http_client: httpx.AsyncClient) -> BlingAPIClient:
    return BlingAPIClient(
        token_manager,
        api_base=BLING_BASE,
        http_client=http_client,
        invoice_timeout=5.0,
    )


@pytest.fixture(name="connected")
async def connected_fixture(session_factory: async_sessionmaker, anyio_backend) -> None:
    """A token valid for another hour is stored."""
    await store_token(session_factory, timedelta(hours=1))


async def store_token(
    session_factory: async_sessionmaker,
    expires_in: timedelta,
    access_token: str = "access-1",
    refresh_token: str = "refresh-1",
):
    async with session_factory() as session:
        return await TokenRepository(session).replace(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=datetime.now(timezone.utc) + expires_in,
        )


async def add_product(session: AsyncSession, **overrides: Any) -> Product:
    values = {
        "name": "Bicicleta Caloi Elite",
        "slug": f"produto-{uuid.uuid4().hex[:8]}",
        "price": Decimal("3499.00"),
        "stock_quantity": 5,
        "is_active": True,
    }
    values.update(overrides)
    product = Product(**values)
    session.add(product)
    await session.commit()
    return product


async def add_coupon(session: AsyncSession, **overrides: Any) -> DiscountCoupon:
    values = {
        "code": "PEDAL10",
        "discount_type": "percentage",
        "discount_value": Decimal("10"),
        "min_order_value": Decimal("0"),
        "current_uses": 0,
        "starts_at": datetime.now(timezone.utc) - timedelta(days=1),
        "is_active": True,
    }
    values.update(overrides)
    coupon = DiscountCoupon(**values)
    session.add(coupon)
    await session.commit()
    return coupon


async def set_store_open(session: AsyncSession, is_open: bool, whatsapp: str = None) -> None:
    """Create or update the single store settings row."""
    store = await StoreSettingsRepository(session).get()
    if store is None:
        session.add(StoreSettings(is_store_open=is_open, whatsapp=whatsapp))
    else:
        store.is_store_open = is_open
        store.whatsapp = whatsapp
    await session.commit()


def bling_product(product_id: int, **overrides: Any) -> Dict[str, Any]:
    """Product payload shaped like GET /produtos."""
    payload = {
        "id": product_id,
        "nome": f"Produto {product_id}",
        "codigo": f"SKU-{product_id}",
        "preco": 100.0,
        "precoPromocional": 0,
        "situacao": "A",
        "estoque": {"saldoVirtualTotal": 7},
    }
    payload.update(overrides)
    return payload

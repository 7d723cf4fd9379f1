"""Tests for cart stock validation."""

from datetime import timedelta

import httpx
import pytest

from bikeshop_sync.db import Product
from bikeshop_sync.models.checkout import StockItem
from bikeshop_sync.services.stock_validator import StockValidator

from conftest import FakeBling, add_product, bling_product, set_store_open, store_token

pytestmark = pytest.mark.anyio


@pytest.fixture(name="validator")
async def validator_fixture(session, token_manager, api_client) -> StockValidator:
    """Validator for an open store."""
    await set_store_open(session, True)
    return StockValidator(session, token_manager, api_client)


async def test_missing_store_settings_means_closed(
    session, token_manager, api_client, fake_bling: FakeBling, connected: None
) -> None:
    """Without a store settings row the cart is refused, even with stock."""
    product = await add_product(session, stock_quantity=5)

    result = await StockValidator(session, token_manager, api_client).validate(
        [StockItem(product_id=product.id, quantity=1)]
    )

    assert result.valid is False
    assert result.error == "store_closed"
    assert result.results is None
    assert fake_bling.requests == []


async def test_store_closed_short_circuits(
    validator: StockValidator, session, fake_bling: FakeBling, connected: None
) -> None:
    """A closed store answers without per-line detail or any Bling call."""
    await set_store_open(session, False)

    result = await validator.validate([StockItem(product_id="anything", quantity=1)])

    assert result.valid is False
    assert result.error == "store_closed"
    assert result.message == "A loja está fechada no momento. Tente novamente mais tarde."
    assert result.results is None
    assert fake_bling.requests == []


async def test_not_connected_uses_local_stock(validator: StockValidator, session) -> None:
    """Insufficient stock: 10 requested, 3 available."""
    product = await add_product(session, name="Bicicleta Caloi", stock_quantity=3)

    result = await validator.validate([StockItem(product_id=product.id, quantity=10)])

    assert result.valid is False
    assert result.source == "local"
    verdict = result.results[0]
    assert verdict.reason == "insufficient_stock"
    assert verdict.available == 3
    assert verdict.message == "Bicicleta Caloi: estoque insuficiente (disponível: 3)"


async def test_local_verdicts_for_missing_and_inactive_products(validator: StockValidator, session) -> None:
    inactive = await add_product(session, name="Pedal Antigo", is_active=False)
    in_stock = await add_product(session, stock_quantity=4)

    result = await validator.validate(
        [
            StockItem(product_id="missing-id", quantity=1),
            StockItem(product_id=inactive.id, quantity=1),
            StockItem(product_id=in_stock.id, quantity=4),
        ]
    )

    assert result.valid is False
    missing, disabled, ok = result.results
    assert (missing.reason, missing.message) == ("product_not_found", "Produto não encontrado")
    assert (disabled.reason, disabled.message) == ("product_inactive", "Pedal Antigo não está disponível para venda")
    assert ok.valid is True
    assert ok.available == 4


async def test_refresh_failure_falls_back_to_local(
    validator: StockValidator, session, session_factory, fake_bling: FakeBling
) -> None:
    await store_token(session_factory, timedelta(minutes=1))
    fake_bling.add("POST", "/oauth/token", status=400, json={"error": "invalid_grant"})
    product = await add_product(session, sku="BIKE-1", stock_quantity=2)

    result = await validator.validate([StockItem(product_id=product.id, quantity=1)])

    assert result.valid is True
    assert result.source == "local"
    assert fake_bling.calls("GET", "/produtos") == []


async def test_live_stock_is_used_and_mirrored_locally(
    validator: StockValidator, session, session_factory, fake_bling: FakeBling, connected: None
) -> None:
    product = await add_product(session, sku="BIKE-1", stock_quantity=0)
    fake_bling.add("GET", "/produtos", json={"data": [bling_product(1, codigo="BIKE-1")]})

    result = await validator.validate([StockItem(product_id=product.id, quantity=2)])

    assert result.valid is True
    verdict = result.results[0]
    assert verdict.source == "bling"
    assert verdict.available == 7

    async with session_factory() as other:
        assert (await other.get(Product, product.id)).stock_quantity == 7


async def test_live_stock_below_quantity_is_rejected(
    validator: StockValidator, session, fake_bling: FakeBling, connected: None
) -> None:
    product = await add_product(session, name="Bicicleta Caloi", sku="BIKE-1", stock_quantity=50)
    fake_bling.add(
        "GET", "/produtos", json={"data": [bling_product(1, codigo="BIKE-1", estoque={"saldoVirtualTotal": 3})]}
    )

    result = await validator.validate([StockItem(product_id=product.id, quantity=10)])

    verdict = result.results[0]
    assert verdict.valid is False
    assert verdict.reason == "insufficient_stock"
    assert verdict.available == 3


async def test_bling_failure_falls_back_per_line(
    validator: StockValidator, session, fake_bling: FakeBling, connected: None
) -> None:
    """When the stock query throws, the line is judged on the exact local quantity."""
    product = await add_product(session, sku="BIKE-1", stock_quantity=6)

    def unreachable(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("down", request=request)

    fake_bling.on("GET", "/produtos", unreachable)

    result = await validator.validate(
        [StockItem(product_id=product.id, quantity=6), StockItem(product_id=product.id, quantity=7)]
    )

    enough, too_many = result.results
    assert (enough.valid, enough.source, enough.available) == (True, "local", 6)
    assert (too_many.valid, too_many.available) == (False, 6)
    assert result.valid is False


async def test_product_without_sku_is_checked_locally(
    validator: StockValidator, session, fake_bling: FakeBling, connected: None
) -> None:
    product = await add_product(session, sku=None, stock_quantity=1)

    result = await validator.validate([StockItem(product_id=product.id, quantity=1)])

    assert result.valid is True
    assert result.results[0].source == "local"
    assert fake_bling.requests == []

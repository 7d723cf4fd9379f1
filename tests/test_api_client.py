"""Tests for the Bling API client."""

import asyncio
import json
from decimal import Decimal

import httpx
import pytest

from bikeshop_sync.api.client import BlingAPIClient, digits_only
from bikeshop_sync.core.exceptions import (
    NotConnected,
    NotFound,
    RemoteError,
    Unauthorized,
    UnexpectedPayload,
)
from bikeshop_sync.models.bling import ContactInput, SalesOrderLine

from conftest import FakeBling, bling_product

pytestmark = pytest.mark.anyio

CUSTOMER = ContactInput(
    name="Ana Souza",
    email="ana@example.com",
    phone="(31) 99999-0000",
    address="Rua das Flores, 10",
    city="Belo Horizonte",
    state="mg",
    zip="30110-000",
)


def body_of(request: httpx.Request) -> dict:
    return json.loads(request.content)


def test_digits_only() -> None:
    assert digits_only("(31) 99999-0000") == "31999990000"
    assert digits_only(None) == ""


async def test_requests_carry_bearer_token(
    api_client: BlingAPIClient, fake_bling: FakeBling, connected: None
) -> None:
    fake_bling.add("GET", "/produtos", json={"data": []})

    await api_client.list_products(page=1)

    request = fake_bling.requests[-1]
    assert request.headers["Authorization"] == "Bearer access-1"
    assert request.url.params["pagina"] == "1"
    assert request.url.params["limite"] == "100"


async def test_not_connected_propagates(api_client: BlingAPIClient, fake_bling: FakeBling) -> None:
    """Without a token nothing is sent to Bling."""
    with pytest.raises(NotConnected):
        await api_client.list_products()
    assert fake_bling.requests == []


@pytest.mark.parametrize(
    ("status", "error_cls"),
    [(401, Unauthorized), (404, NotFound), (500, RemoteError), (429, RemoteError)],
)
async def test_http_errors_are_typed(
    api_client: BlingAPIClient, fake_bling: FakeBling, connected: None, status: int, error_cls
) -> None:
    fake_bling.add("GET", "/produtos", status=status, json={"error": {"message": "boom"}})

    with pytest.raises(error_cls) as excinfo:
        await api_client.list_products()

    assert excinfo.value.status == status
    assert "boom" in excinfo.value.body


async def test_transport_error_is_remote_error_with_status_zero(
    api_client: BlingAPIClient, fake_bling: FakeBling, connected: None
) -> None:
    def unreachable(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    fake_bling.on("GET", "/produtos", unreachable)

    with pytest.raises(RemoteError) as excinfo:
        await api_client.list_products()
    assert excinfo.value.status == 0


async def test_unexpected_payload_shape(
    api_client: BlingAPIClient, fake_bling: FakeBling, connected: None
) -> None:
    """A 2xx body that does not fit the model fails fast."""
    fake_bling.add("POST", "/pedidos/vendas", json={"data": {"numero": 12}})

    with pytest.raises(UnexpectedPayload):
        await api_client.create_sales_order("55", [SalesOrderLine(name="x", quantity=1, price=Decimal("1"))], Decimal("0"))


async def test_existing_contact_is_reused(
    api_client: BlingAPIClient, fake_bling: FakeBling, connected: None
) -> None:
    """Resolution by email is idempotent: no contact is created when one matches."""
    fake_bling.add("GET", "/contatos", json={"data": [{"id": 987, "nome": "Ana Souza"}]})

    first = await api_client.find_or_create_contact(CUSTOMER)
    second = await api_client.find_or_create_contact(CUSTOMER)

    assert first == second == "987"
    assert fake_bling.calls("POST", "/contatos") == []
    assert fake_bling.calls("GET", "/contatos")[0].url.params["pesquisa"] == "ana@example.com"


async def test_missing_contact_is_created(
    api_client: BlingAPIClient, fake_bling: FakeBling, connected: None
) -> None:
    fake_bling.add("GET", "/contatos", json={"data": []})
    fake_bling.add("POST", "/contatos", status=201, json={"data": {"id": 321}})

    contact_id = await api_client.find_or_create_contact(CUSTOMER)

    assert contact_id == "321"
    payload = body_of(fake_bling.calls("POST", "/contatos")[0])
    assert payload["nome"] == "Ana Souza"
    assert payload["fantasia"] == "Ana Souza"
    assert payload["tipo"] == "F"
    assert payload["contribuinte"] == 9
    assert payload["telefone"] == payload["celular"] == "31999990000"
    assert payload["endereco"] == {
        "endereco": "Rua das Flores, 10",
        "numero": "S/N",
        "bairro": "",
        "municipio": "Belo Horizonte",
        "uf": "MG",
        "cep": "30110000",
    }


async def test_contact_search_failure_falls_through_to_create(
    api_client: BlingAPIClient, fake_bling: FakeBling, connected: None
) -> None:
    fake_bling.add("GET", "/contatos", status=503, json={"error": "unavailable"})
    fake_bling.add("POST", "/contatos", status=201, json={"data": {"id": 42}})

    assert await api_client.find_or_create_contact(CUSTOMER) == "42"


async def test_contact_create_failure_raises(
    api_client: BlingAPIClient, fake_bling: FakeBling, connected: None
) -> None:
    fake_bling.add("GET", "/contatos", json={"data": []})
    fake_bling.add("POST", "/contatos", status=400, json={"error": {"fields": ["email"]}})

    with pytest.raises(RemoteError):
        await api_client.find_or_create_contact(CUSTOMER)


async def test_create_sales_order_payload(
    api_client: BlingAPIClient, fake_bling: FakeBling, connected: None
) -> None:
    """Lines without SKU get a placeholder code; number falls back to id."""
    fake_bling.add("POST", "/pedidos/vendas", status=201, json={"data": {"id": 5551}})

    order_id, order_number = await api_client.create_sales_order(
        "987",
        [
            SalesOrderLine(sku="BIKE-1", name="Bicicleta", quantity=1, price=Decimal("3499.00")),
            SalesOrderLine(sku=None, name="Capacete", quantity=2, price=Decimal("149.9")),
        ],
        Decimal("0"),
    )

    assert (order_id, order_number) == ("5551", "5551")
    payload = body_of(fake_bling.calls("POST", "/pedidos/vendas")[0])
    assert payload["contato"] == {"id": 987}
    assert payload["itens"] == [
        {"codigo": "BIKE-1", "descricao": "Bicicleta", "unidade": "UN", "quantidade": 1, "valor": 3499.0},
        {"codigo": "PROD-1", "descricao": "Capacete", "unidade": "UN", "quantidade": 2, "valor": 149.9},
    ]
    assert payload["transporte"] == {"frete": 0.0}
    assert payload["observacoes"] == "Pedido realizado pelo site"
    assert payload["observacoesInternas"]


async def test_create_sales_order_returns_numero(
    api_client: BlingAPIClient, fake_bling: FakeBling, connected: None
) -> None:
    fake_bling.add("POST", "/pedidos/vendas", status=201, json={"data": {"id": 5551, "numero": 1042}})

    _, order_number = await api_client.create_sales_order(
        "987", [SalesOrderLine(name="Bicicleta", quantity=1, price=Decimal("10"))], Decimal("29.90"), "Entregar à tarde"
    )

    assert order_number == "1042"
    payload = body_of(fake_bling.requests[-1])
    assert payload["observacoes"] == "Entregar à tarde"
    assert payload["transporte"] == {"frete": 29.9}


async def test_issue_invoice_generates_sends_and_reads_number(
    api_client: BlingAPIClient, fake_bling: FakeBling, connected: None
) -> None:
    fake_bling.add("POST", "/nfe", status=201, json={"data": {"id": 777}})
    fake_bling.add("POST", "/nfe/777/enviar", json={"data": {"id": 777}})
    fake_bling.add("GET", "/nfe/777", json={"data": {"id": 777, "numero": "000123"}})

    assert await api_client.issue_invoice("5551") == ("777", "000123")
    assert body_of(fake_bling.calls("POST", "/nfe")[0]) == {
        "idsPedidosVendas": [5551],
        "finalidade": 1,
        "tipo": 1,
    }


async def test_issue_invoice_failure_yields_empty_pair(
    api_client: BlingAPIClient, fake_bling: FakeBling, connected: None
) -> None:
    """A failing transmission step never raises."""
    fake_bling.add("POST", "/nfe", status=201, json={"data": {"id": 777}})
    fake_bling.add("POST", "/nfe/777/enviar", status=400, json={"error": "SEFAZ rejeitou"})

    assert await api_client.issue_invoice("5551") == ("", "")


async def test_issue_invoice_timeout_yields_empty_pair(
    token_manager, http_client: httpx.AsyncClient, fake_bling: FakeBling, connected: None
) -> None:
    client = BlingAPIClient(token_manager, http_client=http_client, invoice_timeout=0.05)

    async def stuck(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(1)
        return httpx.Response(201, json={"data": {"id": 1}})

    fake_bling.on("POST", "/nfe", stuck)

    assert await client.issue_invoice("5551") == ("", "")


async def test_get_live_stock(api_client: BlingAPIClient, fake_bling: FakeBling, connected: None) -> None:
    fake_bling.add("GET", "/produtos", json={"data": [bling_product(10, codigo="BIKE-1")]})

    assert await api_client.get_live_stock("BIKE-1") == 7
    assert fake_bling.requests[-1].url.params["codigo"] == "BIKE-1"


async def test_get_live_stock_defaults_to_zero(
    api_client: BlingAPIClient, fake_bling: FakeBling, connected: None
) -> None:
    fake_bling.add("GET", "/produtos", json={"data": [bling_product(10, estoque=None)]})

    assert await api_client.get_live_stock("SKU-10") == 0


async def test_unknown_product_code_is_not_found(
    api_client: BlingAPIClient, fake_bling: FakeBling, connected: None
) -> None:
    fake_bling.add("GET", "/produtos", json={"data": []})

    with pytest.raises(NotFound):
        await api_client.get_product_by_code("NOPE")

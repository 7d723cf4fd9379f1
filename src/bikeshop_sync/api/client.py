"""Bling API v3 client."""

import asyncio
import re
from decimal import Decimal
from typing import Any, List, Optional, Sequence, Tuple, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from bikeshop_sync.config.constants import (
    CONTACT_PERSON_TYPE,
    CONTACT_STREET_NUMBER,
    CONTACT_TAXPAYER_CODE,
    DEFAULT_ORDER_NOTES,
    INTERNAL_ORDER_NOTES,
    ITEM_UNIT,
    NFE_PURPOSE_NORMAL,
    NFE_TYPE_OUTBOUND,
    PLACEHOLDER_ITEM_CODE_PREFIX,
    PRODUCT_PAGE_SIZE,
)
from bikeshop_sync.core.exceptions import (
    BlingAPIError,
    NotFound,
    RemoteError,
    Unauthorized,
    UnexpectedPayload,
)
from bikeshop_sync.core.logger import setup_logger
from bikeshop_sync.core.token_manager import TokenManager
from bikeshop_sync.models.bling import (
    BlingIdentified,
    BlingItemEnvelope,
    BlingListEnvelope,
    BlingProduct,
    ContactInput,
    SalesOrderLine,
)
from .endpoints import CONTACTS, NFE, NFE_DETAIL, NFE_SEND, PRODUCTS, SALES_ORDERS

logger = setup_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def digits_only(value: Optional[str]) -> str:
    """Strip everything but digits (phones, CEP)."""
    return re.sub(r"\D", "", value or "")


def _money(value: Decimal) -> float:
    """Bling expects JSON numbers for monetary fields."""
    return float(Decimal(value).quantize(Decimal("0.01")))


class BlingAPIClient:
    """Async HTTP client for the Bling API v3."""

    def __init__(
        self,
        token_manager: TokenManager,
        api_base: str = "https://www.bling.com.br/Api/v3",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        invoice_timeout: float = 45.0,
    ):
        """Initialize API client; the token manager supplies Bearer tokens."""
        self.token_manager = token_manager
        self.api_base = api_base.rstrip("/")
        self.invoice_timeout = invoice_timeout
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(timeout=timeout)

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
    ) -> Any:
        """
        Make an authenticated request to the Bling API.

        Args:
            method: HTTP method
            path: API endpoint path (e.g., "/pedidos/vendas")
            params: Query parameters
            json: JSON body

        Returns:
            Parsed JSON response, or None for empty bodies

        Raises:
            NotConnected / RefreshFailed: From the token manager
            Unauthorized: HTTP 401
            NotFound: HTTP 404
            RemoteError: Any other non-2xx status or a transport failure
        """
        access_token = await self.token_manager.get_valid_access_token()

        url = f"{self.api_base}{path}"
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }

        try:
            logger.info(f"Making API request: {method} {path}")
            response = await self.client.request(
                method, url, params=params, json=json, headers=headers
            )
        except httpx.HTTPError as e:
            logger.error(f"HTTP error calling {path}: {e}")
            raise RemoteError(f"Bling API unreachable: {e}", status=0) from e

        if response.status_code == 401:
            logger.error(f"Bling API rejected token calling {path}: {response.text}")
            raise Unauthorized("Bling API error: 401", status=401, body=response.text)
        if response.status_code == 404:
            raise NotFound(f"Bling API error: 404 - {path}", status=404, body=response.text)
        if response.status_code >= 400:
            logger.error(f"Bling API error [{response.status_code}] calling {path}: {response.text}")
            raise RemoteError(
                f"Bling API error: {response.status_code} - {response.text}",
                status=response.status_code,
                body=response.text,
            )

        if not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            raise UnexpectedPayload(
                f"Invalid JSON from {path}", status=response.status_code, body=response.text
            ) from e

    @staticmethod
    def _decode(model: Type[ModelT], payload: Any, path: str) -> ModelT:
        """Validate a payload against its model, failing fast on drift."""
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            logger.error(f"Unexpected payload shape from {path}: {e}")
            raise UnexpectedPayload(f"Unexpected payload from {path}", body=str(payload)) from e

    # ------------------------------------------------------------------
    # Contacts
    # ------------------------------------------------------------------

    async def search_contact(self, email: str) -> Optional[str]:
        """Return the id of the first contact matching an email, or None."""
        payload = await self._request("GET", CONTACTS, params={"pesquisa": email})
        envelope = self._decode(BlingListEnvelope, payload or {}, CONTACTS)
        if not envelope.data:
            return None
        contact = self._decode(BlingIdentified, envelope.data[0], CONTACTS)
        return str(contact.id)

    async def find_or_create_contact(self, customer: ContactInput) -> str:
        """
        Find a contact by email or create a pessoa fisica contact.

        Search failures fall through to creation.

        Returns:
            Bling contact id
        """
        try:
            contact_id = await self.search_contact(customer.email)
            if contact_id:
                logger.info(f"Contact found: {contact_id}")
                return contact_id
        except BlingAPIError as e:
            logger.warning(f"Contact search failed, will create new: {e}")

        phone = digits_only(customer.phone)
        contact_payload = {
            "nome": customer.name,
            "fantasia": customer.name,
            "tipo": CONTACT_PERSON_TYPE,
            "contribuinte": CONTACT_TAXPAYER_CODE,
            "email": customer.email,
            "telefone": phone,
            "celular": phone,
            "endereco": {
                "endereco": customer.address,
                "numero": CONTACT_STREET_NUMBER,
                "bairro": "",
                "municipio": customer.city,
                "uf": customer.state.upper(),
                "cep": digits_only(customer.zip),
            },
        }

        logger.info(f"Creating contact for {customer.email}")
        result = await self._request("POST", CONTACTS, json=contact_payload)
        created = self._decode(BlingItemEnvelope, result, CONTACTS)
        logger.info(f"Contact created: {created.data.id}")
        return str(created.data.id)

    # ------------------------------------------------------------------
    # Sales orders
    # ------------------------------------------------------------------

    async def create_sales_order(
        self,
        contact_id: str,
        line_items: Sequence[SalesOrderLine],
        shipping_cost: Decimal,
        notes: Optional[str] = None,
    ) -> Tuple[str, str]:
        """
        Create a sales order.

        Lines without a SKU are sent with a placeholder code (PROD-<index>).

        Returns:
            Tuple of (order id, printable order number)
        """
        itens = [
            {
                "codigo": line.sku or f"{PLACEHOLDER_ITEM_CODE_PREFIX}{index}",
                "descricao": line.name,
                "unidade": ITEM_UNIT,
                "quantidade": line.quantity,
                "valor": _money(line.price),
            }
            for index, line in enumerate(line_items)
        ]

        order_payload = {
            "contato": {"id": int(contact_id)},
            "itens": itens,
            "transporte": {"frete": _money(shipping_cost)},
            "observacoes": notes or DEFAULT_ORDER_NOTES,
            "observacoesInternas": INTERNAL_ORDER_NOTES,
        }

        logger.info(f"Creating sales order with {len(itens)} items for contact {contact_id}")
        result = await self._request("POST", SALES_ORDERS, json=order_payload)
        created = self._decode(BlingItemEnvelope, result, SALES_ORDERS)

        order_id = str(created.data.id)
        order_number = str(created.data.numero) if created.data.numero else order_id
        logger.info(f"Order created: {order_id} (numero {order_number})")
        return order_id, order_number

    # ------------------------------------------------------------------
    # NF-e
    # ------------------------------------------------------------------

    async def _issue_invoice(self, order_id: str) -> Tuple[str, str]:
        generate_payload = {
            "idsPedidosVendas": [int(order_id)],
            "finalidade": NFE_PURPOSE_NORMAL,
            "tipo": NFE_TYPE_OUTBOUND,
        }

        logger.info(f"Generating NF-e for order: {order_id}")
        generated = await self._request("POST", NFE, json=generate_payload)
        nfe_id = str(self._decode(BlingItemEnvelope, generated, NFE).data.id)

        logger.info(f"Transmitting NF-e: {nfe_id}")
        await self._request("POST", NFE_SEND.format(nfe_id=nfe_id))

        details = await self._request("GET", NFE_DETAIL.format(nfe_id=nfe_id))
        numero = self._decode(BlingItemEnvelope, details, NFE_DETAIL).data.numero
        nfe_number = str(numero) if numero else nfe_id

        logger.info(f"NF-e issued successfully: {nfe_id} (numero {nfe_number})")
        return nfe_id, nfe_number

    async def issue_invoice(self, order_id: str) -> Tuple[str, str]:
        """
        Generate, transmit and read back the NF-e for a sales order.

        Never raises: any failure, or exceeding the invoice timeout, returns
        empty id and number so the order can still complete.

        Returns:
            Tuple of (nfe id, nfe number), both "" when not issued
        """
        try:
            return await asyncio.wait_for(self._issue_invoice(order_id), self.invoice_timeout)
        except asyncio.TimeoutError:
            logger.error(f"NF-e issuance timed out after {self.invoice_timeout}s for order {order_id}")
        except Exception as e:
            logger.error(f"NF-e issuance failed for order {order_id}: {e}", exc_info=True)
        return "", ""

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    async def list_products(self, page: int = 1, page_size: int = PRODUCT_PAGE_SIZE) -> List[BlingProduct]:
        """Fetch a single page of the product listing."""
        payload = await self._request(
            "GET", PRODUCTS, params={"pagina": page, "limite": page_size}
        )
        envelope = self._decode(BlingListEnvelope, payload or {}, PRODUCTS)
        return [self._decode(BlingProduct, item, PRODUCTS) for item in envelope.data]

    async def get_product_by_code(self, code: str) -> BlingProduct:
        """
        Fetch a product by its code (SKU).

        Raises:
            NotFound: No product with that code
        """
        payload = await self._request("GET", PRODUCTS, params={"codigo": code})
        envelope = self._decode(BlingListEnvelope, payload or {}, PRODUCTS)
        if not envelope.data:
            raise NotFound(f"Bling product not found: {code}", status=404)
        return self._decode(BlingProduct, envelope.data[0], PRODUCTS)

    async def get_live_stock(self, code: str) -> int:
        """Virtual stock balance for a product code."""
        product = await self.get_product_by_code(code)
        return product.live_stock

    async def close(self) -> None:
        """Close HTTP client connection if this client created it."""
        if self._owns_client:
            await self.client.aclose()

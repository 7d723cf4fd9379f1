"""Pydantic models for Bling API v3 payloads.

Responses are decoded through these models at the gateway boundary so the
rest of the application never handles raw Bling JSON.
"""

from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator


class BlingStock(BaseModel):
    """Stock block embedded in product payloads."""

    saldoVirtualTotal: Optional[Decimal] = None

    class Config:
        extra = "allow"


class BlingProduct(BaseModel):
    """Product as returned by GET /produtos."""

    id: int
    nome: str
    codigo: Optional[str] = None
    preco: Optional[Decimal] = None
    precoPromocional: Optional[Decimal] = None
    situacao: Optional[str] = None
    marca: Optional[str] = None
    descricaoCurta: Optional[str] = None
    observacoes: Optional[str] = None
    imagemURL: Optional[str] = None
    estoque: Optional[BlingStock] = None

    class Config:
        extra = "allow"

    @field_validator("preco", "precoPromocional", mode="before")
    @classmethod
    def _blank_price_is_none(cls, value: Any) -> Any:
        if value in ("", None):
            return None
        return value

    @property
    def live_stock(self) -> int:
        """Virtual stock balance, 0 when Bling omits it."""
        if self.estoque and self.estoque.saldoVirtualTotal is not None:
            return int(self.estoque.saldoVirtualTotal)
        return 0


class BlingIdentified(BaseModel):
    """Any Bling resource reference: id plus optional printable number."""

    id: int
    numero: Optional[Any] = None

    class Config:
        extra = "allow"


class BlingListEnvelope(BaseModel):
    """Envelope of list endpoints: {"data": [...]}."""

    data: List[Any] = Field(default_factory=list)

    class Config:
        extra = "allow"


class BlingItemEnvelope(BaseModel):
    """Envelope of single-resource endpoints: {"data": {...}}."""

    data: BlingIdentified

    class Config:
        extra = "allow"


class BlingTokenResponse(BaseModel):
    """Response of POST /oauth/token."""

    access_token: str
    refresh_token: str
    expires_in: Optional[int] = None
    token_type: Optional[str] = None

    class Config:
        extra = "allow"


class ContactInput(BaseModel):
    """Customer data needed to find or create a Bling contact."""

    name: str
    email: str
    phone: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""


class SalesOrderLine(BaseModel):
    """One line of a Bling sales order."""

    sku: Optional[str] = None
    name: str
    quantity: int
    price: Decimal

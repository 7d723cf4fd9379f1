"""Bling API v3 module."""

from .client import BlingAPIClient
from .endpoints import CONTACTS, NFE, PRODUCTS, SALES_ORDERS

__all__ = ["BlingAPIClient", "CONTACTS", "NFE", "PRODUCTS", "SALES_ORDERS"]

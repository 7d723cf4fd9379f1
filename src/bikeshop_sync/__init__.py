"""Bike shop storefront back end with Bling ERP order reconciliation."""

__version__ = "1.0.0"

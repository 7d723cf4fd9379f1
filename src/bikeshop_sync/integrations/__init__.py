"""Integrations module - Buyer notification links."""

from bikeshop_sync.integrations.whatsapp import build_order_whatsapp_url

__all__ = ["build_order_whatsapp_url"]

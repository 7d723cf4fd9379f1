"""
Centralized application constants.

Single point of truth for business rules shared by the checkout, stock
and Bling synchronization services.
"""

from decimal import Decimal

# ==============================================================================
# OAUTH
# ==============================================================================

# Tokens expiring within this window are refreshed before use
TOKEN_REFRESH_BUFFER_SECONDS = 300

# Used when the token endpoint omits expires_in (Bling default is 6 hours)
TOKEN_EXPIRATION_DEFAULT = 21600

# ==============================================================================
# BLING PAYLOADS
# ==============================================================================

# Contact defaults: pessoa fisica, nao contribuinte
CONTACT_PERSON_TYPE = "F"
CONTACT_TAXPAYER_CODE = 9
CONTACT_STREET_NUMBER = "S/N"

# Sales order defaults
ITEM_UNIT = "UN"
PLACEHOLDER_ITEM_CODE_PREFIX = "PROD-"
DEFAULT_ORDER_NOTES = "Pedido realizado pelo site"
INTERNAL_ORDER_NOTES = "Pedido automático - Daniel Bike Shop Site"

# NF-e generation: finalidade 1 = normal, tipo 1 = saida
NFE_PURPOSE_NORMAL = 1
NFE_TYPE_OUTBOUND = 1

# Product status flag for active items
PRODUCT_ACTIVE_STATUS = "A"

# ==============================================================================
# CATALOG SYNC
# ==============================================================================

# Bling caps listing pages at 100 items
PRODUCT_PAGE_SIZE = 100

# Upper bound on pages fetched in one sync
MAX_PRODUCT_PAGES = 50

# ==============================================================================
# CHECKOUT
# ==============================================================================

FREE_SHIPPING_THRESHOLD = Decimal("299.00")
FLAT_SHIPPING_COST = Decimal("29.90")

CURRENCY_QUANTUM = Decimal("0.01")

# Local order lifecycle
ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_CONFIRMED = "confirmed"

# Bling link lifecycle
LINK_STATUS_ORDER_CREATED = "order_created"
LINK_STATUS_NFE_ISSUED = "nfe_issued"

# ==============================================================================
# REGIONAL SETTINGS
# ==============================================================================

STORE_TIMEZONE = "America/Sao_Paulo"

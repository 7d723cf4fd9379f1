"""Bling API v3 endpoint paths."""

CONTACTS = "/contatos"
SALES_ORDERS = "/pedidos/vendas"
NFE = "/nfe"
NFE_DETAIL = "/nfe/{nfe_id}"
NFE_SEND = "/nfe/{nfe_id}/enviar"
PRODUCTS = "/produtos"

"""Business services: stock validation, order reconciliation, catalog sync and pricing."""

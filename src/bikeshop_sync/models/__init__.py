"""Pydantic models for Bling payloads and checkout requests."""

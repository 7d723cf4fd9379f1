"""Core module - Logging, error types and error monitoring."""

from bikeshop_sync.core.exceptions import BikeshopError
from bikeshop_sync.core.logger import setup_logger

__all__ = ["BikeshopError", "setup_logger"]

"""
GlitchTip Error Monitoring Utilities

Helper functions for error tracking and context management.
"""

from typing import Any, Dict, Optional

import sentry_sdk

from bikeshop_sync.core.logger import setup_logger

logger = setup_logger(__name__)


def set_order_context(
    order_id: str,
    bling_order_id: Optional[str] = None,
    **extra_tags
) -> None:
    """
    Set order-specific context for error tracking.

    Args:
        order_id: Local order id
        bling_order_id: Bling sales order id, once created
        **extra_tags: Additional tags to add
    """
    try:
        sentry_sdk.set_tag("order.id", order_id)
        if bling_order_id:
            sentry_sdk.set_tag("order.bling_order_id", bling_order_id)

        for key, value in extra_tags.items():
            sentry_sdk.set_tag(key, value)

        context_data = {
            "order_id": order_id,
            "bling_order_id": bling_order_id,
        }
        context_data.update(extra_tags)
        sentry_sdk.set_context("order", context_data)

    except Exception as e:
        logger.warning(f"Failed to set order context: {e}")


def capture_exception(
    error: Exception,
    context: Optional[Dict[str, Any]] = None,
    level: str = "error"
) -> None:
    """
    Capture an exception and send to GlitchTip.

    A no-op when the SDK was never initialised (no DSN configured).

    Args:
        error: The exception to capture
        context: Additional context data
        level: Error level (error, warning, info)
    """
    try:
        with sentry_sdk.new_scope() as scope:
            if context:
                scope.set_context("custom", context)
            scope.set_level(level)
            sentry_sdk.capture_exception(error)

    except Exception as e:
        logger.warning(f"Failed to capture exception in GlitchTip: {e}")


def capture_message(
    message: str,
    level: str = "info",
    context: Optional[Dict[str, Any]] = None
) -> None:
    """
    Capture a message and send to GlitchTip.

    Args:
        message: Message to capture
        level: Message level (info, warning, error)
        context: Additional context data
    """
    try:
        with sentry_sdk.new_scope() as scope:
            if context:
                scope.set_context("custom", context)
            scope.set_level(level)
            sentry_sdk.capture_message(message)

    except Exception as e:
        logger.warning(f"Failed to capture message in GlitchTip: {e}")

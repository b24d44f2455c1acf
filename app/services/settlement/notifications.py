"""Vendor notification contract.

Delivery channels (push, SMS, email) live outside this service. The
orchestrator only needs ``send``; the default implementation writes the
message to the application log.
"""

from __future__ import annotations

from typing import Any, Optional

from app.core.logging import get_logger

logger = get_logger(__name__)

VENDOR_PAYMENT_RECEIVED = "vendor_payment_received"


class NotificationService:
    def send(
        self,
        recipient_id: str,
        title: str,
        message: str,
        severity: str = "info",
        data: Optional[dict[str, Any]] = None,
    ) -> None:
        raise NotImplementedError


class LogNotificationService(NotificationService):
    """Records notifications in the log instead of delivering them."""

    def send(
        self,
        recipient_id: str,
        title: str,
        message: str,
        severity: str = "info",
        data: Optional[dict[str, Any]] = None,
    ) -> None:
        logger.info(
            "Notification -> %s [%s] %s: %s",
            recipient_id,
            severity,
            title,
            message,
        )

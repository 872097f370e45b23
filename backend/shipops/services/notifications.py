"""
Notification dispatch

Services announce shipment milestones (created, in transit, delivered)
through a NotificationDispatcher. Delivery of emails/SMS/webhooks is
someone else's job; the default dispatcher only logs. Dispatch is
fire-and-forget: a failing dispatcher never fails the business operation.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict

from shipops.logging_config import get_logger

logger = get_logger(__name__)

SHIPMENT_CREATED = "shipment.created"
SHIPMENT_IN_TRANSIT = "shipment.in_transit"
SHIPMENT_DELIVERED = "shipment.delivered"


class NotificationDispatcher(ABC):
    @abstractmethod
    def dispatch(self, event: str, payload: Dict[str, Any]) -> None:
        ...


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Writes notifications to the application log."""

    def dispatch(self, event: str, payload: Dict[str, Any]) -> None:
        logger.info(f"Notification: {event}", extra={"notification": event, **payload})


def notify(dispatcher: NotificationDispatcher, event: str, payload: Dict[str, Any]) -> None:
    try:
        dispatcher.dispatch(event, payload)
    except Exception:
        logger.warning(
            f"Notification dispatch failed: {event}",
            exc_info=True,
            extra={"notification": event},
        )


default_dispatcher = LoggingNotificationDispatcher()

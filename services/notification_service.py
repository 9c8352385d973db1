"""
Outbound marketplace notifications.

Messages are fire-and-forget: they are handed to a thread pool and the
caller never waits on them. A failed send is logged by the done callback
and never retried, so delivery is at most once.
"""

from concurrent.futures import Future, ThreadPoolExecutor, wait
from functools import partial
from typing import Callable, Optional
from uuid import uuid1
import threading
import structlog

from config import settings
from integrations import sqs
from models.notification import (
    InventoryPriceUpdateItem,
    MessageType,
    OutboundMessage,
    ProductImageSyncItem,
    VariantStatusUpdateItem,
)

logger = structlog.get_logger(__name__)


# (queue_url, body, group_id) -> sent
Publisher = Callable[[Optional[str], dict, str], bool]


class NotificationService:
    """
    Notification dispatch.

    Handles message envelopes, queue routing and background sending.
    """

    def __init__(self, publisher: Optional[Publisher] = None, executor: Optional[ThreadPoolExecutor] = None):
        self.publisher = publisher or sqs.send_message
        self.executor = executor or ThreadPoolExecutor(
            max_workers=settings.notification_workers,
            thread_name_prefix="notification"
        )
        self._pending: set[Future] = set()
        self._lock = threading.Lock()

    # ===================
    # MESSAGE KINDS
    # ===================

    def send_inventory_price_update(
        self,
        items: list[InventoryPriceUpdateItem],
        supplier_id: str
    ) -> Optional[Future]:
        """Changes to qty, price, compareAtPrice or sku of downstream variants."""
        data = {
            "products": [
                item.model_dump(mode="json", by_alias=True, exclude_unset=True)
                for item in items
            ]
        }
        return self._dispatch(
            data,
            MessageType.UPDATE_INVENTORY_PRICES,
            settings.sqs_inventory_pusher_url or settings.sqs_pusher_url,
            f"UPDATE_INVENTORY_PRICES_{supplier_id}",
            supplier_id
        )

    def send_variant_status_update(
        self,
        items: list[VariantStatusUpdateItem],
        supplier_id: str
    ) -> Optional[Future]:
        data = {"disabledProducts": [item.to_wire() for item in items]}
        return self._dispatch(
            data,
            MessageType.ENABLED_DISABLED_PRODUCTS,
            settings.sqs_pusher_url,
            f"DISABLED_PRODUCTS_{supplier_id}",
            supplier_id
        )

    def send_product_images(
        self,
        items: list[ProductImageSyncItem],
        supplier_id: str
    ) -> Optional[Future]:
        data = {"products": [item.to_wire() for item in items]}
        return self._dispatch(
            data,
            MessageType.SYNC_PRODUCT_IMAGES,
            settings.sqs_pusher_url,
            f"SYNC_PRODUCT_IMAGES_{supplier_id}",
            supplier_id
        )

    # ===================
    # DISPATCH
    # ===================

    def _dispatch(
        self,
        data: dict,
        message_type: MessageType,
        queue_url: Optional[str],
        group_id: str,
        supplier_id: str
    ) -> Optional[Future]:
        # Merchant API integrations read the tables directly
        if settings.is_among_platforms("MERCHANT_API"):
            return None

        message = OutboundMessage(
            data=data,
            type=message_type,
            vendor_id=supplier_id,
            queue_message_id=str(uuid1()),
            marketplace_platform=settings.marketplace_platform,
            client_id=settings.client_id,
        )
        body = message.to_wire()

        future = self.executor.submit(self.publisher, queue_url, body, group_id)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(partial(self._on_done, body))

        logger.debug(
            "notification_queued",
            message_type=message_type.value,
            queue_message_id=body["queueMessageId"],
            supplier_id=supplier_id
        )
        return future

    def _on_done(self, body: dict, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

        error = future.exception()
        if error is not None:
            logger.error(
                "notification_dispatch_failed",
                message_type=body["type"],
                queue_message_id=body["queueMessageId"],
                supplier_id=body["vendorId"],
                error=str(error),
                error_type=type(error).__name__
            )

    def flush(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight messages."""
        with self._lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def shutdown(self) -> None:
        self.executor.shutdown(wait=True)


# Singleton instance
_notification_service: Optional[NotificationService] = None


def get_notification_service() -> NotificationService:
    """Get or create NotificationService instance."""
    global _notification_service
    if _notification_service is None:
        _notification_service = NotificationService()
    return _notification_service

import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
from google.cloud import firestore
from google.api_core.exceptions import GoogleAPICallError, RetryError, ServiceUnavailable

logger = structlog.get_logger(__name__)

# -----------------------
# SETTINGS
# -----------------------
COLLECTION_NAME = "order_events"
MAX_RETRIES = 3
RETRY_SLEEP_SECONDS = 1.0

ORDER_PLACED = "ORDER_PLACED"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class OrderEventLog:
    """
    Append-only audit trail of order events in Firestore Native.

    The client is created lazily so the app can start without credentials
    when the log is never written to.
    """

    def __init__(
        self,
        client: Optional[firestore.Client] = None,
        database: str = "default",
        collection: str = COLLECTION_NAME,
        max_retries: int = MAX_RETRIES,
        retry_sleep_seconds: float = RETRY_SLEEP_SECONDS,
    ):
        self._client = client
        # Firestore Native database id is "default", not "(default)" which is Datastore mode.
        self.database = database
        self.collection = collection
        self.max_retries = max_retries
        self.retry_sleep_seconds = retry_sleep_seconds

    @property
    def client(self) -> firestore.Client:
        if self._client is None:
            self._client = firestore.Client(database=self.database)
        return self._client

    def log_order_event(self, order, event: str, payload: Optional[Dict[str, Any]] = None) -> str:
        """
        Writes an event document for ``order``. Returns the document id.

        - retries temporary errors
        - raises RuntimeError if it still fails
        """
        doc = {
            "order_id": str(order.id),
            "order_number": order.order_number,
            "event": event,
            "total_price": str(order.total_price),
            "items_count": order.items_count,
            "payload": payload or {},
            "created_at": firestore.SERVER_TIMESTAMP,
            "created_at_iso": _now_iso(),
        }

        last_err = None
        for attempt in range(1, self.max_retries + 1):
            try:
                ref = self.client.collection(self.collection).document()
                ref.set(doc)
                return ref.id

            except (ServiceUnavailable, GoogleAPICallError, RetryError) as e:
                last_err = e
                logger.warning(
                    "Firestore write failed",
                    attempt=attempt,
                    max_retries=self.max_retries,
                    error=str(e),
                )
                time.sleep(self.retry_sleep_seconds * attempt)

        raise RuntimeError(f"Firestore write failed after {self.max_retries} attempts: {last_err}")

    def order_placed(self, order) -> str:
        return self.log_order_event(
            order,
            ORDER_PLACED,
            payload={
                "customer_name": order.customer_name or "",
                "lines": [
                    {"product_id": i.product_id, "quantity": i.quantity, "price": str(i.price)}
                    for i in order.items
                ],
            },
        )

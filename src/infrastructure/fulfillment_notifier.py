from collections.abc import Callable
from concurrent.futures import Executor, Future
from functools import partial

import httpx
from loguru import logger

from src.domain.errors import FulfillmentSyncError


class ShopifyFulfillmentNotifier:
    """Tells the portal to push a tracking number to Shopify.

    Without an ``executor`` the request runs inline and a failure raises
    ``FulfillmentSyncError`` to the caller. With one, the request runs in the
    background; failures are logged and handed to ``on_failure`` since nobody
    is waiting on the result. Nothing is retried here.
    """

    FULFILL_PATH = "/api/integrations/shopify/fulfill"

    def __init__(
        self,
        client: httpx.Client,
        base_url: str,
        auth_token: str | None = None,
        executor: Executor | None = None,
        on_failure: Callable[[str, Exception], None] | None = None,
    ) -> None:
        self._client = client
        self._endpoint = base_url.rstrip("/") + self.FULFILL_PATH
        self._headers = {"Content-Type": "application/json"}
        if auth_token:
            self._headers["Authorization"] = f"Bearer {auth_token}"
        self._executor = executor
        self._on_failure = on_failure

    def notify_fulfillment(self, shipment_id: str) -> None:
        """Raises ``FulfillmentSyncError`` when run inline."""
        if self._executor is None:
            self.send(shipment_id)
            return
        future = self._executor.submit(self._safe_send, shipment_id)
        future.add_done_callback(partial(self._log_unexpected, shipment_id))

    def _report(self, shipment_id: str, exc: Exception) -> None:
        if self._on_failure is None:
            return
        try:
            self._on_failure(shipment_id, exc)
        except Exception as callback_exc:
            logger.error(f"[Shopify] Failure callback raised for {shipment_id}: {callback_exc}")

    def _log_unexpected(self, shipment_id: str, future: Future) -> None:
        if exc := future.exception():
            logger.error(
                f"[Shopify] Fulfillment sync crashed for {shipment_id}: {type(exc).__name__}: {exc}"
            )
            self._report(shipment_id, exc)

    def _safe_send(self, shipment_id: str) -> bool:
        try:
            self.send(shipment_id)
        except FulfillmentSyncError as exc:
            logger.warning(f"[Shopify] Fulfillment sync failed for {shipment_id}: {exc}")
            self._report(shipment_id, exc)
            return False
        return True

    def send(self, shipment_id: str) -> dict:
        """POST the fulfillment request synchronously.

        Raises:
            FulfillmentSyncError: on transport errors or non-2xx responses.
        """
        try:
            response = self._client.post(
                self._endpoint, headers=self._headers, json={"shipmentId": shipment_id}
            )
        except httpx.HTTPError as exc:
            raise FulfillmentSyncError(f"Fulfillment request failed: {exc}") from exc

        if not response.is_success:
            raise FulfillmentSyncError(
                f"Fulfillment endpoint error {response.status_code}: {response.text}"
            )

        logger.info(f"[Shopify] Fulfillment synced for shipment {shipment_id}")
        try:
            return response.json()
        except ValueError:
            return {}

"""HTTP client for the storefront's payment status endpoint.

``wait_for_payment`` follows the cadence the server advertises in
``next_poll_ms`` and stops as soon as the server stops advertising one, so
a terminal payment state always ends the loop. A failed request (network
error or error response) is retried after the last advertised interval.
Pass ``should_stop`` to cancel from the outside, e.g. when the shopper
leaves the page.
"""

import time
from collections.abc import Callable

import httpx
import structlog

logger = structlog.get_logger(__name__)

PAYMENT_TERMINAL_STATUSES = {"paid", "failed", "expired", "pay_at_counter", "refunded"}

# Used until the server has advertised a cadence
DEFAULT_POLL_SECONDS = 2.0


class StorefrontClient:
    def __init__(
        self,
        base_url: str | None = None,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client or httpx.Client(base_url=base_url or "http://localhost:8000", timeout=10.0)
        self._sleep = sleep

    def payment_status(self, order_id: str) -> dict:
        response = self._client.get(f"/orders/{order_id}/payment-status")
        response.raise_for_status()
        return response.json()

    def confirm_return(self, order_id: str) -> httpx.Response:
        """Report the return from a hosted payment page. The response may be a 402 or 503 error body."""
        return self._client.get(f"/orders/{order_id}/payment-return")

    def wait_for_payment(
        self,
        order_id: str,
        should_stop: Callable[[], bool] | None = None,
        max_polls: int | None = None,
    ) -> dict:
        """Poll until the payment settles. Returns the last status body.

        Raises the last ``httpx.HTTPError`` if polling ends before any poll
        succeeded.
        """
        polls = 0
        status = None
        interval = DEFAULT_POLL_SECONDS
        while True:
            polls += 1
            try:
                status = self.payment_status(order_id)
            except httpx.HTTPError as exc:
                logger.warning("Payment status poll failed", order_id=order_id, polls=polls, error=str(exc))
                if (should_stop is not None and should_stop()) or (max_polls is not None and polls >= max_polls):
                    if status is None:
                        raise
                    return status
                self._sleep(interval)
                continue

            if status["payment_status"] in PAYMENT_TERMINAL_STATUSES and status.get("verified", True):
                return status
            if status.get("next_poll_ms") is None:
                return status
            if should_stop is not None and should_stop():
                logger.debug("Payment polling cancelled", order_id=order_id, polls=polls)
                return status
            if max_polls is not None and polls >= max_polls:
                return status

            interval = status["next_poll_ms"] / 1000
            self._sleep(interval)

    def close(self) -> None:
        self._client.close()

"""HTTP delivery of queued records."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Sequence

import httpx

logger = logging.getLogger(__name__)

RETRYABLE_CLIENT_STATUSES = frozenset({408, 429})


class DeliveryStatus(str, Enum):
    """Outcome of one delivery attempt."""

    DELIVERED = "delivered"  # accepted, clear the batch
    REJECTED = "rejected"  # permanently refused, clear the batch
    UNREACHABLE = "unreachable"  # transient, keep the batch


@dataclass(frozen=True)
class DeliveryResult:
    status: DeliveryStatus
    status_code: Optional[int] = None
    processed: Optional[int] = None
    succeeded: Optional[int] = None
    failed: Optional[int] = None
    error: Optional[str] = None

    @property
    def clears_batch(self) -> bool:
        return self.status != DeliveryStatus.UNREACHABLE


class SyncTransport:
    """Posts a batch of records as a JSON array with a bearer token.

    Never raises for network or server trouble: every attempt ends in a
    ``DeliveryResult``. The records passed in are never modified.
    """

    def __init__(
        self,
        endpoint: str,
        auth_token: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.endpoint = endpoint
        self.auth_token = auth_token
        self.timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def deliver(self, records: Sequence[dict[str, Any]]) -> DeliveryResult:
        headers = {"Content-Type": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"

        try:
            response = await self._client.post(self.endpoint, json=list(records), headers=headers)
        except httpx.TimeoutException as e:
            logger.warning(f"Delivery of {len(records)} record(s) timed out: {e}")
            return DeliveryResult(DeliveryStatus.UNREACHABLE, error="timeout")
        except httpx.HTTPError as e:
            logger.warning(f"Delivery of {len(records)} record(s) failed: {e}")
            return DeliveryResult(DeliveryStatus.UNREACHABLE, error=str(e) or type(e).__name__)

        return self._classify(response, len(records))

    @staticmethod
    def _classify(response: httpx.Response, count: int) -> DeliveryResult:
        code = response.status_code
        if 200 <= code < 300:
            body = _json_body(response)
            result = DeliveryResult(
                DeliveryStatus.DELIVERED,
                status_code=code,
                processed=body.get("processed"),
                succeeded=body.get("succeeded"),
                failed=body.get("failed"),
            )
            if result.failed:
                # Not retried: the whole batch is cleared.
                logger.warning(
                    f"Server accepted batch with {result.failed} failed of {result.processed} record(s)"
                )
            else:
                logger.info(f"Delivered {count} record(s)")
            return result

        error = _json_body(response).get("error") or response.reason_phrase
        if 400 <= code < 500 and code not in RETRYABLE_CLIENT_STATUSES:
            logger.error(f"Server rejected {count} record(s) with {code}: {error}")
            return DeliveryResult(DeliveryStatus.REJECTED, status_code=code, error=error)

        logger.warning(f"Server unavailable ({code}) for {count} record(s): {error}")
        return DeliveryResult(DeliveryStatus.UNREACHABLE, status_code=code, error=error)


def _json_body(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}

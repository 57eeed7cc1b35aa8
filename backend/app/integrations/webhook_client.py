import asyncio
import logging
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5.0
DEFAULT_MAX_ATTEMPTS = 2
DEFAULT_RETRY_DELAY_SECONDS = 0.1
ERROR_BODY_PREVIEW_CHARS = 200


@dataclass
class DeliveryResult:
    success: bool
    status_code: int | None = None
    body: str | None = None
    error: str | None = None
    attempts: int = 0


class WebhookClient:
    """POSTs rendered payloads to subscriber endpoints.

    ``deliver`` never raises: HTTP failures and transport errors are folded
    into the returned ``DeliveryResult``. Redirects are not followed.
    """

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, follow_redirects=False, transport=self.transport)

    async def _attempt(self, client: httpx.AsyncClient, url: str, headers: dict[str, str], body: str) -> DeliveryResult:
        try:
            response = await client.post(url, headers=headers, content=body.encode("utf-8"))
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
            # ValueError covers headers httpx cannot encode while building the request.
            return DeliveryResult(success=False, error=str(exc) or exc.__class__.__name__)
        text = response.text
        if 200 <= response.status_code < 300:
            return DeliveryResult(success=True, status_code=response.status_code, body=text)
        return DeliveryResult(
            success=False,
            status_code=response.status_code,
            body=text,
            error=f"HTTP {response.status_code}: {text[:ERROR_BODY_PREVIEW_CHARS]}",
        )

    async def deliver(
        self,
        url: str,
        headers: dict[str, str] | None,
        body: str,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY_SECONDS,
    ) -> DeliveryResult:
        request_headers = {"Content-Type": "application/json", **(headers or {})}
        max_attempts = max(1, max_attempts)
        result = DeliveryResult(success=False, error="Webhook was not attempted")
        attempts = 0
        async with self._client(timeout) as client:
            while attempts < max_attempts:
                attempts += 1
                result = await self._attempt(client, url, request_headers, body)
                if result.success:
                    break
                logger.debug("webhook_attempt_failed url=%s attempt=%s error=%s", url, attempts, result.error)
                if attempts < max_attempts and retry_delay > 0:
                    await asyncio.sleep(retry_delay)
        result.attempts = attempts
        return result

    async def deliver_test(
        self,
        url: str,
        headers: dict[str, str] | None,
        body: str,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> DeliveryResult:
        return await self.deliver(url, headers, body, timeout=timeout, max_attempts=1, retry_delay=0)

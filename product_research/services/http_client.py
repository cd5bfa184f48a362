"""
Resilient async HTTP client for third-party JSON APIs.

Every outbound call goes through one retry policy:

    - Transport failures, HTTP 429 and HTTP >= 500 are retried with
      exponential backoff until the attempt budget is spent, then surface as
      ``RetryExhaustedError`` naming the last cause.
    - Any other non-2xx status and malformed JSON bodies raise
      ``PermanentCallError`` immediately, carrying the parsed error detail.
    - Successful responses that report ``usage.credits`` are added to the
      daily credit counter.

Response bodies are never copied into errors or logs; only the API's own
short error detail is kept, after redaction.

Example:
    >>> async with ResilientHttpClient(RetryPolicy()) as http:
    ...     data = await http.request_json("POST", url, json=body, timeout=30)
"""

from typing import Any, Optional

import httpx
from tenacity import RetryError

from product_research.storage.credits import CreditCounter
from product_research.utils.errors import (
    PermanentCallError,
    RetryExhaustedError,
    TransientError,
)
from product_research.utils.logger import get_logger, redact
from product_research.utils.retry import RetryPolicy, SleepFunc, build_retrying

logger = get_logger(__name__)

MAX_DETAIL_LENGTH = 200


def parse_error_detail(response: httpx.Response) -> str:
    """
    Pull a short human-readable message out of an error response.

    Looks at ``detail`` then ``error``; nested dicts contribute their own
    ``error`` or ``message``. Falls back to the reason phrase.
    """
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase or "Unknown error"

    if not isinstance(body, dict):
        return response.reason_phrase or "Unknown error"

    detail = body.get("detail", body.get("error"))
    if isinstance(detail, dict):
        detail = detail.get("error", detail.get("message"))
    if not detail:
        return response.reason_phrase or "Unknown error"
    return redact(str(detail), max_length=MAX_DETAIL_LENGTH)


class ResilientHttpClient:
    """
    JSON-over-HTTP client with bounded retry and credit tracking.

    Attributes:
        policy: Attempt budget and backoff shape
        credit_counter: Optional daily credit accumulator
        attempts_made: Attempts consumed by the most recent call
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        credit_counter: Optional[CreditCounter] = None,
        sleep: Optional[SleepFunc] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        service_name: str = "API",
    ):
        self.policy = policy or RetryPolicy()
        self.credit_counter = credit_counter
        self.service_name = service_name
        self._sleep = sleep
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self.attempts_made = 0

    async def connect(self) -> None:
        """Initialize HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                transport=self._transport,
                timeout=httpx.Timeout(connect=10.0, read=30.0, write=10.0, pool=5.0),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
                headers={"Content-Type": "application/json"},
            )

    async def disconnect(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ResilientHttpClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect()

    # =========================================================================
    # Requests
    # =========================================================================

    async def request_json(
        self,
        method: str,
        url: str,
        *,
        json: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        timeout: float = 30.0,
    ) -> dict[str, Any]:
        """
        Perform a request and decode the JSON object it returns.

        Raises:
            RetryExhaustedError: Transient failures exhausted the budget
            PermanentCallError: Non-retryable status or malformed body
        """
        await self.connect()
        self.attempts_made = 0
        data: dict[str, Any] = {}

        try:
            async for attempt in build_retrying(self.policy, self._sleep):
                with attempt:
                    self.attempts_made = attempt.retry_state.attempt_number
                    data = await self._send_once(
                        method, url, json=json, params=params, headers=headers, timeout=timeout
                    )
        except RetryError as e:
            last = e.last_attempt.exception()
            logger.error(
                "Request failed after retries",
                service=self.service_name,
                attempts=self.attempts_made,
                error=str(last),
            )
            raise RetryExhaustedError(self.attempts_made, last) from last

        await self._record_credits(data)
        return data

    async def _send_once(
        self,
        method: str,
        url: str,
        *,
        json: Optional[dict[str, Any]],
        params: Optional[dict[str, Any]],
        headers: Optional[dict[str, str]],
        timeout: float,
    ) -> dict[str, Any]:
        try:
            response = await self._client.request(
                method,
                url,
                json=json,
                params=params,
                headers=headers,
                timeout=httpx.Timeout(timeout, connect=min(timeout, 10.0)),
            )
        except httpx.TimeoutException as e:
            raise TransientError(f"{self.service_name} request timed out after {timeout:g}s") from e
        except httpx.TransportError as e:
            raise TransientError(f"{self.service_name} connection error: {type(e).__name__}") from e

        status = response.status_code
        if status == 429:
            raise TransientError("Rate limit exceeded", status_code=status)
        if status >= 500:
            raise TransientError(f"Server error: HTTP {status}", status_code=status)
        if not 200 <= status < 300:
            detail = parse_error_detail(response)
            raise PermanentCallError(
                f"{self.service_name} API error (HTTP {status}): {detail}",
                status_code=status,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise PermanentCallError(
                f"{self.service_name} returned a malformed JSON body", status_code=status
            ) from e
        if not isinstance(data, dict):
            raise PermanentCallError(
                f"{self.service_name} returned an unexpected JSON shape", status_code=status
            )
        return data

    async def _record_credits(self, data: dict[str, Any]) -> None:
        usage = data.get("usage")
        if self.credit_counter is None or not isinstance(usage, dict):
            return
        credits = usage.get("credits")
        if isinstance(credits, (int, float)) and credits > 0:
            total = await self.credit_counter.add(float(credits))
            logger.info(
                "API credits used",
                service=self.service_name,
                credits=credits,
                total_today=total,
            )

import logging
import time
from typing import Awaitable, Callable, Optional, Set

import anyio
import httpx

from Backend.gemini_proxy.config import RETRYABLE_STATUS
from Backend.gemini_proxy.models import UpstreamPayload

logger = logging.getLogger(__name__)

UPSTREAM_ERROR = "Upstream service error"
UPSTREAM_UNAVAILABLE = "Gemini service unavailable"


class UpstreamUnavailable(Exception):
    """The completion endpoint gave no usable response within the retry budget."""

    def __init__(self, message: str = UPSTREAM_ERROR):
        super().__init__(message)
        self.message = message


def backoff_delay(attempt: int, base: float) -> float:
    return base * 2 ** attempt


class GeminiClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        url: str,
        api_key: str,
        max_retries: int = 2,
        backoff_base: float = 0.5,
        deadline: Optional[float] = None,
        retryable_status: Set[int] = RETRYABLE_STATUS,
        sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
    ):
        self.http = http
        self.url = url
        self.api_key = api_key
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.deadline = deadline
        self.retryable_status = retryable_status
        self.sleep = sleep

    async def _post(self, payload: UpstreamPayload) -> httpx.Response:
        return await self.http.post(
            self.url,
            json=payload.model_dump(),
            headers={
                "Content-Type": "application/json",
                "x-goog-api-key": self.api_key,
            },
        )

    async def _backoff(self, attempt: int, started: float) -> bool:
        """Sleep before the next attempt; False when that would overrun the deadline."""
        delay = backoff_delay(attempt, self.backoff_base)
        if self.deadline is not None and time.monotonic() - started + delay > self.deadline:
            logger.warning(f"Skipping retry: backoff of {delay:.2f}s would exceed the {self.deadline}s deadline")
            return False
        await self.sleep(delay)
        return True

    async def generate(self, prompt: str) -> httpx.Response:
        """
        POST the prompt to generateContent and return the upstream response.

        Transport errors and statuses in `retryable_status` are retried up to
        `max_retries` times with exponential backoff. Raises UpstreamUnavailable
        once the budget is spent or `deadline` elapses, in-flight calls included.
        With `max_retries=0` the single response is returned whatever its status.
        """
        payload = UpstreamPayload.for_prompt(prompt)
        with anyio.move_on_after(self.deadline):
            return await self._attempts(payload)

        logger.error(f"Gemini call exceeded the {self.deadline}s deadline")
        raise UpstreamUnavailable(UPSTREAM_UNAVAILABLE if self.max_retries == 0 else UPSTREAM_ERROR)

    async def _attempts(self, payload: UpstreamPayload) -> httpx.Response:
        started = time.monotonic()

        if self.max_retries == 0:
            try:
                return await self._post(payload)
            except httpx.HTTPError as e:
                logger.error(f"Gemini request failed: {type(e).__name__}: {e}")
                raise UpstreamUnavailable(UPSTREAM_UNAVAILABLE) from e

        for attempt in range(self.max_retries + 1):
            last_attempt = attempt == self.max_retries
            try:
                response = await self._post(payload)
            except httpx.HTTPError as e:
                logger.warning(f"Gemini request failed (attempt {attempt + 1}): {type(e).__name__}: {e}")
                if last_attempt or not await self._backoff(attempt, started):
                    logger.error(f"Gemini unreachable after {attempt + 1} attempts")
                    raise UpstreamUnavailable() from e
                continue

            if response.status_code not in self.retryable_status:
                return response

            logger.warning(f"Gemini returned HTTP {response.status_code} (attempt {attempt + 1})")
            await response.aclose()
            if last_attempt or not await self._backoff(attempt, started):
                break

        logger.error(f"Gemini retries exhausted after {attempt + 1} attempts")
        raise UpstreamUnavailable()

"""X API v2 trends client.

TrendFetchClient wraps httpx.AsyncClient to fetch the ranked trend list
for one place (GET /2/trends/by/woeid/{woeid}?max_trends=50) and classifies
every failure so the ingestion loop can decide what to do next:

  - fatal:     401/403, returned at once, the caller aborts the whole run
  - retryable: 429, 5xx, transport errors and timeouts, retried by tenacity
               with exponential backoff plus jitter
  - client:    any other 4xx, returned at once
  - exhausted: retryable failures on every attempt

Failures are returned as FetchError values, never raised.
"""

import asyncio
import enum
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)
from tenacity.wait import wait_base

from xtrend.config import settings
from xtrend.metrics import fetch_attempts

log = structlog.get_logger(__name__)

FATAL_STATUSES = {401: "Unauthorized - check bearer token", 403: "Forbidden - API access not permitted"}


class FetchErrorKind(str, enum.Enum):
    fatal = "fatal"
    retryable = "retryable"
    client = "client"
    exhausted = "exhausted"
    invalid_response = "invalid_response"


@dataclass(frozen=True)
class FetchError:
    code: str
    message: str
    kind: FetchErrorKind

    @property
    def fatal(self) -> bool:
        return self.kind is FetchErrorKind.fatal


@dataclass(frozen=True)
class TrendItem:
    name: str
    tweet_count: Optional[int] = None


@dataclass(frozen=True)
class FetchResult:
    trends: Optional[list[TrendItem]] = None
    error: Optional[FetchError] = None
    attempts: int = 1

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry schedule for one upstream call.

    Delay before retry n (n >= 1) is base_delay * 2**(n-1) plus a uniform
    jitter in [0, max_jitter]. timeout bounds each attempt, not the total.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_jitter: float = 0.5
    timeout: float = 30.0

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=settings.fetch_max_attempts,
            base_delay=settings.fetch_backoff_base_seconds,
            max_jitter=settings.fetch_backoff_jitter_seconds,
            timeout=settings.fetch_timeout_seconds,
        )

    def wait_strategy(self) -> wait_base:
        return wait_exponential(multiplier=self.base_delay) + wait_random(0, self.max_jitter)


class RetryableStatusError(Exception):
    """Upstream answered with a status worth retrying (429 or 5xx)."""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"HTTP {status_code}: {body}")


def describe_error(exc: Optional[BaseException]) -> str:
    if exc is None:
        return "Max retries exceeded"
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return "Request timeout"
    return str(exc) or exc.__class__.__name__


def failure_outcome(exc: BaseException) -> str:
    """Metrics label for one failed attempt."""
    if isinstance(exc, RetryableStatusError):
        return "retryable_status"
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return "timeout"
    return "transport_error"


async def call_with_retry(
    attempt: Callable[[], Awaitable[Any]],
    policy: RetryPolicy,
    retry_on: tuple[type[BaseException], ...],
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_retry: Optional[Callable[[int, float, BaseException], None]] = None,
    on_failure: Optional[Callable[[BaseException], None]] = None,
) -> Any:
    """Run attempt() up to policy.max_attempts times.

    Each call is bounded by asyncio.wait_for. Exceptions outside retry_on
    propagate immediately; running out of attempts raises tenacity.RetryError.
    on_failure sees every retryable failure, on_retry every scheduled retry.
    """

    async def _bounded() -> Any:
        return await asyncio.wait_for(attempt(), timeout=policy.timeout)

    def _after(state: RetryCallState) -> None:
        if on_failure is not None:
            on_failure(state.outcome.exception())

    def _before_sleep(state: RetryCallState) -> None:
        if on_retry is not None:
            on_retry(state.attempt_number + 1, state.next_action.sleep, state.outcome.exception())

    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=policy.wait_strategy(),
        retry=retry_if_exception_type(retry_on),
        sleep=sleep,
        after=_after,
        before_sleep=_before_sleep,
    )
    return await retrying(_bounded)


def parse_trends(payload: Any) -> Optional[list[TrendItem]]:
    """Extract ordered trend items from a trends-by-woeid body.

    Returns None when the body does not have the expected shape.
    """
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if not isinstance(data, list):
        return None

    items: list[TrendItem] = []
    for entry in data:
        if not isinstance(entry, dict):
            continue
        name = entry.get("trend_name")
        if not isinstance(name, str):
            continue
        count = entry.get("tweet_count")
        items.append(TrendItem(name=name, tweet_count=count if isinstance(count, int) else None))
    return items


class TrendFetchClient:
    """Fetches trend lists from the X API with retry and error classification."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        policy: Optional[RetryPolicy] = None,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        max_trends: Optional[int] = None,
    ) -> None:
        self.base_url = (base_url or settings.x_api_base).rstrip("/")
        self.policy = policy or RetryPolicy.from_settings()
        self.client = client or httpx.AsyncClient(timeout=httpx.Timeout(self.policy.timeout))
        self.sleep = sleep
        self.max_trends = max_trends or settings.max_trends

    async def fetch_trends(self, woeid: int, bearer_token: str) -> FetchResult:
        url = f"{self.base_url}/trends/by/woeid/{woeid}"
        attempts = 0

        async def _request() -> httpx.Response:
            nonlocal attempts
            attempts += 1
            resp = await self.client.get(
                url,
                params={"max_trends": self.max_trends},
                headers={
                    "Authorization": f"Bearer {bearer_token}",
                    "Accept": "application/json",
                },
            )
            if resp.status_code == 429 or resp.status_code >= 500:
                raise RetryableStatusError(resp.status_code, resp.text)
            return resp  # Classified by the caller, NOT retried

        def _on_retry(attempt: int, delay: float, error: BaseException) -> None:
            log.info(
                "fetch_retry",
                woeid=woeid,
                attempt=attempt,
                max_attempts=self.policy.max_attempts,
                delay_seconds=round(delay, 3),
                error=describe_error(error),
            )

        def _on_failure(error: BaseException) -> None:
            fetch_attempts.labels(outcome=failure_outcome(error)).inc()

        try:
            resp = await call_with_retry(
                _request,
                self.policy,
                retry_on=(RetryableStatusError, httpx.TransportError, asyncio.TimeoutError),
                sleep=self.sleep,
                on_retry=_on_retry,
                on_failure=_on_failure,
            )
        except RetryError as exc:
            log.warning("fetch_retries_exhausted", woeid=woeid, attempts=attempts)
            return FetchResult(
                error=FetchError(
                    code="RETRY_EXHAUSTED",
                    message=describe_error(exc.last_attempt.exception()),
                    kind=FetchErrorKind.exhausted,
                ),
                attempts=attempts,
            )

        if resp.status_code in FATAL_STATUSES:
            fetch_attempts.labels(outcome="fatal").inc()
            log.error("fetch_fatal", woeid=woeid, status=resp.status_code)
            return FetchResult(
                error=FetchError(
                    code=str(resp.status_code),
                    message=FATAL_STATUSES[resp.status_code],
                    kind=FetchErrorKind.fatal,
                ),
                attempts=attempts,
            )

        if not resp.is_success:
            fetch_attempts.labels(outcome="client_error").inc()
            return FetchResult(
                error=FetchError(
                    code=str(resp.status_code),
                    message=resp.text,
                    kind=FetchErrorKind.client,
                ),
                attempts=attempts,
            )

        try:
            trends = parse_trends(resp.json())
        except ValueError:
            trends = None
        if trends is None:
            fetch_attempts.labels(outcome="invalid_response").inc()
            return FetchResult(
                error=FetchError(
                    code="INVALID_RESPONSE",
                    message="Response data is not an array",
                    kind=FetchErrorKind.invalid_response,
                ),
                attempts=attempts,
            )
        fetch_attempts.labels(outcome="success").inc()
        return FetchResult(trends=trends, attempts=attempts)

    async def aclose(self) -> None:
        """Close the underlying httpx client and release connections."""
        await self.client.aclose()

    async def __aenter__(self) -> "TrendFetchClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

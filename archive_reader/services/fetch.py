import asyncio
import contextvars
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Optional

import requests
import structlog
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from archive_reader.config import settings
from archive_reader.services.exceptions import (
    DeadlineExceeded,
    FetchTimeout,
    NetworkError,
)

logger = structlog.get_logger(__name__)

USER_AGENT = settings.USER_AGENT
MIN_CALL_TIMEOUT_SECONDS = settings.MIN_CALL_TIMEOUT_SECONDS
DEFAULT_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"

ClockFn = Callable[[], float]


@dataclass(frozen=True)
class Deadline:
    """Absolute instant by which a request must finish. Never extended."""

    expires_at: float
    clock: ClockFn = field(default=time.monotonic, compare=False, repr=False)

    @classmethod
    def after(cls, seconds: float, clock: ClockFn = time.monotonic) -> "Deadline":
        return cls(expires_at=clock() + seconds, clock=clock)

    def remaining(self, reserve: float = 0.0) -> float:
        return self.expires_at - self.clock() - reserve

    def expired(self, reserve: float = 0.0) -> bool:
        return self.remaining(reserve) <= 0


@dataclass
class FetchResponse:
    url: str
    status_code: int
    text: str
    headers: dict[str, str]
    elapsed_ms: int = 0

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def header(self, name: str) -> Optional[str]:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


def _retry_adapter() -> HTTPAdapter:
    # Connection retries only; status retries would blow through the deadline.
    retry = Retry(total=1, connect=1, read=0, status=0, redirect=5, backoff_factor=0)
    return HTTPAdapter(max_retries=retry, pool_connections=4, pool_maxsize=8)


def build_session(user_agent: Optional[str] = None) -> requests.Session:
    sess = requests.Session()
    adapter = _retry_adapter()
    sess.mount("https://", adapter)
    sess.mount("http://", adapter)
    sess.headers.update(
        {
            "User-Agent": user_agent or USER_AGENT,
            "Accept": DEFAULT_ACCEPT,
            "Accept-Language": "en-US,en;q=0.9",
        }
    )
    return sess


class DeadlineFetcher:
    """Issues outbound GETs bounded by a shared deadline and a per-call timeout.

    Every call computes ``remaining = deadline - now - reserve``. No call is
    issued once that budget is spent (``DeadlineExceeded``); otherwise the call
    gets ``min(timeout, remaining)`` seconds, floored at a small minimum, and
    is cancelled at that boundary (``FetchTimeout``).

    Calls run on a private thread pool. ``close`` abandons calls still in
    flight, so a slow upstream cannot hold the caller past the deadline.
    """

    def __init__(
        self,
        deadline: Deadline,
        *,
        session: Optional[requests.Session] = None,
        reserve: float = 0.0,
        min_timeout: float = MIN_CALL_TIMEOUT_SECONDS,
        max_workers: int = 4,
    ) -> None:
        self.deadline = deadline
        self.session = session or build_session()
        self.reserve = reserve
        self.min_timeout = min_timeout
        self.timeouts_used: list[float] = []
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="archive-fetch"
        )

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def effective_timeout(self, timeout: float, reserve: Optional[float] = None) -> float:
        remaining = self.deadline.remaining(self.reserve if reserve is None else reserve)
        if remaining <= 0:
            raise DeadlineExceeded(
                f"Deadline exhausted ({remaining:.3f}s remaining)"
            )
        return max(min(timeout, remaining), self.min_timeout)

    def _send(
        self,
        url: str,
        timeout: float,
        allow_redirects: bool,
        headers: Optional[dict[str, str]],
    ) -> FetchResponse:
        started = time.perf_counter()
        try:
            response = self.session.get(
                url,
                headers=headers or {},
                timeout=timeout,
                allow_redirects=allow_redirects,
            )
        except requests.Timeout as exc:
            raise FetchTimeout(f"Timed out after {timeout:.2f}s: {exc}", url=url) from exc
        except requests.RequestException as exc:
            raise NetworkError(f"Failed to fetch URL: {exc}", url=url) from exc
        return FetchResponse(
            url=getattr(response, "url", None) or url,
            status_code=response.status_code,
            text=response.text or "",
            headers=dict(response.headers or {}),
            elapsed_ms=int((time.perf_counter() - started) * 1000),
        )

    async def get(
        self,
        url: str,
        *,
        timeout: float,
        reserve: Optional[float] = None,
        allow_redirects: bool = True,
        headers: Optional[dict[str, str]] = None,
    ) -> FetchResponse:
        try:
            budget = self.effective_timeout(timeout, reserve)
        except DeadlineExceeded as exc:
            exc.url = url
            # structlog treats the first positional argument as the ``event`` field; keep it keyword-only.
            logger.info(
                event="fetch_skipped",
                operation="fetch.request",
                url=url,
                status="deadline_exceeded",
                error_type=DeadlineExceeded.__name__,
            )
            raise

        self.timeouts_used.append(budget)
        # structlog treats the first positional argument as the ``event`` field; keep it keyword-only.
        logger.debug(
            event="fetch_request",
            operation="fetch.request",
            url=url,
            timeout_seconds=round(budget, 3),
        )
        try:
            loop = asyncio.get_running_loop()
            call = loop.run_in_executor(
                self._executor,
                contextvars.copy_context().run,
                self._send,
                url,
                budget,
                allow_redirects,
                headers,
            )
            response = await asyncio.wait_for(call, timeout=budget)
        except asyncio.TimeoutError as exc:
            logger.warning(
                event="fetch_timeout",
                operation="fetch.request",
                url=url,
                timeout_seconds=round(budget, 3),
                error_type=FetchTimeout.__name__,
            )
            raise FetchTimeout(f"Timed out after {budget:.2f}s", url=url) from exc
        except (FetchTimeout, NetworkError) as exc:
            logger.warning(
                event="fetch_error",
                operation="fetch.request",
                url=url,
                error_type=exc.__class__.__name__,
                error=str(exc),
            )
            raise

        logger.debug(
            event="fetch_response",
            operation="fetch.request",
            url=url,
            status=response.status_code,
            elapsed_ms=response.elapsed_ms,
        )
        return response

"""Pagination engine: drives the request loop of one query.

One query walks ``FetchingPage -> (AwaitingRetry ->) PageReady`` per page
until it is done. The loop is a generator, so the consumer controls it: no
page is requested before the previous page's rows have been consumed, and a
consumer that stops iterating (or closes the generator) stops the requests.
"""

import logging
import time
from enum import Enum
from typing import Any, Callable, Iterator
from urllib.parse import urljoin

from pydantic import BaseModel

from openapi_tables.config import ScanOptions
from openapi_tables.errors import ApiStatusError, ExtractionError
from openapi_tables.transport import HttpResponse, Transport

from .extract import ResponseExtractor
from .pointer import lookup
from .ratelimit import RateLimiter, RetryState
from .request import RequestDescriptor

logger = logging.getLogger(__name__)

# Conventional locations of a next-page link, checked in this order on the
# first response when no cursor_path is configured.
NEXT_LINK_PATHS = (
    "/meta/pagination/next",
    "/pagination/next",
    "/links/next",
    "/next",
    "/_links/next/href",
)

# Checked after the next-link paths: a true has_more flag paired with a cursor
# at one of the cursor paths selects cursor pagination for the query.
HAS_MORE_PATHS = ("/meta/pagination/has_more", "/has_more", "/pagination/has_more")
HAS_MORE_CURSOR_PATHS = (
    "/meta/pagination/next_cursor",
    "/pagination/next_cursor",
    "/next_cursor",
    "/cursor",
)


class Strategy(str, Enum):
    CURSOR = "cursor"
    URL = "url"
    SINGLE = "single"


class PageState(BaseModel):
    """Mutable progress of one query; never shared between queries."""

    requests: int = 0
    rows_emitted: int = 0
    cursor: str | None = None
    has_more_path: str | None = None
    cursor_path: str | None = None
    next_url: str | None = None
    strategy: Strategy | None = None
    next_link_path: str | None = None
    seen: set[str] = set()


def _is_link(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(("http://", "https://", "/", "?"))


def _cursor_value(value: Any) -> str | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str) and value:
        return value
    return None


def _first_present(body: Any, paths: tuple[str, ...]) -> tuple[str | None, Any]:
    for path in paths:
        value = lookup(body, path)
        if value is not None:
            return path, value
    return None, None


def _detect_strategy(body: Any, state: PageState) -> None:
    """Pick the strategy for an unconfigured query from its first page."""
    state.strategy = Strategy.SINGLE
    for path in NEXT_LINK_PATHS:
        if _is_link(lookup(body, path)):
            state.strategy, state.next_link_path = Strategy.URL, path
            return

    flag_path, has_more = _first_present(body, HAS_MORE_PATHS)
    if has_more is not True:
        return
    for path in HAS_MORE_CURSOR_PATHS:
        if _cursor_value(lookup(body, path)) is not None:
            state.strategy = Strategy.CURSOR
            state.has_more_path, state.cursor_path = flag_path, path
            return


class PaginationEngine:
    """Fetches pages for one request and yields row objects."""

    def __init__(
        self,
        transport: Transport,
        options: ScanOptions,
        rate_limiter: RateLimiter | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.transport = transport
        self.options = options
        self.rate_limiter = rate_limiter or RateLimiter(max_delay=options.max_retry_delay)
        self.sleep = sleep
        self.extractor = ResponseExtractor(options.response_path, options.object_path)

    def rows(self, request: RequestDescriptor, limit: int | None = None, state: PageState | None = None) -> Iterator[dict]:
        """Yield row objects, at most ``limit`` of them."""
        state = state if state is not None else PageState()
        if limit is not None and limit <= 0:
            return
        if self.options.cursor_path:
            state.strategy = Strategy.CURSOR
            state.cursor_path = self.options.cursor_path

        if request.single_resource:
            body = self._fetch(request, state)
            if body is None:
                return
            for row in self.extractor.rows(body, single=True)[:limit]:
                state.rows_emitted += 1
                yield row
            return

        current = self._page_request(request, state, limit)
        while current is not None:
            body = self._fetch(current, state)
            if body is None:
                return

            rows = self.extractor.rows(body)
            if limit is not None:
                rows = rows[: limit - state.rows_emitted]
            logger.debug("Page %d: %d rows", state.requests, len(rows))
            for row in rows:
                state.rows_emitted += 1
                yield row

            if not rows or (limit is not None and state.rows_emitted >= limit):
                return
            current = self._next_request(request, current, body, state, limit)

    def page_size(self, limit: int | None) -> int | None:
        opts = self.options
        if opts.page_size <= 0 or not opts.page_size_param:
            return None
        size = min(opts.page_size, opts.max_page_size)
        return min(size, limit) if limit is not None else size

    def _page_request(self, base: RequestDescriptor, state: PageState, limit: int | None) -> RequestDescriptor:
        params = []
        if state.strategy == Strategy.CURSOR and state.cursor:
            params.append((self.options.cursor_param, state.cursor))
        size = self.page_size(limit)
        if size:
            params.append((self.options.page_size_param, str(size)))
        return base.with_params(params)

    def _next_request(
        self,
        base: RequestDescriptor,
        current: RequestDescriptor,
        body: Any,
        state: PageState,
        limit: int | None,
    ) -> RequestDescriptor | None:
        if state.strategy is None:
            _detect_strategy(body, state)
            logger.debug("Pagination strategy: %s", state.strategy.value)

        if state.strategy == Strategy.CURSOR:
            if state.has_more_path and lookup(body, state.has_more_path) is not True:
                return None
            cursor = _cursor_value(lookup(body, state.cursor_path))
            if cursor is None:
                return None
            if cursor in state.seen:
                logger.warning("Cursor %r repeated; stopping pagination", cursor)
                return None
            state.seen.add(cursor)
            state.cursor = cursor
            return self._page_request(base, state, limit)

        if state.strategy == Strategy.SINGLE:
            return None

        link = lookup(body, state.next_link_path)
        if not _is_link(link):
            return None
        state.seen.add(current.full_url)
        url = urljoin(current.full_url, link)
        if url in state.seen:
            logger.warning("Next link %s repeated; stopping pagination", url)
            return None
        state.seen.add(url)
        state.next_url = url
        return base.with_url(url)

    def _fetch(self, request: RequestDescriptor, state: PageState) -> Any:
        """Issue one page request, retrying throttled responses.

        Returns the decoded body, or ``None`` for 404 (no such resource).
        """
        url = request.full_url
        retry = RetryState()
        while True:
            state.requests += 1
            resp: HttpResponse = self.transport.send(request.method, url, request.headers)
            decision = self.rate_limiter.decide(retry, resp.status, resp.headers, url)
            if not decision.retry:
                break
            retry = decision.state
            self.sleep(decision.delay)

        if resp.status == 404:
            logger.debug("404 from %s; treating as no rows", url)
            return None
        if not 200 <= resp.status < 300:
            raise ApiStatusError(resp.status, url, resp.text())
        try:
            return resp.decode_json()
        except ValueError as e:
            raise ExtractionError(f"Response from {url} is not valid JSON: {e}") from e

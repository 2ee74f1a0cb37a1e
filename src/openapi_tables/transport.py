"""HTTP transport wrapper around requests.

The query engine only needs ``send(method, url, headers)`` returning a
status, headers and the raw body; any object with that method can stand in
for ``HttpClient`` (tests use an in-memory fake).
"""

import json
import logging
from typing import Any, Protocol

import requests
from pydantic import BaseModel

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class HttpResponse(BaseModel):
    """Status, headers (lower-case names) and body of one response."""

    status: int
    headers: dict[str, str] = {}
    body: bytes = b""

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def decode_json(self) -> Any:
        return json.loads(self.body)


class Transport(Protocol):
    def send(self, method: str, url: str, headers: dict[str, str]) -> HttpResponse: ...


class HttpClient:
    """Blocking transport backed by a ``requests.Session``."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, session: requests.Session | None = None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def send(self, method: str, url: str, headers: dict[str, str]) -> HttpResponse:
        """Issue one request and read the whole body before returning."""
        logger.debug("%s %s", method, url)
        with self.session.request(method, url, headers=headers, timeout=self.timeout) as resp:
            return HttpResponse(
                status=resp.status_code,
                headers={k.lower(): v for k, v in resp.headers.items()},
                body=resp.content,
            )

    def get(self, url: str, headers: dict[str, str] | None = None) -> HttpResponse:
        return self.send("GET", url, headers or {})

    def close(self) -> None:
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

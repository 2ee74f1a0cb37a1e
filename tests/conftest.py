import json

import pytest

from openapi_tables.transport import HttpResponse


def json_response(body, status: int = 200, headers: dict | None = None) -> HttpResponse:
    return HttpResponse(status=status, headers=headers or {}, body=json.dumps(body).encode())


class FakeTransport:
    """Replays canned responses and records every request."""

    def __init__(self, responses=None, responder=None):
        self.responses = list(responses or [])
        self.responder = responder
        self.requests: list[tuple[str, str, dict]] = []
        self.closed = False

    def send(self, method, url, headers):
        self.requests.append((method, url, headers))
        if self.responder is not None:
            return self.responder(url)
        return self.responses.pop(0)

    @property
    def urls(self) -> list[str]:
        return [url for _, url, _ in self.requests]

    def close(self):
        self.closed = True


@pytest.fixture
def make_transport():
    return FakeTransport


@pytest.fixture
def respond():
    return json_response

from unittest.mock import MagicMock, patch

from openapi_tables.transport import HttpClient, HttpResponse


def _session(status=200, headers=None, content=b"{}"):
    resp = MagicMock()
    resp.status_code = status
    resp.headers = headers or {}
    resp.content = content
    session = MagicMock()
    session.request.return_value.__enter__.return_value = resp
    return session


class TestHttpResponse:
    def test_header_lookup(self):
        resp = HttpResponse(status=200, headers={"retry-after": "3"})
        assert resp.header("Retry-After") == "3"
        assert resp.header("x-missing") is None

    def test_decode_json(self):
        resp = HttpResponse(status=200, body=b'{"data": [1, 2]}')
        assert resp.decode_json() == {"data": [1, 2]}

    def test_text(self):
        assert HttpResponse(status=500, body="café".encode()).text() == "café"


class TestHttpClient:
    def test_send(self):
        session = _session(status=429, headers={"Retry-After": "2", "Content-Type": "application/json"}, content=b"[]")
        client = HttpClient(timeout=5, session=session)
        resp = client.send("GET", "https://x/users", {"accept": "application/json"})

        assert resp.status == 429
        assert resp.headers == {"retry-after": "2", "content-type": "application/json"}
        assert resp.body == b"[]"
        session.request.assert_called_once_with(
            "GET", "https://x/users", headers={"accept": "application/json"}, timeout=5
        )

    def test_get(self):
        session = _session()
        HttpClient(session=session).get("https://x/spec.yaml")
        args, kwargs = session.request.call_args
        assert args == ("GET", "https://x/spec.yaml")
        assert kwargs["headers"] == {}

    def test_context_manager_closes_session(self):
        session = _session()
        with HttpClient(session=session):
            pass
        session.close.assert_called_once()

    @patch("openapi_tables.transport.requests.Session")
    def test_default_session(self, MockSession):
        client = HttpClient()
        assert client.session is MockSession.return_value
        assert client.timeout == 30.0

from types import SimpleNamespace

import pytest
import requests

from app.integrations.shoptet import (
    RemoteAuthExpired, RemoteFetchFailure, RemoteListFailure, RemotePayloadError, RemoteRateLimited,
    ShoptetHttpClient, ShoptetOrdersAPI,
)
from app.utils.backoff import calc_backoff_seconds, retry_after_seconds


class FakeResponse:
    def __init__(self, status_code=200, body=None, headers=None, text=None):
        self.status_code = status_code
        self._body = body
        self.headers = headers or {}
        self.text = text if text is not None else ("" if body is None else str(body))

    def json(self):
        if self._body is None:
            raise ValueError("No JSON object could be decoded")
        return self._body


class FakeSession:
    """Replays queued responses (or raises queued exceptions) and records requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def request(self, method, url, headers=None, timeout=None, **kwargs):
        self.requests.append(SimpleNamespace(method=method, url=url, headers=headers, timeout=timeout, **kwargs))
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def _client(session, **kwargs):
    sleeps = []
    client = ShoptetHttpClient(
        api_token="secret",
        base_url="https://api.myshoptet.com/api",
        max_attempts=3,
        session=session,
        sleep=sleeps.append,
        **kwargs,
    )
    return client, sleeps


def test_get_json_sends_the_shop_token():
    session = FakeSession(FakeResponse(200, {"data": {}}))
    client, _ = _client(session)

    assert client.get_json("/orders", params={"page": 1}) == {"data": {}}
    sent = session.requests[0]
    assert sent.url == "https://api.myshoptet.com/api/orders"
    assert sent.headers["Shoptet-Private-Api-Token"] == "secret"
    assert sent.params == {"page": 1}


def test_rate_limit_honours_retry_after():
    session = FakeSession(FakeResponse(429, headers={"Retry-After": "7"}), FakeResponse(200, {"ok": True}))
    client, sleeps = _client(session)

    assert client.get_json("orders") == {"ok": True}
    assert sleeps == [7.0]


def test_persistent_rate_limit_raises():
    session = FakeSession(*[FakeResponse(429, headers={"Retry-After": "1"}) for _ in range(3)])
    client, sleeps = _client(session)

    with pytest.raises(RemoteRateLimited) as exc:
        client.get_json("orders")
    assert exc.value.retry_after == 1.0
    assert len(sleeps) == 2


def test_server_errors_are_retried_then_fail():
    session = FakeSession(FakeResponse(500, text="boom"), FakeResponse(502), FakeResponse(503, text="down"))
    client, sleeps = _client(session)

    with pytest.raises(RemoteListFailure, match="503 after 3 attempts"):
        client.get_json("orders")
    assert len(session.requests) == 3
    assert len(sleeps) == 2


def test_network_error_then_success():
    session = FakeSession(requests.ConnectionError("reset"), FakeResponse(200, {"ok": 1}))
    client, sleeps = _client(session)

    assert client.get_json("orders") == {"ok": 1}
    assert len(sleeps) == 1


@pytest.mark.parametrize("status", [401, 403])
def test_auth_errors_are_not_retried(status):
    session = FakeSession(FakeResponse(status, text="invalid token"))
    client, sleeps = _client(session)

    with pytest.raises(RemoteAuthExpired):
        client.get_json("orders")
    assert sleeps == []


def test_client_error_is_a_list_failure():
    client, _ = _client(FakeSession(FakeResponse(404, text="not found")))
    with pytest.raises(RemoteListFailure, match="404 client error"):
        client.get_json("orders")


def test_missing_token_fails_without_a_request():
    session = FakeSession()
    client = ShoptetHttpClient(api_token="", session=session, sleep=lambda s: None)
    with pytest.raises(RemoteAuthExpired):
        client.get_json("orders")
    assert session.requests == []


def test_non_json_body_is_a_payload_error():
    client, _ = _client(FakeSession(FakeResponse(200, body=None, text="<html>maintenance</html>")))
    with pytest.raises(RemotePayloadError, match="maintenance"):
        client.get_json("orders")


def test_backoff_helpers():
    class NoJitter:
        @staticmethod
        def uniform(a, b):
            return 0.0

    assert [calc_backoff_seconds(n, rng=NoJitter) for n in (1, 2, 3)] == [2.0, 4.0, 8.0]
    assert calc_backoff_seconds(10, max_seconds=30, rng=NoJitter) == 30.0
    assert retry_after_seconds("120", max_seconds=60) == 60.0
    assert retry_after_seconds("Wed, 21 Oct 2026 07:28:00 GMT") is None
    assert retry_after_seconds(None) is None


# ---------- orders API ----------
class StubHttp:
    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def get_json(self, path, params=None):
        self.calls.append((path, params))
        result = self.routes[path]
        if isinstance(result, Exception):
            raise result
        return result


def _shop(shop_id=1):
    return SimpleNamespace(id=shop_id, api_token="secret")


def test_list_orders_parses_the_page():
    http = StubHttp({"/api/orders": {"data": {
        "orders": [{"code": "A1"}, "junk", {"code": "A2"}],
        "paginator": {"page": 1, "pageCount": 4},
    }}})
    api = ShoptetOrdersAPI(client_factory=lambda shop: http)

    page = api.list_orders(_shop(), {"changeTimeFrom": "x", "statusId": None}, page=1, per_page=50)

    assert [o["code"] for o in page.orders] == ["A1", "A2"]
    assert page.paginator == {"page": 1, "pageCount": 4}
    assert http.calls == [("/api/orders", {"changeTimeFrom": "x", "page": 1, "itemsPerPage": 50})]


def test_list_orders_without_data_block():
    api = ShoptetOrdersAPI(client_factory=lambda shop: StubHttp({"/api/orders": {"errors": ["x"]}}))
    with pytest.raises(RemotePayloadError):
        api.list_orders(_shop(), {}, page=1, per_page=50)


def test_order_detail_failures_become_fetch_failures():
    http = StubHttp({
        "/api/orders/A1": {"data": {"order": {"code": "A1", "items": []}}},
        "/api/orders/A2": RemoteListFailure("500 after 3 attempts"),
        "/api/orders/A3": {"data": {}},
    })
    api = ShoptetOrdersAPI(client_factory=lambda shop: http)

    assert api.get_order_detail(_shop(), "A1")["code"] == "A1"
    with pytest.raises(RemoteFetchFailure):
        api.get_order_detail(_shop(), "A2")
    with pytest.raises(RemoteFetchFailure, match="no data.order"):
        api.get_order_detail(_shop(), "A3")


def test_one_http_client_per_shop():
    built = []

    def factory(shop):
        built.append(shop.id)
        return StubHttp({"/api/orders": {"data": {"orders": []}}})

    api = ShoptetOrdersAPI(client_factory=factory)
    api.list_orders(_shop(1), {}, 1, 10)
    api.list_orders(_shop(1), {}, 2, 10)
    api.list_orders(_shop(2), {}, 1, 10)
    assert built == [1, 2]

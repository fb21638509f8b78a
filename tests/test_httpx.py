import json
import logging
import threading
import time

import httpx
import pytest

from sharepointclient import Site
from sharepointclient._httpx import (
    CookieSession,
    HttpxTransport,
    RequestHookSession,
    SharepointConnectionParameters,
    TransportResponse,
)
from sharepointclient.exceptions import (
    SharepointClientClosed,
    SharepointNetworkError,
    SharepointTimeoutError,
)
from sharepointclient.objects import ListItem

from .test_utils import API_ROOT, CONTEXT_INFO_URL, SERVER, SITE_NAME, context_info_payload


def make_params():
    return SharepointConnectionParameters(
        ssl_verify=False,
        timeout=httpx.Timeout(5.0),
        user_agent="tests",
    )


def make_transport(handler):
    return HttpxTransport(make_params(), http_transport=httpx.MockTransport(handler))


def test_send_returns_status_and_content():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(201, content=b'{"ok": true}')

    transport = make_transport(handler)
    response = transport.send(
        "post", "https://example.com/x", b"payload", {"Accept": "application/json"}
    )

    assert response == TransportResponse(201, b'{"ok": true}')
    assert response.text == '{"ok": true}'
    assert seen[0].method == "POST"
    assert seen[0].content == b"payload"
    assert seen[0].headers["Accept"] == "application/json"


def test_hooks_modify_the_outgoing_request():
    seen = []

    def handler(request):
        seen.append(request.headers.get("X-HTTP-Method"))
        return httpx.Response(204)

    def hook(request):
        request.headers["X-HTTP-Method"] = "MERGE"

    response = make_transport(handler).send("post", "https://example.com/x", hooks=[hook])

    assert seen == ["MERGE"]
    assert response.status_code == 204
    assert response.text == ""


def test_temporary_client_outside_context_manager():
    transport = make_transport(lambda request: httpx.Response(200))
    transport.send("get", "https://example.com/x")
    assert transport.httpx_client is None
    assert not transport.is_closed


def test_client_is_kept_open_inside_context_manager():
    transport = make_transport(lambda request: httpx.Response(200))
    with transport:
        client = transport.httpx_client
        transport.send("get", "https://example.com/a")
        transport.send("get", "https://example.com/b")
        assert transport.httpx_client is client
        assert not client.is_closed
    assert client.is_closed
    assert transport.is_closed
    with pytest.raises(SharepointClientClosed):
        transport.send("get", "https://example.com/c")


@pytest.mark.parametrize(
    "error_class, expected",
    [(httpx.ConnectError, SharepointNetworkError), (httpx.ReadTimeout, SharepointTimeoutError)],
)
def test_transport_errors_are_converted(error_class, expected):
    def handler(request):
        raise error_class("boom", request=request)

    with pytest.raises(expected) as exc_info:
        make_transport(handler).send("get", "https://example.com/x")
    assert exc_info.value.url == "https://example.com/x"
    assert exc_info.value.method == "GET"
    assert isinstance(exc_info.value.__cause__, error_class)


def test_verbose_logging_redacts_credentials(caplog):
    transport = make_transport(lambda request: httpx.Response(200))
    with caplog.at_level(logging.INFO, logger="sharepointclient._httpx"):
        transport.send(
            "post",
            "https://example.com/x",
            headers={"X-RequestDigest": "secret-digest", "Cookie": "FedAuth=secret"},
            verbose=True,
        )
    assert "> POST https://example.com/x" in caplog.text
    assert "< 200 OK" in caplog.text
    assert "[redacted]" in caplog.text
    assert "secret" not in caplog.text


def test_cookie_session_from_cookies():
    session = CookieSession.from_cookies({"FedAuth": "a", "rtFa": "b"})
    assert session.cookie == "FedAuth=a; rtFa=b"
    assert CookieSession.from_cookies({}).cookie is None
    assert not isinstance(session, RequestHookSession)


def test_site_round_trip_over_httpx():
    calls = []

    def handler(request):
        calls.append(request)
        if str(request.url) == CONTEXT_INFO_URL:
            return httpx.Response(200, json=context_info_payload("0xdigest"))
        payload = {
            "d": {
                "__metadata": {"type": "SP.ListItem", "uri": f"{API_ROOT}items(1)"},
                "Title": json.loads(request.content)["Title"],
            }
        }
        return httpx.Response(201, json=payload)

    site = Site(
        SERVER,
        SITE_NAME,
        session=CookieSession("FedAuth=abc"),
        transport=make_transport(handler),
    )
    with site:
        item = site.query("post", "lists/GetByTitle('Tasks')/items", {"Title": "Hello"})

    assert isinstance(item, ListItem)
    assert item.title == "Hello"
    assert [str(c.url) for c in calls] == [
        CONTEXT_INFO_URL,
        f"{API_ROOT}lists/GetByTitle('Tasks')/items",
    ]
    assert "x-requestdigest" not in calls[0].headers
    assert calls[1].headers["x-requestdigest"] == "0xdigest"
    assert calls[1].headers["authorization"] == "Bearer 0xdigest"
    assert calls[1].headers["cookie"] == "FedAuth=abc"
    assert site.transport.is_closed


def test_concurrent_queries_without_context_manager():
    def handler(request):
        time.sleep(0.05)
        if str(request.url) == CONTEXT_INFO_URL:
            return httpx.Response(200, json=context_info_payload("0xdigest"))
        return httpx.Response(200, json={"d": {"results": []}})

    site = Site(SERVER, SITE_NAME, transport=make_transport(handler))
    errors = []
    results = []

    def worker(method, hook):
        try:
            results.append(site.query(method, "lists", {"Title": "x"}, hook=hook))
        except Exception as exc:  # noqa: BLE001
            errors.append(exc)

    threads = [
        threading.Thread(target=worker, args=("get", None)),
        threading.Thread(target=worker, args=("get", lambda request: time.sleep(0.1))),
        threading.Thread(target=worker, args=("post", None)),
    ]
    for thread in threads:
        thread.start()
        time.sleep(0.01)
    for thread in threads:
        thread.join()

    assert errors == []
    assert results == [[], [], []]
    assert site.transport.httpx_client is None

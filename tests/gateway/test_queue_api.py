"""
Tests for the queue API client: single-flight login, 401 handling,
fetch error mapping and confirmations.
"""

import json
import threading
import time

import httpx

from smsgateway.queue_api import DeliveryOutcome, QueueAPIClient
from smsgateway.queue_api.client import CONFIRM_PATH, LOGIN_PATH, PENDING_PATH


BASE_URL = "http://queue.test"


def make_client(handler, token: str | None = "tok-0", login_cooldown: float = 0) -> QueueAPIClient:
    client = QueueAPIClient(
        base_url=BASE_URL,
        email="gateway@example.com",
        password="secret",
        device_name="GW-1",
        login_cooldown=login_cooldown,
        transport=httpx.MockTransport(handler),
    )
    client._token = token
    return client


def pending_message(item_id=1, number="70012345", text="hola"):
    return {"id_proveedor_envio_sms": item_id, "numero_destino": number, "mensaje": text}


def test_concurrent_logins_share_one_exchange():
    """Two callers logging in at once trigger exactly one credential exchange."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        time.sleep(0.2)
        return httpx.Response(200, json={"token": "tok-1"})

    client = make_client(handler, token=None, login_cooldown=1.0)
    barrier = threading.Barrier(2)
    results = []

    def worker():
        barrier.wait()
        results.append(client.login())

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert calls == [LOGIN_PATH]
    assert results == [True, True]
    assert client.token == "tok-1"


def test_login_sends_credential_triple():
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"token": "tok-1"})

    client = make_client(handler, token=None)
    assert client.login() is True
    assert bodies == [{"email": "gateway@example.com", "password": "secret", "device_name": "GW-1"}]


def test_login_without_token_in_response_fails():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"message": "Invalid credentials"})

    client = make_client(handler, token=None)
    assert client.login() is False
    assert client.token is None


def test_login_result_is_shared_during_cooldown():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return httpx.Response(200, json={"token": f"tok-{len(calls)}"})

    client = make_client(handler, token=None, login_cooldown=5.0)
    assert client.login() is True
    assert client.login() is True
    assert len(calls) == 1


def test_unauthorized_request_relogs_in_once_and_retries():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append((request.url.path, request.headers.get("Authorization")))
        if request.url.path == LOGIN_PATH:
            return httpx.Response(200, json={"token": "fresh"})
        if request.headers["Authorization"] == "Bearer stale":
            return httpx.Response(401, json={"message": "Unauthenticated."})
        return httpx.Response(200, json={"type": "success", "data": [pending_message()]})

    client = make_client(handler, token="stale")
    pending = client.get_pending_items()

    assert pending.ok
    assert [item.id for item in pending] == [1]
    assert calls == [
        (PENDING_PATH, "Bearer stale"),
        (LOGIN_PATH, None),
        (PENDING_PATH, "Bearer fresh"),
    ]


def test_second_unauthorized_response_is_not_retried():
    """A 401 after re-login surfaces as an auth failure without a third request."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        if request.url.path == LOGIN_PATH:
            return httpx.Response(200, json={"token": "fresh"})
        return httpx.Response(401, json={"message": "Unauthenticated."})

    client = make_client(handler, token="stale")
    pending = client.get_pending_items()

    assert pending.error == "auth"
    assert pending.items == []
    assert calls.count(LOGIN_PATH) == 1
    assert calls.count(PENDING_PATH) == 2


def test_fetch_logs_in_when_no_token_is_held():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        if request.url.path == LOGIN_PATH:
            return httpx.Response(200, json={"token": "tok-1"})
        return httpx.Response(200, json={"type": "success", "data": []})

    client = make_client(handler, token=None)
    pending = client.get_pending_items()

    assert pending.ok and len(pending) == 0
    assert calls == [LOGIN_PATH, PENDING_PATH]


def test_fetch_timeout_maps_to_empty_result():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    pending = make_client(handler).get_pending_items()
    assert pending.error == "timeout"
    assert pending.items == []


def test_fetch_connection_error_maps_to_empty_result():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    assert make_client(handler).get_pending_items().error == "connection"


def test_fetch_server_error_and_invalid_json():
    def server_error(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="oops")

    def not_json(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>maintenance</html>")

    assert make_client(server_error).get_pending_items().error == "http"
    assert make_client(not_json).get_pending_items().error == "http"


def test_fetch_error_type_maps_to_rejected():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"type": "error", "data": []})

    assert make_client(handler).get_pending_items().error == "rejected"


def test_fetch_non_list_data_is_invalid_response():
    for data in (5, "pending", True):
        def handler(request: httpx.Request, data=data) -> httpx.Response:
            return httpx.Response(200, json={"type": "success", "data": data})

        pending = make_client(handler).get_pending_items()
        assert pending.error == "invalid_response"
        assert pending.items == []


def test_fetch_accepts_single_object():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"type": "success", "data": pending_message(7, 70012345)})

    pending = make_client(handler).get_pending_items()
    assert len(pending) == 1
    item = pending.items[0]
    assert (item.id, item.destination, item.body) == (7, "70012345", "hola")



def test_confirm_truncates_error_text():
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"type": "success"})

    client = make_client(handler)
    assert client.confirm_item(42, DeliveryOutcome.ERROR, "x" * 300) is True

    body = bodies[0]
    assert body["id_proveedor_envio_sms"] == 42
    assert body["estado_envio"] == "ERROR"
    assert len(body["mensaje_error"]) == 255


def test_confirm_success_has_no_error_text():
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == CONFIRM_PATH
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"type": "success"})

    assert make_client(handler).confirm_item(1, DeliveryOutcome.COMPLETADO) is True
    assert bodies == [{"id_proveedor_envio_sms": 1, "estado_envio": "COMPLETADO"}]


def test_confirm_never_raises():
    def refused(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"type": "error", "message": "unknown id"})

    def broken(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection reset", request=request)

    assert make_client(refused).confirm_item(1, DeliveryOutcome.COMPLETADO) is False
    assert make_client(broken).confirm_item(1, DeliveryOutcome.ERROR, "boom") is False


def test_malformed_items_with_id_are_kept_for_error_confirmation():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"type": "success", "data": [
            {"id_proveedor_envio_sms": 11, "numero_destino": None, "mensaje": "hola"},
            {"id_proveedor_envio_sms": 12, "numero_destino": "70012345", "mensaje": None},
            {"numero_destino": "70012345", "mensaje": "sin id"},
            "garbage",
            pending_message(13),
        ]})

    items = make_client(handler).get_pending_items().items

    assert [item.id for item in items] == [11, 12, 13]
    assert (items[0].destination, items[0].body) == ("", "hola")
    assert (items[1].destination, items[1].body) == ("70012345", "")

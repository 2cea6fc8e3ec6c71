"""Tests for the HTTP client."""

from unittest.mock import MagicMock, patch

import threading
import time

import pytest
import requests

from bus_finder.client import BusTimeClient, CancelToken
from bus_finder.errors import DecodeError, OperationCancelled, TransportError


def response(text="", status=200, reason="OK"):
    mock = MagicMock()
    mock.text = text
    mock.status_code = status
    mock.reason = reason
    mock.ok = 200 <= status < 300
    return mock


@pytest.fixture
def client():
    return BusTimeClient(api_key="test-key", base_url="https://example.test/api/where/", timeout=5)


def test_get_json_sends_key(client):
    """Test the API key and parameters are passed on every request."""
    with patch("bus_finder.client.requests.get", return_value=response('{"data": {}}')) as get:
        document = client.get_json("stops-for-location.json", {"lat": "40.75"}, resource="stops-for-location")

    assert document == {"data": {}}
    url = get.call_args.args[0]
    assert url == "https://example.test/api/where/stops-for-location.json"
    assert get.call_args.kwargs["params"] == {"lat": "40.75", "key": "test-key"}
    assert get.call_args.kwargs["timeout"] == 5


def test_get_xml_decodes(client):
    """Test XML bodies are decoded."""
    with patch("bus_finder.client.requests.get", return_value=response("<response><code>200</code></response>")):
        document = client.get_xml("stop/1.xml", resource="stop", ident="1")
    assert document == {"response": {"code": "200"}}


def test_http_error_status(client):
    """Test a non-2xx status raises a transport error with the status."""
    with patch("bus_finder.client.requests.get", return_value=response(status=503, reason="Service Unavailable")):
        with pytest.raises(TransportError) as exc_info:
            client.get_json("stops-for-route/M15.json", resource="stops-for-route", ident="M15")
    assert exc_info.value.status == 503
    assert exc_info.value.ident == "M15"


def test_network_failure(client):
    """Test connection errors raise a transport error."""
    with patch("bus_finder.client.requests.get", side_effect=requests.exceptions.ConnectionError("refused")):
        with pytest.raises(TransportError) as exc_info:
            client.get_xml("stop/1.xml", resource="stop", ident="1")
    assert exc_info.value.status is None


def test_malformed_body(client):
    """Test an undecodable body raises a decode error."""
    with patch("bus_finder.client.requests.get", return_value=response("<oops")):
        with pytest.raises(DecodeError):
            client.get_xml("stop/1.xml", resource="stop", ident="1")


def test_cancelled_token_skips_request(client):
    """Test a cancelled token fails before any request is sent."""
    token = CancelToken()
    token.cancel()
    with patch("bus_finder.client.requests.get") as get:
        with pytest.raises(OperationCancelled):
            client.get_json("stops-for-location.json", resource="stops-for-location", token=token)
    get.assert_not_called()


def test_deadline_bounds_timeout(client):
    """Test the request timeout never exceeds the time left on the token."""
    token = CancelToken(timeout=1)
    with patch("bus_finder.client.requests.Session.get", return_value=response("{}")) as get:
        client.get_json("stops-for-location.json", resource="stops-for-location", token=token)
    assert get.call_args.kwargs["timeout"] <= 1


def test_expired_deadline():
    """Test an elapsed deadline counts as cancelled."""
    token = CancelToken(timeout=0)
    assert token.cancelled
    assert token.remaining() == 0
    assert CancelToken().remaining() is None


def test_cancel_aborts_request_in_flight(client):
    """Test cancelling during a slow request fails the call without waiting for it."""
    def slow_get(url, params=None, timeout=None):
        time.sleep(2)
        return response("{}")

    token = CancelToken()
    threading.Timer(0.1, token.cancel).start()
    started = time.monotonic()
    with patch("bus_finder.client.requests.Session.get", side_effect=slow_get):
        with pytest.raises(OperationCancelled):
            client.get_json("stops-for-location.json", resource="stops-for-location", token=token)
    assert time.monotonic() - started < 0.5


def test_cancel_closes_session(client):
    """Test cancelling closes the session used by the request in flight."""
    closed = threading.Event()

    def slow_get(url, params=None, timeout=None):
        closed.wait(2)
        raise requests.exceptions.ConnectionError("connection closed")

    token = CancelToken()
    threading.Timer(0.1, token.cancel).start()
    with patch("bus_finder.client.requests.Session.get", side_effect=slow_get), \
            patch("bus_finder.client.requests.Session.close", side_effect=lambda: closed.set()):
        with pytest.raises(OperationCancelled):
            client.get_xml("stop/1.xml", resource="stop", ident="1", token=token)
    assert closed.is_set()


def test_cancel_callbacks():
    """Test callbacks run once on cancel, and at once when added afterwards."""
    token = CancelToken()
    calls = []
    token.add_callback(lambda: calls.append("first"))
    removed = lambda: calls.append("removed")
    token.add_callback(removed)
    token.remove_callback(removed)
    token.cancel()
    token.cancel()
    token.add_callback(lambda: calls.append("late"))
    assert calls == ["first", "late"]

from __future__ import annotations

import pytest
import requests

from tenement_sync.common.errors import TransientNetworkError, UpstreamSchemaError
from tenement_sync.common.http import PROBE_TIMEOUT, HttpClient, HttpRequestError


class FakeResponse:
    def __init__(self, status_code: int, payload=None, raises_json: bool = False, text: str = "", content: bytes = b""):
        self.status_code = status_code
        self._payload = payload
        self._raises_json = raises_json
        self.text = text
        self.content = content

    def json(self):
        if self._raises_json:
            raise ValueError("bad json")
        return self._payload


def test_http_get_json_success(monkeypatch):
    client = HttpClient(rate_limits={})

    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(200, {"ok": True}))
    payload = client.get_json("https://example.com", source_type="arcgis")

    assert payload == {"ok": True}


def test_http_passes_timeout_and_user_agent(monkeypatch):
    client = HttpClient(rate_limits={})
    seen = {}

    def fake_request(**kwargs):
        seen.update(kwargs)
        return FakeResponse(200, text="<WFS_Capabilities/>")

    monkeypatch.setattr(client.session, "request", fake_request)
    client.get_text("https://example.com/wfs", source_type="wfs", params={"request": "GetCapabilities"}, timeout=PROBE_TIMEOUT)

    assert seen["timeout"] == (10.0, 10.0)
    assert seen["params"] == {"request": "GetCapabilities"}
    assert seen["headers"]["User-Agent"].startswith("tenement-sync/")


@pytest.mark.parametrize("status", [429, 502, 503, 504])
def test_http_retryable_status_raises_transient_error(monkeypatch, status):
    client = HttpClient(rate_limits={})
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(status, {"x": 1}))

    with pytest.raises(TransientNetworkError):
        client.get_json("https://example.com", source_type="arcgis")


def test_http_client_error_status_is_not_transient(monkeypatch):
    client = HttpClient(rate_limits={})
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(404))

    with pytest.raises(HttpRequestError):
        client.get_bytes("https://example.com/file.zip", source_type="zip")


def test_http_timeout_becomes_transient(monkeypatch):
    client = HttpClient(rate_limits={})

    def boom(**_kwargs):
        raise requests.Timeout("read timed out")

    monkeypatch.setattr(client.session, "request", boom)

    with pytest.raises(TransientNetworkError):
        client.get_text("https://example.com", source_type="csv")


def test_http_invalid_json_raises(monkeypatch):
    client = HttpClient(rate_limits={})
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(200, raises_json=True))

    with pytest.raises(UpstreamSchemaError):
        client.get_json("https://example.com", source_type="arcgis")


def test_http_non_object_json_raises(monkeypatch):
    client = HttpClient(rate_limits={})
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(200, [1, 2]))

    with pytest.raises(UpstreamSchemaError):
        client.get_json("https://example.com", source_type="arcgis")

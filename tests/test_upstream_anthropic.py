import json
from typing import Any

import pytest
import requests

from chat_proxy.errors import UpstreamFormatError, UpstreamStatusError, UpstreamTransportError
from chat_proxy.upstream_anthropic import AnthropicUpstream, extract_error_message


class FakeResponse:
    def __init__(self, status_code: int, text: str) -> None:
        self.status_code = status_code
        self.text = text


class FakeSession:
    def __init__(self, response: FakeResponse | None = None, exc: Exception | None = None) -> None:
        self.response = response
        self.exc = exc
        self.calls: list[dict[str, Any]] = []

    def post(self, url: str, **kw: Any) -> FakeResponse:
        self.calls.append({"url": url, **kw})
        if self.exc is not None:
            raise self.exc
        assert self.response is not None
        return self.response


def _upstream(session: FakeSession) -> AnthropicUpstream:
    return AnthropicUpstream(api_key="sk-ant-test", timeout_s=5.0, session=session)


def test_send_posts_payload_with_provider_headers() -> None:
    body = {"content": [{"type": "text", "text": "hello"}]}
    session = FakeSession(FakeResponse(200, json.dumps(body)))
    reply = _upstream(session).send({"model": "m", "max_tokens": 1, "messages": []})

    assert reply.status_code == 200
    assert reply.body == body
    call = session.calls[0]
    assert call["url"] == "https://api.anthropic.com/v1/messages"
    assert call["headers"] == {
        "x-api-key": "sk-ant-test",
        "anthropic-version": "2023-06-01",
        "content-type": "application/json",
    }
    assert call["json"]["model"] == "m"
    assert call["timeout"] == 5.0


def test_status_error_uses_provider_message() -> None:
    err = {"type": "error", "error": {"type": "rate_limit_error", "message": "Slow down"}}
    session = FakeSession(FakeResponse(429, json.dumps(err)))
    with pytest.raises(UpstreamStatusError) as exc:
        _upstream(session).send({})
    assert exc.value.message == "Slow down"
    assert exc.value.upstream_status == 429
    assert exc.value.status_code == 500


def test_status_error_falls_back_to_truncated_body() -> None:
    session = FakeSession(FakeResponse(502, "<html>" + "x" * 500 + "</html>"))
    with pytest.raises(UpstreamStatusError) as exc:
        _upstream(session).send({})
    assert exc.value.message.startswith("<html>")
    assert len(exc.value.message) == 203


def test_invalid_json_on_success_is_format_error() -> None:
    session = FakeSession(FakeResponse(200, "not json"))
    with pytest.raises(UpstreamFormatError) as exc:
        _upstream(session).send({})
    assert "Invalid JSON" in exc.value.message
    assert exc.value.details == "not json"


def test_network_failure_is_transport_error() -> None:
    session = FakeSession(exc=requests.ConnectionError("connection refused"))
    with pytest.raises(UpstreamTransportError) as exc:
        _upstream(session).send({})
    assert "connection refused" in (exc.value.details or "")


def test_extract_error_message_variants() -> None:
    assert extract_error_message({"error": "plain"}, "", 400) == "plain"
    assert extract_error_message({"message": "top level"}, "", 400) == "top level"
    assert extract_error_message(None, "", 503) == "Upstream request failed with status 503"

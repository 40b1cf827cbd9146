"""Anthropic Messages API client used by the proxy normalizer."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

import requests

from .errors import UpstreamFormatError, UpstreamStatusError, UpstreamTransportError
from .models import UpstreamReply

logger = logging.getLogger(__name__)

EXCERPT_CHARS = 200


def excerpt(raw: str, limit: int = EXCERPT_CHARS) -> str:
    raw = raw.strip()
    if len(raw) <= limit:
        return raw
    return raw[:limit] + "..."


def extract_error_message(body: Any, raw: str, status_code: int) -> str:
    """Pull a human-readable message out of a provider error body."""
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and isinstance(err.get("message"), str) and err["message"]:
            return err["message"]
        if isinstance(err, str) and err:
            return err
        if isinstance(body.get("message"), str) and body["message"]:
            return body["message"]
    if raw.strip():
        return excerpt(raw)
    return f"Upstream request failed with status {status_code}"


@dataclass
class AnthropicUpstream:
    api_key: str
    url: str = "https://api.anthropic.com/v1/messages"
    version: str = "2023-06-01"
    timeout_s: float = 60.0
    session: requests.Session = field(default_factory=requests.Session)

    def headers(self) -> dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": self.version,
            "content-type": "application/json",
        }

    def send(self, payload: dict[str, Any]) -> UpstreamReply:
        try:
            r = self.session.post(
                self.url,
                json=payload,
                headers=self.headers(),
                timeout=self.timeout_s,
            )
        except requests.RequestException as e:
            logger.warning("upstream unreachable: %s", e)
            raise UpstreamTransportError(
                "Failed to reach upstream API", details=f"{type(e).__name__}: {e}"
            ) from e

        raw = r.text or ""
        try:
            body: Any = json.loads(raw)
            parsed = True
        except ValueError:
            body = None
            parsed = False

        if not 200 <= r.status_code < 300:
            message = extract_error_message(body, raw, r.status_code)
            logger.warning("upstream returned %s: %s", r.status_code, message)
            raise UpstreamStatusError(message, upstream_status=r.status_code)

        if not parsed:
            raise UpstreamFormatError("Invalid JSON from upstream API", details=excerpt(raw))

        return UpstreamReply(status_code=r.status_code, body=body)

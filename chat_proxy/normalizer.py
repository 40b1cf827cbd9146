"""Translation between the generic chat payload and the Anthropic Messages API.

A normalizer runs four steps per request: validate the client payload,
translate it into the provider payload, call the provider once, and reshape
the provider answer into the generic response. Two variants share this
interface:

* ``ConversationNormalizer`` forwards the whole filtered conversation.
* ``SingleMessageNormalizer`` forwards only the latest user message and adds
  status-specific guidance to provider errors.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterable

from pydantic import ValidationError

from .config import VARIANT_CONVERSATION, VARIANT_SINGLE, Settings
from .errors import (
    ConfigurationError,
    InputValidationError,
    UpstreamFormatError,
    UpstreamStatusError,
)
from .models import ChatMessage, GenerationOptions, ProxyRequest, ProxyResponse, UpstreamReply

PING = "ping"
PONG = "pong"

MAX_OUTPUT_CEILING = 4096
DEFAULT_MAX_OUTPUT = 1024
DEFAULT_TEMPERATURE = 0.7

STATUS_GUIDANCE = {
    400: "The upstream API rejected the request as malformed; check the message list and options.",
    401: "The upstream API rejected the API key; check ANTHROPIC_API_KEY.",
    429: "The upstream API rate limit was hit; wait a moment and try again.",
}


@dataclass(frozen=True)
class NormalizedRequest:
    messages: list[ChatMessage]
    options: GenerationOptions

    @property
    def is_ping(self) -> bool:
        return len(self.messages) == 1 and self.messages[0].content == PING


def filter_messages(raw: Iterable[Any]) -> list[ChatMessage]:
    out: list[ChatMessage] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        role = item.get("role")
        content = item.get("content")
        if not role or content is None or not isinstance(content, str):
            continue
        text = content.strip()
        if not text:
            continue
        out.append(ChatMessage(role="assistant" if role == "assistant" else "user", content=text))
    return out


def clamp_max_tokens(
    value: int | None,
    *,
    default: int = DEFAULT_MAX_OUTPUT,
    ceiling: int = MAX_OUTPUT_CEILING,
) -> int:
    if value is None:
        value = default
    return max(1, min(ceiling, int(value)))


def creativity_to_temperature(
    creativity: float | None,
    *,
    default: float = DEFAULT_TEMPERATURE,
) -> float:
    if creativity is None:
        return default
    return max(0.0, min(1.0, float(creativity) / 100.0))


def parse_request(payload: Any) -> ProxyRequest:
    if not isinstance(payload, dict):
        raise InputValidationError("Request body must be a JSON object")
    if "messages" not in payload or not isinstance(payload["messages"], list):
        raise InputValidationError("Invalid request: 'messages' must be an array")
    if payload.get("options") is None:
        raise InputValidationError("Invalid request: 'options' is required")
    try:
        return ProxyRequest.model_validate(payload)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise InputValidationError("Invalid request", details=f"invalid fields: {fields}") from e


def extract_reply_text(body: Any) -> str:
    if not isinstance(body, dict):
        raise UpstreamFormatError("Unexpected response format from upstream API")
    content = body.get("content")
    if not isinstance(content, list) or not content:
        raise UpstreamFormatError(
            "Unexpected response format from upstream API", details="missing or empty 'content'"
        )
    first = content[0]
    if not isinstance(first, dict) or not isinstance(first.get("text"), str):
        raise UpstreamFormatError(
            "Unexpected response format from upstream API",
            details="first content block has no text",
        )
    text = first["text"].strip()
    if not text:
        raise UpstreamFormatError("Empty response from upstream API")
    return text


class ChatNormalizer:
    """Base normalizer; subclasses pick which messages reach the provider."""

    name = VARIANT_CONVERSATION
    cors_methods: tuple[str, ...] = ("POST", "OPTIONS")
    cors_headers: tuple[str, ...] = ("Content-Type",)
    annotate_status = False

    def __init__(self, settings: Settings, upstream_factory: Callable[[str], Any]) -> None:
        self.settings = settings
        self._upstream_factory = upstream_factory

    def validate(self, payload: Any) -> NormalizedRequest:
        """Check the client payload and return its filtered, user-first conversation."""
        req = parse_request(payload)
        messages = filter_messages(req.messages)
        if not messages:
            raise InputValidationError("No valid messages provided")
        if messages[0].role != "user":
            raise InputValidationError("First message must be from user")
        return NormalizedRequest(messages=messages, options=req.options)

    def select_messages(self, req: NormalizedRequest) -> list[ChatMessage]:
        """Pick the messages forwarded upstream."""
        return req.messages

    def translate(self, req: NormalizedRequest) -> dict[str, Any]:
        """Build the Messages API body with clamped limits and temperature."""
        opts = req.options
        body: dict[str, Any] = {
            "model": self.settings.upstream_model,
            "max_tokens": clamp_max_tokens(
                opts.max_output_length,
                default=self.settings.default_max_output,
                ceiling=self.settings.max_output_ceiling,
            ),
            "messages": [m.model_dump() for m in self.select_messages(req)],
            "temperature": creativity_to_temperature(
                opts.creativity, default=self.settings.default_temperature
            ),
        }
        if opts.system_prompt and opts.system_prompt.strip():
            body["system"] = opts.system_prompt.strip()
        return body

    def call_upstream(self, body: dict[str, Any]) -> UpstreamReply:
        """Send one request upstream; no retries."""
        if not self.settings.anthropic_api_key:
            raise ConfigurationError(
                "Server configuration error", details="ANTHROPIC_API_KEY is not set"
            )
        upstream = self._upstream_factory(self.settings.anthropic_api_key)
        try:
            return upstream.send(body)
        except UpstreamStatusError as e:
            if self.annotate_status and e.upstream_status in STATUS_GUIDANCE:
                e.details = STATUS_GUIDANCE[e.upstream_status]
            raise

    def reshape(self, reply: UpstreamReply) -> ProxyResponse:
        """Wrap the upstream reply text in the single-choice response shape."""
        return ProxyResponse.from_text(extract_reply_text(reply.body))

    def respond(self, req: NormalizedRequest) -> ProxyResponse:
        """Answer a validated request, short-circuiting the liveness ping."""
        if req.is_ping:
            return ProxyResponse.from_text(PONG)
        return self.reshape(self.call_upstream(self.translate(req)))

    def handle(self, payload: Any) -> ProxyResponse:
        """Run validate, translate, call_upstream and reshape for one payload."""
        return self.respond(self.validate(payload))


class ConversationNormalizer(ChatNormalizer):
    name = VARIANT_CONVERSATION


class SingleMessageNormalizer(ChatNormalizer):
    name = VARIANT_SINGLE
    cors_methods = ("GET", "POST", "OPTIONS")
    cors_headers = ("Content-Type", "Authorization")
    annotate_status = True

    def select_messages(self, req: NormalizedRequest) -> list[ChatMessage]:
        # validate() guarantees at least one user message.
        last_user = [m for m in req.messages if m.role == "user"][-1]
        return [last_user]


NORMALIZERS: dict[str, type[ChatNormalizer]] = {
    VARIANT_CONVERSATION: ConversationNormalizer,
    VARIANT_SINGLE: SingleMessageNormalizer,
}


def build_normalizer(settings: Settings, upstream_factory: Callable[[str], Any]) -> ChatNormalizer:
    """Instantiate the normalizer variant named by the settings."""
    try:
        cls = NORMALIZERS[settings.variant]
    except KeyError:
        raise ConfigurationError(
            "Server configuration error", details=f"unknown proxy variant {settings.variant!r}"
        ) from None
    return cls(settings, upstream_factory)

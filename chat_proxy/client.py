"""Chat client: session state, send rules, and the ping/pong liveness probe."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

import requests
from pydantic import ValidationError

from .code_blocks import CodeBlock, extract_code_blocks
from .config import ClientSettings
from .errors import ChatClientError
from .models import ChatMessage, GenerationOptions, ProxyRequest, ProxyResponse
from .normalizer import PING, PONG

logger = logging.getLogger(__name__)

STATUS_UNKNOWN = "unknown"
STATUS_ONLINE = "online"
STATUS_OFFLINE = "offline"

APOLOGY = (
    "I apologize, but I encountered an error while processing your request. Please try again."
)
QUOTA_EXCEEDED = "Message quota exceeded. Please upgrade your plan."
SERVICE_OFFLINE = "AI is currently offline. Please try again later."


@dataclass
class Quota:
    messages_left: int
    used: int = 0


@dataclass
class ChatSession:
    """State of one conversation; sessions share nothing with each other."""

    quota: Quota
    messages: list[ChatMessage] = field(default_factory=list)
    pending: list[str] = field(default_factory=list)
    sent: list[str] = field(default_factory=list)
    code_blocks: list[CodeBlock] = field(default_factory=list)
    api_status: str = STATUS_UNKNOWN
    last_check: datetime | None = None

    @classmethod
    def new(cls, quota: int) -> "ChatSession":
        return cls(quota=Quota(messages_left=quota))


class ChatObserver(Protocol):
    def on_reply(self, text: str) -> None: ...

    def on_error(self, message: str) -> None: ...

    def on_status(self, status: str) -> None: ...

    def on_code(self, blocks: list[CodeBlock]) -> None: ...


class LoggingObserver:
    def on_reply(self, text: str) -> None:
        logger.info("response generated (%d chars)", len(text))

    def on_error(self, message: str) -> None:
        logger.warning("%s", message)

    def on_status(self, status: str) -> None:
        logger.info("api status: %s", status)

    def on_code(self, blocks: list[CodeBlock]) -> None:
        logger.info("extracted %d code block(s)", len(blocks))


def build_messages(history: list[ChatMessage], text: str) -> list[dict[str, Any]]:
    return [m.model_dump() for m in history] + [{"role": "user", "content": text}]


class ChatClient:
    def __init__(
        self,
        settings: ClientSettings | None = None,
        *,
        http: requests.Session | None = None,
        observer: ChatObserver | None = None,
    ) -> None:
        self.settings = settings or ClientSettings()
        self.http = http or requests.Session()
        self.observer: ChatObserver = observer or LoggingObserver()

    def new_session(self) -> ChatSession:
        return ChatSession.new(self.settings.quota)

    def default_options(self) -> GenerationOptions:
        return GenerationOptions(
            max_output_length=self.settings.max_output_length,
            creativity=self.settings.creativity,
            system_prompt=self.settings.system_prompt,
        )

    def build_request(self, session: ChatSession, text: str) -> ProxyRequest:
        return ProxyRequest(
            messages=build_messages(session.messages, text),
            options=self.default_options(),
        )

    def _post(self, request: ProxyRequest) -> ProxyResponse:
        payload = request.model_dump(by_alias=True, exclude_none=True)
        try:
            r = self.http.post(
                self.settings.endpoint, json=payload, timeout=self.settings.timeout_s
            )
        except requests.RequestException as e:
            raise ChatClientError(str(e)) from e
        if not 200 <= r.status_code < 300:
            raise ChatClientError(f"API request failed with status {r.status_code}")
        try:
            data = r.json()
        except ValueError as e:
            raise ChatClientError("API returned invalid JSON") from e
        try:
            return ProxyResponse.model_validate(data)
        except ValidationError as e:
            raise ChatClientError("API returned an unexpected response shape") from e

    def can_send(self, session: ChatSession, text: str) -> bool:
        if not text or session.pending:
            return False
        if session.quota.messages_left <= 0:
            self.observer.on_error(QUOTA_EXCEEDED)
            return False
        if session.api_status == STATUS_OFFLINE:
            self.observer.on_error(SERVICE_OFFLINE)
            return False
        return True

    def send_message(self, session: ChatSession, text: str) -> str | None:
        """Send one user turn; returns the reply, or None when nothing was answered."""
        text = text.strip()
        if not self.can_send(session, text):
            return None

        request = self.build_request(session, text)
        session.messages.append(ChatMessage(role="user", content=text))
        session.pending.append(text)
        try:
            reply = self._post(request).text
        except ChatClientError as e:
            logger.error("error sending message: %s", e)
            session.messages.append(ChatMessage(role="assistant", content=APOLOGY))
            self.observer.on_error(f"Failed to generate response: {e}")
            return None
        finally:
            session.pending.remove(text)

        session.messages.append(ChatMessage(role="assistant", content=reply))
        session.quota.used += 1
        session.quota.messages_left -= 1
        session.sent.append(text)
        self.observer.on_reply(reply)

        blocks = extract_code_blocks(reply)
        if blocks:
            session.code_blocks.extend(blocks)
            self.observer.on_code(blocks)
        return reply

    def check_status(self, session: ChatSession) -> str:
        probe = ProxyRequest(
            messages=[{"role": "user", "content": PING}],
            options=GenerationOptions(max_output_length=10),
        )
        try:
            ok = self._post(probe).text == PONG
        except ChatClientError as e:
            logger.error("error checking api status: %s", e)
            ok = False

        session.api_status = STATUS_ONLINE if ok else STATUS_OFFLINE
        session.last_check = datetime.now(timezone.utc)
        self.observer.on_status(session.api_status)
        return session.api_status

    def monitor(
        self, session: ChatSession, stop: threading.Event, interval_s: float = 30.0
    ) -> None:
        """Run the liveness probe every `interval_s` seconds until `stop` is set."""
        while not stop.is_set():
            self.check_status(session)
            stop.wait(interval_s)

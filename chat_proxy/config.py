"""Environment-backed settings for the chat proxy service and its client."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

VARIANT_CONVERSATION = "conversation"
VARIANT_SINGLE = "single"
VARIANTS = (VARIANT_CONVERSATION, VARIANT_SINGLE)

DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant. Be concise and helpful."


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = 8080

    chat_path: str = "/api/chat"
    variant: str = VARIANT_CONVERSATION

    anthropic_api_key: str | None = None
    anthropic_api_url: str = "https://api.anthropic.com/v1/messages"
    anthropic_version: str = "2023-06-01"
    upstream_model: str = "claude-3-5-haiku-20241022"
    upstream_timeout_s: float = 60.0

    max_output_ceiling: int = 4096
    default_max_output: int = 1024
    default_temperature: float = 0.7

    audit_log_path: Path | None = Path("data/audit.jsonl")


@dataclass(frozen=True)
class ClientSettings:
    endpoint: str = "http://127.0.0.1:8080/api/chat"
    quota: int = 50
    timeout_s: float = 90.0
    max_output_length: int = 1024
    creativity: int = 70
    system_prompt: str = DEFAULT_SYSTEM_PROMPT


def _env(key: str, default: str | None = None) -> str | None:
    v = os.getenv(key)
    if v is None or v == "":
        return default
    return v


def load_settings() -> Settings:
    variant = (_env("PROXY_VARIANT", VARIANT_CONVERSATION) or "").strip().lower()
    if variant not in VARIANTS:
        raise ValueError(f"PROXY_VARIANT must be one of {', '.join(VARIANTS)}, got {variant!r}")

    chat_path = _env("PROXY_CHAT_PATH", "/api/chat") or "/api/chat"
    if not chat_path.startswith("/"):
        chat_path = "/" + chat_path

    # AUDIT_LOG_PATH set to an empty string turns auditing off.
    raw_audit = os.getenv("AUDIT_LOG_PATH", "data/audit.jsonl")

    return Settings(
        host=_env("HOST", "0.0.0.0") or "0.0.0.0",
        port=int(_env("PORT", "8080") or "8080"),
        chat_path=chat_path,
        variant=variant,
        anthropic_api_key=_env("ANTHROPIC_API_KEY"),
        anthropic_api_url=_env("ANTHROPIC_API_URL", Settings.anthropic_api_url)
        or Settings.anthropic_api_url,
        anthropic_version=_env("ANTHROPIC_VERSION", Settings.anthropic_version)
        or Settings.anthropic_version,
        upstream_model=_env("ANTHROPIC_MODEL", Settings.upstream_model) or Settings.upstream_model,
        upstream_timeout_s=float(_env("UPSTREAM_TIMEOUT_S", "60") or "60"),
        audit_log_path=Path(raw_audit) if raw_audit else None,
    )


def load_client_settings() -> ClientSettings:
    return ClientSettings(
        endpoint=_env("CHAT_PROXY_URL", ClientSettings.endpoint) or ClientSettings.endpoint,
        quota=int(_env("CHAT_QUOTA", str(ClientSettings.quota)) or ClientSettings.quota),
        timeout_s=float(_env("CHAT_TIMEOUT_S", str(ClientSettings.timeout_s)) or 90.0),
    )

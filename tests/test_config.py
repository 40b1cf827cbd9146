from pathlib import Path

import pytest

from chat_proxy.config import VARIANT_SINGLE, load_client_settings, load_settings


def test_defaults(monkeypatch) -> None:
    for key in ("PROXY_VARIANT", "PROXY_CHAT_PATH", "ANTHROPIC_API_KEY", "AUDIT_LOG_PATH"):
        monkeypatch.delenv(key, raising=False)
    s = load_settings()
    assert s.variant == "conversation"
    assert s.chat_path == "/api/chat"
    assert s.anthropic_api_key is None
    assert s.audit_log_path == Path("data/audit.jsonl")


def test_env_overrides(monkeypatch) -> None:
    monkeypatch.setenv("PROXY_VARIANT", "Single")
    monkeypatch.setenv("PROXY_CHAT_PATH", "relay")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-x")
    monkeypatch.setenv("ANTHROPIC_MODEL", "claude-test")
    monkeypatch.setenv("AUDIT_LOG_PATH", "")
    s = load_settings()
    assert s.variant == VARIANT_SINGLE
    assert s.chat_path == "/relay"
    assert s.anthropic_api_key == "sk-ant-x"
    assert s.upstream_model == "claude-test"
    assert s.audit_log_path is None


def test_unknown_variant_rejected(monkeypatch) -> None:
    monkeypatch.setenv("PROXY_VARIANT", "multi")
    with pytest.raises(ValueError):
        load_settings()


def test_client_settings(monkeypatch) -> None:
    monkeypatch.setenv("CHAT_PROXY_URL", "http://localhost:3000/api/chat")
    monkeypatch.setenv("CHAT_QUOTA", "3")
    s = load_client_settings()
    assert s.endpoint == "http://localhost:3000/api/chat"
    assert s.quota == 3

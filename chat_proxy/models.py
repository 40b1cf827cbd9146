"""Request and response schemas shared by the chat proxy and its client."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

Role = Literal["user", "assistant"]


class ChatMessage(BaseModel):
    role: Role
    content: str = Field(min_length=1)


class GenerationOptions(BaseModel):
    # Older browser builds send `length`/`system`; both spellings are accepted.
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    max_output_length: int | None = Field(
        default=None,
        validation_alias=AliasChoices("maxOutputLength", "length", "max_output_length"),
        serialization_alias="maxOutputLength",
    )
    creativity: float | None = None
    system_prompt: str | None = Field(
        default=None,
        validation_alias=AliasChoices("systemPrompt", "system", "system_prompt"),
        serialization_alias="systemPrompt",
    )


class ProxyRequest(BaseModel):
    """Inbound payload. Messages stay loose here; the normalizer filters them."""

    model_config = ConfigDict(extra="ignore")

    messages: list[Any]
    options: GenerationOptions


class AssistantMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: str


class Choice(BaseModel):
    message: AssistantMessage


class ProxyResponse(BaseModel):
    choices: list[Choice] = Field(min_length=1, max_length=1)

    @classmethod
    def from_text(cls, text: str) -> "ProxyResponse":
        return cls(choices=[Choice(message=AssistantMessage(content=text))])

    @property
    def text(self) -> str:
        return self.choices[0].message.content


class ErrorResponse(BaseModel):
    error: str
    details: str | None = None


class UpstreamReply(BaseModel):
    """Parsed provider answer; `body` is whatever JSON the provider sent."""

    status_code: int
    body: Any

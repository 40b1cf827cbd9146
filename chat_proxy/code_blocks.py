"""Fenced code block extraction from assistant replies."""

from __future__ import annotations

from dataclasses import dataclass

FENCE = "```"


@dataclass(frozen=True)
class CodeBlock:
    code: str
    language: str | None = None
    closed: bool = True


def extract_code_blocks(text: str) -> list[CodeBlock]:
    """Return every ``` fenced block in `text`, in order.

    The word after the opening fence is the language tag. A fence left open
    at the end of the text (a reply cut off by the token limit) still yields
    its code, marked ``closed=False``.
    """
    blocks: list[CodeBlock] = []
    language: str | None = None
    lines: list[str] | None = None

    for line in text.splitlines():
        stripped = line.strip()
        if lines is None:
            if stripped.startswith(FENCE):
                tag = stripped[len(FENCE) :].strip().split()
                language = tag[0].lower() if tag else None
                lines = []
            continue
        if stripped == FENCE:
            blocks.append(CodeBlock(code="\n".join(lines), language=language))
            lines = None
            continue
        lines.append(line)

    if lines is not None:
        blocks.append(CodeBlock(code="\n".join(lines), language=language, closed=False))
    return blocks

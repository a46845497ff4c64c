"""Split a raw reply into ordered text and fenced-code segments."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

TEXT = "text"
CODE = "code"

_OPEN_FENCE_RE = re.compile(r"^```[ \t]*([\w+#.-]+)?\s*$")
_CLOSE_FENCE_RE = re.compile(r"^```\s*$")


@dataclass(frozen=True)
class Segment:
    kind: Literal["text", "code"]
    content: str
    language: str | None = None

    @property
    def is_code(self) -> bool:
        return self.kind == CODE


def _find_close(lines: list[str], start: int) -> int | None:
    for index in range(start, len(lines)):
        if _CLOSE_FENCE_RE.match(lines[index].rstrip("\r\n")):
            return index
    return None


def segment(raw_text: str | None) -> list[Segment]:
    """Return the text/code segments of ``raw_text`` in source order.

    Text outside fences is stripped and dropped when empty. Fenced bodies
    keep their line endings and become code segments even when empty. An
    opening fence without a matching close is not code: it and everything
    after it stay in the text.

    >>> segment("Hello\\n```js\\nconsole.log(1)\\n```\\nBye")  # doctest: +NORMALIZE_WHITESPACE
    [Segment(kind='text', content='Hello', language=None),
     Segment(kind='code', content='console.log(1)\\n', language='js'),
     Segment(kind='text', content='Bye', language=None)]
    """

    if not raw_text:
        return []

    lines = raw_text.splitlines(keepends=True)
    segments: list[Segment] = []
    pending: list[str] = []

    def flush_text() -> None:
        content = "".join(pending).strip()
        pending.clear()
        if content:
            segments.append(Segment(TEXT, content))

    index = 0
    while index < len(lines):
        line = lines[index]
        opener = _OPEN_FENCE_RE.match(line.rstrip("\r\n"))
        if opener is None:
            pending.append(line)
            index += 1
            continue

        close = _find_close(lines, index + 1)
        if close is None:
            pending.extend(lines[index:])
            break

        flush_text()
        language = (opener.group(1) or TEXT).lower()
        segments.append(Segment(CODE, "".join(lines[index + 1 : close]), language))
        index = close + 1

    flush_text()
    return segments

"""Turn segments into Slack ``rich_text`` display nodes.

Text segments go through :class:`InlineTokenizer`, a left-to-right state
machine that understands the subset of markdown Slack can display inline:
bold, inline code and links. Single-marker italics are unwrapped to plain
text. A construct that is still open when the input ends is not a
construct at all: its opener is emitted literally and scanning resumes
right after it.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Iterable, Union

from spherebot.errors import RenderFailure
from spherebot.formatting.segments import Segment
from spherebot.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class TextRun:
    text: str
    bold: bool = False
    code: bool = False

    @property
    def size(self) -> int:
        return len(self.text)

    @property
    def plain_text(self) -> str:
        return self.text

    def to_element(self) -> dict:
        element: dict = {"type": "text", "text": self.text}
        style = {}
        if self.bold:
            style["bold"] = True
        if self.code:
            style["code"] = True
        if style:
            element["style"] = style
        return element


@dataclass(frozen=True)
class LinkRun:
    text: str
    url: str

    @property
    def size(self) -> int:
        return len(self.text) + len(self.url)

    @property
    def plain_text(self) -> str:
        return self.text

    def to_element(self) -> dict:
        return {"type": "link", "text": self.text, "url": self.url}


Run = Union[TextRun, LinkRun]


@dataclass(frozen=True)
class InlineBlock:
    runs: tuple[Run, ...] = field(default_factory=tuple)

    @property
    def size(self) -> int:
        return sum(run.size for run in self.runs)

    @property
    def plain_text(self) -> str:
        return "".join(run.plain_text for run in self.runs)

    def to_element(self) -> dict:
        return {
            "type": "rich_text_section",
            "elements": [run.to_element() for run in self.runs],
        }


@dataclass(frozen=True)
class PreformattedBlock:
    content: str
    language: str = "text"

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def plain_text(self) -> str:
        return self.content

    def to_element(self) -> dict:
        return {
            "type": "rich_text_preformatted",
            "elements": [{"type": "text", "text": self.content}],
        }


RenderedBlock = Union[InlineBlock, PreformattedBlock]


class TokenizerState(enum.Enum):
    PLAIN = "plain"
    IN_BOLD = "in_bold"
    IN_CODE = "in_code"
    IN_LINK_TEXT = "in_link_text"
    IN_LINK_URL = "in_link_url"
    IN_ITALIC = "in_italic"


class InlineTokenizer:
    """Single-pass inline markdown tokenizer.

    Each construct records a checkpoint when it opens: where the opener
    started, how long it is, and how much plain text was pending. Reaching
    the end of input in any state other than ``PLAIN`` restores that
    checkpoint, appends the opener as literal text and continues after it.
    Every restore moves the scan position strictly past the previous
    opener, so the loop always terminates.
    """

    def __init__(self, text: str) -> None:
        self.text = text
        self.state = TokenizerState.PLAIN
        self.runs: list[Run] = []
        self._plain: list[str] = []
        self._buffer: list[str] = []
        self._link_text = ""
        self._marker = ""
        self._opened_at = 0
        self._opener_len = 0
        self._plain_mark = 0

    def tokenize(self) -> list[Run]:
        text = self.text
        pos = 0
        while True:
            if pos >= len(text):
                if self.state is TokenizerState.PLAIN:
                    break
                pos = self._rewind()
                continue
            pos = self._step(pos)
        self._flush_plain()
        return self.runs

    def _step(self, pos: int) -> int:
        text = self.text
        ch = text[pos]
        nxt = text[pos + 1] if pos + 1 < len(text) else ""
        state = self.state

        if state is TokenizerState.PLAIN:
            if ch in "*_" and nxt == ch:
                self._open(TokenizerState.IN_BOLD, pos, 2, marker=ch)
                return pos + 2
            if ch == "`":
                self._open(TokenizerState.IN_CODE, pos, 1)
                return pos + 1
            if ch == "[":
                self._open(TokenizerState.IN_LINK_TEXT, pos, 1)
                return pos + 1
            if ch in "*_" and nxt and not nxt.isspace():
                self._open(TokenizerState.IN_ITALIC, pos, 1, marker=ch)
                return pos + 1
            self._plain.append(ch)
            return pos + 1

        if state is TokenizerState.IN_BOLD:
            if ch == self._marker and nxt == self._marker:
                self._close(TextRun("".join(self._buffer), bold=True))
                return pos + 2
            self._buffer.append(ch)
            return pos + 1

        if state is TokenizerState.IN_CODE:
            if ch == "`":
                self._close(TextRun("".join(self._buffer), code=True))
                return pos + 1
            self._buffer.append(ch)
            return pos + 1

        if state is TokenizerState.IN_LINK_TEXT:
            if ch != "]":
                self._buffer.append(ch)
                return pos + 1
            self._link_text = "".join(self._buffer)
            if nxt == "(":
                self._buffer = []
                self.state = TokenizerState.IN_LINK_URL
                return pos + 2
            # Bracketed text without a target stays literal.
            self._plain.append(f"[{self._link_text}]")
            self.state = TokenizerState.PLAIN
            return pos + 1

        if state is TokenizerState.IN_LINK_URL:
            if ch == ")":
                url = "".join(self._buffer).strip()
                if self._link_text and url:
                    self._close(LinkRun(self._link_text, url))
                else:
                    self._plain.append(f"[{self._link_text}]({url})")
                    self.state = TokenizerState.PLAIN
                return pos + 1
            self._buffer.append(ch)
            return pos + 1

        # IN_ITALIC: inner text stays plain, the delimiters are dropped.
        if ch == self._marker:
            self.state = TokenizerState.PLAIN
            return pos + 1
        self._plain.append(ch)
        return pos + 1

    def _open(self, state: TokenizerState, pos: int, length: int, *, marker: str = "") -> None:
        self.state = state
        self._marker = marker
        self._opened_at = pos
        self._opener_len = length
        self._plain_mark = len(self._plain)
        self._buffer = []

    def _close(self, run: TextRun | LinkRun) -> None:
        self._flush_plain()
        if run.text:
            self.runs.append(run)
        self._buffer = []
        self.state = TokenizerState.PLAIN

    def _rewind(self) -> int:
        del self._plain[self._plain_mark :]
        start = self._opened_at
        end = start + self._opener_len
        self._plain.append(self.text[start:end])
        self._buffer = []
        self.state = TokenizerState.PLAIN
        return end

    def _flush_plain(self) -> None:
        if self._plain:
            self.runs.append(TextRun("".join(self._plain)))
            self._plain = []


def tokenize_inline(text: str) -> list[Run]:
    return InlineTokenizer(text).tokenize()


def render(segment: Segment) -> RenderedBlock | None:
    """Render one segment; ``None`` when there is nothing to show."""

    if not segment.content or not segment.content.strip():
        return None
    try:
        if segment.is_code:
            return PreformattedBlock(segment.content, segment.language or "text")
        runs = tokenize_inline(segment.content)
    except Exception as exc:
        raise RenderFailure(f"could not render {segment.kind} segment") from exc
    if not runs:
        return None
    return InlineBlock(tuple(runs))


def render_segments(segments: Iterable[Segment]) -> list[RenderedBlock]:
    """Render every segment, skipping (and logging) the ones that fail."""

    blocks: list[RenderedBlock] = []
    for index, seg in enumerate(segments):
        try:
            block = render(seg)
        except RenderFailure:
            logger.exception("Skipping segment %d (%s) that failed to render", index, seg.kind)
            continue
        if block is not None:
            blocks.append(block)
    return blocks

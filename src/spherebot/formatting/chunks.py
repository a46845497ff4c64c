"""Pack rendered blocks into size-bounded delivery chunks."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Sequence

from spherebot.config import DEFAULT_CODE_CEILING, DEFAULT_TEXT_CEILING
from spherebot.formatting.render import (
    InlineBlock,
    LinkRun,
    PreformattedBlock,
    RenderedBlock,
    Run,
    TextRun,
)
from spherebot.logging import get_logger

if TYPE_CHECKING:
    from spherebot.formatting.feedback import FeedbackControls

logger = get_logger(__name__)

FALLBACK_TEXT_LIMIT = 200


@dataclass(frozen=True)
class Chunk:
    """One outbound message.

    Text chunks hold one or more :class:`InlineBlock`; code chunks hold a
    single :class:`PreformattedBlock`. ``index``/``total`` are set on text
    chunks only, and only when a reply needs more than one of them.
    """

    blocks: tuple[RenderedBlock, ...] = ()
    index: int | None = None
    total: int | None = None
    degraded: bool = False
    feedback: "FeedbackControls | None" = None

    @property
    def is_code(self) -> bool:
        return any(isinstance(block, PreformattedBlock) for block in self.blocks)

    @property
    def is_empty(self) -> bool:
        return not any(block.plain_text.strip() for block in self.blocks)

    @property
    def label(self) -> str:
        if self.index is None or not self.total or self.total < 2:
            return ""
        return f"[{self.index}/{self.total}] "

    @property
    def size(self) -> int:
        return sum(block.size for block in self.blocks)

    @property
    def language(self) -> str | None:
        for block in self.blocks:
            if isinstance(block, PreformattedBlock):
                return block.language
        return None

    @property
    def fallback_text(self) -> str:
        if self.is_empty:
            return ""
        if self.is_code:
            return f"Code snippet ({self.language or 'text'})"
        summary = "\n".join(block.plain_text for block in self.blocks)
        return summary[:FALLBACK_TEXT_LIMIT]

    def to_blocks(self) -> list[dict]:
        """Slack Block Kit payload for this chunk."""

        if self.is_empty:
            return []
        payload: list[dict] = [
            {"type": "rich_text", "elements": [block.to_element() for block in self.blocks]}
        ]
        if self.feedback is not None:
            payload.extend(self.feedback.to_blocks())
        return payload


def text_cut(text: str, limit: int) -> int:
    """Where to cut ``text`` so the head is at most ``limit`` characters.

    Prefers the last space past half the limit, then the last newline,
    else a hard cut at the limit.
    """

    space = text.rfind(" ", 0, limit + 1)
    if space > limit // 2:
        return space
    newline = text.rfind("\n", 0, limit)
    if newline > 0:
        return newline + 1
    return limit


def code_cut(text: str, limit: int) -> int:
    """Cut position for a preformatted block; the head keeps its delimiter."""

    space = text.rfind(" ", 0, limit)
    if space > 0:
        return space + 1
    newline = text.rfind("\n", 0, limit)
    if newline > 0:
        return newline + 1
    return limit


def force_split_code(content: str, ceiling: int) -> list[str]:
    pieces: list[str] = []
    remaining = content
    while len(remaining) > ceiling:
        cut = code_cut(remaining, ceiling)
        pieces.append(remaining[:cut])
        remaining = remaining[cut:]
    if remaining:
        pieces.append(remaining)
    return pieces


def split_inline(block: InlineBlock, ceiling: int) -> list[InlineBlock]:
    """Split an oversized inline block into blocks of at most ``ceiling``.

    Runs are kept whole when they fit in a fresh piece. Text runs longer
    than that are cut with :func:`text_cut` and the pieces stripped at the
    cut; a link that cannot fit anywhere is demoted to plain text.
    """

    pieces: list[list[Run]] = []
    current: list[Run] = []
    used = 0
    queue: list[Run] = list(block.runs)

    while queue:
        run = queue.pop(0)
        room = ceiling - used
        if run.size <= room:
            current.append(run)
            used += run.size
            continue
        if current and run.size <= ceiling:
            pieces.append(current)
            current, used = [], 0
            queue.insert(0, run)
            continue
        if isinstance(run, LinkRun):
            queue.insert(0, TextRun(f"{run.text} ({run.url})"))
            continue
        cut = text_cut(run.text, room)
        head = run.text[:cut].rstrip()
        tail = run.text[cut:].lstrip()
        if head:
            current.append(replace(run, text=head))
        if current:
            pieces.append(current)
        current, used = [], 0
        if tail:
            queue.insert(0, replace(run, text=tail))

    if current:
        pieces.append(current)
    return [InlineBlock(tuple(runs)) for runs in pieces]


def _with_label(chunk: Chunk, index: int, total: int) -> Chunk:
    labelled = replace(chunk, index=index, total=total)
    label = labelled.label
    blocks = list(labelled.blocks)
    for position, block in enumerate(blocks):
        if isinstance(block, InlineBlock):
            blocks[position] = InlineBlock((TextRun(label),) + block.runs)
            break
    return replace(labelled, blocks=tuple(blocks))


def assemble(
    blocks: Sequence[RenderedBlock],
    text_ceiling: int = DEFAULT_TEXT_CEILING,
    code_ceiling: int = DEFAULT_CODE_CEILING,
) -> list[Chunk]:
    """Group ``blocks`` into chunks bounded by the text and code ceilings.

    Always returns at least one chunk; an empty reply yields a single empty
    chunk that callers skip.
    """

    if text_ceiling < 1 or code_ceiling < 1:
        raise ValueError("ceilings must be positive")

    chunks: list[Chunk] = []
    buffer: list[InlineBlock] = []
    buffered = 0

    def flush() -> None:
        nonlocal buffered
        if buffer:
            chunks.append(Chunk(tuple(buffer)))
            buffer.clear()
        buffered = 0

    for block in blocks:
        if isinstance(block, PreformattedBlock):
            flush()
            if block.size <= code_ceiling:
                chunks.append(Chunk((block,)))
                continue
            pieces = force_split_code(block.content, code_ceiling)
            logger.warning(
                "Force-split %s code block of %d chars into %d pieces (ceiling %d)",
                block.language,
                block.size,
                len(pieces),
                code_ceiling,
            )
            for piece in pieces:
                chunks.append(Chunk((PreformattedBlock(piece, block.language),), degraded=True))
            continue

        if block.size > text_ceiling:
            flush()
            parts = split_inline(block, text_ceiling)
            for part in parts[:-1]:
                chunks.append(Chunk((part,)))
            if parts:
                buffer.append(parts[-1])
                buffered = parts[-1].size
            continue

        if buffered + block.size > text_ceiling:
            flush()
        buffer.append(block)
        buffered += block.size

    flush()

    chunks = [chunk for chunk in chunks if not chunk.is_empty]
    if not chunks:
        return [Chunk()]

    total = sum(1 for chunk in chunks if not chunk.is_code)
    if total > 1:
        numbered: list[Chunk] = []
        counter = 0
        for chunk in chunks:
            if chunk.is_code:
                numbered.append(chunk)
                continue
            counter += 1
            numbered.append(_with_label(chunk, counter, total))
        chunks = numbered
    return chunks

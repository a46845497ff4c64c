"""Reply formatting: segments, inline rendering, chunking and feedback."""

from spherebot.config import DEFAULT_CODE_CEILING, DEFAULT_TEXT_CEILING

from .chunks import Chunk, assemble
from .feedback import FeedbackControls, attach, is_substantive
from .render import InlineBlock, LinkRun, PreformattedBlock, TextRun, render, render_segments
from .segments import Segment, segment


def format_reply(
    raw_text: str | None,
    *,
    text_ceiling: int = DEFAULT_TEXT_CEILING,
    code_ceiling: int = DEFAULT_CODE_CEILING,
) -> list[Chunk]:
    """Segment, render and chunk ``raw_text`` in one call."""

    return assemble(render_segments(segment(raw_text)), text_ceiling, code_ceiling)


__all__ = [
    "Chunk",
    "FeedbackControls",
    "InlineBlock",
    "LinkRun",
    "PreformattedBlock",
    "Segment",
    "TextRun",
    "assemble",
    "attach",
    "format_reply",
    "is_substantive",
    "render",
    "render_segments",
    "segment",
]

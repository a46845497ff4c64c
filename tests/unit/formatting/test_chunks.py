import pytest

from spherebot.formatting import format_reply
from spherebot.formatting.chunks import (
    Chunk,
    assemble,
    code_cut,
    force_split_code,
    split_inline,
    text_cut,
)
from spherebot.formatting.render import InlineBlock, LinkRun, PreformattedBlock, TextRun


def _text(value: str) -> InlineBlock:
    return InlineBlock((TextRun(value),))


def _content_size(chunk: Chunk) -> int:
    size = chunk.size
    if chunk.label:
        size -= len(chunk.label)
    return size


def test_short_reply_is_one_unlabelled_chunk():
    chunks = assemble([_text("hello")])

    assert len(chunks) == 1
    assert chunks[0].label == ""
    assert chunks[0].blocks[0].runs == (TextRun("hello"),)


def test_small_blocks_share_a_chunk():
    chunks = assemble([_text("a" * 40), _text("b" * 40)], text_ceiling=100)
    assert len(chunks) == 1
    assert len(chunks[0].blocks) == 2


def test_blocks_over_ceiling_start_new_chunk():
    chunks = assemble([_text("a" * 60), _text("b" * 60)], text_ceiling=100)
    assert len(chunks) == 2
    assert [chunk.index for chunk in chunks] == [1, 2]


def test_long_unbroken_text_is_split_and_numbered():
    chunks = assemble([_text("x" * 500)], text_ceiling=100)

    assert len(chunks) == 5
    for number, chunk in enumerate(chunks, start=1):
        first_run = chunk.blocks[0].runs[0]
        assert first_run == TextRun(f"[{number}/5] ")
        assert _content_size(chunk) <= 100


def test_text_split_prefers_spaces():
    words = " ".join(["word"] * 60)
    chunks = assemble([_text(words)], text_ceiling=100)

    for chunk in chunks:
        body = "".join(run.text for run in chunk.blocks[0].runs[1:])
        assert body == body.strip()
        assert "wor " not in body + " "
        assert _content_size(chunk) <= 100


def test_code_block_gets_its_own_chunk():
    chunks = assemble(
        [_text("before"), PreformattedBlock("x = 1\n", "python"), _text("after")]
    )

    assert [chunk.is_code for chunk in chunks] == [False, True, False]
    assert chunks[1].fallback_text == "Code snippet (python)"
    assert chunks[0].label == "[1/2] "
    assert chunks[2].label == "[2/2] "
    assert chunks[1].label == ""


def test_oversized_code_is_force_split_and_degraded():
    chunks = assemble([PreformattedBlock("a" * 3100, "text")], code_ceiling=2900)

    assert len(chunks) >= 2
    assert all(chunk.degraded for chunk in chunks)
    assert all(chunk.size <= 2900 for chunk in chunks)
    assert "".join(chunk.blocks[0].content for chunk in chunks) == "a" * 3100


def test_code_that_fits_is_not_degraded():
    chunks = assemble([PreformattedBlock("a" * 2800, "text")], code_ceiling=2800)
    assert len(chunks) == 1
    assert not chunks[0].degraded


def test_empty_input_yields_single_empty_chunk():
    chunks = assemble([])

    assert chunks == [Chunk()]
    assert chunks[0].is_empty
    assert chunks[0].to_blocks() == []
    assert chunks[0].fallback_text == ""


def test_invalid_ceiling():
    with pytest.raises(ValueError):
        assemble([_text("a")], text_ceiling=0)


def test_text_cut_rules():
    assert text_cut("aaaa bbbb cccc", 10) == 9
    assert text_cut("a bbbbbbbbbbbbbbbbb", 10) == 10
    assert text_cut("aa\nbbbbbbbbbbbb", 10) == 3


def test_code_cut_keeps_delimiter_with_head():
    assert code_cut("ab cd ef", 6) == 6
    assert code_cut("abc\ndefghij", 6) == 4
    assert code_cut("abcdefghij", 6) == 6


def test_force_split_code_preserves_content():
    content = "line one\nline two\nline three\n"
    pieces = force_split_code(content, 10)

    assert "".join(pieces) == content
    assert all(len(piece) <= 10 for piece in pieces)


def test_split_inline_keeps_runs_whole_when_possible():
    block = InlineBlock((TextRun("a" * 50), TextRun("b" * 30, bold=True), TextRun("c" * 40)))

    parts = split_inline(block, 100)

    assert [part.runs for part in parts] == [
        (TextRun("a" * 50), TextRun("b" * 30, bold=True)),
        (TextRun("c" * 40),),
    ]


def test_oversized_link_is_demoted_to_text():
    link = LinkRun("docs", "https://example.com/" + "p" * 100)

    parts = split_inline(InlineBlock((link,)), 60)

    text = "".join(run.text for part in parts for run in part.runs)
    assert all(isinstance(run, TextRun) for part in parts for run in part.runs)
    assert text.startswith("docs (https://example.com/")
    assert all(part.size <= 60 for part in parts)


def test_chunk_to_blocks_payload():
    chunk = assemble([_text("hello")])[0]

    assert chunk.to_blocks() == [
        {
            "type": "rich_text",
            "elements": [
                {"type": "rich_text_section", "elements": [{"type": "text", "text": "hello"}]}
            ],
        }
    ]
    assert chunk.fallback_text == "hello"


def test_fallback_text_is_truncated():
    chunk = assemble([_text("y" * 500)])[0]
    assert len(chunk.fallback_text) == 200


def test_format_reply_end_to_end():
    chunks = format_reply("Intro **bold**\n```sh\necho hi\n```\nDone", text_ceiling=2950)

    assert [chunk.is_code for chunk in chunks] == [False, True, False]
    assert chunks[1].blocks[0].content == "echo hi\n"

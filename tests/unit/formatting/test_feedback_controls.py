import pytest

from spherebot.formatting.chunks import Chunk, assemble
from spherebot.formatting.feedback import (
    FeedbackControls,
    attach,
    feedback_block_id,
    is_substantive,
    parse_feedback_block_id,
)
from spherebot.formatting.render import InlineBlock, PreformattedBlock, TextRun

LONG_ANSWER = "The deployment pipeline builds the image, runs the tests and then " * 3


@pytest.mark.parametrize(
    "reply",
    [
        "ok",
        "",
        None,
        "Sorry, " + "I could not find anything relevant in the documents. " * 3,
        "Hello there! " + "How can I help you today with your questions? " * 3,
        "Unfortunately I encountered an error processing your request. " * 3,
    ],
)
def test_non_substantive_replies(reply):
    assert not is_substantive(reply)


def test_long_answer_is_substantive():
    assert is_substantive(LONG_ANSWER)


def test_min_length_is_configurable():
    assert is_substantive("short but useful", min_length=5)


def test_controls_blocks():
    blocks = FeedbackControls("feedback_1.2_all").to_blocks()

    assert blocks[0] == {"type": "divider"}
    actions = blocks[1]
    assert actions["type"] == "actions"
    assert actions["block_id"] == "feedback_1.2_all"
    assert [element["value"] for element in actions["elements"]] == ["bad", "ok", "great"]
    assert [element["action_id"] for element in actions["elements"]] == [
        "feedback_bad",
        "feedback_ok",
        "feedback_great",
    ]
    assert actions["elements"][0]["style"] == "danger"
    assert "style" not in actions["elements"][1]
    assert actions["elements"][2]["style"] == "primary"


def test_block_id_round_trip_with_underscored_workspace():
    block_id = feedback_block_id("1700000000.000100", "team_docs")

    assert block_id == "feedback_1700000000.000100_team_docs"
    assert parse_feedback_block_id(block_id) == ("1700000000.000100", "team_docs")
    assert parse_feedback_block_id("other") == (None, None)


def test_attach_to_last_chunk_only():
    chunks = assemble(
        [
            InlineBlock((TextRun(LONG_ANSWER),)),
            PreformattedBlock("x = 1\n", "python"),
            InlineBlock((TextRun("closing words"),)),
        ]
    )

    result = attach(chunks, LONG_ANSWER, "feedback_1.0_all")

    assert [chunk.feedback is not None for chunk in result] == [False, False, True]
    assert result[-1].to_blocks()[-1]["type"] == "actions"
    assert all(chunk.feedback is None for chunk in chunks)


def test_attach_skips_short_reply():
    chunks = assemble([InlineBlock((TextRun("ok"),))])
    assert attach(chunks, "ok", "feedback_1.0_all")[0].feedback is None


def test_attach_skips_empty_last_chunk():
    assert attach([Chunk()], LONG_ANSWER, "feedback_1.0_all") == [Chunk()]

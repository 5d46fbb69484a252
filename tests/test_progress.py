import asyncio
import io

import pytest

from hivedeploy.progress import (
    DEFAULT_LABEL_WIDTH,
    Complete,
    HintLabelWidth,
    Line,
    LineStyle,
    PlainOutput,
    Print,
    PrintMeta,
)


async def _run(messages, stream=None):
    stream = stream if stream is not None else io.StringIO()
    output = PlainOutput(stream)
    sender = output.get_sender()
    for message in messages:
        sender.put_nowait(message)
    result = await asyncio.wait_for(output.run_until_completion(), timeout=5)
    return result, stream.getvalue()


def test_sender_is_given_out_once():
    output = PlainOutput(io.StringIO())
    first = output.get_sender()
    assert isinstance(first, asyncio.Queue)
    assert output.get_sender() is None


@pytest.mark.asyncio
async def test_prints_label_and_text():
    result, text = await _run([Print(Line("job", "hello", label="node")), Complete()])
    lines = text.splitlines()
    assert len(lines) == 1
    label_part, text_part = lines[0].split(" | ")
    assert label_part == "node".rjust(DEFAULT_LABEL_WIDTH)
    assert text_part == "hello"
    assert result.label_width == DEFAULT_LABEL_WIDTH


@pytest.mark.asyncio
async def test_run_returns_same_output():
    output = PlainOutput(io.StringIO())
    output.get_sender().put_nowait(Complete())
    assert await output.run_until_completion() is output


@pytest.mark.asyncio
async def test_noisy_lines_are_hidden():
    _, text = await _run(
        [Print(Line("job", "chatter", label="node", noisy=True)), Complete()]
    )
    assert text == ""


@pytest.mark.asyncio
async def test_long_label_widens_later_lines():
    label = "a-rather-long-label"
    result, text = await _run(
        [
            Print(Line("a", "first", label=label)),
            Print(Line("b", "second", label="b")),
            Complete(),
        ]
    )
    assert result.label_width == len(label)
    second = text.splitlines()[1]
    assert second.split(" | ")[0] == "b".rjust(len(label))


@pytest.mark.asyncio
async def test_hint_label_width_only_grows():
    result, text = await _run(
        [
            HintLabelWidth(12),
            HintLabelWidth(3),
            Print(Line("a", "x", label="n")),
            Complete(),
        ]
    )
    assert result.label_width == 12
    assert text.splitlines()[0].index(" | ") == 12


@pytest.mark.asyncio
async def test_meta_lines_are_printed():
    _, text = await _run(
        [PrintMeta(Line("meta", "all done", label="", style=LineStyle.SUCCESS)), Complete()]
    )
    assert text.splitlines()[0].endswith(" | all done")


@pytest.mark.asyncio
async def test_none_ends_the_run():
    result, text = await _run([Print(Line("a", "before", label="x")), None])
    assert "before" in text
    assert result.label_width == DEFAULT_LABEL_WIDTH


@pytest.mark.asyncio
async def test_messages_after_complete_are_not_printed():
    _, text = await _run(
        [Print(Line("a", "kept", label="x")), Complete(), Print(Line("a", "dropped"))]
    )
    assert "kept" in text
    assert "dropped" not in text


def test_line_defaults():
    line = Line("job", "text")
    assert (line.style, line.label, line.one_off, line.noisy) == (
        LineStyle.NORMAL,
        "",
        False,
        False,
    )
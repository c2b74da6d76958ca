import pytest

from report_assist.services.stream_decoder import FINAL_PROGRESS
from report_assist.services.stream_decoder import StreamDecoder
from report_assist.services.stream_decoder import extract_delta_text


async def _collect(decoder, chunks):
    async def _source():
        for chunk in chunks:
            yield chunk

    return [pair async for pair in decoder.decode(_source())]


def _chunk(text):
    return {"choices": [{"delta": {"content": text}}]}


@pytest.mark.parametrize(
    "chunk, expected",
    [
        (_chunk("Hello"), "Hello"),
        (_chunk(None), ""),
        ({"choices": []}, ""),
        ({"choices": [{}]}, ""),
        ({}, ""),
        (_chunk(42), ""),
    ],
)
def test_extract_delta_text(chunk, expected):
    assert extract_delta_text(chunk) == expected


def test_extract_delta_text_from_objects():
    class Delta:
        content = "from attrs"

    class Choice:
        delta = Delta()

    class Chunk:
        choices = [Choice()]

    assert extract_delta_text(Chunk()) == "from attrs"


@pytest.mark.asyncio
async def test_decode_yields_fragments_then_final_marker():
    pairs = await _collect(StreamDecoder(expected_chars=100), [_chunk("ab"), _chunk("cd")])

    assert [fragment for fragment, _ in pairs] == ["ab", "cd", ""]
    assert pairs[-1] == ("", FINAL_PROGRESS)


@pytest.mark.asyncio
async def test_decode_skips_empty_increments():
    pairs = await _collect(StreamDecoder(), [_chunk(""), _chunk(None), {"choices": []}, _chunk("x")])

    assert [fragment for fragment, _ in pairs] == ["x", ""]


@pytest.mark.asyncio
async def test_empty_stream_only_reports_completion():
    assert await _collect(StreamDecoder(), []) == [("", FINAL_PROGRESS)]


@pytest.mark.asyncio
async def test_progress_estimate_is_capped_below_100():
    # Twice the expected length still reports 99 until the stream ends
    pairs = await _collect(StreamDecoder(expected_chars=10), [_chunk("x" * 5), _chunk("x" * 15)])

    assert [progress for _, progress in pairs] == [50, 99, 100]


@pytest.mark.asyncio
async def test_progress_never_decreases():
    pairs = await _collect(StreamDecoder(expected_chars=1000), [_chunk("x")] * 30)

    progress = [p for _, p in pairs]
    assert progress == sorted(progress)
    assert all(0 <= p <= 100 for p in progress)


def test_for_max_tokens_sizes_expected_length():
    assert StreamDecoder.for_max_tokens(250).expected_chars == 1000
    assert StreamDecoder(expected_chars=0).expected_chars > 0


@pytest.mark.asyncio
async def test_source_error_propagates():
    async def _failing():
        yield _chunk("partial")
        raise RuntimeError("connection reset")

    seen = []
    with pytest.raises(RuntimeError):
        async for pair in StreamDecoder().decode(_failing()):
            seen.append(pair)

    assert [fragment for fragment, _ in seen] == ["partial"]

from __future__ import annotations

import logging
from collections.abc import AsyncIterable
from collections.abc import AsyncIterator
from collections.abc import Mapping
from typing import Any

logger = logging.getLogger(__name__)

# Rough size of one output token, used to turn max_tokens into an expected length
CHARS_PER_TOKEN = 4
DEFAULT_EXPECTED_CHARS = 1000 * CHARS_PER_TOKEN

FINAL_PROGRESS = 100


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def extract_delta_text(chunk: Any) -> str:
    """Return the text carried by one streamed completion chunk ('' when none)."""
    choices = _field(chunk, "choices")
    if not choices:
        return ""
    delta = _field(choices[0], "delta")
    if delta is None:
        return ""
    content = _field(delta, "content")
    return content if isinstance(content, str) else ""


class StreamDecoder:
    """Turns provider stream chunks into ``(fragment, progress)`` pairs.

    Total length is unknown until the stream ends, so progress is estimated
    from the characters received against ``expected_chars`` and capped at 99.
    A terminal ``("", 100)`` pair always closes a stream that ended normally.
    """

    def __init__(self, expected_chars: int | None = None):
        self.expected_chars = max(1, expected_chars or DEFAULT_EXPECTED_CHARS)

    @classmethod
    def for_max_tokens(cls, max_tokens: int) -> "StreamDecoder":
        return cls(expected_chars=max_tokens * CHARS_PER_TOKEN)

    def _estimate(self, received: int, previous: int) -> int:
        estimate = min(FINAL_PROGRESS - 1, received * 100 // self.expected_chars)
        return max(previous, estimate)

    async def decode(self, increments: AsyncIterable[Any]) -> AsyncIterator[tuple[str, int]]:
        received = 0
        progress = 0
        skipped = 0

        async for chunk in increments:
            fragment = extract_delta_text(chunk)
            if not fragment:
                skipped += 1
                continue
            received += len(fragment)
            progress = self._estimate(received, progress)
            yield fragment, progress

        logger.debug("Stream ended: %d chars decoded, %d empty increments skipped", received, skipped)
        yield "", FINAL_PROGRESS

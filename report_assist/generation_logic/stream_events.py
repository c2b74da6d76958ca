from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING
from typing import Any

from report_assist.core.exceptions import GenerationError
from report_assist.generation_logic.orchestrator import GenerationOrchestrator
from report_assist.models.generation_models import GeneratePayload
from report_assist.models.generation_models import GenerationMetadata
from report_assist.services.prompt_service import TemplateProvider

if TYPE_CHECKING:
    from report_assist.services.generation_client import GenerationClient

__all__ = [
    "_create_stream_event",
    "run_payload",
    "stream_generation_events",
]

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# NDJSON event helper
# ---------------------------------------------------------------------------


def _create_stream_event(
    event_type: str,
    message: str | None = None,
    payload: dict[str, Any] | None = None,
    **fields: Any,
) -> str:
    """Serialize a Server-Sent Event (SSE)-style dict to an NDJSON line."""
    event: dict[str, Any] = {"type": event_type}
    if message is not None:
        event["message"] = message
    if payload is not None:
        event["payload"] = payload
    event.update(fields)
    return json.dumps(event, default=str) + "\n"


async def run_payload(orchestrator: GenerationOrchestrator, payload: GeneratePayload) -> str:
    """Dispatch an HTTP payload to the matching orchestrator operation."""
    if payload.template_id is not None:
        return await orchestrator.generate(payload.template_id, payload.params)
    return await orchestrator.generate_from_prompt(payload.prompt or "")


# ---------------------------------------------------------------------------
# Streaming generation
# ---------------------------------------------------------------------------


async def stream_generation_events(
    payload: GeneratePayload,
    client: GenerationClient,
    prompt_service: TemplateProvider,
) -> AsyncIterator[str]:
    """Run one streaming generation, yielding NDJSON events as they happen.

    Events: ``chunk`` per fragment, then ``data`` and ``finished`` on success,
    or a single ``error`` event.
    """
    queue: asyncio.Queue[str | None] = asyncio.Queue()

    def on_stream(fragment: str, progress: int) -> None:
        queue.put_nowait(_create_stream_event("chunk", fragment=fragment, progress=progress))

    def on_complete(content: str, metadata: GenerationMetadata) -> None:
        queue.put_nowait(
            _create_stream_event(
                "data",
                payload={"content": content, "metadata": metadata.model_dump(mode="json")},
            )
        )
        queue.put_nowait(_create_stream_event("finished", message="Stream completed successfully."))

    def on_error(error: GenerationError) -> None:
        queue.put_nowait(_create_stream_event("error", message=error.message, kind=error.kind.value, retryable=error.retryable))

    orchestrator = GenerationOrchestrator(
        client,
        prompt_service,
        streaming=True,
        on_stream=on_stream,
        on_complete=on_complete,
        on_error=on_error,
    )

    async def _run() -> None:
        try:
            await run_payload(orchestrator, payload)
        except GenerationError as e:
            # Already delivered to the stream through on_error
            logger.debug("Streaming generation ended with %s", e.kind.value)
        finally:
            queue.put_nowait(None)

    task = asyncio.create_task(_run())
    try:
        while (event := await queue.get()) is not None:
            yield event
    finally:
        if not task.done():
            # Client went away mid-stream
            task.cancel()
        logger.info("Stream generation logic finished.")

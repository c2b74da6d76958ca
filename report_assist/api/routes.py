import logging
from typing import TYPE_CHECKING
from typing import Any
from uuid import uuid4

from fastapi import APIRouter
from fastapi import Depends
from fastapi import HTTPException
from fastapi.responses import StreamingResponse

from report_assist.core.exceptions import ErrorKind
from report_assist.core.exceptions import GenerationError
from report_assist.core.security import verify_api_key
from report_assist.generation_logic.orchestrator import GenerationOrchestrator
from report_assist.generation_logic.stream_events import run_payload
from report_assist.generation_logic.stream_events import stream_generation_events
from report_assist.models.generation_models import GeneratePayload
from report_assist.models.generation_models import GenerationMetadata
from report_assist.models.generation_models import GenerationResult
from report_assist.services.client_loader import get_client
from report_assist.services.prompt_service import PromptService
from report_assist.services.prompt_service import get_prompt_service

if TYPE_CHECKING:
    from report_assist.services.generation_client import GenerationClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

# Provider failures are upstream problems from the caller's point of view
STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.RATE_LIMIT: 429,
    ErrorKind.TIMEOUT: 504,
}


def status_for(error: GenerationError) -> int:
    return STATUS_BY_KIND.get(error.kind, 502)


def get_generation_client() -> "GenerationClient":
    return get_client()


def get_template_service() -> PromptService:
    return get_prompt_service()


@router.get("/templates", dependencies=[Depends(verify_api_key)])
async def list_templates(
    category: str | None = None,
    tag: str | None = None,
    prompt_service: PromptService = Depends(get_template_service),
) -> list[dict[str, Any]]:
    """List the metadata of the available prompt templates, optionally filtered."""
    if category:
        templates = prompt_service.get_templates_by_category(category)
    elif tag:
        templates = prompt_service.get_templates_by_tag(tag)
    else:
        templates = prompt_service.get_all_templates()
    return [template.metadata() for template in templates]


@router.post("/generate", dependencies=[Depends(verify_api_key)])
async def generate(
    payload: GeneratePayload,
    client: "GenerationClient" = Depends(get_generation_client),
    prompt_service: PromptService = Depends(get_template_service),
) -> GenerationResult:
    """Generate content for a template (or raw prompt) and return it in one piece.

    Raises:
        HTTPException: with the classified error as detail; 400 for invalid
            requests and unknown templates, 429/504 for rate limits and
            timeouts, 502 for other provider failures.
    """
    request_id = str(uuid4())
    logger.info("[%s] /generate called (template=%s)", request_id, payload.template_id)

    completed: dict[str, GenerationMetadata] = {}
    orchestrator = GenerationOrchestrator(
        client,
        prompt_service,
        on_complete=lambda _content, metadata: completed.update(metadata=metadata),
    )
    try:
        content = await run_payload(orchestrator, payload)
    except GenerationError as e:
        logger.error("[%s] Generation failed: %s", request_id, e.message)
        raise HTTPException(status_code=status_for(e), detail=e.to_dict()) from e

    return GenerationResult(content=content, metadata=completed["metadata"])


@router.post("/generate/stream", dependencies=[Depends(verify_api_key)])
async def generate_stream(
    payload: GeneratePayload,
    client: "GenerationClient" = Depends(get_generation_client),
    prompt_service: PromptService = Depends(get_template_service),
) -> StreamingResponse:
    """Stream generation progress as NDJSON events.

    Potential Stream Events:
    - `chunk`: one text fragment with the cumulative progress estimate.
    - `data`: final content and metadata.
    - `error`: the classified failure (terminal).
    - `finished`: the stream completed successfully.
    """
    logger.info("/generate/stream called (template=%s)", payload.template_id)
    return StreamingResponse(
        stream_generation_events(payload, client, prompt_service),
        media_type="application/x-ndjson",
    )


@router.get("/availability", dependencies=[Depends(verify_api_key)])
async def availability(client: "GenerationClient" = Depends(get_generation_client)) -> dict[str, bool]:
    return {"available": await client.check_availability()}

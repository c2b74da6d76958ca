from __future__ import annotations

import logging
from collections.abc import Callable
from functools import partial
from typing import TYPE_CHECKING
from typing import Any
from uuid import uuid4

from report_assist.core.exceptions import ErrorKind
from report_assist.core.exceptions import GenerationError
from report_assist.core.exceptions import classify
from report_assist.models.generation_models import GenerationMetadata
from report_assist.models.generation_models import OrchestratorState
from report_assist.services.client_loader import ClientCache
from report_assist.services.client_loader import default_cache
from report_assist.services.prompt_service import TemplateProvider
from report_assist.services.prompt_service import get_prompt_service

if TYPE_CHECKING:
    from report_assist.services.generation_client import GenerationClient

__all__ = ["GenerationOrchestrator"]

logger = logging.getLogger(__name__)

StreamHandler = Callable[[str, int], Any]
CompleteHandler = Callable[[str, GenerationMetadata], Any]
ErrorHandler = Callable[[GenerationError], Any]


class GenerationOrchestrator:
    """Runs one "assist" operation and tracks its observable state.

    Every ``generate*`` call starts a new generation. Results, progress and
    callbacks belonging to an older generation (superseded by a newer call or
    by ``reset``) are dropped, so a late response cannot overwrite newer state.
    Re-entrant calls are not blocked; callers are expected to wait for
    ``is_loading`` to clear.
    """

    def __init__(
        self,
        client: GenerationClient | None = None,
        prompt_service: TemplateProvider | None = None,
        *,
        streaming: bool = False,
        on_stream: StreamHandler | None = None,
        on_complete: CompleteHandler | None = None,
        on_error: ErrorHandler | None = None,
        client_cache: ClientCache | None = None,
    ):
        self._client = client
        self._client_cache = client_cache or default_cache
        self._prompt_service = prompt_service
        self.streaming = streaming
        self.on_stream = on_stream
        self.on_complete = on_complete
        self.on_error = on_error

        self._state = OrchestratorState()
        self._generation = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> OrchestratorState:
        """Snapshot of the current state."""
        return self._state.model_copy()

    @property
    def client(self) -> GenerationClient:
        if self._client is None:
            self._client = self._client_cache.get()
        return self._client

    @property
    def prompt_service(self) -> TemplateProvider:
        if self._prompt_service is None:
            self._prompt_service = get_prompt_service()
        return self._prompt_service

    def reset(self) -> None:
        """Return to the initial state and abandon any in-flight generation."""
        self._generation += 1
        self._state = OrchestratorState()

    def _begin(self, clear_content: bool) -> int:
        self._generation += 1
        self._state = self._state.model_copy(
            update={
                "content": "" if clear_content else self._state.content,
                "is_loading": True,
                "error": None,
                "progress": 0,
            }
        )
        return self._generation

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _update(self, generation: int, **changes: Any) -> bool:
        if not self._is_current(generation):
            return False
        self._state = self._state.model_copy(update=changes)
        return True

    @staticmethod
    def _notify(callback: Callable[..., Any] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Generation callback %r raised", callback)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate(self, template_id: str, params: dict[str, Any] | None = None) -> str:
        """Fill ``template_id`` with ``params`` and generate content from it."""
        params = dict(params or {})

        def resolve_prompt() -> str:
            filled = self.prompt_service.fill_template(template_id, params)
            if filled is None:
                raise GenerationError(
                    f"Template with ID {template_id} not found",
                    ErrorKind.INVALID_REQUEST,
                    retryable=False,
                )
            return filled

        return await self._execute(resolve_prompt, template_id=template_id, params=params)

    async def generate_from_prompt(self, prompt: str) -> str:
        """Generate content from a raw prompt."""
        return await self._execute(lambda: prompt, template_id=None, params={})

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _handle_chunk(self, generation: int, fragment: str, progress: int) -> None:
        if not self._is_current(generation):
            return
        self._update(
            generation,
            content=self._state.content + fragment,
            progress=max(self._state.progress, progress),
        )
        self._notify(self.on_stream, fragment, progress)

    async def _execute(
        self,
        resolve_prompt: Callable[[], str],
        template_id: str | None,
        params: dict[str, Any],
    ) -> str:
        generation = self._begin(clear_content=self.streaming)
        request_id = str(uuid4())
        logger.info(
            "[%s] Starting generation %d (template=%s, streaming=%s)",
            request_id,
            generation,
            template_id,
            self.streaming,
        )

        try:
            prompt = resolve_prompt()
            if self.streaming:
                content = await self.client.generate_content_stream(prompt, partial(self._handle_chunk, generation))
            else:
                content = await self.client.generate_content(prompt)
                self._update(generation, content=content, progress=100)
        except Exception as e:
            error = classify(e)
            logger.error(
                "[%s] Generation failed (%s): %s",
                request_id,
                error.kind.value,
                error.message,
                exc_info=False,  # the client already logged provider details
            )
            if self._update(generation, error=error.message, is_loading=False):
                self._notify(self.on_error, error)
            else:
                logger.info("[%s] Discarding error of superseded generation %d", request_id, generation)
            if error is e:
                raise
            raise error from e

        if not self._update(generation, is_loading=False):
            logger.info("[%s] Discarding result of superseded generation %d", request_id, generation)
            return content

        metadata = GenerationMetadata(
            request_id=request_id,
            template_id=template_id,
            params=params,
            response_length=len(content),
            streamed=self.streaming,
        )
        logger.info("[%s] Generation complete: %d chars", request_id, len(content))
        self._notify(self.on_complete, content, metadata)
        return content

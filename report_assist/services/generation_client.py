"""Client for the external completion provider.

Wraps the OpenAI-compatible chat completions API with prompt validation,
error classification and bounded retries with exponential backoff. Two modes
are exposed: complete-text (``generate_content``) and incremental streaming
(``generate_content_stream``).
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable
from collections.abc import Callable
from typing import Any
from uuid import uuid4

import httpx
from openai import AsyncOpenAI

from report_assist.core.config import settings
from report_assist.core.exceptions import ErrorKind
from report_assist.core.exceptions import GenerationError
from report_assist.core.exceptions import classify
from report_assist.models.generation_models import ClientConfig
from report_assist.models.generation_models import GenerationRequest
from report_assist.services.retry_policy import RetryPolicy
from report_assist.services.stream_decoder import StreamDecoder

logger = logging.getLogger(__name__)

StreamCallback = Callable[[str, int], None]

# Placeholder so the SDK can be constructed; calls then fail with a 401
MISSING_API_KEY = "missing-api-key"


def _pick(value: Any, default: Any) -> Any:
    return default if value is None else value


class GenerationClient:
    """Issues generation requests to the provider.

    The instance holds configuration and the SDK handle only; all per-call
    state lives in local variables, so one instance can serve concurrent calls.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        provider: Any = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ):
        config = config or ClientConfig()

        self.model: str = _pick(config.model, settings.model_id)
        self.temperature: float = _pick(config.temperature, settings.temperature)
        self.max_tokens: int = _pick(config.max_tokens, settings.max_tokens)
        self.base_url: str = _pick(config.base_url, settings.openai_base_url)
        self.timeout = httpx.Timeout(
            _pick(config.connect_timeout, settings.LLM_CONNECT_TIMEOUT),
            read=_pick(config.read_timeout, settings.LLM_READ_TIMEOUT),
        )
        self.retry_policy = RetryPolicy(
            max_attempts=_pick(config.max_attempts, settings.max_attempts),
            base_delay=_pick(config.retry_base_delay, settings.retry_base_delay),
        )
        self.decoder = StreamDecoder.for_max_tokens(self.max_tokens)
        self._sleep = sleep

        api_key = _pick(config.api_key, settings.openai_api_key)
        if not api_key:
            logger.error("OpenAI API key is missing. Set OPENAI_API_KEY in the environment or .env file.")

        if provider is None:
            provider = AsyncOpenAI(
                api_key=api_key or MISSING_API_KEY,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,  # retries are driven by RetryPolicy
            )
        self._provider = provider

        logger.info(
            "Initialized GenerationClient: model=%s, max_attempts=%d, base_delay=%.2fs",
            self.model,
            self.retry_policy.max_attempts,
            self.retry_policy.base_delay,
        )

    # ---------------------------------------------------------------
    # Request helpers
    # ---------------------------------------------------------------

    @staticmethod
    def _validate(prompt: str, streaming: bool) -> GenerationRequest:
        if not isinstance(prompt, str) or not prompt.strip():
            raise GenerationError("Prompt cannot be empty", ErrorKind.INVALID_REQUEST, retryable=False)
        return GenerationRequest(prompt=prompt, streaming=streaming)

    def _request_kwargs(self, request: GenerationRequest) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": request.prompt}],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "timeout": self.timeout,
        }
        if request.streaming:
            kwargs["stream"] = True
        return kwargs

    async def _call_provider(self, request: GenerationRequest, request_id: str) -> Any:
        try:
            return await self._provider.chat.completions.create(**self._request_kwargs(request))
        except GenerationError:
            raise
        except Exception as e:
            error = classify(e)
            logger.error(
                "[%s] Provider call failed (%s, retryable=%s): %s",
                request_id,
                error.kind.value,
                error.retryable,
                error.message,
            )
            raise error from e

    async def _complete_once(self, request: GenerationRequest, request_id: str) -> str:
        rsp = await self._call_provider(request, request_id)

        choices = getattr(rsp, "choices", None)
        if not choices:
            logger.error("[%s] Invalid response structure from provider: %s", request_id, str(rsp))
            raise GenerationError(
                "Invalid response from provider: no choices returned",
                ErrorKind.UNKNOWN,
                retryable=True,
            )

        message = getattr(choices[0], "message", None)
        if message is None:
            logger.error("[%s] Missing 'message' in provider response: %s", request_id, str(choices[0]))
            raise GenerationError(
                "Invalid response from provider: missing message",
                ErrorKind.UNKNOWN,
                retryable=True,
            )

        # None and "" are both a valid, empty completion
        content = getattr(message, "content", None) or ""
        logger.debug("[%s] Completion received, length: %d chars", request_id, len(content))
        return content

    # ---------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------

    async def generate_content(self, prompt: str) -> str:
        """Generate the full completion text for ``prompt``.

        Raises:
            GenerationError: INVALID_REQUEST for a blank prompt (no provider call),
                otherwise the classified error of the last failed attempt.
        """
        request = self._validate(prompt, streaming=False)
        request_id = str(uuid4())
        logger.info("[%s] Making completion call with model: %s", request_id, self.model)

        content = ""
        async for attempt in self.retry_policy.retrying(self._sleep):
            with attempt:
                content = await self._complete_once(request, request_id)
        return content

    async def generate_content_stream(self, prompt: str, on_chunk: StreamCallback | None = None) -> str:
        """Stream the completion for ``prompt``, reporting fragments to ``on_chunk``.

        Only stream setup is retried. A failure after the stream opened is
        terminal and raised as STREAM_ERROR; text received so far is not
        returned, although ``on_chunk`` has already seen it.
        """
        request = self._validate(prompt, streaming=True)
        request_id = str(uuid4())
        logger.info("[%s] Opening completion stream with model: %s", request_id, self.model)

        stream: Any = None
        async for attempt in self.retry_policy.retrying(self._sleep):
            with attempt:
                stream = await self._call_provider(request, request_id)

        parts: list[str] = []
        try:
            async for fragment, progress in self.decoder.decode(stream):
                if fragment:
                    parts.append(fragment)
                if on_chunk is not None:
                    on_chunk(fragment, progress)
        except Exception as e:
            cause = classify(e)
            logger.error(
                "[%s] Stream failed after %d fragments: %s",
                request_id,
                len(parts),
                cause.message,
            )
            raise GenerationError(
                f"Stream interrupted: {cause.message}",
                ErrorKind.STREAM_ERROR,
                cause=e,
            ) from e
        finally:
            await self._close_stream(stream, request_id)

        content = "".join(parts)
        logger.info("[%s] Stream completed, length: %d chars", request_id, len(content))
        return content

    async def check_availability(self) -> bool:
        """Return True when the provider answers a lightweight models listing."""
        try:
            await self._provider.models.list()
            return True
        except Exception as e:
            logger.error("AI service availability check failed: %s", str(e))
            return False

    @staticmethod
    async def _close_stream(stream: Any, request_id: str) -> None:
        close = getattr(stream, "aclose", None) or getattr(stream, "close", None)
        if close is None:
            return
        try:
            result = close()
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.debug("[%s] Ignoring error while closing stream", request_id, exc_info=True)

    async def close(self) -> None:
        """Close the underlying SDK client."""
        close = getattr(self._provider, "close", None)
        if close is not None:
            result = close()
            if inspect.isawaitable(result):
                await result
        logger.debug("Closed GenerationClient")

    async def __aenter__(self) -> "GenerationClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(model={self.model}, base_url={self.base_url}, retry_policy={self.retry_policy!r})"

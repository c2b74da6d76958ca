from datetime import datetime
from datetime import timezone
from typing import Any

from pydantic import BaseModel
from pydantic import Field
from pydantic import model_validator

TemplateParams = dict[str, str | int | float | bool | None]


class ClientConfig(BaseModel):
    """Overrides for a generation client. ``None`` fields fall back to settings."""

    api_key: str | None = None
    base_url: str | None = None
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = Field(default=None, gt=0)
    max_attempts: int | None = Field(default=None, ge=1)
    retry_base_delay: float | None = Field(default=None, ge=0.0)
    connect_timeout: float | None = Field(default=None, gt=0.0)
    read_timeout: float | None = Field(default=None, gt=0.0)


class GenerationRequest(BaseModel):
    """One logical generation request as sent to the client."""

    prompt: str
    streaming: bool = False


class OrchestratorState(BaseModel):
    """Observable state of one assist operation."""

    content: str = ""
    is_loading: bool = False
    error: str | None = None
    progress: int = Field(default=0, ge=0, le=100)


class GenerationMetadata(BaseModel):
    """Envelope delivered alongside completed content."""

    request_id: str
    template_id: str | None = None
    params: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    response_length: int = 0
    streamed: bool = False


class GeneratePayload(BaseModel):
    """Body of the HTTP generate endpoints: either a template reference or a raw prompt."""

    template_id: str | None = None
    params: TemplateParams = Field(default_factory=dict)
    prompt: str | None = None

    @model_validator(mode="after")
    def check_source(self) -> "GeneratePayload":
        if self.template_id is None and self.prompt is None:
            raise ValueError("Either 'template_id' or 'prompt' must be provided.")
        if self.template_id is not None and self.prompt is not None:
            raise ValueError("Provide only one of 'template_id' or 'prompt'.")
        return self


class GenerationResult(BaseModel):
    content: str
    metadata: GenerationMetadata

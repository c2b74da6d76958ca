from enum import Enum
from typing import Any

from pydantic import BaseModel
from pydantic import Field


class TemplateCategory(str, Enum):
    INTRODUCTION = "introduction"
    METHODOLOGY = "methodology"
    ANALYSIS = "analysis"
    CONCLUSION = "conclusion"
    REFERENCES = "references"
    GENERAL = "general"

    @classmethod
    def from_string(cls, value: str | None) -> "TemplateCategory":
        """Case-insensitive lookup; anything unrecognized is GENERAL."""
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.GENERAL


class PromptTemplate(BaseModel):
    """A prompt with ``{{name}}`` placeholders, plus descriptive metadata."""

    id: str
    name: str
    description: str = ""
    category: TemplateCategory = TemplateCategory.GENERAL
    version: str = "1.0.0"
    tags: list[str] = Field(default_factory=list)
    template: str
    example_input: dict[str, Any] | None = None
    example_output: str | None = None

    def metadata(self) -> dict[str, Any]:
        return self.model_dump(include={"id", "name", "description", "category", "version", "tags"}, mode="json")

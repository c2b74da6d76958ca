"""Prompt template registry and placeholder filling.

Templates are JSON documents (see ``report_assist/prompts/templates``) whose
``template`` text uses ``{{name}}`` placeholders rendered with Jinja2.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any
from typing import Protocol

import jinja2
from pydantic import ValidationError

from report_assist.core.config import settings
from report_assist.core.exceptions import ConfigurationError
from report_assist.models.prompt_models import PromptTemplate
from report_assist.models.prompt_models import TemplateCategory

logger = logging.getLogger(__name__)

_UNREPLACED_PLACEHOLDER = re.compile(r"{{[^}]+}}")


class TemplateProvider(Protocol):
    """What the orchestrator needs from a template source."""

    def fill_template(self, template_id: str, params: dict[str, Any]) -> str | None: ...


class TemplateLoader:
    """Builds ``PromptTemplate`` objects from JSON documents."""

    @staticmethod
    def load_from_json(template_json: str) -> PromptTemplate:
        try:
            data = json.loads(template_json)
            data["category"] = TemplateCategory.from_string(data.get("category"))
            return PromptTemplate.model_validate(data)
        except (json.JSONDecodeError, ValidationError, TypeError, AttributeError) as e:
            logger.error("Error loading template from JSON: %s", str(e))
            raise ConfigurationError("Failed to load template from JSON") from e

    @classmethod
    def load_multiple_from_json(cls, template_jsons: list[str]) -> list[PromptTemplate]:
        return [cls.load_from_json(text) for text in template_jsons]

    @classmethod
    def load_directory(cls, directory: Path) -> list[PromptTemplate]:
        if not directory.is_dir():
            logger.warning("Template directory not found: %s", directory)
            return []

        templates = []
        for path in sorted(directory.glob("*.json")):
            try:
                templates.append(cls.load_from_json(path.read_text(encoding="utf-8")))
            except ConfigurationError:
                logger.error("Skipping invalid template file: %s", path.name)
        logger.info("Loaded %d prompt templates from %s", len(templates), directory)
        return templates


class PromptService:
    """In-memory registry of prompt templates."""

    def __init__(
        self,
        templates: list[PromptTemplate] | None = None,
        template_dir: Path | None = None,
    ):
        self._env = jinja2.Environment(
            undefined=jinja2.DebugUndefined,
            autoescape=False,
            keep_trailing_newline=True,
        )
        self._templates: dict[str, PromptTemplate] = {}
        self._compiled: dict[str, jinja2.Template] = {}

        if templates is None:
            templates = TemplateLoader.load_directory(template_dir or settings.template_dir)
        for template in templates:
            self.register_template(template)

    def register_template(self, template: PromptTemplate) -> bool:
        """Register or replace a template. Returns False when it cannot be used."""
        if not template.id or not template.template:
            logger.error("Template must have an ID and template text")
            return False
        try:
            compiled = self._env.from_string(template.template)
        except jinja2.TemplateSyntaxError as e:
            logger.error("Template '%s' has invalid syntax: %s", template.id, str(e))
            return False

        self._templates[template.id] = template
        self._compiled[template.id] = compiled
        return True

    def get_template(self, template_id: str) -> PromptTemplate | None:
        return self._templates.get(template_id)

    def get_all_templates(self) -> list[PromptTemplate]:
        return list(self._templates.values())

    def get_templates_by_category(self, category: TemplateCategory | str) -> list[PromptTemplate]:
        wanted = TemplateCategory.from_string(category.value if isinstance(category, TemplateCategory) else category)
        return [t for t in self._templates.values() if t.category == wanted]

    def get_templates_by_tag(self, tag: str) -> list[PromptTemplate]:
        return [t for t in self._templates.values() if tag in t.tags]

    def fill_template(self, template_id: str, params: dict[str, Any]) -> str | None:
        """Render the template with ``params``; ``None`` when the id is unknown.

        ``None`` values are skipped, so their placeholders stay in the output.
        """
        compiled = self._compiled.get(template_id)
        if compiled is None:
            logger.error("Template with ID %s not found", template_id)
            return None

        context = {key: value for key, value in (params or {}).items() if value is not None}
        try:
            filled = compiled.render(context)
        except jinja2.TemplateError as e:
            logger.error("Failed to render template '%s': %s", template_id, str(e))
            raise ConfigurationError(f"Failed to render template '{template_id}'") from e

        unreplaced = _UNREPLACED_PLACEHOLDER.findall(filled)
        if unreplaced:
            logger.warning("Some parameters were not replaced in '%s': %s", template_id, ", ".join(unreplaced))
        return filled


_default_service: PromptService | None = None


def get_prompt_service() -> PromptService:
    """Process-wide service backed by the bundled template directory."""
    global _default_service
    if _default_service is None:
        _default_service = PromptService()
    return _default_service

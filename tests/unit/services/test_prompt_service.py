import json

import pytest

from report_assist.core.exceptions import ConfigurationError
from report_assist.models.prompt_models import PromptTemplate
from report_assist.models.prompt_models import TemplateCategory
from report_assist.services.prompt_service import PromptService
from report_assist.services.prompt_service import TemplateLoader
from report_assist.services.prompt_service import get_prompt_service


@pytest.fixture
def service():
    return PromptService(
        templates=[
            PromptTemplate(
                id="greet",
                name="Greeting",
                category=TemplateCategory.GENERAL,
                tags=["short"],
                template="Hello {{name}}, welcome to {{place}}.",
            ),
            PromptTemplate(
                id="intro",
                name="Intro",
                category=TemplateCategory.INTRODUCTION,
                tags=["academic", "short"],
                template="Introduce {{topic}}.",
            ),
        ]
    )


def test_bundled_templates_are_loaded():
    ids = {t.id for t in PromptService().get_all_templates()}
    assert ids == {
        "introduction-academic",
        "methodology-qualitative",
        "analysis-data",
        "conclusion-summary",
        "references-format",
        "improve-clarity",
        "red-thread",
    }


def test_fill_bundled_template_with_partial_params(caplog):
    filled = PromptService().fill_template("introduction-academic", {"topic": "X"})

    assert filled is not None
    assert "on the topic of X." in filled
    assert "researchQuestion" in filled
    assert "Some parameters were not replaced" in caplog.text


def test_fill_template_replaces_every_occurrence(service):
    assert service.fill_template("greet", {"name": "Ada", "place": "Turin"}) == "Hello Ada, welcome to Turin."


def test_fill_template_skips_none_values(service):
    filled = service.fill_template("greet", {"name": "Ada", "place": None})
    assert filled.startswith("Hello Ada, welcome to {{")
    assert "place" in filled


def test_fill_template_unknown_id_returns_none(service):
    assert service.fill_template("missing", {"topic": "X"}) is None


def test_lookups(service):
    assert service.get_template("greet").name == "Greeting"
    assert service.get_template("missing") is None
    assert [t.id for t in service.get_templates_by_category("Introduction")] == ["intro"]
    assert [t.id for t in service.get_templates_by_category(TemplateCategory.GENERAL)] == ["greet"]
    assert {t.id for t in service.get_templates_by_tag("short")} == {"greet", "intro"}
    assert service.get_templates_by_tag("nope") == []


def test_register_rejects_unusable_templates(service):
    assert service.register_template(PromptTemplate(id="", name="x", template="t")) is False
    assert service.register_template(PromptTemplate(id="blank", name="x", template="")) is False
    assert service.register_template(PromptTemplate(id="broken", name="x", template="{% if %}")) is False
    assert service.get_template("broken") is None


def test_register_replaces_existing(service):
    assert service.register_template(PromptTemplate(id="greet", name="New", template="Hi {{name}}")) is True
    assert service.fill_template("greet", {"name": "Bo"}) == "Hi Bo"


def test_loader_parses_json_and_normalizes_category():
    template = TemplateLoader.load_from_json(
        json.dumps({"id": "t", "name": "T", "category": "CONCLUSION", "template": "x"})
    )
    assert template.category is TemplateCategory.CONCLUSION

    other = TemplateLoader.load_from_json(json.dumps({"id": "u", "name": "U", "category": "poetry", "template": "x"}))
    assert other.category is TemplateCategory.GENERAL


@pytest.mark.parametrize("text", ["not json", json.dumps({"name": "no id"}), json.dumps([1, 2])])
def test_loader_rejects_invalid_json(text):
    with pytest.raises(ConfigurationError):
        TemplateLoader.load_from_json(text)


def test_load_directory_skips_invalid_files(tmp_path):
    (tmp_path / "good.json").write_text(json.dumps({"id": "good", "name": "G", "template": "x"}), encoding="utf-8")
    (tmp_path / "bad.json").write_text("{", encoding="utf-8")

    templates = TemplateLoader.load_directory(tmp_path)

    assert [t.id for t in templates] == ["good"]


def test_load_missing_directory_returns_empty(tmp_path):
    assert TemplateLoader.load_directory(tmp_path / "absent") == []


def test_metadata_is_json_ready(service):
    meta = service.get_template("intro").metadata()
    assert meta == {
        "id": "intro",
        "name": "Intro",
        "description": "",
        "category": "introduction",
        "version": "1.0.0",
        "tags": ["academic", "short"],
    }


def test_get_prompt_service_is_shared():
    assert get_prompt_service() is get_prompt_service()

"""
templates/document.py: JSON import/export of checklist templates.

The document format is the portable, id-free form of a template:

    {
      "name": ..., "description": ..., "version": ...,
      "expected_inputs": [{key, label, type, scope, required, hint?}],
      "sections": [{key, title, order, items: [
          {key, title, description, order, query,
           validation_rule: {type, tolerance?}, scope,
           expected_input_binding?, auto_resolve}
      ]}]
    }

Documents are checked against ``schemas/template.schema.json`` before they
are turned into a ChecklistTemplate, and the result must pass the template
consistency checks. Ids are regenerated on every import.

Usage:
    from conferkit.templates.document import export_template_json, import_template

    template = import_template(Path("fechamento.json").read_text())
    print(export_template_json(template))
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError

from conferkit.engine.errors import ConfigurationError
from conferkit.templates.inputs import ConfigurationIssue
from conferkit.templates.types import (
    ChecklistTemplate,
    ExpectedInput,
    InputType,
    Scope,
    TemplateItem,
    TemplateSection,
    rule_from_dict,
    rule_to_dict,
)
from conferkit.templates.validation import ensure_valid_template

logger = logging.getLogger(__name__)

_SCHEMA_PATH = Path(__file__).parent / "schemas" / "template.schema.json"
_validator: Draft202012Validator | None = None


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _get_validator() -> Draft202012Validator:
    global _validator
    if _validator is None:
        with _SCHEMA_PATH.open() as fh:
            _validator = Draft202012Validator(json.load(fh))
    return _validator


def _json_path(error: ValidationError) -> str:
    """Convert a jsonschema error path to ``sections[0].items[1].query`` form."""
    parts: list[str] = []
    for p in error.absolute_path:
        if isinstance(p, int):
            parts.append(f"[{p}]")
        else:
            parts.append(f".{p}" if parts else str(p))
    return "".join(parts)


def _order(value: Any, fallback: int) -> int:
    return fallback if value is None else int(value)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def schema_issues(data: Any) -> list[ConfigurationIssue]:
    """Validate a parsed document against the template JSON Schema."""
    if not isinstance(data, dict):
        return [
            ConfigurationIssue(message="Template document must be a JSON object", code="SCHEMA")
        ]

    validator = _get_validator()
    return [
        ConfigurationIssue(message=error.message, code="SCHEMA", path=_json_path(error))
        for error in sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.absolute_path])
    ]


def parse_document(source: str | dict[str, Any]) -> dict[str, Any]:
    """Parse a JSON string (or pass a dict through) and schema-check it.

    Raises:
        ConfigurationError: On malformed JSON or schema violations
    """
    if isinstance(source, str):
        try:
            data = json.loads(source)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(
                issues=[ConfigurationIssue(message=f"Invalid JSON: {exc}", code="INVALID_JSON")]
            ) from exc
    else:
        data = source

    issues = schema_issues(data)
    if issues:
        raise ConfigurationError(issues=issues)
    return data


def template_from_document(data: dict[str, Any]) -> ChecklistTemplate:
    """Build a ChecklistTemplate from an already schema-checked document.

    Missing optional fields take the defaults the template editor uses.
    """
    sections = []
    for s_idx, section_data in enumerate(data.get("sections") or []):
        items = []
        for i_idx, item_data in enumerate(section_data.get("items") or []):
            items.append(
                TemplateItem(
                    key=item_data.get("key") or f"item_{i_idx}",
                    title=item_data.get("title", ""),
                    description=item_data.get("description") or "",
                    order=_order(item_data.get("order"), i_idx + 1),
                    query=item_data.get("query", ""),
                    validation_rule=rule_from_dict(item_data.get("validation_rule")),
                    scope=Scope(item_data.get("scope") or "global"),
                    expected_input_binding=item_data.get("expected_input_binding"),
                    auto_resolve=item_data.get("auto_resolve", True),
                )
            )
        sections.append(
            TemplateSection(
                key=section_data.get("key") or f"section_{s_idx}",
                title=section_data.get("title", ""),
                order=_order(section_data.get("order"), s_idx + 1),
                items=items,
            )
        )

    expected_inputs = [
        ExpectedInput(
            key=input_data["key"],
            label=input_data.get("label") or input_data["key"],
            type=InputType(input_data.get("type") or "number"),
            scope=Scope(input_data.get("scope") or "global"),
            required=input_data.get("required", False),
            hint=input_data.get("hint"),
        )
        for input_data in data.get("expected_inputs") or []
    ]

    return ChecklistTemplate(
        name=data["name"],
        description=data.get("description") or "",
        version=data.get("version") or "1.0.0",
        expected_inputs=expected_inputs,
        sections=sections,
    )


def import_template(source: str | dict[str, Any]) -> ChecklistTemplate:
    """Import a template document.

    Args:
        source: JSON text or an already parsed document

    Returns:
        A new ChecklistTemplate with fresh ids

    Raises:
        ConfigurationError: If the document is malformed or inconsistent
    """
    template = template_from_document(parse_document(source))
    ensure_valid_template(template)
    return template


def load_template_file(path: Path) -> ChecklistTemplate:
    """Import a template from a ``.json`` or ``.yaml``/``.yml`` file."""
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in (".yaml", ".yml"):
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigurationError(
                issues=[ConfigurationIssue(message=f"YAML parse error: {exc}", code="INVALID_YAML")]
            ) from exc
        if data is None:
            raise ConfigurationError(
                issues=[ConfigurationIssue(message="File is empty", code="EMPTY_DOCUMENT")]
            )
        logger.debug("Loaded YAML template document %s", path)
        return import_template(data)
    return import_template(text)


def export_template(template: ChecklistTemplate) -> dict[str, Any]:
    """Export a template to its id-free document form."""
    expected_inputs = []
    for expected_input in template.expected_inputs:
        entry: dict[str, Any] = {
            "key": expected_input.key,
            "label": expected_input.label,
            "type": expected_input.type.value,
            "scope": expected_input.scope.value,
            "required": expected_input.required,
        }
        if expected_input.hint is not None:
            entry["hint"] = expected_input.hint
        expected_inputs.append(entry)

    sections = []
    for section in template.sections:
        items = []
        for item in section.items:
            entry = {
                "key": item.key,
                "title": item.title,
                "description": item.description,
                "order": item.order,
                "query": item.query,
                "validation_rule": rule_to_dict(item.validation_rule),
                "scope": item.scope.value,
                "auto_resolve": item.auto_resolve,
            }
            if item.expected_input_binding is not None:
                entry["expected_input_binding"] = item.expected_input_binding
            items.append(entry)
        sections.append(
            {
                "key": section.key,
                "title": section.title,
                "order": section.order,
                "items": items,
            }
        )

    return {
        "name": template.name,
        "description": template.description,
        "version": template.version,
        "expected_inputs": expected_inputs,
        "sections": sections,
    }


def export_template_json(template: ChecklistTemplate) -> str:
    return json.dumps(export_template(template), indent=2, ensure_ascii=False)

"""Tests for template document import and export."""

import json

import pytest

from conferkit.engine.errors import ConfigurationError
from conferkit.templates.document import (
    export_template,
    export_template_json,
    import_template,
    load_template_file,
    parse_document,
    schema_issues,
)
from conferkit.templates.types import NumberMatchesExpectedWithTolerance, Scope


MINIMAL_DOCUMENT = {
    "name": "Conferência rápida",
    "sections": [
        {
            "title": "Caixa",
            "items": [
                {"title": "Saldo", "query": "SELECT 1"},
                {
                    "title": "Estoque",
                    "query": "SELECT SUM(qtd) FROM estoque WHERE loja = :store_id",
                    "scope": "per_store",
                    "validation_rule": {"type": "number_matches_expected_with_tolerance"},
                    "expected_input_binding": "estoque",
                },
            ],
        }
    ],
    "expected_inputs": [{"key": "estoque", "scope": "per_store"}],
}


def _strip_ids(data):
    """Compare structures ignoring identity."""
    if isinstance(data, dict):
        return {k: _strip_ids(v) for k, v in data.items() if k not in ("id", "createdAt", "updatedAt")}
    if isinstance(data, list):
        return [_strip_ids(v) for v in data]
    return data


# =============================================================================
# Parsing and schema
# =============================================================================


class TestParseDocument:
    def test_invalid_json(self):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_document("{not json")
        assert exc_info.value.issues[0].code == "INVALID_JSON"

    def test_non_object(self):
        assert schema_issues([1, 2])[0].code == "SCHEMA"

    def test_missing_required_fields(self):
        issues = schema_issues({"description": "sem nome"})
        messages = " ".join(i.message for i in issues)
        assert "'name' is a required property" in messages
        assert "'sections' is a required property" in messages

    def test_schema_paths_point_at_the_problem(self):
        document = json.loads(json.dumps(MINIMAL_DOCUMENT))
        document["sections"][0]["items"][0]["validation_rule"] = {"type": "regex"}
        issues = schema_issues(document)
        assert issues[0].path == "sections[0].items[0].validation_rule.type"

    def test_tolerance_range_enforced_by_schema(self):
        document = json.loads(json.dumps(MINIMAL_DOCUMENT))
        document["sections"][0]["items"][1]["validation_rule"]["tolerance"] = 2
        assert schema_issues(document)


# =============================================================================
# Import
# =============================================================================


class TestImport:
    def test_defaults_are_filled_in(self):
        template = import_template(json.dumps(MINIMAL_DOCUMENT))
        assert template.version == "1.0.0"
        section = template.sections[0]
        assert section.key == "section_0"
        assert section.order == 1
        first, second = section.items
        assert (first.key, first.order, first.scope, first.auto_resolve) == ("item_0", 1, Scope.GLOBAL, True)
        assert second.key == "item_1"
        assert second.order == 2
        assert second.validation_rule == NumberMatchesExpectedWithTolerance(tolerance=0.01)
        expected_input = template.expected_inputs[0]
        assert expected_input.label == "estoque"
        assert expected_input.required is False

    def test_explicit_order_is_kept(self):
        document = json.loads(json.dumps(MINIMAL_DOCUMENT))
        document["sections"][0]["items"][0]["order"] = 7
        template = import_template(document)
        assert template.sections[0].items[0].order == 7

    def test_ids_are_fresh_on_every_import(self):
        first = import_template(MINIMAL_DOCUMENT)
        second = import_template(MINIMAL_DOCUMENT)
        assert first.id != second.id
        assert first.sections[0].items[0].id != second.sections[0].items[0].id

    def test_inconsistent_template_is_rejected(self):
        document = json.loads(json.dumps(MINIMAL_DOCUMENT))
        document["sections"][0]["items"][1]["expected_input_binding"] = "desconhecido"
        with pytest.raises(ConfigurationError) as exc_info:
            import_template(document)
        assert [i.code for i in exc_info.value.issues] == ["UNKNOWN_BINDING"]

    def test_write_queries_are_rejected(self):
        document = json.loads(json.dumps(MINIMAL_DOCUMENT))
        document["sections"][0]["items"][0]["query"] = "UPDATE caixa SET saldo = 0"
        with pytest.raises(ConfigurationError):
            import_template(document)


# =============================================================================
# Export
# =============================================================================


class TestExport:
    def test_round_trip_is_structurally_equal(self, template):
        restored = import_template(export_template_json(template))
        assert _strip_ids(restored.to_dict()) == _strip_ids(template.to_dict())

    def test_export_omits_ids_and_empty_optionals(self, template):
        document = export_template(template)
        assert "id" not in document
        item = document["sections"][0]["items"][1]
        assert "id" not in item
        assert "expected_input_binding" not in item
        assert item["validation_rule"] == {"type": "must_return_no_rows"}
        assert "hint" not in document["expected_inputs"][0]

    def test_export_is_valid_against_schema(self, template):
        assert schema_issues(export_template(template)) == []

    def test_json_keeps_accents(self, template):
        assert "Conferência de fechamento" in export_template_json(template)


# =============================================================================
# Files
# =============================================================================


class TestLoadFile:
    def test_load_json(self, tmp_path, template):
        path = tmp_path / "fechamento.json"
        path.write_text(export_template_json(template), encoding="utf-8")
        assert load_template_file(path).name == "Fechamento Mensal"

    def test_load_yaml(self, tmp_path):
        path = tmp_path / "fechamento.yaml"
        path.write_text(
            "name: Via YAML\n"
            "sections:\n"
            "  - key: s\n"
            "    title: S\n"
            "    items:\n"
            "      - key: i\n"
            "        title: I\n"
            "        query: SELECT 1\n",
            encoding="utf-8",
        )
        template = load_template_file(path)
        assert template.name == "Via YAML"
        assert template.sections[0].items[0].query == "SELECT 1"

    def test_empty_yaml(self, tmp_path):
        path = tmp_path / "vazio.yml"
        path.write_text("", encoding="utf-8")
        with pytest.raises(ConfigurationError) as exc_info:
            load_template_file(path)
        assert exc_info.value.issues[0].code == "EMPTY_DOCUMENT"

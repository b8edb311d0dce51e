"""Template consistency checks.

Run on every save and import. Any issue blocks persistence, so problems are
reported to the collaborator editing the template instead of surfacing later
as failed items in a client's conference.
"""

import re

from conferkit.engine.errors import ConfigurationError
from conferkit.templates.inputs import ConfigurationIssue, ExpectedInputRegistry
from conferkit.templates.types import ChecklistTemplate, NumberMatchesExpectedWithTolerance

READ_ONLY_VERBS = ("select", "with")

# Leading "-- line" and "/* block */" comments
_LEADING_COMMENTS = re.compile(r"^\s*(?:--[^\n]*(?:\n|$)|/\*.*?\*/)", re.DOTALL)


def first_keyword(query: str) -> str:
    """Return the first SQL keyword of a query, lowercased."""
    text = query
    while True:
        stripped = _LEADING_COMMENTS.sub("", text, count=1)
        if stripped == text:
            break
        text = stripped
    match = re.match(r"\s*\(*\s*([A-Za-z]+)", text)
    return match.group(1).lower() if match else ""


def is_read_only_query(query: str) -> bool:
    return first_keyword(query) in READ_ONLY_VERBS


def validate_template(template: ChecklistTemplate) -> list[ConfigurationIssue]:
    """Check a template for internal consistency.

    Returns:
        List of issues. Empty list means the template can be persisted.
    """
    issues: list[ConfigurationIssue] = []

    if not (template.name or "").strip():
        issues.append(
            ConfigurationIssue(message="Template name is required", code="MISSING_NAME", path="name")
        )

    registry = ExpectedInputRegistry(template.expected_inputs)
    item_paths = []
    seen_ids: set[str] = set()

    for s_idx, section in enumerate(template.sections):
        section_path = f"sections[{s_idx}]"
        if section.id in seen_ids:
            issues.append(
                ConfigurationIssue(
                    message=f"Duplicate id '{section.id}'", code="DUPLICATE_ID", path=f"{section_path}.id"
                )
            )
        seen_ids.add(section.id)

        for i_idx, item in enumerate(section.items):
            path = f"{section_path}.items[{i_idx}]"
            item_paths.append((path, item))

            if item.id in seen_ids:
                issues.append(
                    ConfigurationIssue(
                        message=f"Duplicate id '{item.id}'", code="DUPLICATE_ID", path=f"{path}.id"
                    )
                )
            seen_ids.add(item.id)

            if not (item.query or "").strip():
                issues.append(
                    ConfigurationIssue(
                        message=f"Item '{item.key}' has an empty query",
                        code="EMPTY_QUERY",
                        path=f"{path}.query",
                    )
                )
            elif not is_read_only_query(item.query):
                issues.append(
                    ConfigurationIssue(
                        message=(
                            f"Item '{item.key}' query must start with one of: "
                            + ", ".join(v.upper() for v in READ_ONLY_VERBS)
                        ),
                        code="NOT_READ_ONLY",
                        path=f"{path}.query",
                    )
                )

            rule = item.validation_rule
            if isinstance(rule, NumberMatchesExpectedWithTolerance):
                if not 0 <= rule.tolerance <= 1:
                    issues.append(
                        ConfigurationIssue(
                            message=f"Tolerance {rule.tolerance} is outside [0, 1]",
                            code="INVALID_TOLERANCE",
                            path=f"{path}.validation_rule.tolerance",
                        )
                    )

            if rule.requires_expected:
                binding = item.expected_input_binding
                if not binding:
                    issues.append(
                        ConfigurationIssue(
                            message=f"Rule '{rule.type}' requires an expected input binding",
                            code="MISSING_BINDING",
                            path=f"{path}.expected_input_binding",
                        )
                    )
                elif binding in registry and not registry.is_compatible(item):
                    issues.append(
                        ConfigurationIssue(
                            message=(
                                f"Global item '{item.key}' cannot bind per-store "
                                f"input '{binding}'"
                            ),
                            code="INCOMPATIBLE_SCOPE",
                            path=f"{path}.expected_input_binding",
                        )
                    )
                elif binding in registry and not registry.get(binding).is_numeric:
                    issues.append(
                        ConfigurationIssue(
                            message=(
                                f"Rule '{rule.type}' compares numbers but input "
                                f"'{binding}' is {registry.get(binding).type.value}"
                            ),
                            code="INCOMPATIBLE_INPUT_TYPE",
                            path=f"{path}.expected_input_binding",
                        )
                    )

    issues.extend(registry.validate(item_paths))
    return issues


def ensure_valid_template(template: ChecklistTemplate) -> None:
    """Raise ConfigurationError if the template has any issue."""
    issues = validate_template(template)
    if issues:
        raise ConfigurationError(issues=issues)

"""ConferKit checklist templates.

Usage:
    from conferkit.templates import import_template, ensure_valid_template

    template = import_template(document_json)
    ensure_valid_template(template)
"""

from conferkit.templates.document import (
    export_template,
    export_template_json,
    import_template,
    load_template_file,
)
from conferkit.templates.inputs import (
    ConfigurationIssue,
    ExpectedInputRegistry,
    composite_key,
)
from conferkit.templates.types import (
    ChecklistTemplate,
    ExpectedInput,
    InputType,
    MustReturnNoRows,
    MustReturnRows,
    NumberEqualsExpected,
    NumberMatchesExpectedWithTolerance,
    Scope,
    SingleNumberRequired,
    TemplateItem,
    TemplateSection,
    ValidationRule,
    rule_from_dict,
    rule_to_dict,
)
from conferkit.templates.validation import (
    ensure_valid_template,
    is_read_only_query,
    validate_template,
)

__all__ = [
    # Types
    "ChecklistTemplate",
    "ExpectedInput",
    "InputType",
    "Scope",
    "TemplateItem",
    "TemplateSection",
    # Rules
    "MustReturnNoRows",
    "MustReturnRows",
    "NumberEqualsExpected",
    "NumberMatchesExpectedWithTolerance",
    "SingleNumberRequired",
    "ValidationRule",
    "rule_from_dict",
    "rule_to_dict",
    # Inputs
    "ConfigurationIssue",
    "ExpectedInputRegistry",
    "composite_key",
    # Validation
    "ensure_valid_template",
    "is_read_only_query",
    "validate_template",
    # Documents
    "export_template",
    "export_template_json",
    "import_template",
    "load_template_file",
]

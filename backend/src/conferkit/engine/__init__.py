"""ConferKit evaluation engine.

- substitution: turns an item's query template into a concrete query
- rules: judges a query result against the item's validation rule
- errors: the error taxonomy shared by the whole package
"""

from conferkit.engine.errors import (
    ConferenceError,
    ConfigurationError,
    EvaluationError,
    ExecutionError,
    SubstitutionError,
)
from conferkit.engine.rules import (
    RuleOutcome,
    Verdict,
    evaluate,
    evaluate_rows,
    extract_single_number,
)
from conferkit.engine.substitution import (
    build_item_context,
    find_placeholders,
    find_unresolved,
    resolve_query,
    sample_context,
    substitute,
    substitute_preview,
)

__all__ = [
    # Errors
    "ConferenceError",
    "ConfigurationError",
    "EvaluationError",
    "ExecutionError",
    "SubstitutionError",
    # Rules
    "RuleOutcome",
    "Verdict",
    "evaluate",
    "evaluate_rows",
    "extract_single_number",
    # Substitution
    "build_item_context",
    "find_placeholders",
    "find_unresolved",
    "resolve_query",
    "sample_context",
    "substitute",
    "substitute_preview",
]

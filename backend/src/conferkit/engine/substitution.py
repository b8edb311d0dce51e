"""Variable substitution for item queries.

Turns an operator-authored query template into a concrete query scoped to a
store. Placeholders are written ``:identifier`` (identifier matches
``[a-z][a-z0-9_]*``). Built-in variables are ``store_id``, ``data_inicio``
and ``data_fim``; every expected input relevant to the item's scope is also
available under its key. Text inside single-quoted literals is never
scanned, so substituted values cannot introduce new placeholders.

Numeric values are inlined as-is, anything else as a single-quoted literal.
No other escaping happens, so only trusted templates may be fed through here
and end-user values stay confined to the expected-input vocabulary.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, Iterable

from conferkit.engine.errors import SubstitutionError
from conferkit.templates.inputs import composite_key
from conferkit.templates.types import ExpectedInput, Scope, TemplateItem

if TYPE_CHECKING:
    from conferkit.conference.types import Conference, Store

BUILTIN_VARIABLES = ("store_id", "data_inicio", "data_fim")

# Single-quoted literals are matched first and kept verbatim. ":name" must not
# be preceded by ":" (casts like x::int) or a word character (10:30).
PLACEHOLDER = re.compile(
    r"(?P<literal>'(?:[^']|'')*')|(?<![:\w]):(?P<name>[a-z][a-z0-9_]*)"
)

NUMBER = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")


def is_numeric_literal(value: str) -> bool:
    return bool(NUMBER.match(value.strip()))


def format_value(value: Any) -> str:
    """Render a context value as SQL text: numbers bare, the rest quoted."""
    text = str(value)
    if is_numeric_literal(text):
        return text.strip()
    return "'" + text.replace("'", "''") + "'"


def find_placeholders(query: str) -> list[str]:
    """List distinct placeholder names in order of first appearance."""
    names: list[str] = []
    for match in PLACEHOLDER.finditer(query):
        name = match.group("name")
        if name and name not in names:
            names.append(name)
    return names


def find_unresolved(query: str, context: dict[str, Any]) -> list[str]:
    return [name for name in find_placeholders(query) if context.get(name) is None]


def substitute(query: str, context: dict[str, Any]) -> str:
    """Replace resolvable placeholders; leave the others intact.

    Args:
        query: Query template with ``:name`` placeholders
        context: Variable name -> value. ``None`` counts as unresolved.

    Returns:
        The substituted query text
    """

    def replace(match: re.Match) -> str:
        name = match.group("name")
        value = context.get(name) if name else None
        if value is None:
            return match.group(0)
        return format_value(value)

    return PLACEHOLDER.sub(replace, query)


def resolve_query(query: str, context: dict[str, Any]) -> str:
    """Substitute and require that every placeholder was resolved.

    Raises:
        SubstitutionError: Listing the placeholders left without a value
    """
    unresolved = find_unresolved(query, context)
    if unresolved:
        raise SubstitutionError(unresolved)
    return substitute(query, context)


def sample_context(expected_inputs: Iterable[ExpectedInput] = ()) -> dict[str, str]:
    """Example values used by the editor preview."""
    context = {
        "store_id": "123",
        "data_inicio": "2025-01-01",
        "data_fim": "2025-01-31",
    }
    for expected_input in expected_inputs:
        context[expected_input.key] = "1000" if expected_input.is_numeric else "exemplo"
    return context


def substitute_preview(
    query: str,
    sample: dict[str, Any] | None = None,
    expected_inputs: Iterable[ExpectedInput] = (),
) -> str:
    """Non-destructive preview of a query with sample values.

    Explicit ``sample`` values override the generated defaults.
    """
    context: dict[str, Any] = sample_context(expected_inputs)
    if sample:
        context.update(sample)
    return substitute(query, context)


def build_item_context(
    conference: Conference,
    template_item: TemplateItem,
    store: Store | None = None,
) -> dict[str, Any]:
    """Collect the variables available to one conference item.

    Global expected inputs are always available. Per-store inputs are only
    available to per-store items, read from that store's composite key.
    ``store_id`` is the store's business key; a global item gets it only when
    the conference has exactly one store.
    """
    context: dict[str, Any] = {}

    if store is None and len(conference.stores) == 1:
        scoped_store = conference.stores[0]
    else:
        scoped_store = store
    if scoped_store is not None:
        context["store_id"] = scoped_store.store_id

    if conference.period_start is not None:
        context["data_inicio"] = conference.period_start.isoformat()
    if conference.period_end is not None:
        context["data_fim"] = conference.period_end.isoformat()

    for expected_input in conference.template.expected_inputs:
        if expected_input.scope == Scope.GLOBAL:
            key = composite_key(expected_input.key)
        elif template_item.scope == Scope.PER_STORE and store is not None:
            key = composite_key(expected_input.key, store.id)
        else:
            continue
        stored = conference.expected_input_values.get(key)
        if stored is not None and stored.value not in (None, ""):
            context[expected_input.key] = stored.value

    return context

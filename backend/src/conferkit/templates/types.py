"""Core types for ConferKit checklist templates.

A template is a tree: ChecklistTemplate -> TemplateSection -> TemplateItem.
The template also owns the registry of expected inputs, the values a client
supplies before items are evaluated.

Validation rules form a closed set of variants. Each variant is a frozen
dataclass; ``ValidationRule`` is their union and every consumer dispatches
over all of them.
"""

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Iterator, Union


def new_id() -> str:
    return str(uuid.uuid4())


class InputType(str, Enum):
    NUMBER = "number"
    CURRENCY = "currency"
    TEXT = "text"


class Scope(str, Enum):
    """Whether an item or input applies once or once per store."""

    GLOBAL = "global"
    PER_STORE = "per_store"


# =============================================================================
# Validation rules
# =============================================================================


@dataclass(frozen=True)
class SingleNumberRequired:
    """Query must return exactly one row with one numeric column."""

    type: ClassVar[str] = "single_number_required"
    requires_expected: ClassVar[bool] = False


@dataclass(frozen=True)
class MustReturnRows:
    """Query must return at least one row."""

    type: ClassVar[str] = "must_return_rows"
    requires_expected: ClassVar[bool] = False


@dataclass(frozen=True)
class MustReturnNoRows:
    """Query must return no rows."""

    type: ClassVar[str] = "must_return_no_rows"
    requires_expected: ClassVar[bool] = False


@dataclass(frozen=True)
class NumberEqualsExpected:
    """Single numeric result must equal the bound expected input exactly."""

    type: ClassVar[str] = "number_equals_expected"
    requires_expected: ClassVar[bool] = True


@dataclass(frozen=True)
class NumberMatchesExpectedWithTolerance:
    """Single numeric result may deviate from the expected input.

    Attributes:
        tolerance: Fractional allowed deviation, in [0, 1]
    """

    tolerance: float = 0.01
    type: ClassVar[str] = "number_matches_expected_with_tolerance"
    requires_expected: ClassVar[bool] = True


ValidationRule = Union[
    SingleNumberRequired,
    MustReturnRows,
    MustReturnNoRows,
    NumberEqualsExpected,
    NumberMatchesExpectedWithTolerance,
]

RULE_TYPES: dict[str, type] = {
    SingleNumberRequired.type: SingleNumberRequired,
    MustReturnRows.type: MustReturnRows,
    MustReturnNoRows.type: MustReturnNoRows,
    NumberEqualsExpected.type: NumberEqualsExpected,
    NumberMatchesExpectedWithTolerance.type: NumberMatchesExpectedWithTolerance,
}

DEFAULT_TOLERANCE = 0.01


def rule_from_dict(data: dict[str, Any] | None) -> ValidationRule:
    """Create a ValidationRule from its ``{type, tolerance?}`` form.

    Raises:
        ValueError: If the rule type is unknown
    """
    if not data:
        return SingleNumberRequired()

    rule_type = data.get("type", SingleNumberRequired.type)
    if rule_type not in RULE_TYPES:
        raise ValueError(
            f"Unknown validation rule type '{rule_type}'. "
            "Available types: " + ", ".join(sorted(RULE_TYPES))
        )

    if rule_type == NumberMatchesExpectedWithTolerance.type:
        tolerance = data.get("tolerance")
        if tolerance is None:
            tolerance = DEFAULT_TOLERANCE
        return NumberMatchesExpectedWithTolerance(tolerance=float(tolerance))

    return RULE_TYPES[rule_type]()


def rule_to_dict(rule: ValidationRule) -> dict[str, Any]:
    result: dict[str, Any] = {"type": rule.type}
    if isinstance(rule, NumberMatchesExpectedWithTolerance):
        result["tolerance"] = rule.tolerance
    return result


# =============================================================================
# Template tree
# =============================================================================


@dataclass
class ExpectedInput:
    """A typed value the client supplies before evaluation.

    Attributes:
        key: Slug used in query placeholders and bindings (``^[a-z][a-z0-9_]*$``)
        label: Display label shown to the client
        type: number, currency or text
        scope: global (one value) or per_store (one value per store)
        required: Empty required inputs block the wizard
        hint: Optional help text
    """

    key: str
    label: str
    type: InputType = InputType.NUMBER
    scope: Scope = Scope.GLOBAL
    required: bool = False
    hint: str | None = None

    @property
    def is_numeric(self) -> bool:
        return self.type in (InputType.NUMBER, InputType.CURRENCY)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "label": self.label,
            "type": self.type.value,
            "scope": self.scope.value,
            "required": self.required,
            "hint": self.hint,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExpectedInput":
        return cls(
            key=data["key"],
            label=data.get("label", data["key"]),
            type=InputType(data.get("type", "number")),
            scope=Scope(data.get("scope", "global")),
            required=bool(data.get("required", False)),
            hint=data.get("hint"),
        )


@dataclass
class TemplateItem:
    """A single checkable unit: a query plus the rule judging its result."""

    key: str
    title: str
    query: str
    validation_rule: ValidationRule = field(default_factory=SingleNumberRequired)
    scope: Scope = Scope.GLOBAL
    description: str = ""
    order: int = 1
    expected_input_binding: str | None = None
    auto_resolve: bool = True
    id: str = field(default_factory=new_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "key": self.key,
            "title": self.title,
            "description": self.description,
            "order": self.order,
            "query": self.query,
            "validationRule": rule_to_dict(self.validation_rule),
            "scope": self.scope.value,
            "expectedInputBinding": self.expected_input_binding,
            "autoResolve": self.auto_resolve,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TemplateItem":
        return cls(
            id=data.get("id") or new_id(),
            key=data["key"],
            title=data.get("title", ""),
            description=data.get("description", ""),
            order=int(data.get("order", 1)),
            query=data.get("query", ""),
            validation_rule=rule_from_dict(data.get("validationRule")),
            scope=Scope(data.get("scope", "global")),
            expected_input_binding=data.get("expectedInputBinding"),
            auto_resolve=bool(data.get("autoResolve", True)),
        )


@dataclass
class TemplateSection:
    """An ordered group of items. Deleting a section deletes its items."""

    key: str
    title: str
    order: int = 1
    items: list[TemplateItem] = field(default_factory=list)
    id: str = field(default_factory=new_id)

    def sorted_items(self) -> list[TemplateItem]:
        return sorted(self.items, key=lambda i: i.order)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "key": self.key,
            "title": self.title,
            "order": self.order,
            "items": [i.to_dict() for i in self.items],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TemplateSection":
        return cls(
            id=data.get("id") or new_id(),
            key=data["key"],
            title=data.get("title", ""),
            order=int(data.get("order", 1)),
            items=[TemplateItem.from_dict(i) for i in data.get("items", [])],
        )


@dataclass
class ChecklistTemplate:
    """Root aggregate: sections, items and the expected-input registry.

    ``version`` is free text and never interpreted.
    """

    name: str
    description: str = ""
    version: str = "1.0.0"
    expected_inputs: list[ExpectedInput] = field(default_factory=list)
    sections: list[TemplateSection] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    created_at: str | None = None
    updated_at: str | None = None
    created_by: str | None = None

    def sorted_sections(self) -> list[TemplateSection]:
        return sorted(self.sections, key=lambda s: s.order)

    def iter_items(self) -> Iterator[TemplateItem]:
        """Yield every item in section order, then item order."""
        for section in self.sorted_sections():
            yield from section.sorted_items()

    def find_item(self, item_id: str) -> TemplateItem | None:
        for item in self.iter_items():
            if item.id == item_id:
                return item
        return None

    def find_input(self, key: str) -> ExpectedInput | None:
        for expected_input in self.expected_inputs:
            if expected_input.key == key:
                return expected_input
        return None

    def duplicate(self) -> "ChecklistTemplate":
        """Deep copy with fresh ids for the template, its sections and items."""
        copied = copy.deepcopy(self)
        copied.id = new_id()
        copied.name = f"{self.name} (Cópia)"
        copied.created_at = None
        copied.updated_at = None
        for section in copied.sections:
            section.id = new_id()
            for item in section.items:
                item.id = new_id()
        return copied

    def touch(self, user_id: str | None = None) -> None:
        now = datetime.now().astimezone().isoformat()
        if self.created_at is None:
            self.created_at = now
            self.created_by = self.created_by or user_id
        self.updated_at = now

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "expectedInputs": [i.to_dict() for i in self.expected_inputs],
            "sections": [s.to_dict() for s in self.sections],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "createdBy": self.created_by,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChecklistTemplate":
        return cls(
            id=data.get("id") or new_id(),
            name=data["name"],
            description=data.get("description", ""),
            version=data.get("version", "1.0.0"),
            expected_inputs=[
                ExpectedInput.from_dict(i) for i in data.get("expectedInputs", [])
            ],
            sections=[TemplateSection.from_dict(s) for s in data.get("sections", [])],
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
            created_by=data.get("createdBy"),
        )

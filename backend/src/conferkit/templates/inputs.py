"""Expected-input registry.

Declares the typed values a client must supply before evaluation and checks
that the declarations (and the item bindings that point at them) are sound.
"""

import re
from dataclasses import dataclass
from typing import Any, Iterable

from conferkit.templates.types import ExpectedInput, Scope, TemplateItem

KEY_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")


@dataclass
class ConfigurationIssue:
    """A single consistency finding for a template."""

    message: str
    code: str
    path: str = ""  # e.g. "sections[0].items[2].expected_input_binding"

    def __str__(self) -> str:
        loc = f"{self.path}: " if self.path else ""
        return f"{loc}{self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "code": self.code, "path": self.path}


def composite_key(key: str, store_id: str | None = None) -> str:
    """Key under which a conference stores an expected-input value.

    Global inputs use their own key; per-store inputs use ``f"{key}_{store_id}"``
    where ``store_id`` is the conference's Store.id.
    """
    if store_id is None:
        return key
    return f"{key}_{store_id}"


class ExpectedInputRegistry:
    """Lookup and validation over a template's expected inputs."""

    def __init__(self, inputs: Iterable[ExpectedInput]):
        self.inputs = list(inputs)
        self._by_key: dict[str, ExpectedInput] = {}
        for expected_input in self.inputs:
            self._by_key.setdefault(expected_input.key, expected_input)

    def get(self, key: str) -> ExpectedInput | None:
        return self._by_key.get(key)

    def keys(self) -> list[str]:
        return list(self._by_key)

    def __contains__(self, key: object) -> bool:
        return key in self._by_key

    def __len__(self) -> int:
        return len(self.inputs)

    def validate(self, items: Iterable[tuple[str, TemplateItem]] = ()) -> list[ConfigurationIssue]:
        """Validate input declarations and the bindings that reference them.

        Args:
            items: ``(path, item)`` pairs whose bindings should be resolved

        Returns:
            List of issues. Empty list means valid.
        """
        issues: list[ConfigurationIssue] = []
        seen: set[str] = set()

        for index, expected_input in enumerate(self.inputs):
            path = f"expected_inputs[{index}].key"
            if not KEY_PATTERN.match(expected_input.key or ""):
                issues.append(
                    ConfigurationIssue(
                        message=(
                            f"Invalid key '{expected_input.key}': must start with a "
                            "lowercase letter and contain only lowercase letters, "
                            "digits and underscores"
                        ),
                        code="INVALID_INPUT_KEY",
                        path=path,
                    )
                )
            if expected_input.key in seen:
                issues.append(
                    ConfigurationIssue(
                        message=f"Duplicate expected input key '{expected_input.key}'",
                        code="DUPLICATE_INPUT_KEY",
                        path=path,
                    )
                )
            seen.add(expected_input.key)

        for path, item in items:
            binding = item.expected_input_binding
            if binding and binding not in self._by_key:
                issues.append(
                    ConfigurationIssue(
                        message=f"Binding references unknown expected input '{binding}'",
                        code="UNKNOWN_BINDING",
                        path=f"{path}.expected_input_binding",
                    )
                )

        return issues

    def is_compatible(self, item: TemplateItem) -> bool:
        """Check that the item's binding scope fits the item's scope.

        A global item cannot bind a per-store input (there is no single value
        to compare against); a per-store item may bind either.
        """
        binding = self.get(item.expected_input_binding or "")
        if binding is None:
            return False
        if item.scope == Scope.GLOBAL:
            return binding.scope == Scope.GLOBAL
        return True

"""Error taxonomy for the ConferKit engine.

Four kinds are local to a single conference item and never cross item
boundaries (the item goes to ``fail`` and the message is kept on it):
- ConfigurationError: the template is internally inconsistent
- SubstitutionError: a placeholder has no resolvable value
- ExecutionError: the query executor reported a failure
- EvaluationError: the query result has the wrong shape for the rule

The remaining errors are raised by services to their callers (HTTP layer,
CLI) and describe misuse: unknown ids, invalid transitions, expired links.
"""

from typing import Any


class ConferenceError(Exception):
    """Base class for all ConferKit errors."""

    code = "CONFERENCE_ERROR"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "code": self.code}


# =============================================================================
# Item-local errors
# =============================================================================


class ConfigurationError(ConferenceError):
    """The template is internally inconsistent.

    Raised at save/import time and blocks persistence. Carries the list of
    issues found (see ``conferkit.templates.inputs.ConfigurationIssue``).
    """

    code = "INVALID_TEMPLATE"

    def __init__(self, message: str = "", issues: list[Any] | None = None):
        self.issues = list(issues or [])
        if not message:
            message = "; ".join(str(i) for i in self.issues) or "Invalid template"
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["issues"] = [
            i.to_dict() if hasattr(i, "to_dict") else str(i) for i in self.issues
        ]
        return result


class SubstitutionError(ConferenceError):
    """One or more placeholders in a query could not be resolved."""

    code = "UNRESOLVED_PLACEHOLDER"

    def __init__(self, unresolved: list[str]):
        self.unresolved = list(unresolved)
        names = ", ".join(f":{name}" for name in self.unresolved)
        super().__init__(f"Unresolved placeholder(s): {names}")

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["unresolved"] = self.unresolved
        return result


class ExecutionError(ConferenceError):
    """The query executor failed (connectivity, malformed query, timeout)."""

    code = "EXECUTION_FAILED"


class EvaluationError(ConferenceError):
    """The query result does not have the shape the rule requires."""

    code = "INVALID_RESULT"


# =============================================================================
# Caller errors
# =============================================================================


class NotFoundError(ConferenceError):
    code = "NOT_FOUND"


class TemplateNotFoundError(NotFoundError):
    code = "TEMPLATE_NOT_FOUND"


class ConferenceNotFoundError(NotFoundError):
    code = "CONFERENCE_NOT_FOUND"


class ConferenceItemNotFoundError(NotFoundError):
    code = "ITEM_NOT_FOUND"


class ConnectionNotFoundError(NotFoundError):
    code = "CONNECTION_NOT_FOUND"


class InvalidConnectionError(ConfigurationError):
    code = "INVALID_CONNECTION"


class ConnectionInUseError(ConferenceError):
    """A connection cannot be deleted while conferences still point at it."""

    code = "CONNECTION_IN_USE"


class InvalidTransitionError(ConferenceError):
    """The requested item transition is not allowed from its current status."""

    code = "INVALID_TRANSITION"


class WizardError(ConferenceError):
    """The wizard cannot move in the requested direction."""

    code = "WIZARD_ERROR"


class IncompleteInputsError(WizardError):
    """Required expected inputs are still empty."""

    code = "MISSING_EXPECTED_INPUTS"

    def __init__(self, missing: list[str]):
        self.missing = list(missing)
        super().__init__("Missing required expected input(s): " + ", ".join(self.missing))

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["missing"] = self.missing
        return result


class SectionIncompleteError(WizardError):
    """The current section still has unanswered items."""

    code = "SECTION_INCOMPLETE"


class LinkInvalidError(ConferenceError):
    """No conference is associated with the link token."""

    code = "LINK_INVALID"


class LinkExpiredError(ConferenceError):
    """The conference link has expired."""

    code = "LINK_EXPIRED"

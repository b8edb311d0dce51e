"""Wizard flow controller.

The client walks ``expected_inputs -> sections[0..n-1] -> summary``. From the
summary, ``review`` goes back to the first section. Navigation is strictly
sequential.

Leaving a section with unanswered items is allowed unless the policy says
otherwise; the completion flag is always reported in the WizardState.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from conferkit.conference.expansion import per_store_item_id
from conferkit.conference.types import (
    Conference,
    ConferenceItem,
    ExpectedInputValue,
    Progress,
    Store,
    UserResponse,
    WizardState,
    WizardStep,
    utcnow,
)
from conferkit.engine.errors import (
    IncompleteInputsError,
    SectionIncompleteError,
    WizardError,
)
from conferkit.templates.inputs import composite_key
from conferkit.templates.types import ChecklistTemplate, ExpectedInput, Scope, TemplateSection

logger = logging.getLogger(__name__)


@dataclass
class WizardPolicy:
    """Navigation policy.

    Attributes:
        enforce_section_completion: Refuse to leave a section that still has
            unanswered items
    """

    enforce_section_completion: bool = False


@dataclass
class InputSlot:
    """One value the client has to type: an input, for one store or globally."""

    expected_input: ExpectedInput
    store: Store | None
    key: str


# =============================================================================
# Expected inputs
# =============================================================================


def input_slots(template: ChecklistTemplate, stores: list[Store]) -> list[InputSlot]:
    """Expand the template's expected inputs into per-store slots."""
    slots: list[InputSlot] = []
    for expected_input in template.expected_inputs:
        if expected_input.scope == Scope.GLOBAL:
            slots.append(InputSlot(expected_input, None, composite_key(expected_input.key)))
        else:
            for store in stores:
                slots.append(
                    InputSlot(expected_input, store, composite_key(expected_input.key, store.id))
                )
    return slots


def required_input_slots(template: ChecklistTemplate, stores: list[Store]) -> list[InputSlot]:
    return [slot for slot in input_slots(template, stores) if slot.expected_input.required]


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def missing_inputs(conference: Conference) -> list[str]:
    """Composite keys of required inputs that have no value yet."""
    missing = []
    for slot in required_input_slots(conference.template, conference.stores):
        stored = conference.expected_input_values.get(slot.key)
        if stored is None or _is_blank(stored.value):
            missing.append(slot.key)
    return missing


def submit_expected_inputs(
    conference: Conference,
    values: dict[str, Any],
    now: datetime | None = None,
) -> Conference:
    """Store client-supplied expected values.

    Keys are composite keys (``key`` or ``f"{key}_{store.id}"``). Values are
    merged over the ones already stored.

    Raises:
        WizardError: If the wizard is past the expected-inputs step or a key
            is not part of the template's vocabulary
    """
    if conference.wizard.step != WizardStep.EXPECTED_INPUTS:
        raise WizardError("Expected inputs can only be changed on the expected inputs step")

    slots = {slot.key: slot for slot in input_slots(conference.template, conference.stores)}
    unknown = sorted(key for key in values if key not in slots)
    if unknown:
        raise WizardError("Unknown expected input(s): " + ", ".join(unknown))

    for key, value in values.items():
        slot = slots[key]
        if isinstance(value, str):
            value = value.strip()
        conference.expected_input_values[key] = ExpectedInputValue(
            value=value,
            store_id=slot.store.id if slot.store else None,
        )

    conference.updated_at = now or utcnow()
    return conference


# =============================================================================
# Sections and progress
# =============================================================================


def section_items(conference: Conference, section: TemplateSection) -> list[ConferenceItem]:
    """Runtime items of a section, in item order, expanded per store."""
    result: list[ConferenceItem] = []
    for template_item in section.sorted_items():
        if template_item.scope == Scope.GLOBAL:
            ids = [template_item.id]
        else:
            ids = [per_store_item_id(template_item.id, store.id) for store in conference.stores]
        for item_id in ids:
            item = conference.find_item(item_id)
            if item is not None:
                result.append(item)
    return result


def get_section(conference: Conference, index: int) -> TemplateSection:
    sections = conference.template.sorted_sections()
    if not 0 <= index < len(sections):
        raise WizardError(f"Section {index} does not exist")
    return sections[index]


def is_section_complete(conference: Conference, index: int) -> bool:
    """A section is complete when every expanded item has a user response."""
    return all(item.is_answered for item in section_items(conference, get_section(conference, index)))


def compute_progress(items: list[ConferenceItem]) -> Progress:
    total = len(items)
    completed = sum(1 for i in items if i.is_answered)
    correct = sum(1 for i in items if i.user_response == UserResponse.CORRECT)
    divergent = sum(1 for i in items if i.user_response == UserResponse.DIVERGENT)
    percentage = round(100 * completed / total) if total else 0
    return Progress(
        completed=completed,
        total=total,
        percentage=percentage,
        correct_count=correct,
        divergent_count=divergent,
    )


def wizard_state(conference: Conference) -> WizardState:
    """Current wizard position with the section completion flag filled in."""
    state = conference.wizard
    section_count = len(conference.template.sections)
    complete = None
    if state.step == WizardStep.SECTIONS:
        complete = is_section_complete(conference, state.section_index)
    return WizardState(
        step=state.step,
        section_index=state.section_index,
        section_count=section_count,
        section_complete=complete,
    )


# =============================================================================
# Navigation
# =============================================================================


def _move(conference: Conference, step: WizardStep, index: int = 0) -> WizardState:
    # Only the position is stored; completion is recomputed on every read.
    conference.wizard = WizardState(
        step=step, section_index=index, section_count=len(conference.template.sections)
    )
    conference.updated_at = utcnow()
    state = wizard_state(conference)
    logger.info("Conference %s wizard moved to %s[%d]", conference.id, step.value, index)
    return state


def advance(conference: Conference, policy: WizardPolicy | None = None) -> WizardState:
    """Move one step forward.

    Raises:
        IncompleteInputsError: Required expected inputs are empty
        SectionIncompleteError: The policy enforces completion and the
            current section has unanswered items
        WizardError: Already at the summary
    """
    policy = policy or WizardPolicy()
    state = conference.wizard
    section_count = len(conference.template.sections)

    if state.step == WizardStep.EXPECTED_INPUTS:
        missing = missing_inputs(conference)
        if missing:
            raise IncompleteInputsError(missing)
        if section_count == 0:
            return _move(conference, WizardStep.SUMMARY)
        return _move(conference, WizardStep.SECTIONS, 0)

    if state.step == WizardStep.SECTIONS:
        if policy.enforce_section_completion and not is_section_complete(conference, state.section_index):
            raise SectionIncompleteError(
                f"Section {state.section_index + 1} of {section_count} has unanswered items"
            )
        if state.section_index < section_count - 1:
            return _move(conference, WizardStep.SECTIONS, state.section_index + 1)
        return _move(conference, WizardStep.SUMMARY)

    raise WizardError("The conference is already at the summary; use review to go back")


def retreat(conference: Conference) -> WizardState:
    """Move one step back.

    Raises:
        WizardError: Already at the expected inputs step
    """
    state = conference.wizard
    section_count = len(conference.template.sections)

    if state.step == WizardStep.SECTIONS:
        if state.section_index > 0:
            return _move(conference, WizardStep.SECTIONS, state.section_index - 1)
        return _move(conference, WizardStep.EXPECTED_INPUTS)

    if state.step == WizardStep.SUMMARY:
        if section_count == 0:
            return _move(conference, WizardStep.EXPECTED_INPUTS)
        return _move(conference, WizardStep.SECTIONS, section_count - 1)

    raise WizardError("Already at the first step")


def review(conference: Conference) -> WizardState:
    """Go from the summary back to the first section.

    Raises:
        WizardError: If the wizard is not at the summary or there are no sections
    """
    if conference.wizard.step != WizardStep.SUMMARY:
        raise WizardError("Review is only available from the summary")
    if not conference.template.sections:
        raise WizardError("The template has no sections to review")
    return _move(conference, WizardStep.SECTIONS, 0)

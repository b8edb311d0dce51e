"""Conference item state machine.

Transitions:
- pending | fail  --execute-->  auto_ok | warn | fail
- auto_ok         --auto_resolve-->  correct (no client action)
- auto_ok | warn  --respond-->  correct | divergent
- fail does not accept responses; it can only be re-executed.

Items whose ``user_response`` is set (answered or auto-resolved) are final
for the wizard's completion gating.
"""

from datetime import datetime
from typing import Any

from conferkit.conference.types import (
    ConferenceItem,
    ConferenceStatus,
    ItemStatus,
    UserResponse,
    utcnow,
)
from conferkit.engine.errors import InvalidTransitionError
from conferkit.engine.rules import RuleOutcome, Verdict

EXECUTABLE_STATUSES = (ItemStatus.PENDING, ItemStatus.FAIL)
RESPONDABLE_STATUSES = (ItemStatus.AUTO_OK, ItemStatus.WARN)

_VERDICT_STATUS = {
    Verdict.AUTO_OK: ItemStatus.AUTO_OK,
    Verdict.WARN: ItemStatus.WARN,
    Verdict.FAIL: ItemStatus.FAIL,
}


def can_execute(item: ConferenceItem) -> bool:
    return item.status in EXECUTABLE_STATUSES


def can_respond(item: ConferenceItem) -> bool:
    return item.status in RESPONDABLE_STATUSES and item.user_response is None


def check_executable(item: ConferenceItem) -> None:
    if not can_execute(item):
        raise InvalidTransitionError(
            f"Item '{item.id}' is '{item.status.value}'; only pending or failed items can be executed"
        )


def record_execution(
    item: ConferenceItem,
    outcome: RuleOutcome,
    *,
    auto_resolve: bool,
    query: str | None = None,
    query_result: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> ConferenceItem:
    """Apply the verdict of an execution to an item.

    Re-executing a failed item overwrites its previous result.

    Raises:
        InvalidTransitionError: If the item is not pending or failed
    """
    check_executable(item)
    now = now or utcnow()

    item.status = _VERDICT_STATUS[outcome.verdict]
    item.query = query
    item.query_result = query_result
    item.executed_at = now
    item.verdict_message = outcome.message or None
    item.error = outcome.message if outcome.verdict == Verdict.FAIL else None
    item.user_response = None
    item.responded_by = None
    item.responded_at = None
    item.auto_resolved = False

    if item.status == ItemStatus.AUTO_OK and auto_resolve:
        item.status = ItemStatus.CORRECT
        item.user_response = UserResponse.CORRECT
        item.responded_at = now
        item.auto_resolved = True

    return item


def record_failure(
    item: ConferenceItem,
    message: str,
    *,
    query: str | None = None,
    now: datetime | None = None,
) -> ConferenceItem:
    """Mark an item as failed before a verdict could be reached.

    Raises:
        InvalidTransitionError: If the item is not pending or failed
    """
    return record_execution(
        item,
        RuleOutcome(Verdict.FAIL, message=message),
        auto_resolve=False,
        query=query,
        now=now,
    )


def respond(
    item: ConferenceItem,
    response: UserResponse,
    *,
    observation: str | None = None,
    responded_by: str | None = None,
    now: datetime | None = None,
) -> ConferenceItem:
    """Record the client's confirmation or dispute.

    Raises:
        InvalidTransitionError: If the item is pending, failed or already answered
    """
    if not can_respond(item):
        if item.status == ItemStatus.FAIL:
            reason = "failed items must be re-executed first"
        elif item.status == ItemStatus.PENDING:
            reason = "the item has not been executed yet"
        else:
            reason = "the item has already been answered"
        raise InvalidTransitionError(f"Cannot respond to item '{item.id}': {reason}")

    response = UserResponse(response)
    item.user_response = response
    item.status = ItemStatus(response.value)
    item.observation = observation or None
    item.responded_by = responded_by
    item.responded_at = now or utcnow()
    return item


def derive_conference_status(items: list[ConferenceItem]) -> ConferenceStatus:
    """Summarize item statuses into a conference status."""
    if not items:
        return ConferenceStatus.PENDING
    if all(item.is_answered for item in items):
        if any(item.user_response == UserResponse.DIVERGENT for item in items):
            return ConferenceStatus.DIVERGENT
        return ConferenceStatus.COMPLETED
    if all(item.status == ItemStatus.PENDING for item in items):
        return ConferenceStatus.PENDING
    return ConferenceStatus.IN_PROGRESS

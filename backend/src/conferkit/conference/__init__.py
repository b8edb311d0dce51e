"""Conferences: template instances run against a client's stores.

Usage:
    from conferkit.conference import ConferenceService

    service = ConferenceService(repository, executor)
    conference = service.create_conference(template_id, stores, name="Jan/2025")
    item = await service.evaluate_item(conference.id, template_item_id)
"""

from conferkit.conference.expansion import create_conference, expand_template
from conferkit.conference.service import ConferenceService, ConnectionService, TemplateService
from conferkit.conference.types import (
    Conference,
    ConferenceItem,
    ConferenceStatus,
    ExpectedInputValue,
    ItemStatus,
    Progress,
    Store,
    UserResponse,
    WizardState,
    WizardStep,
)
from conferkit.conference.wizard import WizardPolicy, compute_progress

__all__ = [
    # Types
    "Conference",
    "ConferenceItem",
    "ConferenceStatus",
    "ExpectedInputValue",
    "ItemStatus",
    "Progress",
    "Store",
    "UserResponse",
    "WizardState",
    "WizardStep",
    # Operations
    "WizardPolicy",
    "compute_progress",
    "create_conference",
    "expand_template",
    # Services
    "ConferenceService",
    "ConnectionService",
    "TemplateService",
]

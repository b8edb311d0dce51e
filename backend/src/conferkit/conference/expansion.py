"""Conference creation: template snapshot and per-store item expansion."""

import copy
import logging
import secrets
from datetime import date, datetime, timedelta

from conferkit.conference.types import Conference, ConferenceItem, Store, utcnow
from conferkit.engine.errors import ConfigurationError
from conferkit.templates.inputs import ConfigurationIssue
from conferkit.templates.types import ChecklistTemplate, Scope, TemplateItem
from conferkit.templates.validation import ensure_valid_template

logger = logging.getLogger(__name__)

DEFAULT_LINK_DAYS = 7


def per_store_item_id(template_item_id: str, store_id: str) -> str:
    return f"{template_item_id}_{store_id}"


def expand_item(template_item: TemplateItem, stores: list[Store]) -> list[ConferenceItem]:
    """Create the runtime instances of one template item.

    Global items yield a single instance whose id is the template item id.
    Per-store items yield one instance per store, with a deterministic id so
    the same item can be found again for a given store.
    """
    if template_item.scope == Scope.GLOBAL:
        return [ConferenceItem(id=template_item.id, template_item_id=template_item.id)]
    return [
        ConferenceItem(
            id=per_store_item_id(template_item.id, store.id),
            template_item_id=template_item.id,
            store_id=store.id,
        )
        for store in stores
    ]


def expand_template(template: ChecklistTemplate, stores: list[Store]) -> list[ConferenceItem]:
    items: list[ConferenceItem] = []
    for template_item in template.iter_items():
        items.extend(expand_item(template_item, stores))
    return items


def _check_stores(stores: list[Store]) -> None:
    issues = []
    if not stores:
        issues.append(
            ConfigurationIssue(message="At least one store is required", code="NO_STORES", path="stores")
        )
    seen: set[str] = set()
    for index, store in enumerate(stores):
        if not (store.name or "").strip():
            issues.append(
                ConfigurationIssue(
                    message="Store name is required", code="MISSING_STORE_NAME", path=f"stores[{index}].name"
                )
            )
        if not (store.store_id or "").strip():
            issues.append(
                ConfigurationIssue(
                    message="Store id is required", code="MISSING_STORE_ID", path=f"stores[{index}].storeId"
                )
            )
        if store.id in seen:
            issues.append(
                ConfigurationIssue(
                    message=f"Duplicate store '{store.id}'", code="DUPLICATE_STORE", path=f"stores[{index}].id"
                )
            )
        seen.add(store.id)
    if issues:
        raise ConfigurationError(issues=issues)


def new_link_token() -> str:
    return secrets.token_urlsafe(24)


def create_conference(
    template: ChecklistTemplate,
    stores: list[Store],
    *,
    name: str,
    client_name: str = "",
    client_email: str = "",
    connection_id: str | None = None,
    period_start: date | None = None,
    period_end: date | None = None,
    link_expires_in_days: int = DEFAULT_LINK_DAYS,
    created_by: str | None = None,
    now: datetime | None = None,
) -> Conference:
    """Instantiate a template against a set of stores.

    The template is copied into the conference, and every item starts
    ``pending``.

    Raises:
        ConfigurationError: If the template is inconsistent or the store list
            is empty or has duplicates
    """
    ensure_valid_template(template)
    _check_stores(stores)

    now = now or utcnow()
    snapshot = copy.deepcopy(template)
    conference_stores = [copy.copy(store) for store in stores]

    conference = Conference(
        name=name,
        template=snapshot,
        stores=conference_stores,
        client_name=client_name,
        client_email=client_email,
        connection_id=connection_id,
        items=expand_template(snapshot, conference_stores),
        link_token=new_link_token(),
        link_expires_at=now + timedelta(days=link_expires_in_days),
        period_start=period_start,
        period_end=period_end,
        created_at=now,
        updated_at=now,
        created_by=created_by,
    )
    conference.wizard.section_count = len(snapshot.sections)

    logger.info(
        "Created conference %s from template %s (%d item(s), %d store(s))",
        conference.id,
        template.id,
        len(conference.items),
        len(conference_stores),
    )
    return conference


def regenerate_link(
    conference: Conference,
    link_expires_in_days: int = DEFAULT_LINK_DAYS,
    now: datetime | None = None,
) -> Conference:
    """Issue a fresh link token with a new expiry date."""
    now = now or utcnow()
    conference.link_token = new_link_token()
    conference.link_expires_at = now + timedelta(days=link_expires_in_days)
    conference.updated_at = now
    return conference

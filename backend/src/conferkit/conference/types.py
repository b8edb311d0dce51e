"""Conference runtime types.

A conference instantiates a template against a set of stores. Every template
item expands to one ConferenceItem (global scope) or one per store
(per_store scope); each item then walks its own status lifecycle:

    pending --execute--> auto_ok | warn | fail
    auto_ok --(auto_resolve)--> correct
    auto_ok | warn --client--> correct | divergent
    fail --re-execute--> auto_ok | warn | fail
"""

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any

from conferkit.templates.types import ChecklistTemplate, new_id


def utcnow() -> datetime:
    return datetime.now(UTC)


def _iso(value: datetime | date | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _parse_date(value: str | None) -> date | None:
    return date.fromisoformat(value) if value else None


class ItemStatus(str, Enum):
    PENDING = "pending"
    AUTO_OK = "auto_ok"
    WARN = "warn"
    FAIL = "fail"
    CORRECT = "correct"
    DIVERGENT = "divergent"


class UserResponse(str, Enum):
    CORRECT = "correct"
    DIVERGENT = "divergent"


class ConferenceStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DIVERGENT = "divergent"


class WizardStep(str, Enum):
    EXPECTED_INPUTS = "expected_inputs"
    SECTIONS = "sections"
    SUMMARY = "summary"


@dataclass
class Store:
    """A business unit the conference is run against.

    Attributes:
        id: Conference-local identifier (used in composite keys and item ids)
        name: Display name
        store_id: Business key substituted for ``:store_id`` in queries
    """

    id: str
    name: str
    store_id: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "storeId": self.store_id}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Store":
        return cls(id=str(data["id"]), name=data.get("name", ""), store_id=str(data["storeId"]))


@dataclass
class ExpectedInputValue:
    value: Any
    store_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"value": self.value, "storeId": self.store_id}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExpectedInputValue":
        return cls(value=data.get("value"), store_id=data.get("storeId"))


@dataclass
class ConferenceItem:
    """Runtime instance of a template item for one store (or the only one).

    Attributes:
        id: ``template_item_id`` for global items, ``f"{template_item_id}_{store.id}"``
            for per-store items
        template_item_id: The template item this instance comes from
        store_id: Store.id for per-store items, None for global items
        status: Current lifecycle status
        query: The concrete query last executed
        query_result: Rows returned by the last execution
        user_response: correct/divergent once answered (or auto-resolved)
        observation: Optional free text from the client
        responded_by: Who answered; None when auto-resolved
        error: Failure message when status is fail
        auto_resolved: True when the engine answered on the client's behalf
    """

    id: str
    template_item_id: str
    store_id: str | None = None
    status: ItemStatus = ItemStatus.PENDING
    query: str | None = None
    query_result: dict[str, Any] | None = None
    verdict_message: str | None = None
    user_response: UserResponse | None = None
    observation: str | None = None
    responded_by: str | None = None
    responded_at: datetime | None = None
    executed_at: datetime | None = None
    error: str | None = None
    auto_resolved: bool = False

    @property
    def is_answered(self) -> bool:
        return self.user_response is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "templateItemId": self.template_item_id,
            "storeId": self.store_id,
            "status": self.status.value,
            "query": self.query,
            "queryResult": self.query_result,
            "verdictMessage": self.verdict_message,
            "userResponse": self.user_response.value if self.user_response else None,
            "observation": self.observation,
            "respondedBy": self.responded_by,
            "respondedAt": _iso(self.responded_at),
            "executedAt": _iso(self.executed_at),
            "error": self.error,
            "autoResolved": self.auto_resolved,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConferenceItem":
        response = data.get("userResponse")
        return cls(
            id=data["id"],
            template_item_id=data["templateItemId"],
            store_id=data.get("storeId"),
            status=ItemStatus(data.get("status", "pending")),
            query=data.get("query"),
            query_result=data.get("queryResult"),
            verdict_message=data.get("verdictMessage"),
            user_response=UserResponse(response) if response else None,
            observation=data.get("observation"),
            responded_by=data.get("respondedBy"),
            responded_at=_parse_datetime(data.get("respondedAt")),
            executed_at=_parse_datetime(data.get("executedAt")),
            error=data.get("error"),
            auto_resolved=bool(data.get("autoResolved", False)),
        )


@dataclass
class WizardState:
    """Where the client is in the wizard.

    ``section_complete`` is only meaningful on the sections step; it is
    exposed so callers can decide whether to let the client move on. It is
    derived from the items on read and never stored with the conference.
    """

    step: WizardStep = WizardStep.EXPECTED_INPUTS
    section_index: int = 0
    section_count: int = 0
    section_complete: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.step.value,
            "sectionIndex": self.section_index,
            "sectionCount": self.section_count,
            "sectionComplete": self.section_complete,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WizardState":
        return cls(
            step=WizardStep(data.get("step", "expected_inputs")),
            section_index=int(data.get("sectionIndex", 0)),
            section_count=int(data.get("sectionCount", 0)),
            section_complete=data.get("sectionComplete"),
        )


@dataclass
class Progress:
    completed: int = 0
    total: int = 0
    percentage: int = 0
    correct_count: int = 0
    divergent_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "completed": self.completed,
            "total": self.total,
            "percentage": self.percentage,
            "correctCount": self.correct_count,
            "divergentCount": self.divergent_count,
        }


@dataclass
class Conference:
    """One instantiation of a template for a client and a set of stores.

    ``template`` is a snapshot taken at creation time; later edits to the
    stored template never reach a running conference.
    """

    name: str
    template: ChecklistTemplate
    stores: list[Store]
    client_name: str = ""
    client_email: str = ""
    connection_id: str | None = None
    items: list[ConferenceItem] = field(default_factory=list)
    expected_input_values: dict[str, ExpectedInputValue] = field(default_factory=dict)
    status: ConferenceStatus = ConferenceStatus.PENDING
    wizard: WizardState = field(default_factory=WizardState)
    link_token: str = ""
    link_expires_at: datetime | None = None
    period_start: date | None = None
    period_end: date | None = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    created_by: str | None = None
    completed_at: datetime | None = None

    @property
    def template_id(self) -> str:
        return self.template.id

    def find_item(self, item_id: str) -> ConferenceItem | None:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def find_store(self, store_id: str) -> Store | None:
        for store in self.stores:
            if store.id == store_id:
                return store
        return None

    def is_link_expired(self, now: datetime | None = None) -> bool:
        if self.link_expires_at is None:
            return False
        return self.link_expires_at < (now or utcnow())

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "clientName": self.client_name,
            "clientEmail": self.client_email,
            "connectionId": self.connection_id,
            "templateId": self.template_id,
            "template": self.template.to_dict(),
            "stores": [s.to_dict() for s in self.stores],
            "expectedInputValues": {
                key: value.to_dict() for key, value in self.expected_input_values.items()
            },
            "items": [i.to_dict() for i in self.items],
            "status": self.status.value,
            "wizard": self.wizard.to_dict(),
            "linkToken": self.link_token,
            "linkExpiresAt": _iso(self.link_expires_at),
            "periodStart": _iso(self.period_start),
            "periodEnd": _iso(self.period_end),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
            "createdBy": self.created_by,
            "completedAt": _iso(self.completed_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Conference":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            client_name=data.get("clientName", ""),
            client_email=data.get("clientEmail", ""),
            connection_id=data.get("connectionId"),
            template=ChecklistTemplate.from_dict(data["template"]),
            stores=[Store.from_dict(s) for s in data.get("stores", [])],
            expected_input_values={
                key: ExpectedInputValue.from_dict(value)
                for key, value in data.get("expectedInputValues", {}).items()
            },
            items=[ConferenceItem.from_dict(i) for i in data.get("items", [])],
            status=ConferenceStatus(data.get("status", "pending")),
            wizard=WizardState.from_dict({**data.get("wizard", {}), "sectionComplete": None}),
            link_token=data.get("linkToken", ""),
            link_expires_at=_parse_datetime(data.get("linkExpiresAt")),
            period_start=_parse_date(data.get("periodStart")),
            period_end=_parse_date(data.get("periodEnd")),
            created_at=_parse_datetime(data.get("createdAt")) or utcnow(),
            updated_at=_parse_datetime(data.get("updatedAt")) or utcnow(),
            created_by=data.get("createdBy"),
            completed_at=_parse_datetime(data.get("completedAt")),
        )

"""Conference and template services.

These are the operations the presentation layer (HTTP API, CLI) calls. They
load aggregates from a Repository, apply the engine, and save them back.
Each conference runs its queries on its own connection when it has one.

Item-level problems (unresolved placeholders, executor failures, results of
the wrong shape) never escape ``evaluate_item``; they are recorded on the
item, which goes to ``fail``. Caller mistakes (unknown ids, invalid
transitions, expired links) are raised.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from conferkit.conference import state, wizard
from conferkit.conference.expansion import (
    DEFAULT_LINK_DAYS,
    create_conference,
    per_store_item_id,
    regenerate_link,
)
from conferkit.conference.types import (
    Conference,
    ConferenceItem,
    ConferenceStatus,
    Progress,
    Store,
    UserResponse,
    WizardState,
    utcnow,
)
from conferkit.conference.wizard import WizardPolicy
from conferkit.engine import rules
from conferkit.engine.errors import (
    ConferenceItemNotFoundError,
    ConferenceNotFoundError,
    ConnectionInUseError,
    ConnectionNotFoundError,
    ExecutionError,
    InvalidConnectionError,
    LinkExpiredError,
    LinkInvalidError,
    SubstitutionError,
    TemplateNotFoundError,
)
from conferkit.engine.substitution import (
    build_item_context,
    resolve_query,
    substitute_preview,
)
from conferkit.executors.connections import (
    ConnectionCheck,
    ConnectionStatus,
    DataConnection,
    ExecutorPool,
    validate_connection,
)
from conferkit.executors.sql import SQLAlchemyQueryExecutor
from conferkit.executors.types import QueryExecutor
from conferkit.templates.document import export_template, import_template
from conferkit.templates.inputs import composite_key
from conferkit.templates.types import (
    ChecklistTemplate,
    ExpectedInput,
    Scope,
    TemplateItem,
)
from conferkit.templates.validation import ensure_valid_template

if TYPE_CHECKING:
    from conferkit.persistence.adapter import Repository

logger = logging.getLogger(__name__)

_FINISHED = (ConferenceStatus.COMPLETED, ConferenceStatus.DIVERGENT)


class TemplateService:
    """Template catalogue operations."""

    def __init__(self, repository: Repository):
        self.repository = repository

    def get_template(self, template_id: str) -> ChecklistTemplate:
        template = self.repository.get_template(template_id)
        if template is None:
            raise TemplateNotFoundError(f"Template '{template_id}' not found")
        return template

    def list_templates(self) -> list[ChecklistTemplate]:
        return self.repository.list_templates()

    def save_template(self, template: ChecklistTemplate, user_id: str | None = None) -> ChecklistTemplate:
        """Validate and persist a template.

        Raises:
            ConfigurationError: If the template is inconsistent; nothing is saved
        """
        ensure_valid_template(template)
        template.touch(user_id)
        saved = self.repository.save_template(template)
        logger.info("Saved template %s (%s)", saved.id, saved.name)
        return saved

    def import_template(self, source: str | dict[str, Any], user_id: str | None = None) -> ChecklistTemplate:
        return self.save_template(import_template(source), user_id)

    def export_template(self, template_id: str) -> dict[str, Any]:
        return export_template(self.get_template(template_id))

    def duplicate_template(self, template_id: str, user_id: str | None = None) -> ChecklistTemplate:
        return self.save_template(self.get_template(template_id).duplicate(), user_id)

    def delete_template(self, template_id: str) -> None:
        if not self.repository.delete_template(template_id):
            raise TemplateNotFoundError(f"Template '{template_id}' not found")
        logger.info("Deleted template %s", template_id)


class ConferenceService:
    """Conference lifecycle: creation, evaluation, client answers, wizard."""

    def __init__(
        self,
        repository: Repository,
        executor: QueryExecutor | None = None,
        policy: WizardPolicy | None = None,
        link_expires_in_days: int = DEFAULT_LINK_DAYS,
        executors: ExecutorPool | None = None,
    ):
        """Initialize the service.

        Args:
            repository: Storage for templates, conferences and connections
            executor: Runs the queries of conferences without a connection
            policy: Wizard navigation policy
            link_expires_in_days: Lifetime of client links
            executors: Per-connection executors for conferences that have a
                ``connection_id``
        """
        self.repository = repository
        self.executor = executor
        self.policy = policy or WizardPolicy()
        self.link_expires_in_days = link_expires_in_days
        self.executors = executors or ExecutorPool(SQLAlchemyQueryExecutor)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _load(self, conference_id: str) -> Conference:
        conference = self.repository.get_conference(conference_id)
        if conference is None:
            raise ConferenceNotFoundError(f"Conference '{conference_id}' not found")
        return conference

    def _save(self, conference: Conference, now: datetime | None = None) -> Conference:
        now = now or utcnow()
        conference.status = state.derive_conference_status(conference.items)
        if conference.status in _FINISHED:
            conference.completed_at = conference.completed_at or now
        else:
            conference.completed_at = None
        conference.updated_at = now
        return self.repository.save_conference(conference)

    @staticmethod
    def _get_item(conference: Conference, item_id: str) -> ConferenceItem:
        item = conference.find_item(item_id)
        if item is None:
            raise ConferenceItemNotFoundError(
                f"Item '{item_id}' not found in conference '{conference.id}'"
            )
        return item

    @staticmethod
    def _expected_value(
        conference: Conference,
        template_item: TemplateItem,
        store: Store | None,
    ) -> Any:
        binding = template_item.expected_input_binding
        if not binding:
            return None
        expected_input: ExpectedInput | None = conference.template.find_input(binding)
        if expected_input is None:
            return None
        if expected_input.scope == Scope.PER_STORE:
            if store is None:
                return None
            key = composite_key(binding, store.id)
        else:
            key = composite_key(binding)
        stored = conference.expected_input_values.get(key)
        if stored is None or stored.value in (None, ""):
            return None
        return stored.value

    def _executor_for(self, conference: Conference) -> QueryExecutor:
        """Executor of the conference's connection, or the default one.

        Raises:
            ExecutionError: The connection is gone, or there is nothing to run on
        """
        if conference.connection_id:
            connection = self.repository.get_connection(conference.connection_id)
            if connection is None:
                raise ExecutionError(f"Connection '{conference.connection_id}' not found")
            return self.executors.get(connection)
        if self.executor is None:
            raise ExecutionError("No data source is configured for this conference")
        return self.executor

    def _commit_items(self, conference_id: str, evaluated: list[ConferenceItem]) -> Conference:
        """Write evaluated items onto a freshly loaded conference and save it.

        The executor is awaited between load and save, so other requests may
        have saved the conference meanwhile. Only the evaluated items are
        replaced; an item that a concurrent call already executed keeps that
        result.
        """
        conference = self._load(conference_id)
        positions = {item.id: index for index, item in enumerate(conference.items)}
        for item in evaluated:
            index = positions.get(item.id)
            if index is None or not state.can_execute(conference.items[index]):
                continue
            conference.items[index] = item
        return self._save(conference)

    async def _run_item(self, conference: Conference, item: ConferenceItem) -> ConferenceItem:
        """Execute and judge one item in place. Only touches ``item``."""
        state.check_executable(item)
        template_item = conference.template.find_item(item.template_item_id)
        if template_item is None:
            raise ConferenceItemNotFoundError(
                f"Template item '{item.template_item_id}' not found in conference '{conference.id}'"
            )
        store = conference.find_store(item.store_id) if item.store_id else None

        try:
            query = resolve_query(
                template_item.query, build_item_context(conference, template_item, store)
            )
        except SubstitutionError as exc:
            logger.warning("Item %s of conference %s: %s", item.id, conference.id, exc.message)
            return state.record_failure(item, exc.message)

        try:
            executor = self._executor_for(conference)
            result = await executor.execute(query)
        except ExecutionError as exc:
            logger.warning("Item %s of conference %s failed to execute: %s", item.id, conference.id, exc.message)
            return state.record_failure(item, exc.message, query=query)
        except Exception as exc:
            logger.warning("Item %s of conference %s: executor raised %r", item.id, conference.id, exc)
            return state.record_failure(item, f"Query execution failed: {exc}", query=query)

        outcome = rules.evaluate_rows(
            template_item.validation_rule,
            result.rows,
            self._expected_value(conference, template_item, store),
        )
        if outcome.verdict == rules.Verdict.FAIL:
            logger.warning("Item %s of conference %s: %s", item.id, conference.id, outcome.message)

        return state.record_execution(
            item,
            outcome,
            auto_resolve=template_item.auto_resolve,
            query=query,
            query_result=result.to_dict(),
        )

    # ------------------------------------------------------------------
    # Conferences
    # ------------------------------------------------------------------

    def substitute_preview(
        self,
        query: str,
        sample_context: dict[str, Any] | None = None,
        expected_inputs: list[ExpectedInput] | tuple = (),
    ) -> str:
        return substitute_preview(query, sample_context, expected_inputs)

    def create_conference(
        self,
        template_id: str,
        stores: list[Store],
        *,
        name: str,
        client_name: str = "",
        client_email: str = "",
        connection_id: str | None = None,
        period_start: date | None = None,
        period_end: date | None = None,
        created_by: str | None = None,
    ) -> Conference:
        template = self.repository.get_template(template_id)
        if template is None:
            raise TemplateNotFoundError(f"Template '{template_id}' not found")
        if connection_id and self.repository.get_connection(connection_id) is None:
            raise ConnectionNotFoundError(f"Connection '{connection_id}' not found")
        conference = create_conference(
            template,
            stores,
            name=name,
            client_name=client_name,
            client_email=client_email,
            connection_id=connection_id,
            period_start=period_start,
            period_end=period_end,
            link_expires_in_days=self.link_expires_in_days,
            created_by=created_by,
        )
        return self.repository.save_conference(conference)

    def get_conference(self, conference_id: str) -> Conference:
        return self._load(conference_id)

    def list_conferences(
        self, template_id: str | None = None, connection_id: str | None = None
    ) -> list[Conference]:
        return self.repository.list_conferences(template_id, connection_id)

    def delete_conference(self, conference_id: str) -> None:
        if not self.repository.delete_conference(conference_id):
            raise ConferenceNotFoundError(f"Conference '{conference_id}' not found")

    def open_conference(self, token: str, now: datetime | None = None) -> Conference:
        """Resolve a client link.

        Raises:
            LinkInvalidError: No conference has this token
            LinkExpiredError: The link is past its expiry date
        """
        conference = self.repository.get_conference_by_token(token) if token else None
        if conference is None:
            raise LinkInvalidError("Invalid conference link")
        if conference.is_link_expired(now):
            raise LinkExpiredError("This conference link has expired")
        return conference

    def regenerate_link(self, conference_id: str) -> Conference:
        conference = regenerate_link(self._load(conference_id), self.link_expires_in_days)
        return self.repository.save_conference(conference)

    async def evaluate_item(
        self,
        conference_id: str,
        template_item_id: str,
        store_id: str | None = None,
    ) -> ConferenceItem:
        """Substitute, execute and judge one item, then persist the conference.

        Args:
            conference_id: Conference to work on
            template_item_id: Item of the conference's template snapshot
            store_id: ``Store.id`` of the target store; required for per-store items

        Raises:
            ConferenceNotFoundError: Unknown conference
            ConferenceItemNotFoundError: Unknown item, or per-store item without a store
            InvalidTransitionError: The item is neither pending nor failed
        """
        conference = self._load(conference_id)
        template_item = conference.template.find_item(template_item_id)
        if template_item is None:
            raise ConferenceItemNotFoundError(
                f"Template item '{template_item_id}' not found in conference '{conference_id}'"
            )
        if template_item.scope == Scope.PER_STORE:
            if store_id is None:
                raise ConferenceItemNotFoundError(
                    f"Item '{template_item.key}' is per store; a store id is required"
                )
            item_id = per_store_item_id(template_item.id, store_id)
        else:
            item_id = template_item.id

        item = self._get_item(conference, item_id)
        await self._run_item(conference, item)
        saved = self._commit_items(conference_id, [item])
        return self._get_item(saved, item_id)

    async def evaluate_section(
        self,
        conference_id: str,
        section_index: int | None = None,
    ) -> list[ConferenceItem]:
        """Evaluate every pending or failed item of a section concurrently.

        ``section_index`` defaults to the wizard's current section.
        """
        conference = self._load(conference_id)
        if section_index is None:
            section_index = conference.wizard.section_index
        section = wizard.get_section(conference, section_index)
        items = wizard.section_items(conference, section)
        runnable = [item for item in items if state.can_execute(item)]

        await asyncio.gather(*(self._run_item(conference, item) for item in runnable))
        logger.info(
            "Evaluated %d item(s) of section %d in conference %s",
            len(runnable),
            section_index,
            conference_id,
        )

        saved = self._commit_items(conference_id, runnable)
        return wizard.section_items(saved, section)

    def respond_to_item(
        self,
        conference_id: str,
        item_id: str,
        response: UserResponse | str,
        observation: str | None = None,
        responded_by: str | None = None,
    ) -> ConferenceItem:
        conference = self._load(conference_id)
        item = self._get_item(conference, item_id)
        state.respond(
            item,
            UserResponse(response),
            observation=observation,
            responded_by=responded_by or conference.client_name or None,
        )
        saved = self._save(conference)
        return self._get_item(saved, item_id)

    # ------------------------------------------------------------------
    # Wizard
    # ------------------------------------------------------------------

    def submit_expected_inputs(self, conference_id: str, values: dict[str, Any]) -> Conference:
        conference = wizard.submit_expected_inputs(self._load(conference_id), values)
        return self._save(conference)

    def advance_wizard(self, conference_id: str, values: dict[str, Any] | None = None) -> WizardState:
        """Move forward, optionally storing expected inputs first.

        Submitted values are kept even when the move itself is refused.
        """
        conference = self._load(conference_id)
        if values:
            wizard.submit_expected_inputs(conference, values)
            conference = self._save(conference)
        new_state = wizard.advance(conference, self.policy)
        self._save(conference)
        return new_state

    def retreat_wizard(self, conference_id: str) -> WizardState:
        conference = self._load(conference_id)
        new_state = wizard.retreat(conference)
        self._save(conference)
        return new_state

    def review_wizard(self, conference_id: str) -> WizardState:
        conference = self._load(conference_id)
        new_state = wizard.review(conference)
        self._save(conference)
        return new_state

    def get_wizard_state(self, conference_id: str) -> WizardState:
        return wizard.wizard_state(self._load(conference_id))

    def get_progress(self, conference_id: str) -> Progress:
        return wizard.compute_progress(self._load(conference_id).items)


class ConnectionService:
    """Data-source connections that conferences run their queries on."""

    CHECK_QUERY = "SELECT 1"

    def __init__(self, repository: Repository, executors: ExecutorPool):
        self.repository = repository
        self.executors = executors

    def list_connections(self) -> list[DataConnection]:
        return self.repository.list_connections()

    def get_connection(self, connection_id: str) -> DataConnection:
        connection = self.repository.get_connection(connection_id)
        if connection is None:
            raise ConnectionNotFoundError(f"Connection '{connection_id}' not found")
        return connection

    def save_connection(self, connection: DataConnection, user_id: str | None = None) -> DataConnection:
        """Validate and persist a connection.

        Raises:
            InvalidConnectionError: Missing name or unparseable URL; nothing is saved
        """
        issues = validate_connection(connection)
        if issues:
            raise InvalidConnectionError(issues=issues)

        now = utcnow()
        existing = self.repository.get_connection(connection.id)
        if existing is None:
            connection.created_at = connection.created_at or now
            connection.created_by = connection.created_by or user_id
        else:
            connection.created_at = existing.created_at
            connection.created_by = existing.created_by
            if existing.url != connection.url:
                # A new target has not been checked yet.
                connection.status = ConnectionStatus.INACTIVE
        connection.updated_at = now

        saved = self.repository.save_connection(connection)
        logger.info("Saved connection %s (%s)", saved.id, saved.masked_url)
        return saved

    def delete_connection(self, connection_id: str) -> None:
        """Delete a connection nobody uses.

        Raises:
            ConnectionInUseError: Conferences still run on this connection
        """
        in_use = self.repository.list_conferences(connection_id=connection_id)
        if in_use:
            raise ConnectionInUseError(
                f"Connection '{connection_id}' is used by {len(in_use)} conference(s)"
            )
        if not self.repository.delete_connection(connection_id):
            raise ConnectionNotFoundError(f"Connection '{connection_id}' not found")
        self.executors.discard(connection_id)
        logger.info("Deleted connection %s", connection_id)

    async def test_connection(self, connection_id: str) -> ConnectionCheck:
        """Run a trivial query and record whether the connection answered."""
        connection = self.get_connection(connection_id)
        try:
            await self.executors.get(connection).execute(self.CHECK_QUERY)
        except Exception as exc:
            message = exc.message if isinstance(exc, ExecutionError) else str(exc)
            logger.warning("Connection %s check failed: %s", connection.id, message)
            connection.status = ConnectionStatus.ERROR
            success = False
        else:
            connection.status = ConnectionStatus.ACTIVE
            message = "Connection successful"
            success = True

        connection.updated_at = utcnow()
        saved = self.repository.save_connection(connection)
        return ConnectionCheck(connection=saved, success=success, message=message)

"""Template, conference and connection API endpoints."""

from datetime import date
from typing import Any, Callable

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from conferkit.conference.service import ConferenceService, ConnectionService, TemplateService
from conferkit.conference.types import Conference, Store, UserResponse
from conferkit.conference.wizard import wizard_state
from conferkit.engine.errors import (
    ConferenceError,
    ConfigurationError,
    ConnectionInUseError,
    InvalidTransitionError,
    LinkExpiredError,
    LinkInvalidError,
    NotFoundError,
    WizardError,
)
from conferkit.executors.connections import DataConnection
from conferkit.templates.types import ChecklistTemplate, ExpectedInput


# =============================================================================
# Request bodies
# =============================================================================


class PreviewRequest(BaseModel):
    """Request body for a query preview."""

    query: str
    sample_context: dict[str, Any] | None = None
    expected_inputs: list[dict[str, Any]] = Field(default_factory=list)


class StoreRequest(BaseModel):
    id: str
    name: str
    store_id: str


class CreateConferenceRequest(BaseModel):
    """Request body for creating a conference from a template."""

    template_id: str
    name: str
    stores: list[StoreRequest]
    client_name: str = ""
    client_email: str = ""
    connection_id: str | None = None
    period_start: date | None = None
    period_end: date | None = None


class RespondRequest(BaseModel):
    response: UserResponse
    observation: str | None = None
    responded_by: str | None = None


class ExpectedInputsRequest(BaseModel):
    """Composite key -> value."""

    values: dict[str, Any]


class AdvanceRequest(BaseModel):
    values: dict[str, Any] | None = None


class ConnectionRequest(BaseModel):
    """Request body for creating or updating a connection."""

    name: str
    url: str


# =============================================================================
# Error mapping
# =============================================================================


def _status_for(exc: ConferenceError) -> int:
    if isinstance(exc, ConfigurationError):
        return 422
    if isinstance(exc, LinkExpiredError):
        return 410
    if isinstance(exc, (NotFoundError, LinkInvalidError)):
        return 404
    if isinstance(exc, (InvalidTransitionError, WizardError, ConnectionInUseError)):
        return 409
    return 400


def register_exception_handlers(app: FastAPI) -> None:
    """Translate domain errors into JSON responses."""

    @app.exception_handler(ConferenceError)
    async def conference_error_handler(request: Request, exc: ConferenceError) -> JSONResponse:
        return JSONResponse(status_code=_status_for(exc), content={"error": exc.to_dict()})


def _conference_dict(conference: Conference) -> dict[str, Any]:
    """Conference payload with the wizard completion flag computed from its items."""
    data = conference.to_dict()
    data["wizard"] = wizard_state(conference).to_dict()
    return data


def _template_from_body(body: dict[str, Any], template_id: str | None = None) -> ChecklistTemplate:
    if template_id is not None:
        body = {**body, "id": template_id}
    try:
        return ChecklistTemplate.from_dict(body)
    except (KeyError, TypeError, ValueError) as e:
        raise HTTPException(422, f"Malformed template: {e}")


# =============================================================================
# Routers
# =============================================================================


def create_templates_router(
    get_template_service: Callable[[], TemplateService | None],
    get_conference_service: Callable[[], ConferenceService | None],
) -> APIRouter:
    """Create the templates router with injected dependencies.

    Args:
        get_template_service: Function returning the template service
        get_conference_service: Function returning the conference service (for previews)

    Returns:
        Configured APIRouter
    """
    router = APIRouter(prefix="/api/templates", tags=["templates"])

    def _service() -> TemplateService:
        service = get_template_service()
        if not service:
            raise HTTPException(500, "Template service not initialized")
        return service

    @router.get("")
    async def list_templates() -> dict[str, Any]:
        return {"templates": [t.to_dict() for t in _service().list_templates()]}

    @router.post("", status_code=201)
    async def create_template(body: dict[str, Any]) -> dict[str, Any]:
        template = _template_from_body(body)
        return _service().save_template(template).to_dict()

    @router.post("/import", status_code=201)
    async def import_template(body: dict[str, Any]) -> dict[str, Any]:
        """Import a template document (snake_case, no ids)."""
        return _service().import_template(body).to_dict()

    @router.post("/preview")
    async def preview_query(request: PreviewRequest) -> dict[str, Any]:
        service = get_conference_service()
        if not service:
            raise HTTPException(500, "Conference service not initialized")
        try:
            expected_inputs = [ExpectedInput.from_dict(i) for i in request.expected_inputs]
        except (KeyError, ValueError) as e:
            raise HTTPException(422, f"Malformed expected input: {e}")
        preview = service.substitute_preview(
            request.query, request.sample_context, expected_inputs
        )
        return {"query": preview}

    @router.get("/{template_id}")
    async def get_template(template_id: str) -> dict[str, Any]:
        return _service().get_template(template_id).to_dict()

    @router.put("/{template_id}")
    async def update_template(template_id: str, body: dict[str, Any]) -> dict[str, Any]:
        service = _service()
        existing = service.get_template(template_id)
        template = _template_from_body(body, template_id)
        template.created_at = existing.created_at
        template.created_by = existing.created_by
        return service.save_template(template).to_dict()

    @router.delete("/{template_id}", status_code=204)
    async def delete_template(template_id: str) -> None:
        _service().delete_template(template_id)

    @router.get("/{template_id}/export")
    async def export_template(template_id: str) -> dict[str, Any]:
        return _service().export_template(template_id)

    @router.post("/{template_id}/duplicate", status_code=201)
    async def duplicate_template(template_id: str) -> dict[str, Any]:
        return _service().duplicate_template(template_id).to_dict()

    return router


def create_conferences_router(
    get_conference_service: Callable[[], ConferenceService | None],
) -> APIRouter:
    """Create the conferences router with injected dependencies.

    Args:
        get_conference_service: Function returning the conference service

    Returns:
        Configured APIRouter
    """
    router = APIRouter(prefix="/api/conferences", tags=["conferences"])

    def _service() -> ConferenceService:
        service = get_conference_service()
        if not service:
            raise HTTPException(500, "Conference service not initialized")
        return service

    @router.post("", status_code=201)
    async def create_conference(request: CreateConferenceRequest) -> dict[str, Any]:
        conference = _service().create_conference(
            request.template_id,
            [Store(id=s.id, name=s.name, store_id=s.store_id) for s in request.stores],
            name=request.name,
            client_name=request.client_name,
            client_email=request.client_email,
            connection_id=request.connection_id,
            period_start=request.period_start,
            period_end=request.period_end,
        )
        return _conference_dict(conference)

    @router.get("")
    async def list_conferences(
        template_id: str | None = None, connection_id: str | None = None
    ) -> dict[str, Any]:
        conferences = _service().list_conferences(template_id, connection_id)
        return {"conferences": [_conference_dict(c) for c in conferences]}

    @router.get("/by-token/{token}")
    async def open_conference(token: str) -> dict[str, Any]:
        return _conference_dict(_service().open_conference(token))

    @router.get("/{conference_id}")
    async def get_conference(conference_id: str) -> dict[str, Any]:
        return _conference_dict(_service().get_conference(conference_id))

    @router.post("/{conference_id}/items/{template_item_id}/evaluate")
    async def evaluate_item(
        conference_id: str,
        template_item_id: str,
        store_id: str | None = None,
    ) -> dict[str, Any]:
        item = await _service().evaluate_item(conference_id, template_item_id, store_id)
        return item.to_dict()

    @router.post("/{conference_id}/sections/{section_index}/evaluate")
    async def evaluate_section(conference_id: str, section_index: int) -> dict[str, Any]:
        items = await _service().evaluate_section(conference_id, section_index)
        return {"items": [i.to_dict() for i in items]}

    @router.post("/{conference_id}/items/{item_id}/respond")
    async def respond_to_item(
        conference_id: str, item_id: str, request: RespondRequest
    ) -> dict[str, Any]:
        item = _service().respond_to_item(
            conference_id,
            item_id,
            request.response,
            observation=request.observation,
            responded_by=request.responded_by,
        )
        return item.to_dict()

    @router.post("/{conference_id}/expected-inputs")
    async def submit_expected_inputs(
        conference_id: str, request: ExpectedInputsRequest
    ) -> dict[str, Any]:
        conference = _service().submit_expected_inputs(conference_id, request.values)
        return {
            "expectedInputValues": {
                key: value.to_dict() for key, value in conference.expected_input_values.items()
            }
        }

    @router.get("/{conference_id}/wizard")
    async def get_wizard_state(conference_id: str) -> dict[str, Any]:
        return _service().get_wizard_state(conference_id).to_dict()

    @router.post("/{conference_id}/wizard/advance")
    async def advance_wizard(
        conference_id: str, request: AdvanceRequest | None = None
    ) -> dict[str, Any]:
        values = request.values if request else None
        return _service().advance_wizard(conference_id, values).to_dict()

    @router.post("/{conference_id}/wizard/retreat")
    async def retreat_wizard(conference_id: str) -> dict[str, Any]:
        return _service().retreat_wizard(conference_id).to_dict()

    @router.post("/{conference_id}/wizard/review")
    async def review_wizard(conference_id: str) -> dict[str, Any]:
        return _service().review_wizard(conference_id).to_dict()

    @router.get("/{conference_id}/progress")
    async def get_progress(conference_id: str) -> dict[str, Any]:
        return _service().get_progress(conference_id).to_dict()

    return router


def create_connections_router(
    get_connection_service: Callable[[], ConnectionService | None],
) -> APIRouter:
    """Create the connections router. Passwords never leave the server."""
    router = APIRouter(prefix="/api/connections", tags=["connections"])

    def _service() -> ConnectionService:
        service = get_connection_service()
        if not service:
            raise HTTPException(500, "Connection service not initialized")
        return service

    @router.get("")
    async def list_connections() -> dict[str, Any]:
        connections = _service().list_connections()
        return {"connections": [c.to_dict(hide_password=True) for c in connections]}

    @router.post("", status_code=201)
    async def create_connection(request: ConnectionRequest) -> dict[str, Any]:
        connection = DataConnection(name=request.name, url=request.url)
        return _service().save_connection(connection).to_dict(hide_password=True)

    @router.get("/{connection_id}")
    async def get_connection(connection_id: str) -> dict[str, Any]:
        return _service().get_connection(connection_id).to_dict(hide_password=True)

    @router.put("/{connection_id}")
    async def update_connection(connection_id: str, request: ConnectionRequest) -> dict[str, Any]:
        service = _service()
        connection = service.get_connection(connection_id)
        connection.name = request.name
        # The masked URL sent back unchanged keeps the stored password.
        if request.url != connection.masked_url:
            connection.url = request.url
        return service.save_connection(connection).to_dict(hide_password=True)

    @router.delete("/{connection_id}", status_code=204)
    async def delete_connection(connection_id: str) -> None:
        _service().delete_connection(connection_id)

    @router.post("/{connection_id}/test")
    async def test_connection(connection_id: str) -> dict[str, Any]:
        check = await _service().test_connection(connection_id)
        return check.to_dict()

    return router

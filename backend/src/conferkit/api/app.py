"""FastAPI application."""

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from conferkit.conference.expansion import DEFAULT_LINK_DAYS
from conferkit.conference.service import ConferenceService, ConnectionService, TemplateService
from conferkit.conference.wizard import WizardPolicy
from conferkit.executors import ExecutorPool, QueryExecutor, SQLAlchemyQueryExecutor
from conferkit.persistence import DatabaseConfig, Repository, create_repository
from conferkit.templates.validation import validate_template
from conferkit.api.endpoints import (
    create_conferences_router,
    create_connections_router,
    create_templates_router,
    register_exception_handlers,
)

logger = logging.getLogger(__name__)

_TRUTHY = ("1", "true", "yes")


def _base_path() -> Path:
    """Project root, relative to cwd (which is usually /backend)."""
    cwd = Path.cwd()
    return cwd.parent if cwd.name == "backend" else cwd


def policy_from_env() -> WizardPolicy:
    enforce = os.environ.get("CONFERKIT_ENFORCE_SECTIONS", "").lower() in _TRUTHY
    return WizardPolicy(enforce_section_completion=enforce)


def link_days_from_env() -> int:
    return int(os.environ.get("CONFERKIT_LINK_DAYS", str(DEFAULT_LINK_DAYS)))


def executor_from_env(db_config: DatabaseConfig) -> SQLAlchemyQueryExecutor:
    """Executor for CONFERKIT_TARGET_URL, falling back to the application database."""
    url = os.environ.get("CONFERKIT_TARGET_URL")
    if not url:
        url = "sqlite://" if db_config.is_memory else db_config.url
        logger.warning(
            "CONFERKIT_TARGET_URL is not set; item queries will run against %s", url
        )
    return SQLAlchemyQueryExecutor(url)


def _warn_invalid_templates(repository: Repository) -> None:
    """Log stored templates that no longer pass validation (startup is not blocked)."""
    invalid = 0
    for template in repository.list_templates():
        issues = validate_template(template)
        for issue in issues:
            logger.warning("Template '%s': %s", template.name, issue)
        if issues:
            invalid += 1
    if invalid:
        logger.warning("%d stored template(s) have configuration problems", invalid)


class AppServices:
    """Holds the services the routers resolve at request time."""

    def __init__(self):
        self.template_service: TemplateService | None = None
        self.conference_service: ConferenceService | None = None
        self.connection_service: ConnectionService | None = None
        self.executors: ExecutorPool | None = None

    def configure(
        self,
        repository: Repository,
        executor: QueryExecutor,
        policy: WizardPolicy | None = None,
        link_expires_in_days: int = DEFAULT_LINK_DAYS,
        executors: ExecutorPool | None = None,
    ) -> None:
        # Conference evaluation and connection checks share one executor per connection.
        self.executors = executors or ExecutorPool(SQLAlchemyQueryExecutor)
        self.template_service = TemplateService(repository)
        self.conference_service = ConferenceService(
            repository, executor, policy, link_expires_in_days, executors=self.executors
        )
        self.connection_service = ConnectionService(repository, self.executors)


def create_app(
    repository: Repository | None = None,
    executor: QueryExecutor | None = None,
    policy: WizardPolicy | None = None,
    link_expires_in_days: int | None = None,
    executors: ExecutorPool | None = None,
) -> FastAPI:
    """Build the application.

    With a repository and an executor the services are ready immediately.
    Otherwise they are configured from the environment on startup.
    """
    services = AppServices()
    if repository is not None and executor is not None:
        services.configure(
            repository,
            executor,
            policy,
            link_expires_in_days if link_expires_in_days is not None else DEFAULT_LINK_DAYS,
            executors,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Initialize on startup, cleanup on shutdown."""
        owned_executor = None
        if services.conference_service is None:
            db_config = DatabaseConfig.from_env(_base_path())
            env_repository = create_repository(db_config)
            owned_executor = executor_from_env(db_config)
            services.configure(
                env_repository,
                owned_executor,
                policy or policy_from_env(),
                link_expires_in_days if link_expires_in_days is not None else link_days_from_env(),
                executors,
            )
            _warn_invalid_templates(env_repository)
            logger.info("ConferKit API started (database: %s)", db_config.url)

        yield

        # Cleanup
        if owned_executor is not None:
            owned_executor.dispose()
        if executors is None and services.executors is not None:
            services.executors.dispose()

    app = FastAPI(title="ConferKit API", lifespan=lifespan)

    # CORS for frontend dev server
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(
        create_templates_router(
            get_template_service=lambda: services.template_service,
            get_conference_service=lambda: services.conference_service,
        )
    )
    app.include_router(
        create_conferences_router(
            get_conference_service=lambda: services.conference_service,
        )
    )
    app.include_router(
        create_connections_router(
            get_connection_service=lambda: services.connection_service,
        )
    )

    @app.get("/api/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()

"""Application factory for creating FastAPI instances."""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from .actions import register_default_actions
from .api.endpoints import router, init_dependencies
from .config import AppConfig, get_config, validate_config
from .core.action_registry import ActionDispatcher
from .core.credential_store import SqlCredentialStore, SqlVerificationLog
from .core.crypto import SecretCipher
from .core.exceptions import WorkflowEngineError, create_error_response
from .core.execution_engine import ExecutionEngine
from .core.execution_log import ExecutionLog
from .core.integrations import WhatsAppIntegration
from .core.logging import setup_logging, get_logger
from .core.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    PerformanceMonitoringMiddleware,
)
from .core.runtime import WorkflowRuntime
from .providers.whatsapp import WhatsAppClient
from .storage.database import create_database_engine, create_session_factory, create_tables


class ApplicationState:
    """Container for application state and components."""

    def __init__(self):
        self.config: Optional[AppConfig] = None
        self.engine = None
        self.dispatcher: Optional[ActionDispatcher] = None
        self.execution_engine: Optional[ExecutionEngine] = None
        self.whatsapp_integration: Optional[WhatsAppIntegration] = None


def initialize_components(config: AppConfig, logger,
                          transport: Optional[httpx.AsyncBaseTransport] = None) -> ApplicationState:
    """Build the database, stores, dispatcher, runtime and services from configuration."""
    state = ApplicationState()
    state.config = config

    state.engine = create_database_engine(
        config.database_url,
        echo=config.database_echo,
        connect_args=config.get_database_connect_args(),
    )
    create_tables(state.engine)
    session_factory = create_session_factory(state.engine)
    logger.info("Database tables created")

    cipher = SecretCipher(config.encryption_key)
    credential_store = SqlCredentialStore(session_factory)
    verification_log = SqlVerificationLog(session_factory)
    whatsapp_client = WhatsAppClient(
        base_url=config.whatsapp_api_base_url,
        api_version=config.whatsapp_api_version,
        timeout=config.provider_timeout,
        default_language=config.whatsapp_default_language,
        transport=transport,
    )

    state.dispatcher = register_default_actions(
        ActionDispatcher(),
        credential_store,
        cipher,
        whatsapp_client,
        dry_run=config.execution_dry_run,
    )
    state.execution_engine = ExecutionEngine(
        runtime=WorkflowRuntime(state.dispatcher),
        execution_log=ExecutionLog(session_factory),
        default_max_actions=config.default_max_actions,
        execution_timeout=config.execution_timeout,
    )
    state.whatsapp_integration = WhatsAppIntegration(
        credential_store,
        verification_log,
        cipher,
        whatsapp_client,
        allow_live=config.verify_allow_live,
        max_age_days=config.whatsapp_verification_max_age_days,
        default_language=config.whatsapp_default_language,
    )

    logger.info("Core components initialized")
    return state


def create_lifespan_handler(config: AppConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
    """Create application lifespan handler."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(
            level=config.log_level.value,
            log_file=config.log_file,
            log_format=config.log_format,
            structured=config.log_structured,
            max_size=config.log_max_size,
            backup_count=config.log_backup_count
        )
        logger = get_logger(__name__)
        logger.info(f"Starting {config.app_name} v{config.app_version}")

        try:
            state = initialize_components(config, logger, transport=transport)
        except Exception as e:
            logger.error(f"Application startup failed: {e}")
            raise

        app.state.components = state
        init_dependencies(
            execution_engine=state.execution_engine,
            dispatcher=state.dispatcher,
            whatsapp_integration=state.whatsapp_integration,
        )
        logger.info(
            f"Application startup completed (dry_run={config.execution_dry_run}, "
            f"verify_allow_live={config.verify_allow_live})"
        )

        yield

        logger.info(f"Shutting down {config.app_name}")
        state.engine.dispose()

    return lifespan


async def engine_error_handler(request: Request, exc: WorkflowEngineError) -> JSONResponse:
    """Render engine errors raised by route handlers."""
    content = create_error_response(exc)
    content["request_id"] = getattr(request.state, "request_id", None)
    return JSONResponse(status_code=exc.http_status, content=content)


def create_app(config: Optional[AppConfig] = None,
               transport: Optional[httpx.AsyncBaseTransport] = None) -> FastAPI:
    """Create and configure FastAPI application instance.

    ``transport`` replaces the provider HTTP transport (used by tests).
    """
    if config is None:
        config = get_config()

    validate_config(config)

    app = FastAPI(
        title=config.app_name,
        description="Deterministic workflow engine for client outreach actions",
        version=config.app_version,
        debug=config.debug,
        lifespan=create_lifespan_handler(config, transport=transport)
    )

    if config.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.cors_origins,
            allow_credentials=True,
            allow_methods=config.cors_methods,
            allow_headers=["*"],
        )

    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(PerformanceMonitoringMiddleware, slow_request_threshold=config.slow_request_threshold)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_exception_handler(WorkflowEngineError, engine_error_handler)

    app.include_router(router)
    add_health_endpoints(app, config)

    return app


def add_health_endpoints(app: FastAPI, config: AppConfig) -> None:
    """Add health check endpoints to the application."""

    @app.get("/")
    async def root():
        """Root endpoint for basic health check."""
        return {"message": f"{config.app_name} is running", "version": config.app_version}

    @app.get("/health")
    async def health_check():
        """Basic health check endpoint."""
        return {
            "status": "healthy",
            "service": config.app_name.lower().replace(" ", "-"),
            "version": config.app_version,
            "dry_run": config.execution_dry_run,
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

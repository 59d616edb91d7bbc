"""
FastAPI application entry point.

Run with: uvicorn brandcoach.main:app --reload
"""

from contextlib import asynccontextmanager
import uuid

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from brandcoach import __version__
from brandcoach.api.dependencies import get_checklist_registry, get_controller_registry
from brandcoach.api.exception_handlers import setup_exception_handlers
from brandcoach.api.routes import coaching, health
from brandcoach.core.config import settings
from brandcoach.core.logging import bind_context, clear_context, configure_logging, get_logger
from brandcoach.llm.client import DEFAULTS_MAP
from brandcoach.persistence.database import init_database

# Configure logging before anything else
configure_logging()
log = get_logger(__name__)


# =============================================================================
# Correlation ID Middleware
# =============================================================================


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware that adds a unique correlation ID to each request.

    - Generates a UUID4 request_id for each incoming request
    - Binds it to structlog context for all logs in that request
    - Adds X-Request-ID header to responses
    """

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        bind_context(request_id=request_id)

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            clear_context()


# =============================================================================
# Startup validation
# =============================================================================

PROVIDER_KEYS = {
    "anthropic": ("anthropic_api_key", "ANTHROPIC_API_KEY"),
    "deepseek": ("deepseek_api_key", "DEEPSEEK_API_KEY"),
}


def validate_api_keys() -> None:
    """
    Validate that every configured LLM provider has its API key.

    Raises:
        RuntimeError: If a provider is unknown or its API key is missing
    """
    errors = []
    providers = {}

    for client_type, defaults in DEFAULTS_MAP.items():
        provider = getattr(settings, f"llm_{client_type}_provider", None) or defaults["provider"]
        providers[client_type] = provider

        if provider not in PROVIDER_KEYS:
            errors.append(
                f"Unknown LLM provider '{provider}' for {client_type}. "
                f"Supported providers: {', '.join(PROVIDER_KEYS)}"
            )
            continue

        attr_name, env_var = PROVIDER_KEYS[provider]
        if not getattr(settings, attr_name, None):
            errors.append(
                f"LLM API key missing: {env_var} is required for {provider} "
                f"(used by {client_type} client). Set it in .env file."
            )

    if errors:
        raise RuntimeError("API Key Validation Failed:\n" + "\n".join(f"  - {e}" for e in errors))

    log.info("api_keys_validated", **providers)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup fails fast on missing API keys or an invalid coaching catalogue.
    Shutdown waits for background session saves.
    """
    log.info(
        "application_starting",
        debug=settings.debug,
        database_path=str(settings.database_path),
    )

    validate_api_keys()
    get_checklist_registry()
    await init_database()

    log.info("application_started")

    yield

    log.info("application_shutting_down")
    await get_controller_registry().drain_all()


app = FastAPI(
    title="Brand Coach",
    description="Guided conversational extraction engine for branding interviews",
    version=__version__,
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS middleware for development
if settings.debug:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.add_middleware(CorrelationIDMiddleware)

setup_exception_handlers(app)

app.include_router(health.router, tags=["system"])
app.include_router(coaching.router)


@app.get("/")
async def root():
    """Root endpoint with basic info."""
    return {"name": "Brand Coach", "version": __version__, "status": "running"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "brandcoach.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )

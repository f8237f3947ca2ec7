import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from semantic_uq import __version__
from semantic_uq.analysis.engine import SemanticEntropyEngine
from semantic_uq.api.v1.router import api_v1_router
from semantic_uq.core.config import settings, validate_settings_for_production
from semantic_uq.core.logging import setup_logging
from semantic_uq.gateway.gateway import LlmGateway

# Configure logging before anything else
setup_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    validate_settings_for_production()
    app.state.engine = SemanticEntropyEngine.from_settings(settings)
    logger.info(
        "Starting semantic-uq %s (provider=%s, model=%s)",
        __version__,
        settings.llm_provider,
        settings.llm_model or "default",
    )

    yield

    logger.info("semantic-uq shut down")


app = FastAPI(
    title="Semantic Uncertainty",
    description="Answer confidence from semantic agreement across candidate responses",
    version=__version__,
    lifespan=lifespan,
    docs_url="/api/docs" if settings.app_env != "production" else None,
    redoc_url=None,
)


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    tb = traceback.format_exception(type(exc), exc, exc.__traceback__)
    logger.error("Unhandled %s on %s %s:\n%s", type(exc).__name__, request.method, request.url.path, "".join(tb))
    return JSONResponse(status_code=500, content={"detail": type(exc).__name__})


app.include_router(api_v1_router)


@app.get("/health")
async def health(request: Request):
    engine = getattr(request.app.state, "engine", None)
    gateway = getattr(engine, "generator", None)
    return {
        "status": "ok",
        "version": __version__,
        "gateway": gateway.get_status() if isinstance(gateway, LlmGateway) else None,
    }

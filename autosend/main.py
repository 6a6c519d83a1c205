from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from autosend.api.router import api_router
from autosend.config import get_settings
from autosend.core.database import AsyncSessionLocal
from autosend.core.errors import AutoSendError, ConfigurationError
from autosend.core.logging import get_logger, setup_logging
from autosend.core.scheduler import start_scheduler, stop_scheduler
from autosend.core.tasks import BackgroundWorker
from autosend.services.triggers import build_runner

logger = get_logger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    # Startup
    setup_logging()
    worker = BackgroundWorker()
    app.state.runner = build_runner(AsyncSessionLocal, worker)
    await start_scheduler(app.state.runner)
    yield
    # Shutdown: stop new scheduled runs, then let in-flight sends finish
    await stop_scheduler()
    await worker.shutdown()


app = FastAPI(
    title="Fuel Auto-Send",
    description="Batch delivery of fuel entry statements by email",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/api/docs" if settings.debug else None,
    redoc_url="/api/redoc" if settings.debug else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.base_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AutoSendError)
async def auto_send_error_handler(request: Request, exc: AutoSendError) -> JSONResponse:
    """Render engine errors as ``{success: false, error}`` with their status code."""
    if exc.status_code >= 500:
        logger.bind(path=request.url.path, error=exc.message).opt(exception=exc).error(
            "request_failed"
        )
        # Storage details stay in the logs; configuration problems are actionable
        message = exc.message if isinstance(exc, ConfigurationError) else "Internal server error"
    else:
        logger.bind(path=request.url.path, error=exc.message).info("request_rejected")
        message = exc.message
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": message})


# Include API routes
app.include_router(api_router)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint for load balancers."""
    return {"status": "healthy"}

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rentala.api.router import api_router
from rentala.config import get_settings
from rentala.core.errors import RentalaError
from rentala.core.logging import get_logger, setup_logging
from rentala.core.scheduler import start_scheduler, stop_scheduler

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Start the sweep/report scheduler with the app and stop it on shutdown."""
    setup_logging()
    app.state.scheduler = await start_scheduler()
    yield
    await stop_scheduler(app.state.scheduler)


app = FastAPI(
    title="Rentala",
    description="Scheduled reports and tenant notifications for rental properties",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/api/docs" if settings.debug else None,
    redoc_url="/api/redoc" if settings.debug else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "X-User-Id"],
)

app.include_router(api_router)


@app.exception_handler(RentalaError)
async def unhandled_domain_error(request: Request, exc: RentalaError) -> JSONResponse:
    """Domain errors a router did not map: log the detail, return a generic 500."""
    logger.bind(path=request.url.path, error=str(exc), error_type=type(exc).__name__).error(
        "unhandled_domain_error"
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal error"},
    )


@app.get("/health")
async def health_check(request: Request) -> dict[str, str]:
    """Liveness check; also reports whether background tasks are running here."""
    handle = getattr(request.app.state, "scheduler", None)
    scheduler_state = "running" if handle is not None and handle.running else "disabled"
    return {"status": "healthy", "scheduler": scheduler_state}

# printdash/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from printdash.api import routes_camera, routes_health, routes_printer
from printdash.config import env_flag, env_str
from printdash.deps import get_config
from printdash.errors import DashboardError, UpstreamError
from printdash.models.domain import ErrorResponse
from printdash.logging_setup import configure_logging
from printdash.models.db import create_db_and_tables

logger = logging.getLogger(__name__)

# documented error body for the proxied routes
ERROR_RESPONSES = {
    status: {"model": ErrorResponse} for status in (400, 404, 500, 502, 503, 504)
}


# ============================================================
# 1) LIFESPAN
# ============================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(env_str("LOG_LEVEL", "INFO"), json_format=env_flag("LOG_JSON", False))
    config = get_config()
    if not config.is_configured:
        logger.error("PRINTER_HOST environment variable is not set")
    else:
        logger.info("Proxying Moonraker at %s", config.moonraker_base_url)
    create_db_and_tables()
    yield


# ============================================================
# 2) ERROR RENDERING
# ============================================================

async def dashboard_error_handler(request: Request, exc: DashboardError) -> JSONResponse:
    if isinstance(exc, UpstreamError):
        logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.kind.value, exc.message)
    return JSONResponse(exc.to_body(), status_code=exc.status_code)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details: List[str] = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        details.append(f"{loc}: {err.get('msg', 'invalid')}")
    body: Dict[str, Any] = {"error": "Invalid request", "details": "; ".join(details)}
    return JSONResponse(body, status_code=400)


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


# ============================================================
# 3) APP FACTORY
# ============================================================

def create_app() -> FastAPI:
    app = FastAPI(
        title="printdash",
        version="0.1.0",
        description="Telemetry proxy and short-lived cache for a Klipper/Moonraker printer dashboard.",
        lifespan=lifespan,
    )

    # CORS: dashboard views and stream overlays are served from other origins
    allowed = env_str("ALLOWED_ORIGINS", "*")
    allow_origins = ["*"] if allowed == "*" else [o.strip() for o in allowed.split(",")]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=allow_origins != ["*"],
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
    )

    app.add_exception_handler(DashboardError, dashboard_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)

    app.include_router(routes_health.router, tags=["health"])
    app.include_router(routes_printer.router, prefix="/printer", tags=["printer"], responses=ERROR_RESPONSES)
    app.include_router(routes_camera.router, prefix="/camera", tags=["camera"], responses=ERROR_RESPONSES)
    return app


app = create_app()

# Run:
#   PRINTER_HOST=192.168.1.50 uvicorn printdash.main:app --app-dir backend --port 8000

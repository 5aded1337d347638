"""
Clawtar API Server
FastAPI app for the queued task flow and the pay-per-call fortune flow
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from clawtar import __version__
from clawtar.api.routers import fortune, general, tasks
from clawtar.api.tasks import run_dispatcher, run_settlement_poller
from clawtar.config import ServiceConfig, get_service_config
from clawtar.errors import ClawtarError, InternalError
from clawtar.services.container import ServiceContainer, build_container

logger = structlog.get_logger()


def configure_logging(config: ServiceConfig) -> None:
    renderer = (
        structlog.processors.JSONRenderer()
        if config.log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            renderer
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, config.log_level)
        ),
    )


def _error_response(exc: ClawtarError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def create_app(
    config: Optional[ServiceConfig] = None,
    container: Optional[ServiceContainer] = None,
) -> FastAPI:
    """
    Build the FastAPI app.

    ``container`` lets tests inject fakes; otherwise one is built from
    ``config`` (loading the snapshot) when the app starts.
    """
    config = config or get_service_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.container = container or build_container(config)
        logger.info(
            "clawtar_starting",
            host=config.host,
            port=config.port,
            snapshot=str(config.snapshot_path)
        )

        background = []
        if config.background_tasks_enabled:
            background = [
                asyncio.create_task(
                    run_settlement_poller(app.state.container, config.worker_poll_seconds)
                ),
                asyncio.create_task(
                    run_dispatcher(app.state.container, config.worker_poll_seconds)
                ),
            ]

        yield

        for task in background:
            task.cancel()
        for task in background:
            try:
                await task
            except asyncio.CancelledError:
                pass
        await app.state.container.aclose()
        logger.info("clawtar_shutting_down")

    app = FastAPI(
        title="Clawtar",
        description="Payment-gated task service settled in Cashu ecash",
        version=__version__,
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["x-cashu"],
    )

    @app.exception_handler(ClawtarError)
    async def handle_clawtar_error(request: Request, exc: ClawtarError):
        if exc.status_code >= 500:
            logger.error("request_failed", path=request.url.path, code=exc.code, error=exc.message)
        return _error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = "invalid request"
        if errors:
            first = errors[0]
            field = ".".join(str(part) for part in first.get("loc", ())[1:])
            message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"ok": False, "error": {"code": "INVALID_REQUEST", "message": message}},
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("unhandled_error", path=request.url.path, error=str(exc))
        return _error_response(InternalError())

    app.include_router(general.router)
    app.include_router(tasks.router)
    app.include_router(fortune.router)

    return app


app = create_app()


def main():
    """Run the API server"""
    import uvicorn
    config = get_service_config()
    configure_logging(config)

    uvicorn.run(
        "clawtar.api.server:app",
        host=config.host,
        port=config.port,
        reload=config.reload,
        log_level=config.log_level.lower()
    )


if __name__ == "__main__":
    main()

"""
ffmpeg-builder service: application factory and command-line entrypoint.

The registry, broadcaster, command builder and runner are created once
per application and shared through app.state.
"""

import argparse
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .config import Settings, load_settings
from .execution.commands import CommandBuilder
from .jobs.registry import JobRegistry
from .jobs.runner import JobRunner
from .monitoring import server as monitoring
from .monitoring.broadcaster import EventBroadcaster
from .observability import configure_logging
from .routes import control, health

logger = logging.getLogger(__name__)


def _format_request_errors(exc: RequestValidationError) -> List[str]:
    details = []
    for item in exc.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        details.append(f"{location}: {item.get('msg', 'invalid value')}")
    return details


def create_app(
    settings: Optional[Settings] = None,
    command_builder: Optional[CommandBuilder] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Runtime settings; loaded from the environment if omitted
        command_builder: Invocation builder; built from settings if omitted

    Returns:
        Configured application
    """
    settings = settings or load_settings()
    settings.output_path.mkdir(parents=True, exist_ok=True)

    registry = JobRegistry()
    broadcaster = EventBroadcaster()
    builder = command_builder or CommandBuilder(settings.output_path, settings.ffmpeg_binary)
    runner = JobRunner(
        registry=registry,
        broadcaster=broadcaster,
        command_builder=builder,
        stop_grace_seconds=settings.stop_grace_seconds,
        diagnostics_limit=settings.diagnostics_limit,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"FFmpeg Builder ready, output base {settings.output_path.resolve()}")
        yield
        logger.info("Shutting down, stopping running conversions")
        runner.shutdown()
        broadcaster.close()

    app = FastAPI(title="FFmpeg Builder", version=__version__, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.job_registry = registry
    app.state.broadcaster = broadcaster
    app.state.command_builder = builder
    app.state.job_runner = runner

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return control.validation_failed_response(_format_request_errors(exc))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=exc)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    app.include_router(health.router)
    app.include_router(control.router)
    app.include_router(monitoring.router)

    @app.get("/")
    async def root():
        return {"service": "ffmpeg-builder", "status": "running"}

    return app


def main(argv: Optional[List[str]] = None) -> None:
    """Run the service with environment settings and CLI overrides."""
    parser = argparse.ArgumentParser(description="FFmpeg Builder conversion service")
    parser.add_argument("--host", type=str, help="Bind address (env HOST)")
    parser.add_argument("--port", type=int, help="Listen port (env PORT)")
    parser.add_argument("--output-path", dest="output_path", type=Path, help="Output base directory (env OUTPUT_PATH)")
    parser.add_argument("--log-level", dest="log_level", type=str, help="Log level (env LOG_LEVEL)")
    args = parser.parse_args(argv)

    settings = load_settings().with_overrides(
        host=args.host,
        port=args.port,
        output_path=args.output_path,
        log_level=args.log_level.upper() if args.log_level else None,
    )
    configure_logging(settings.log_level, settings.log_dir)

    logger.info(f"FFmpeg Builder server running on {settings.host}:{settings.port}")
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()

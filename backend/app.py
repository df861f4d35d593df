"""
Dinodia Backend Application

FastAPI application exposing device sync, commands and history to the UI.
"""

import os
import sys
from contextlib import asynccontextmanager

import log_config  # noqa: F401
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

# Add core to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# Import API router
from api import VERSION
from api import router as api_router

from core.dinodia.client import DinodiaClient
from core.dinodia.exceptions import (
    AuthError,
    ConnectionMissingError,
    DinodiaError,
    HubNetworkError,
    HubServerError,
    InvalidInputError,
    InvalidValueError,
    StoreError,
    UnableToLoadError,
    UnsupportedCommandError,
    UserNotFoundError,
)
from core.dinodia.settings import load_settings

ERROR_STATUS = {
    InvalidInputError: 400,
    InvalidValueError: 400,
    UnsupportedCommandError: 400,
    AuthError: 401,
    UserNotFoundError: 404,
    ConnectionMissingError: 409,
    HubNetworkError: 502,
    HubServerError: 502,
    StoreError: 502,
    UnableToLoadError: 502,
}


def status_for(exc: DinodiaError) -> int:
    for error_type, status in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return status
    return 500


def create_app(client: DinodiaClient | None = None) -> FastAPI:
    """Build the application. A client can be injected, otherwise settings are loaded at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan manager for startup/shutdown."""
        logger.info("Dinodia starting")
        if getattr(app.state, "dinodia", None) is None:
            app.state.dinodia = DinodiaClient(load_settings())

        routes = [
            f"{getattr(route, 'path', '?')} - {getattr(route, 'methods', ['MOUNT'])}"
            for route in app.routes
        ]
        logger.info(f"Registered routes: {routes}")

        yield

        logger.info("Dinodia shutting down")

    app = FastAPI(
        title="Dinodia API",
        description="Device sync, commands and monitoring history for Dinodia homes",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.dinodia = client

    @app.exception_handler(DinodiaError)
    async def dinodia_exception_handler(request: Request, exc: DinodiaError):
        """Known failures carry a user-facing message."""
        status = status_for(exc)
        logger.warning(f"{type(exc).__name__} on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status,
            content={"detail": str(exc), "type": type(exc).__name__},
        )

    # Anything else is a bug; keep the trace in the log, not the response
    @app.exception_handler(Exception)
    async def unexpected_exception_handler(request: Request, exc: Exception):
        logger.opt(exception=exc).error(f"Unhandled {type(exc).__name__} on {request.url.path}")
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Something went wrong on our side. Please try again.",
                "type": type(exc).__name__,
            },
        )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=os.environ.get("DINODIA_CORS_ORIGINS", "*").split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "8099")))

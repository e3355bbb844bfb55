"""
FastAPI application entrypoint for the checkout automation API.

This module sets up the FastAPI app, configures logging, and registers
route handlers.
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import orders, probes
from shared.config import get_config
from shared.logging import configure_logging


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    config = get_config()

    configure_logging(level=config.log_level, log_file=config.log_file, log_stdout=config.log_stdout)

    app = FastAPI(
        title="Checkout Automation API",
        description="Place orders on third-party ordering sites and probe them for automatability",
        version="0.1.0",
    )

    # CORS middleware (permissive for internal tooling; tighten in production)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(orders.router)
    app.include_router(probes.router)

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "ok"}

    return app


app = create_app()

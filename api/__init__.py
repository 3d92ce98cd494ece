"""REST API module for the marketplace.

This module provides HTTP endpoints for:
- Wallet and email login, session refresh and wallet linking
- Building unsigned SOL purchase transactions
- Confirming payments and issuing access keys
- Purchase status and wallet balances
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import load_settings_conf
from .context import Services, build_services, close_services

logger = logging.getLogger(__name__)

def create_app(
    settings: Optional[Dict[str, Any]] = None,
    services: Optional[Services] = None
) -> FastAPI:
    """Create the API application.

    Args:
        settings: Validated settings, loaded from settings.conf at startup if omitted
        services: Prebuilt services; when given, startup opens nothing and
            shutdown closes nothing

    Returns:
        The FastAPI application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Handle startup and shutdown events."""
        if services is not None:
            app.state.services = services
            yield
            return

        logger.info("Initializing API...")
        app.state.services = await build_services(settings or load_settings_conf())
        yield

        logger.info("Shutting down API...")
        await close_services(app.state.services)

    app = FastAPI(
        title="Margo Marketplace API",
        description="REST API for wallet login and SOL purchases",
        version="1.0.0",
        lifespan=lifespan
    )
    if services is not None:
        app.state.services = services

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, replace with specific origins
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from .auth import router as auth_router
    from .payments import router as payments_router

    app.include_router(auth_router)
    app.include_router(payments_router)

    @app.get("/")
    async def root():
        return {
            "name": "Margo Marketplace API",
            "version": "1.0.0",
            "status": "running"
        }

    return app

app = create_app()

__all__ = ['app', 'create_app']

"""
FastAPI application factory and API package.

Run with:
    uvicorn proposal_pricing.api:app --reload --port 8000

Or via main.py:
    python -m proposal_pricing.main --serve
"""

from __future__ import annotations

import asyncio
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from proposal_pricing import __version__
from proposal_pricing.config import get_settings
from proposal_pricing.api.routes import (
    approvals_router,
    close_sessions,
    financing_router,
    health_router,
    pricing_router,
)
from proposal_pricing.api.websocket import PricingEvents

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Application factory — create and configure the FastAPI instance."""
    settings = get_settings()

    application = FastAPI(
        title="Proposal Pricing API",
        description="Pricing, discount resolution and approval workflow for sales proposals",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # CORS: the proposal form is served from another origin
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register route groups (includes WebSocket at /api/pricing/ws/{session_id})
    application.include_router(health_router, tags=["Health"])
    application.include_router(pricing_router, prefix="/api/pricing", tags=["Pricing"])
    application.include_router(approvals_router, prefix="/api/approval-requests", tags=["Approvals"])
    application.include_router(financing_router, prefix="/api/financing", tags=["Financing"])

    @application.on_event("startup")
    async def startup():
        # Broadcasts are scheduled on the server's event loop
        PricingEvents.get().set_loop(asyncio.get_running_loop())
        logger.info(f"Starting {settings.app_name} API (mock_mode={settings.mock_mode})")

    @application.on_event("shutdown")
    async def shutdown():
        close_sessions()
        logger.info(f"Stopped {settings.app_name} API")

    return application


# Module-level instance for `uvicorn proposal_pricing.api:app`
app = create_app()

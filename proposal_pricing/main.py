"""
Proposal Pricing Engine — Main Entry Point

Walk through a demo pricing session (CLI):
    python -m proposal_pricing.main

Run as an API server (for the proposal form):
    python -m proposal_pricing.main --serve
    # or: uvicorn proposal_pricing.api:app --reload --port 8000

Or drive a session programmatically:
    from proposal_pricing.main import run
    state = run(["roofing", "windows-doors"])
"""

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from proposal_pricing.config import get_settings
from proposal_pricing.models.state import PricingState
from proposal_pricing.orchestration.orchestrator import PricingOrchestrator
from proposal_pricing.services import InMemoryPricingBackend
from proposal_pricing.utils.logger import setup_logging

DEMO_SERVICES = ["roofing", "windows-doors", "hvac"]


def run(services: Optional[list[str]] = None) -> PricingState:
    """Run a demo pricing session against the in-memory backend and return the final state."""
    settings = get_settings()
    setup_logging(settings.log_level)
    logger = logging.getLogger(__name__)

    logger.info("=" * 60)
    logger.info("  PROPOSAL PRICING ENGINE")
    logger.info(f"  Mode: {'MOCK' if settings.mock_mode else 'LIVE'} | Started: {datetime.now(timezone.utc).isoformat()}")
    logger.info("=" * 60)

    state = asyncio.run(_demo_session(services or DEMO_SERVICES))
    _print_summary(state)
    return state


async def _demo_session(services: list[str]) -> PricingState:
    """Rep picks services, a customer discount and financing, then asks for a bigger discount."""
    backend = InMemoryPricingBackend()
    orchestrator = PricingOrchestrator(backend, user_id=1, services=services)
    logger = logging.getLogger(__name__)
    try:
        await orchestrator.load()
        orchestrator.toggle_discount("senior", True)
        orchestrator.select_financing_plan(5)

        result = orchestrator.apply_manual_discount(orchestrator.state.subtotal * 0.15)
        if result.approval_required:
            submitted = await orchestrator.submit_for_approval("Customer is comparing two bids")
            logger.info(submitted.message)
            if submitted.request_id is not None:
                backend.decide_approval(submitted.request_id, "approve", notes="Approved for close")
                decided = await orchestrator.refresh_approval()
                logger.info(decided.message)

        saved = await orchestrator.save_proposal()
        logger.info(saved.message)
        return orchestrator.snapshot()
    finally:
        orchestrator.close()


def _print_summary(state: PricingState) -> None:
    """Print a human-readable summary of the priced proposal."""
    logger = logging.getLogger(__name__)

    logger.info("")
    logger.info("-" * 60)
    logger.info("  PRICING SUMMARY")
    logger.info("-" * 60)
    logger.info(f"  Proposal ID:    {state.proposal_id or 'N/A'}")
    logger.info(f"  Services:       {', '.join(state.selected_services) or 'none'}")
    logger.info(f"  Subtotal:       ${state.subtotal:,.2f}")
    for discount in state.enabled_discounts():
        logger.info(f"    - {discount.name:<28} ${discount.amount:,.2f}")
    if state.manual_override_active:
        logger.info(f"    - {'Manual discount':<28} ${state.manual_discount or 0:,.2f}")
    logger.info(f"  Discount:       ${state.discount:,.2f}")
    logger.info(f"  Total:          ${state.total:,.2f}")
    logger.info(f"  Financing:      {state.financing_plan_name or 'standard amortization'}")
    logger.info(f"  Monthly:        ${state.monthly_payment:,.2f} ({state.payment_mode.value})")
    logger.info("-" * 60)

    logger.info(f"\n  Discount Log: {len(state.discount_log)} entries")
    for entry in state.discount_log:
        logger.info(
            f"    {entry.timestamp.strftime('%H:%M:%S')} | "
            f"{entry.discount_type} | "
            f"${entry.previous_value:,.2f} → ${entry.new_value:,.2f}"
        )
    logger.info("")


def serve(host: str = "0.0.0.0", port: int = 8000) -> None:
    """Start the FastAPI server (for the proposal form)."""
    import uvicorn

    setup_logging(get_settings().log_level)
    logger = logging.getLogger(__name__)
    logger.info(f"Starting API server on {host}:{port}")
    uvicorn.run("proposal_pricing.api:app", host=host, port=port, reload=get_settings().debug)


if __name__ == "__main__":
    if "--serve" in sys.argv:
        serve()
    else:
        run(sys.argv[1:] or None)

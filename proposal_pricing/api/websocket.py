"""
WebSocket support for live pricing updates.

Provides:
  - PricingEvents singleton that pricing sessions publish through
  - WebSocket clients connect via /api/pricing/ws/{session_id}
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import WebSocket

from proposal_pricing.exceptions import ApprovalRejected
from proposal_pricing.models.state import PricingState

logger = logging.getLogger(__name__)


class PricingEvents:
    """
    In-process event bus.
    Every connected WebSocket client for a session receives JSON messages like:
        { "event": "state", "state": {...PricingState...}, "ts": "..." }
        { "event": "approval_rejected", "message": "...", "approver": "..." }
        { "event": "session_closed" }
    A newly connected client is sent the session's latest state first.
    """

    _instance: PricingEvents | None = None

    def __init__(self) -> None:
        self._clients: dict[str, list[WebSocket]] = {}
        self._latest: dict[str, dict[str, Any]] = {}
        self._loop: asyncio.AbstractEventLoop | None = None

    @classmethod
    def get(cls) -> PricingEvents:
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def set_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    # ── Client management ────────────────────────────────

    async def connect(self, session_id: str, ws: WebSocket) -> None:
        await ws.accept()
        self._clients.setdefault(session_id, []).append(ws)
        latest = self._latest.get(session_id)
        if latest is not None:
            await ws.send_json(latest)

    def disconnect(self, session_id: str, ws: WebSocket) -> None:
        clients = self._clients.get(session_id, [])
        if ws in clients:
            clients.remove(ws)

    # ── Broadcasting ─────────────────────────────────────

    def emit(self, session_id: str, event: dict[str, Any]) -> None:
        event.setdefault("ts", datetime.now(timezone.utc).isoformat())
        if event.get("event") == "state":
            self._latest[session_id] = event

        clients = self._clients.get(session_id, [])
        if not clients:
            return

        loop = self._loop
        if loop is None or loop.is_closed():
            return

        asyncio.run_coroutine_threadsafe(self._broadcast(session_id, event), loop)

    async def _broadcast(self, session_id: str, event: dict[str, Any]) -> None:
        dead: list[WebSocket] = []
        for ws in self._clients.get(session_id, []):
            try:
                await ws.send_json(event)
            except Exception:
                dead.append(ws)
        for ws in dead:
            self.disconnect(session_id, ws)

    # ── Convenience helpers ──────────────────────────────

    def on_state(self, session_id: str, state: PricingState) -> None:
        self.emit(session_id, {"event": "state", "state": state.to_record()})
        logger.debug(
            f"[{session_id}] v{state.state_version}: subtotal ${state.subtotal:,.2f}, "
            f"discount ${state.discount:,.2f}, total ${state.total:,.2f}"
        )

    def on_rejection(self, session_id: str, rejection: ApprovalRejected) -> None:
        self.emit(session_id, {
            "event": "approval_rejected",
            "message": str(rejection),
            "approver": rejection.result.approver_name,
            "notes": rejection.result.notes,
        })

    def on_close(self, session_id: str) -> None:
        self.emit(session_id, {"event": "session_closed"})
        self._latest.pop(session_id, None)

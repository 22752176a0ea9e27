"""
API routes — thin HTTP layer over PricingOrchestrator sessions.

Routes:
  GET    /health                                            → API health check
  POST   /api/pricing/sessions                              → Open a pricing session
  GET    /api/pricing/sessions/{sid}                        → Current pricing state
  DELETE /api/pricing/sessions/{sid}                        → Close the session
  PUT    /api/pricing/sessions/{sid}/services               → Select services
  PUT    /api/pricing/sessions/{sid}/services/{service}/price
  POST   /api/pricing/sessions/{sid}/discounts/{id}/toggle
  PUT    /api/pricing/sessions/{sid}/discounts/{id}/amount
  POST   /api/pricing/sessions/{sid}/manual-discount        (DELETE to reset)
  POST   /api/pricing/sessions/{sid}/total-override         (DELETE to clear)
  POST   /api/pricing/sessions/{sid}/adders                 (DELETE .../adders/{id})
  PUT    /api/pricing/sessions/{sid}/financing
  POST   /api/pricing/sessions/{sid}/approval               → Submit pending discount
  POST   /api/pricing/sessions/{sid}/approval/refresh       (DELETE to withdraw)
  POST   /api/pricing/sessions/{sid}/save                   → Save the proposal
  GET    /api/pricing/sessions/{sid}/activity               → Activity log
  WS     /api/pricing/ws/{sid}                              → Live pricing state
  GET    /api/approval-requests                             → Manager queue
  GET    /api/approval-requests/{id}
  PATCH  /api/approval-requests/{id}                        → Approve / reject
  GET    /api/financing/plans                               → Active financing plans
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from proposal_pricing.api.websocket import PricingEvents
from proposal_pricing.models.enums import ApprovalStatus
from proposal_pricing.models.schemas import ActionResult
from proposal_pricing.orchestration.orchestrator import PricingOrchestrator
from proposal_pricing.rules import RulesConfigStore
from proposal_pricing.services import AuditService, FinancingCatalog, InMemoryPricingBackend

logger = logging.getLogger(__name__)

# ── Routers ──────────────────────────────────────────────
health_router = APIRouter()
pricing_router = APIRouter()
approvals_router = APIRouter()
financing_router = APIRouter()

# ── In-memory collaborators (one per process) ────────────
_backend = InMemoryPricingBackend()
_audit = AuditService()
_rules_store = RulesConfigStore()
_sessions: dict[str, PricingOrchestrator] = {}


def get_backend() -> InMemoryPricingBackend:
    return _backend


def close_sessions() -> None:
    """Stop every open session and release the rules store connection."""
    for session_id, orchestrator in list(_sessions.items()):
        orchestrator.close()
        PricingEvents.get().on_close(session_id)
    _sessions.clear()
    _rules_store.close()


# ── Request / response schemas ───────────────────────────
class CreateSessionRequest(BaseModel):
    user_id: Optional[int] = None
    proposal_id: Optional[int] = None
    services: list[str] = []
    service_prices: dict[str, Any] = {}


class ServicesRequest(BaseModel):
    services: list[str]
    service_prices: dict[str, Any] = {}


class AmountRequest(BaseModel):
    amount: Any = None


class ToggleRequest(BaseModel):
    enabled: bool


class TotalRequest(BaseModel):
    total: Any = None


class AdderRequest(BaseModel):
    category: str = ""
    description: str = ""
    cost: Any = None


class FinancingRequest(BaseModel):
    plan_id: Optional[int] = None


class ApprovalSubmitRequest(BaseModel):
    notes: str = ""


class DecisionRequest(BaseModel):
    action: str  # "approve" | "reject"
    approver_id: Optional[int] = None
    notes: str = ""


class SessionResponse(BaseModel):
    session_id: str
    result: dict[str, Any]
    state: dict[str, Any]


def _session(session_id: str) -> PricingOrchestrator:
    orchestrator = _sessions.get(session_id)
    if orchestrator is None:
        raise HTTPException(status_code=404, detail=f"Pricing session {session_id} not found")
    return orchestrator


def _respond(session_id: str, result: ActionResult) -> SessionResponse:
    return SessionResponse(
        session_id=session_id,
        result=result.model_dump(mode="json", by_alias=True),
        state=_session(session_id).state.to_record(),
    )


# ── Health ───────────────────────────────────────────────

@health_router.get("/health")
async def health_check():
    return {
        "status": "ok",
        "sessions": len(_sessions),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# ── Session lifecycle ────────────────────────────────────

@pricing_router.post("/sessions", response_model=SessionResponse)
async def open_session(body: CreateSessionRequest):
    session_id = f"PS-{uuid.uuid4().hex[:8].upper()}"
    events = PricingEvents.get()
    orchestrator = PricingOrchestrator(
        _backend,
        user_id=body.user_id,
        proposal_id=body.proposal_id,
        services=body.services,
        service_prices=body.service_prices,
        rules=_rules_store.get_pricing_config(),
        audit=_audit,
    )
    orchestrator.subscribe(lambda state: events.on_state(session_id, state))
    orchestrator.on_rejection(lambda rejection: events.on_rejection(session_id, rejection))
    _sessions[session_id] = orchestrator
    logger.info(f"Opened pricing session {session_id} (user={body.user_id}, proposal={body.proposal_id})")

    result = await orchestrator.load()
    return _respond(session_id, result)


@pricing_router.get("/sessions/{session_id}")
async def get_session(session_id: str):
    orchestrator = _session(session_id)
    return {
        "session_id": session_id,
        "status": orchestrator.status.value,
        "pending_discount": (
            orchestrator.pending_discount.model_dump(mode="json", by_alias=True)
            if orchestrator.pending_discount else None
        ),
        "state": orchestrator.state.to_record(),
    }


@pricing_router.delete("/sessions/{session_id}")
async def close_session(session_id: str):
    orchestrator = _session(session_id)
    orchestrator.close()
    PricingEvents.get().on_close(session_id)
    del _sessions[session_id]
    return {"session_id": session_id, "closed": True}


# ── Services & line items ────────────────────────────────

@pricing_router.put("/sessions/{session_id}/services", response_model=SessionResponse)
async def select_services(session_id: str, body: ServicesRequest):
    result = _session(session_id).select_services(body.services, body.service_prices)
    return _respond(session_id, result)


@pricing_router.put("/sessions/{session_id}/services/{service}/price", response_model=SessionResponse)
async def set_service_price(session_id: str, service: str, body: AmountRequest):
    result = _session(session_id).set_service_price(service, body.amount)
    return _respond(session_id, result)


@pricing_router.post("/sessions/{session_id}/adders", response_model=SessionResponse)
async def add_custom_adder(session_id: str, body: AdderRequest):
    result = _session(session_id).add_custom_adder(body.category, body.description, body.cost)
    return _respond(session_id, result)


@pricing_router.delete("/sessions/{session_id}/adders/{adder_id}", response_model=SessionResponse)
async def remove_custom_adder(session_id: str, adder_id: int):
    result = _session(session_id).remove_custom_adder(adder_id)
    return _respond(session_id, result)


# ── Discounts ────────────────────────────────────────────

@pricing_router.post("/sessions/{session_id}/discounts/{discount_id}/toggle", response_model=SessionResponse)
async def toggle_discount(session_id: str, discount_id: str, body: ToggleRequest):
    result = _session(session_id).toggle_discount(discount_id, body.enabled)
    return _respond(session_id, result)


@pricing_router.put("/sessions/{session_id}/discounts/{discount_id}/amount", response_model=SessionResponse)
async def set_discount_amount(session_id: str, discount_id: str, body: AmountRequest):
    result = _session(session_id).set_discount_amount(discount_id, body.amount)
    return _respond(session_id, result)


@pricing_router.post("/sessions/{session_id}/manual-discount", response_model=SessionResponse)
async def apply_manual_discount(session_id: str, body: AmountRequest):
    result = _session(session_id).apply_manual_discount(body.amount)
    return _respond(session_id, result)


@pricing_router.delete("/sessions/{session_id}/manual-discount", response_model=SessionResponse)
async def reset_manual_discount(session_id: str):
    result = _session(session_id).reset_manual_discount()
    return _respond(session_id, result)


@pricing_router.post("/sessions/{session_id}/total-override", response_model=SessionResponse)
async def set_total_override(session_id: str, body: TotalRequest):
    result = _session(session_id).set_total_override(body.total)
    return _respond(session_id, result)


@pricing_router.delete("/sessions/{session_id}/total-override", response_model=SessionResponse)
async def clear_total_override(session_id: str):
    result = _session(session_id).clear_total_override()
    return _respond(session_id, result)


# ── Financing ────────────────────────────────────────────

@pricing_router.put("/sessions/{session_id}/financing", response_model=SessionResponse)
async def select_financing_plan(session_id: str, body: FinancingRequest):
    result = _session(session_id).select_financing_plan(body.plan_id)
    return _respond(session_id, result)


@financing_router.get("/plans")
async def list_financing_plans():
    catalog = FinancingCatalog(await _backend.get_active_financing_plans())
    return [
        {**plan.model_dump(mode="json", by_alias=True), "displayName": plan.display_name}
        for plan in catalog.plans
    ]


# ── Approval workflow (rep side) ─────────────────────────

@pricing_router.post("/sessions/{session_id}/approval", response_model=SessionResponse)
async def submit_for_approval(session_id: str, body: ApprovalSubmitRequest):
    result = await _session(session_id).submit_for_approval(body.notes)
    return _respond(session_id, result)


@pricing_router.post("/sessions/{session_id}/approval/refresh", response_model=SessionResponse)
async def refresh_approval(session_id: str):
    result = await _session(session_id).refresh_approval()
    return _respond(session_id, result)


@pricing_router.delete("/sessions/{session_id}/approval", response_model=SessionResponse)
async def cancel_approval(session_id: str):
    result = _session(session_id).cancel_approval()
    return _respond(session_id, result)


# ── Output ───────────────────────────────────────────────

@pricing_router.post("/sessions/{session_id}/save", response_model=SessionResponse)
async def save_proposal(session_id: str):
    result = await _session(session_id).save_proposal()
    return _respond(session_id, result)


@pricing_router.get("/sessions/{session_id}/activity")
async def get_activity(session_id: str):
    proposal_id = _session(session_id).state.proposal_id
    if proposal_id is None:
        return []
    return [e.model_dump(mode="json", by_alias=True) for e in _audit.get_trail(proposal_id)]


# ── Approval requests (manager side) ─────────────────────

@approvals_router.get("")
async def list_approval_requests(status: Optional[ApprovalStatus] = None):
    return [
        r.model_dump(mode="json", by_alias=True)
        for r in _backend.approvals.list_requests(status)
    ]


@approvals_router.get("/{request_id}")
async def get_approval_request(request_id: int):
    request = _backend.approvals.get(request_id)
    if request is None:
        raise HTTPException(status_code=404, detail=f"Approval request {request_id} not found")
    return request.model_dump(mode="json", by_alias=True)


@approvals_router.patch("/{request_id}")
async def decide_approval_request(request_id: int, body: DecisionRequest):
    try:
        request = _backend.decide_approval(request_id, body.action, body.approver_id, body.notes)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e.args[0]))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return request.model_dump(mode="json", by_alias=True)


# ── WebSocket endpoint for live pricing state ────────────

@pricing_router.websocket("/ws/{session_id}")
async def ws_pricing_state(websocket: WebSocket, session_id: str):
    """
    WebSocket endpoint — client connects here after opening a session.
    Receives JSON events: state, approval_rejected, session_closed.
    """
    events = PricingEvents.get()
    await events.connect(session_id, websocket)
    try:
        while True:
            # Keep the connection alive; client can send pings
            await websocket.receive_text()
    except WebSocketDisconnect:
        events.disconnect(session_id, websocket)
    except Exception:
        events.disconnect(session_id, websocket)

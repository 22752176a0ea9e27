"""
Routing functions for the orchestrator and approval-gate state machines.

Each function inspects a value and returns the next state; none of them
mutate anything.
"""

from __future__ import annotations

from proposal_pricing.models.enums import ApprovalStatus, GateState, OrchestratorState
from proposal_pricing.models.state import PricingState


# ── Authority check ──────────────────────────────────────

def route_authority(discount_percent: float, max_discount_percent: float) -> GateState:
    """
    Within the user's authority → IDLE (apply the change).
    Above it                   → PENDING (suspend for manager sign-off).
    """
    if discount_percent > max_discount_percent:
        return GateState.PENDING
    return GateState.IDLE


# ── Approval polling ─────────────────────────────────────

def route_after_approval_status(status: ApprovalStatus) -> GateState:
    """
    approved → APPROVED (apply the requested discount).
    rejected → REJECTED (discard it).
    pending  → PENDING  (keep polling).
    """
    if status == ApprovalStatus.APPROVED:
        return GateState.APPROVED
    if status == ApprovalStatus.REJECTED:
        return GateState.REJECTED
    return GateState.PENDING


# ── After a recompute job ────────────────────────────────

def route_after_recompute(gate_state: GateState) -> OrchestratorState:
    """Back to IDLE, or AWAITING_APPROVAL while a discount is suspended."""
    if gate_state == GateState.PENDING:
        return OrchestratorState.AWAITING_APPROVAL
    return OrchestratorState.IDLE


# ── Discount composition ─────────────────────────────────

def should_detect_bundle(state: PricingState) -> bool:
    """
    Bundle detection re-runs unless a manual override is active or the user
    switched the automatic bundle discount off.
    """
    return not state.manual_override_active and not state.auto_bundle_suppressed

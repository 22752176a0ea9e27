"""
Collaborator interface consumed by the pricing engine, plus the in-memory
implementation used in mock mode, by the API and by the tests.

The engine only ever talks to a PricingBackend; transport (HTTP, SQL,
MongoDB) is the backend's business.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from proposal_pricing.models.enums import UserRole
from proposal_pricing.models.schemas import (
    ApprovalRequest,
    ApprovalStatusResult,
    CreatedApproval,
    FinancingPlan,
    UserPermissions,
)
from proposal_pricing.persistence.approval_repository import ApprovalRepository
from proposal_pricing.persistence.proposal_repository import ProposalRepository

logger = logging.getLogger(__name__)


class PricingBackend(ABC):
    """External operations the engine depends on."""

    @abstractmethod
    async def get_active_financing_plans(self) -> list[FinancingPlan]:
        ...

    @abstractmethod
    async def get_user_permissions(self, user_id: int) -> UserPermissions:
        ...

    @abstractmethod
    async def create_approval_request(
        self,
        proposal_id: int,
        requestor_id: Optional[int],
        original_value: float,
        requested_value: float,
        discount_percent: float,
        discount_snapshot: list[dict[str, Any]],
        notes: str = "",
    ) -> CreatedApproval:
        ...

    @abstractmethod
    async def get_approval_request_status(self, request_id: int) -> ApprovalStatusResult:
        ...

    @abstractmethod
    async def save_or_update_proposal(self, proposal_draft: dict[str, Any]) -> int:
        """Persist a proposal draft or finalized record; return its proposal id."""
        ...


# ── Seed data ────────────────────────────────────────────

DEFAULT_USERS: dict[int, dict[str, Any]] = {
    1: {"name": "Sales Rep", "role": UserRole.REP, "max_discount_percent": 10.0,
        "can_approve_discounts": False},
    2: {"name": "Demo Manager", "role": UserRole.MANAGER, "max_discount_percent": 25.0,
        "can_approve_discounts": True},
}

DEFAULT_FINANCING_PLANS: list[FinancingPlan] = [
    FinancingPlan(id=1, provider="GreenSky", plan_number="1519", plan_name="12 Months Same As Cash",
                  interest_rate=0.0, term_months=12, payment_factor=3.0, merchant_fee=7.5,
                  notes="Deferred interest if not paid in full within 12 months"),
    FinancingPlan(id=2, provider="GreenSky", plan_number="2832", plan_name="9.99% for 120 Months",
                  interest_rate=9.99, term_months=120, payment_factor=1.32, merchant_fee=4.0),
    FinancingPlan(id=3, provider="Service Finance", plan_number="SF-60", plan_name="5.99% for 60 Months",
                  interest_rate=5.99, term_months=60, payment_factor=1.93, merchant_fee=5.5),
    FinancingPlan(id=4, provider="Service Finance", plan_number="SF-84", plan_name="7.99% for 84 Months",
                  interest_rate=7.99, term_months=84, payment_factor=1.56, merchant_fee=4.5),
    FinancingPlan(id=5, provider="Mosaic", plan_number="M-36", plan_name="0% for 36 Months",
                  interest_rate=0.0, term_months=36, payment_factor=3.5, merchant_fee=9.0),
]


class InMemoryPricingBackend(PricingBackend):
    """
    Process-local collaborators: users, financing plans, proposals and the
    approval queue. Managers resolve requests through ``decide_approval``.
    """

    def __init__(
        self,
        plans: Optional[list[FinancingPlan]] = None,
        users: Optional[dict[int, dict[str, Any]]] = None,
    ):
        self.plans = list(DEFAULT_FINANCING_PLANS if plans is None else plans)
        self.users = dict(DEFAULT_USERS if users is None else users)
        self.proposals = ProposalRepository()
        self.approvals = ApprovalRepository()

    async def get_active_financing_plans(self) -> list[FinancingPlan]:
        return [p for p in self.plans if p.is_active]

    async def get_user_permissions(self, user_id: int) -> UserPermissions:
        user = self.users.get(user_id)
        if user is None:
            raise LookupError(f"No permissions on record for user {user_id}")
        return UserPermissions(
            user_id=user_id,
            max_discount_percent=user["max_discount_percent"],
            can_approve_discounts=user["can_approve_discounts"],
            role=user["role"],
        )

    def _first_approver(self) -> tuple[Optional[int], str]:
        for user_id, user in sorted(self.users.items()):
            if user["can_approve_discounts"] and user["role"] in (UserRole.MANAGER, UserRole.ADMIN):
                return user_id, user["name"]
        return None, "Unassigned"

    async def create_approval_request(
        self,
        proposal_id: int,
        requestor_id: Optional[int],
        original_value: float,
        requested_value: float,
        discount_percent: float,
        discount_snapshot: list[dict[str, Any]],
        notes: str = "",
    ) -> CreatedApproval:
        approver_id, approver_name = self._first_approver()
        request = self.approvals.create(
            proposal_id=proposal_id,
            requestor_id=requestor_id,
            approver_id=approver_id,
            approver_name=approver_name,
            original_value=original_value,
            requested_value=requested_value,
            discount_percent=discount_percent,
            discount_snapshot=discount_snapshot,
            notes=notes,
        )
        return CreatedApproval(request_id=request.id, approver_name=approver_name)

    async def get_approval_request_status(self, request_id: int) -> ApprovalStatusResult:
        request = self.approvals.get(request_id)
        if request is None:
            raise LookupError(f"Approval request {request_id} not found")
        return ApprovalStatusResult(
            status=request.status,
            notes=request.notes,
            approver_name=request.approver_name,
        )

    async def save_or_update_proposal(self, proposal_draft: dict[str, Any]) -> int:
        return self.proposals.save_or_update(proposal_draft)

    # ── Manager side ─────────────────────────────────────

    def decide_approval(
        self,
        request_id: int,
        action: str,
        approver_id: Optional[int] = None,
        notes: str = "",
    ) -> ApprovalRequest:
        """Approve or reject a pending request on behalf of a manager."""
        if approver_id is None or approver_id not in self.users:
            approver_id, approver_name = self._first_approver()
        else:
            approver_name = self.users[approver_id]["name"]
        return self.approvals.decide(request_id, action, approver_id, approver_name, notes)

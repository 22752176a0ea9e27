"""
Approval Gate — authority check and manager sign-off for discounts.

States: IDLE → PENDING → {APPROVED, REJECTED}

  - check() suspends any gated change whose percentage of the subtotal
    exceeds the acting user's ``max_discount_percent`` (IDLE → PENDING).
  - submit() creates the external approval request.
  - refresh() / the polling task observe the manager's decision.
Catalog discounts (CustomerType, Loyalty, system-generated) are pre-approved
and never reach check(). Until permissions load the gate uses the default
threshold from settings instead of blocking edits.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from proposal_pricing.config import Settings, get_settings
from proposal_pricing.exceptions import ApprovalRequired, PermissionUnavailable, PersistenceFailure
from proposal_pricing.models.enums import ApprovalStatus, DiscountCategory, GateState
from proposal_pricing.models.schemas import (
    ApprovalStatusResult,
    CreatedApproval,
    DiscountType,
    PendingDiscount,
    UserPermissions,
)
from proposal_pricing.orchestration.transitions import route_after_approval_status, route_authority
from .backend import PricingBackend

logger = logging.getLogger(__name__)

PRE_APPROVED_CATEGORIES = (DiscountCategory.CUSTOMER_TYPE, DiscountCategory.LOYALTY)


class ApprovalGate:
    """Per-session approval state machine."""

    def __init__(self, backend: PricingBackend, settings: Settings | None = None):
        self.backend = backend
        self.settings = settings or get_settings()
        self.state = GateState.IDLE
        self.permissions: Optional[UserPermissions] = None
        self.pending: Optional[PendingDiscount] = None
        self.request_id: Optional[int] = None
        self.approver_name = ""
        self.last_result: Optional[ApprovalStatusResult] = None
        self._poll_task: Optional[asyncio.Task] = None

    # ── Authority ────────────────────────────────────────

    def set_permissions(self, permissions: UserPermissions) -> None:
        self.permissions = permissions
        logger.info(
            f"Discount authority loaded for user {permissions.user_id}: "
            f"{permissions.max_discount_percent:.1f}% ({permissions.role.value})"
        )

    def authority_percent(self) -> float:
        if self.permissions is None:
            raise PermissionUnavailable("User permissions have not loaded")
        return self.permissions.max_discount_percent

    def max_discount_percent(self) -> float:
        """The acting user's limit, or the conservative default while degraded."""
        try:
            return self.authority_percent()
        except PermissionUnavailable:
            logger.debug(
                f"Permissions unavailable, using default limit "
                f"{self.settings.default_max_discount_percent:.1f}%"
            )
            return self.settings.default_max_discount_percent

    @staticmethod
    def is_pre_approved(discount_type: DiscountType) -> bool:
        return discount_type.is_system_generated or discount_type.category in PRE_APPROVED_CATEGORIES

    def check(self, pending: PendingDiscount) -> None:
        """Let the change through, or suspend it and raise ApprovalRequired."""
        limit = self.max_discount_percent()
        if route_authority(pending.discount_percent, limit) == GateState.IDLE:
            return
        self.suspend(pending)
        raise ApprovalRequired(pending, limit)

    def suspend(self, pending: PendingDiscount) -> None:
        if self.state == GateState.PENDING and self.pending is not None:
            logger.info(
                f"Superseding pending discount ${self.pending.requested_value:,.2f} "
                f"(request {self.request_id or 'not submitted'})"
            )
            self.stop_polling()
        self.pending = pending
        self.request_id = None
        self.approver_name = ""
        self.last_result = None
        self.state = GateState.PENDING
        logger.info(
            f"Gate IDLE → PENDING: {pending.kind.value} ${pending.requested_value:,.2f} "
            f"({pending.discount_percent:.1f}%)"
        )

    # ── Manager sign-off ─────────────────────────────────

    @property
    def is_submitted(self) -> bool:
        return self.request_id is not None

    async def submit(
        self,
        proposal_id: int,
        requestor_id: Optional[int],
        discount_snapshot: list[dict[str, Any]],
        notes: str = "",
    ) -> CreatedApproval:
        if self.pending is None:
            raise RuntimeError("No pending discount to submit")
        pending = self.pending
        try:
            created = await self.backend.create_approval_request(
                proposal_id=proposal_id,
                requestor_id=requestor_id,
                original_value=pending.original_value,
                requested_value=pending.requested_value,
                discount_percent=pending.discount_percent,
                discount_snapshot=discount_snapshot,
                notes=notes,
            )
        except Exception as e:
            raise PersistenceFailure("CreateApprovalRequest", e) from e
        if self.pending is not pending:
            # superseded while the request was being created
            return created
        self.request_id = created.request_id
        self.approver_name = created.approver_name
        logger.info(f"Approval request #{created.request_id} sent to {created.approver_name or 'a manager'}")
        return created

    async def refresh(self) -> Optional[ApprovalStatusResult]:
        """
        Check the request once. Returns None when nothing is awaiting a
        decision; otherwise the status, moving the gate to a terminal state
        when the manager has acted.
        """
        if self.state != GateState.PENDING or self.request_id is None:
            return None
        request_id = self.request_id
        result = await self.backend.get_approval_request_status(request_id)
        if self.request_id != request_id or self.state != GateState.PENDING:
            return None
        self.last_result = result
        next_state = route_after_approval_status(result.status)
        if next_state != GateState.PENDING:
            logger.info(f"Gate PENDING → {next_state.value} (request #{request_id})")
            self.state = next_state
        return result

    def take_pending(self) -> Optional[PendingDiscount]:
        """Hand over the resolved discount and forget the request."""
        pending = self.pending
        self.pending = None
        self.request_id = None
        return pending

    def cancel(self) -> None:
        """Withdraw the pending discount without a decision."""
        self.stop_polling()
        if self.pending is not None:
            logger.info(f"Pending discount ${self.pending.requested_value:,.2f} withdrawn")
        self.pending = None
        self.request_id = None
        self.state = GateState.IDLE

    # ── Polling ──────────────────────────────────────────

    def start_polling(self, on_resolved: Callable[[ApprovalStatusResult], Any]) -> None:
        """Poll on a fixed interval until a terminal status is seen or polling is stopped."""
        self.stop_polling()
        self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop(on_resolved))

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def stop_polling(self) -> None:
        task = self._poll_task
        self._poll_task = None
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()

    async def _poll_loop(self, on_resolved: Callable[[ApprovalStatusResult], Any]) -> None:
        interval = self.settings.approval_poll_interval_seconds
        request_id = self.request_id
        try:
            while self.state == GateState.PENDING and self.request_id == request_id:
                await asyncio.sleep(interval)
                try:
                    result = await self.refresh()
                except Exception as e:
                    logger.warning(f"Approval status check for request #{request_id} failed: {e}")
                    continue
                if result is not None and result.status != ApprovalStatus.PENDING:
                    on_resolved(result)
                    return
        except asyncio.CancelledError:
            logger.info(f"Stopped polling approval request #{request_id}")
            raise

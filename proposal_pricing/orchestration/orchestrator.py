"""
PricingOrchestrator — the façade that owns one proposal-editing session.

Every user edit becomes a job on a FIFO queue. A job runs against a deep copy
of the PricingState and then the full recompute sequence:

  1. subtotal from the selected services' priced components plus custom adders
  2. discount composition (BundleDetector + ConflictResolver)
  3. discount, derived from the enabled discount types and manual override
  4. total, derived (or the user's typed total in pricing-override mode)
  5. monthly payment via the financing calculator
  6. discount log entries for every discount value that moved
  7. publish the committed state to subscribers

The copy is committed only if all of that succeeds, so subscribers never see
a partially recomputed state. Edits arriving while a job is running (for
example from a subscriber callback) wait in the queue.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional

from proposal_pricing.config import Settings, get_settings
from proposal_pricing.exceptions import (
    ApprovalRejected,
    ApprovalRequired,
    PersistenceFailure,
    PricingError,
    UnknownItem,
)
from proposal_pricing.models.enums import (
    ActivityAction,
    ApprovalStatus,
    OrchestratorState,
    PendingKind,
    PricingErrorKind,
)
from proposal_pricing.models.schemas import ActionResult, ApprovalStatusResult, CustomAdder, PendingDiscount
from proposal_pricing.models.state import PricingState
from proposal_pricing.rules import (
    AUTO_BUNDLE_ID,
    BundleDetector,
    ConflictResolver,
    DiscountCatalog,
    PricingRulesConfig,
    RulesConfigStore,
)
from proposal_pricing.services import financing
from proposal_pricing.services.approval_gate import ApprovalGate
from proposal_pricing.services.audit_service import AuditService
from proposal_pricing.services.backend import PricingBackend
from proposal_pricing.services.financing import FinancingCatalog
from proposal_pricing.utils.numeric import coerce_amount, discount_percent, money_equal
from .transitions import route_after_recompute, should_detect_bundle

logger = logging.getLogger(__name__)

StateListener = Callable[[PricingState], Any]
RejectionListener = Callable[[ApprovalRejected], Any]


@dataclass
class _Job:
    action: str
    mutate: Callable[[PricingState], None]
    after_commit: Optional[Callable[[PricingState, PricingState], None]] = None
    result: ActionResult = field(init=False)

    def __post_init__(self) -> None:
        self.result = ActionResult(action=self.action)


class PricingOrchestrator:
    """One instance per proposal-editing session; not shared across sessions."""

    def __init__(
        self,
        backend: PricingBackend,
        user_id: Optional[int] = None,
        proposal_id: Optional[int] = None,
        services: Iterable[str] = (),
        service_prices: Optional[dict[str, Any]] = None,
        settings: Settings | None = None,
        rules: PricingRulesConfig | None = None,
        audit: AuditService | None = None,
    ):
        self.settings = settings or get_settings()
        self.backend = backend
        self.user_id = user_id
        self.rules = rules or RulesConfigStore(self.settings).get_pricing_config()
        self.catalog = DiscountCatalog(self.rules)
        self.bundle_detector = BundleDetector(self.rules.bundle_rules)
        self.resolver = ConflictResolver()
        self.gate = ApprovalGate(backend, self.settings)
        self.audit = audit or AuditService()
        self.financing = FinancingCatalog()  # empty until load()
        self.status = OrchestratorState.IDLE

        self._queue: deque[_Job] = deque()
        self._listeners: list[StateListener] = []
        self._rejection_listeners: list[RejectionListener] = []
        self._closed = False
        self._state = PricingState(
            proposal_id=proposal_id,
            discount_types=self.catalog.seed(),
            financing_term=self.settings.default_financing_term_months,
            interest_rate=self.settings.default_interest_rate,
        )
        self.select_services(services, service_prices)

    # ── Read side ────────────────────────────────────────

    @property
    def state(self) -> PricingState:
        """The last committed state. Treat as read-only; use snapshot() to keep a copy."""
        return self._state

    def snapshot(self) -> PricingState:
        return self._state.model_copy(deep=True)

    @property
    def pending_discount(self) -> Optional[PendingDiscount]:
        return self.gate.pending

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Receive every published state. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def on_rejection(self, listener: RejectionListener) -> None:
        self._rejection_listeners.append(listener)

    # ── Session lifecycle ────────────────────────────────

    async def load(self) -> ActionResult:
        """
        Fetch financing plans and the user's permissions concurrently. Until
        this completes (or if either fetch fails) the engine runs degraded:
        empty financing list, default discount authority.
        """
        result = ActionResult(action="load")
        if self.user_id is None:
            plans = await asyncio.gather(self.backend.get_active_financing_plans(), return_exceptions=True)
            plans_or_error, permissions_or_error = plans[0], None
            logger.warning("No authenticated user; using the default discount authority")
        else:
            plans_or_error, permissions_or_error = await asyncio.gather(
                self.backend.get_active_financing_plans(),
                self.backend.get_user_permissions(self.user_id),
                return_exceptions=True,
            )

        messages: list[str] = []
        if isinstance(plans_or_error, BaseException):
            logger.warning(f"Financing plans unavailable, continuing without them: {plans_or_error}")
            messages.append("financing plans unavailable")
        else:
            self.financing = FinancingCatalog(plans_or_error)
            messages.append(f"{len(self.financing)} financing plans")

        if isinstance(permissions_or_error, BaseException):
            logger.warning(
                f"Permissions for user {self.user_id} unavailable, using default limit "
                f"{self.settings.default_max_discount_percent:.1f}%: {permissions_or_error}"
            )
            result.error = PricingErrorKind.PERMISSION_UNAVAILABLE
            messages.append("default discount authority")
        elif permissions_or_error is not None:
            self.gate.set_permissions(permissions_or_error)
            messages.append(f"authority {permissions_or_error.max_discount_percent:.1f}%")
        else:
            result.error = PricingErrorKind.PERMISSION_UNAVAILABLE
            messages.append("default discount authority")

        # Re-derive the payment now that a selected plan may be resolvable
        recompute = self._dispatch("catalogs_loaded", lambda state: None)
        result.applied = recompute.applied
        result.message = ", ".join(messages)
        return result

    def close(self) -> None:
        """End the session: stop approval polling and drop subscribers."""
        self.gate.stop_polling()
        self._closed = True
        self._listeners.clear()
        self._rejection_listeners.clear()
        logger.info(f"Pricing session closed (proposal={self._state.proposal_id})")

    # ── Services & line items ────────────────────────────

    def select_services(
        self,
        services: Iterable[str],
        service_prices: Optional[dict[str, Any]] = None,
    ) -> ActionResult:
        selected = list(dict.fromkeys(services))
        prices = {k: coerce_amount(v) for k, v in (service_prices or {}).items()}

        def mutate(state: PricingState) -> None:
            state.selected_services = selected
            state.service_prices.update(prices)

        return self._dispatch("select_services", mutate)

    def set_service_price(self, service: str, amount: Any) -> ActionResult:
        price = coerce_amount(amount)

        def mutate(state: PricingState) -> None:
            state.service_prices[service] = price

        return self._dispatch("set_service_price", mutate)

    def add_custom_adder(self, category: str, description: str, cost: Any) -> ActionResult:
        def mutate(state: PricingState) -> None:
            state.custom_adders.append(
                CustomAdder(id=state.next_adder_id(), category=category, description=description, cost=cost)
            )

        return self._dispatch("add_custom_adder", mutate)

    def remove_custom_adder(self, adder_id: int) -> ActionResult:
        def mutate(state: PricingState) -> None:
            remaining = [a for a in state.custom_adders if a.id != adder_id]
            if len(remaining) == len(state.custom_adders):
                raise UnknownItem(f"Unknown custom adder: {adder_id}")
            state.custom_adders = remaining

        return self._dispatch("remove_custom_adder", mutate)

    # ── Discount catalog ─────────────────────────────────

    def toggle_discount(self, discount_id: str, enabled: bool) -> ActionResult:
        """Switch a catalog discount on or off. Catalog toggles are pre-approved."""

        def mutate(state: PricingState) -> None:
            discount_type = self.catalog.find(state.discount_types, discount_id)
            if discount_type.id == AUTO_BUNDLE_ID:
                state.auto_bundle_suppressed = not enabled
                if enabled:
                    self.bundle_detector.apply(state.discount_types, state.selected_services, self._pricer(state))
                else:
                    discount_type.disable()
                return
            if enabled and state.manual_override_active:
                self._end_manual_override(state)
            self.catalog.toggle(state.discount_types, discount_id, enabled, state.subtotal)
            state.discount_types = self.resolver.resolve(state.discount_types, discount_id)

        return self._dispatch("toggle_discount", mutate)

    def set_discount_amount(self, discount_id: str, amount: Any) -> ActionResult:
        """
        Type a dollar amount for one discount. Non-system Bundle discounts are
        checked against the user's authority; everything else is pre-approved.
        """
        value = coerce_amount(amount)

        def mutate(state: PricingState) -> None:
            discount_type = self.catalog.find(state.discount_types, discount_id)
            if not self.gate.is_pre_approved(discount_type):
                self.gate.check(PendingDiscount(
                    kind=PendingKind.DISCOUNT_AMOUNT,
                    discount_type_id=discount_id,
                    original_value=discount_type.amount,
                    requested_value=value,
                    discount_percent=discount_percent(value, state.subtotal),
                    requested_by=self.user_id,
                ))
            self._apply_discount_amount(state, discount_id, value)

        return self._dispatch("set_discount_amount", mutate)

    # ── Manual override ──────────────────────────────────

    def apply_manual_discount(self, amount: Any) -> ActionResult:
        """
        Type a discount directly. Non-system discounts are switched off; an
        enabled automatic bundle discount stays and the typed amount is added
        on top of it. Automatic bundle recalculation pauses until reset.
        """
        value = coerce_amount(amount)

        def mutate(state: PricingState) -> None:
            self.gate.check(PendingDiscount(
                kind=PendingKind.MANUAL_OVERRIDE,
                original_value=state.discount,
                requested_value=value,
                discount_percent=discount_percent(value, state.subtotal),
                requested_by=self.user_id,
            ))
            self._apply_manual_discount(state, value)

        return self._dispatch("apply_manual_discount", mutate)

    def reset_manual_discount(self) -> ActionResult:
        """Drop the typed discount and resume automatic bundle detection."""
        return self._dispatch("reset_manual_discount", self._end_manual_override)

    # ── Pricing override (typed total) ───────────────────

    def set_total_override(self, total: Any) -> ActionResult:
        """
        Type the final total. The implied discount beyond the system-generated
        discounts is checked against the user's authority.
        """
        value = coerce_amount(total)

        def mutate(state: PricingState) -> None:
            implied = max(state.subtotal - value - state.system_discount_total(), 0.0)
            self.gate.check(PendingDiscount(
                kind=PendingKind.TOTAL_OVERRIDE,
                original_value=state.discount,
                requested_value=implied,
                requested_total=value,
                discount_percent=discount_percent(implied, state.subtotal),
                requested_by=self.user_id,
            ))
            state.pricing_override_enabled = True
            state.override_total = value

        return self._dispatch("set_total_override", mutate)

    def clear_total_override(self) -> ActionResult:
        def mutate(state: PricingState) -> None:
            state.pricing_override_enabled = False
            state.override_total = 0.0

        return self._dispatch("clear_total_override", mutate)

    # ── Financing ────────────────────────────────────────

    def select_financing_plan(self, plan_id: Optional[int]) -> ActionResult:
        """Pick a plan (payment-factor mode) or None to fall back to amortization."""

        def mutate(state: PricingState) -> None:
            if plan_id is None:
                state.financing_plan_id = None
                state.financing_plan_name = ""
                state.financing_term = self.settings.default_financing_term_months
                state.interest_rate = self.settings.default_interest_rate
                state.merchant_fee = 0.0
                state.financing_notes = ""
                return
            plan = self.financing.get(plan_id)
            if plan is None:
                raise UnknownItem(f"Unknown financing plan: {plan_id}")
            state.financing_plan_id = plan.id

        def after_commit(before: PricingState, after: PricingState) -> None:
            self.audit.record(
                ActivityAction.UPDATE_FINANCING,
                proposal_id=after.proposal_id,
                user_id=self.user_id,
                details=f"Financing: {after.financing_plan_name or 'standard amortization'}",
                previous={"financingPlanId": before.financing_plan_id, "monthlyPayment": before.monthly_payment},
                new={"financingPlanId": after.financing_plan_id, "monthlyPayment": after.monthly_payment},
            )

        return self._dispatch("select_financing_plan", mutate, after_commit)

    # ── Approval workflow ────────────────────────────────

    async def submit_for_approval(self, notes: str = "") -> ActionResult:
        """
        Send the suspended discount to a manager and start polling for the
        decision. Makes sure a proposal draft exists to reference first.
        """
        result = ActionResult(action="submit_for_approval")
        pending = self.gate.pending
        if pending is None:
            result.message = "No discount is awaiting approval"
            return result
        result.approval_required = True
        result.pending_discount = pending
        if self.gate.is_submitted:
            result.request_id = self.gate.request_id
            result.message = "Approval request already submitted"
            return result

        try:
            proposal_id = await self._ensure_proposal()
            created = await self.gate.submit(
                proposal_id=proposal_id,
                requestor_id=self.user_id,
                discount_snapshot=self._discount_snapshot(),
                notes=notes,
            )
        except PersistenceFailure as e:
            logger.warning(f"Approval request not sent: {e}")
            result.error = e.kind
            result.retryable = True
            result.message = str(e)
            return result

        self.audit.record(
            ActivityAction.REQUEST_DISCOUNT,
            proposal_id=proposal_id,
            user_id=self.user_id,
            details=(
                f"Requested {pending.discount_percent:.1f}% discount, above the "
                f"{self.gate.max_discount_percent():.1f}% limit"
            ),
            previous={"discount": pending.original_value},
            new={"discount": pending.requested_value, "status": ApprovalStatus.PENDING.value},
        )
        if self.gate.is_submitted:
            self.gate.start_polling(self._on_polled_resolution)
        result.request_id = created.request_id
        result.message = f"Approval request sent to {created.approver_name or 'a manager'}"
        return result

    async def refresh_approval(self) -> ActionResult:
        """Check the approval request once, applying or discarding the discount if decided."""
        try:
            status = await self.gate.refresh()
        except Exception as e:
            logger.warning(f"Approval status unavailable: {e}")
            return ActionResult(
                action="refresh_approval",
                approval_required=True,
                pending_discount=self.gate.pending,
                request_id=self.gate.request_id,
                error=PricingErrorKind.PERSISTENCE_FAILURE,
                retryable=True,
                message=f"GetApprovalRequestStatus failed: {e}",
            )
        if status is None:
            return ActionResult(action="refresh_approval", message="No approval request is awaiting a decision")
        if status.status == ApprovalStatus.PENDING:
            return ActionResult(
                action="refresh_approval",
                approval_required=True,
                pending_discount=self.gate.pending,
                request_id=self.gate.request_id,
                message="Awaiting manager decision",
            )
        return self._handle_resolution(status)

    def cancel_approval(self) -> ActionResult:
        """Withdraw the suspended discount; pricing stays as it is."""
        self.gate.cancel()
        self._settle_when_idle()
        return ActionResult(action="cancel_approval", message="Pending discount withdrawn")

    # ── Output ───────────────────────────────────────────

    async def save_proposal(self) -> ActionResult:
        """Send the finalized pricing record and discount log to the proposal store."""
        result = ActionResult(action="save_proposal")
        try:
            proposal_id = await self._save(self._record("final"))
        except PersistenceFailure as e:
            logger.warning(f"Proposal not saved: {e}")
            result.error = e.kind
            result.retryable = True
            result.message = str(e)
            return result
        self._attach_proposal(proposal_id)
        result.applied = True
        result.message = f"Saved proposal {proposal_id}"
        return result

    # ── Queue & recompute ────────────────────────────────

    def _dispatch(
        self,
        action: str,
        mutate: Callable[[PricingState], None],
        after_commit: Optional[Callable[[PricingState, PricingState], None]] = None,
    ) -> ActionResult:
        job = _Job(action, mutate, after_commit)
        if self._closed:
            job.result.message = "Session is closed"
            return job.result
        self._queue.append(job)
        if self.status == OrchestratorState.RECOMPUTING:
            job.result.queued = True
            logger.debug(f"Queued '{action}' behind the running recompute")
            return job.result
        self._drain()
        return job.result

    def _drain(self) -> None:
        while self._queue:
            job = self._queue.popleft()
            self.status = OrchestratorState.RECOMPUTING
            try:
                self._run(job)
            finally:
                self._settle_status()

    def _settle_status(self) -> None:
        self.status = route_after_recompute(self.gate.state)

    def _settle_when_idle(self) -> None:
        # a running job settles the status itself once the queue drains
        if self.status != OrchestratorState.RECOMPUTING:
            self._settle_status()

    def _run(self, job: _Job) -> None:
        t0 = time.perf_counter()
        result = job.result
        before = self._state
        working = before.model_copy(deep=True)
        logger.debug(f"▶ [{job.action}] STARTING")

        try:
            job.mutate(working)
            self._recompute(working)
        except ApprovalRequired as e:
            logger.info(f"[{job.action}] suspended: {e}")
            result.approval_required = True
            result.pending_discount = e.pending
            result.error = e.kind
            result.message = str(e)
            return
        except PricingError as e:
            logger.warning(f"[{job.action}] rejected: {e}")
            result.error = e.kind
            result.message = str(e)
            return
        except Exception as e:
            logger.exception(f"✘ [{job.action}] FAILED, keeping the last good pricing: {e}")
            result.error = PricingErrorKind.RECOMPUTE_FAILED
            result.message = f"Pricing could not be recalculated: {e}"
            return

        self._log_discount_changes(before, working)
        working.state_version = before.state_version + 1
        self._state = working
        result.applied = True

        if not money_equal(before.total, working.total, self.settings.money_tolerance):
            self.audit.record(
                ActivityAction.UPDATE_PRICING,
                proposal_id=working.proposal_id,
                user_id=self.user_id,
                details=f"{job.action}: total ${before.total:,.2f} → ${working.total:,.2f}",
                previous={"subtotal": before.subtotal, "discount": before.discount, "total": before.total},
                new={"subtotal": working.subtotal, "discount": working.discount, "total": working.total},
            )
        if job.after_commit is not None:
            job.after_commit(before, working)

        elapsed = time.perf_counter() - t0
        logger.debug(f"✔ [{job.action}] COMPLETED in {elapsed:.4f}s")
        _log_state_diff(job.action, before.model_dump(), working.model_dump())
        self._publish()

    def _recompute(self, state: PricingState) -> None:
        pricer = self._pricer(state)

        # 1. subtotal
        services_total = sum(pricer(s) for s in state.selected_services)
        adders_total = sum(a.cost for a in state.custom_adders)
        state.subtotal = round(services_total + adders_total, 2)

        # 2. discount composition
        if should_detect_bundle(state):
            self.bundle_detector.apply(state.discount_types, state.selected_services, pricer)
        self.catalog.refresh_percentage_amounts(state.discount_types, state.subtotal)
        violations = self.resolver.violations(state.discount_types)
        if violations:
            logger.warning(f"Resolving discount conflicts: {[v['detail'] for v in violations]}")
            state.discount_types = self.resolver.resolve_all(state.discount_types)

        # 3-4. discount and total are derived properties of PricingState

        # 5. monthly payment
        plan = self.financing.get(state.financing_plan_id) if state.financing_plan_id is not None else None
        if plan is not None:
            state.financing_plan_name = plan.display_name
            state.financing_term = plan.term_months
            state.interest_rate = plan.interest_rate
            state.merchant_fee = plan.merchant_fee
            state.financing_notes = plan.notes
        payment = financing.quote(state.total, plan, state.financing_term, state.interest_rate)
        state.payment_mode = payment.mode
        state.monthly_payment = payment.monthly_payment
        state.net_settlement = payment.net_settlement

    def _pricer(self, state: PricingState) -> Callable[[str], float]:
        base_prices = self.rules.service_base_prices

        def priced_subtotal(service: str) -> float:
            if service in state.service_prices:
                return state.service_prices[service]
            return base_prices.get(service, 0.0)

        return priced_subtotal

    def _log_discount_changes(self, before: PricingState, after: PricingState) -> None:
        previous = before.discount_amounts()
        current = after.discount_amounts()
        for key in current:
            old, new = previous.get(key, 0.0), current[key]
            if not money_equal(old, new, 0.001):
                after.add_log(self.user_id, key, old, new)

    def _publish(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Pricing subscriber failed")

    # ── Mutation helpers ─────────────────────────────────

    def _apply_discount_amount(self, state: PricingState, discount_id: str, amount: float) -> None:
        discount_type = self.catalog.find(state.discount_types, discount_id)
        if discount_type.id == AUTO_BUNDLE_ID:
            # a typed amount takes the automatic bundle out of detection
            state.auto_bundle_suppressed = True
        elif amount > 0 and state.manual_override_active:
            self._end_manual_override(state)
        self.catalog.set_amount(state.discount_types, discount_id, amount)
        state.discount_types = self.resolver.resolve(state.discount_types, discount_id)

    def _apply_manual_discount(self, state: PricingState, amount: float) -> None:
        cleared = self.catalog.clear_non_system(state.discount_types)
        if cleared:
            logger.info(f"Manual discount replaces: {', '.join(cleared)}")
        state.manual_discount = amount
        state.manual_override_active = True

    @staticmethod
    def _end_manual_override(state: PricingState) -> None:
        state.manual_discount = None
        state.manual_override_active = False

    def _apply_pending(self, state: PricingState, pending: PendingDiscount) -> None:
        if pending.kind == PendingKind.MANUAL_OVERRIDE:
            self._apply_manual_discount(state, pending.requested_value)
        elif pending.kind == PendingKind.TOTAL_OVERRIDE:
            state.pricing_override_enabled = True
            state.override_total = pending.requested_total or 0.0
        else:
            self._apply_discount_amount(state, pending.discount_type_id or "", pending.requested_value)

    # ── Approval helpers ─────────────────────────────────

    def _on_polled_resolution(self, status: ApprovalStatusResult) -> None:
        try:
            self._handle_resolution(status)
        except Exception:
            logger.exception("Failed to apply approval decision")

    def _handle_resolution(self, status: ApprovalStatusResult) -> ActionResult:
        self.gate.stop_polling()
        pending = self.gate.take_pending()
        if pending is None:
            self._settle_when_idle()
            return ActionResult(action="approval_decision", message="No pending discount")

        approver = status.approver_name or "a manager"
        if status.status == ApprovalStatus.APPROVED:
            self.audit.record(
                ActivityAction.APPROVE_DISCOUNT,
                proposal_id=self._state.proposal_id,
                user_id=self.user_id,
                details=f"Discount of ${pending.requested_value:,.2f} approved by {approver}",
                previous={"discount": pending.original_value},
                new={"discount": pending.requested_value, "status": status.status.value},
            )
            result = self._dispatch("apply_approved_discount", lambda state: self._apply_pending(state, pending))
            result.message = f"Discount approved by {approver}"
            if status.notes:
                result.message += f": {status.notes}"
            return result

        rejection = ApprovalRejected(pending, status)
        self.audit.record(
            ActivityAction.REJECT_DISCOUNT,
            proposal_id=self._state.proposal_id,
            user_id=self.user_id,
            details=str(rejection),
            previous={"discount": pending.original_value},
            new={"discount": self._state.discount, "status": status.status.value},
        )
        logger.info(str(rejection))
        self._settle_when_idle()
        for listener in list(self._rejection_listeners):
            try:
                listener(rejection)
            except Exception:
                logger.exception("Rejection subscriber failed")
        self._publish()
        return ActionResult(
            action="approval_decision",
            error=rejection.kind,
            message=str(rejection),
        )

    async def _ensure_proposal(self) -> int:
        if self._state.proposal_id is not None:
            return self._state.proposal_id
        proposal_id = await self._save(self._record("draft"))
        self._attach_proposal(proposal_id)
        return proposal_id

    async def _save(self, record: dict[str, Any]) -> int:
        try:
            return await self.backend.save_or_update_proposal(record)
        except Exception as e:
            raise PersistenceFailure("SaveOrUpdateProposal", e) from e

    def _attach_proposal(self, proposal_id: int) -> None:
        if self._state.proposal_id == proposal_id:
            return

        def mutate(state: PricingState) -> None:
            state.proposal_id = proposal_id

        self._dispatch("attach_proposal", mutate)

    def _record(self, status: str) -> dict[str, Any]:
        return {
            "proposalId": self._state.proposal_id,
            "userId": self.user_id,
            "status": status,
            "pricing": self._state.to_record(),
        }

    def _discount_snapshot(self) -> list[dict[str, Any]]:
        snapshot = [
            {"id": d.id, "name": d.name, "category": d.category.value, "amount": d.amount,
             "isSystemGenerated": d.is_system_generated}
            for d in self._state.enabled_discounts()
        ]
        if self._state.manual_override_active:
            snapshot.append({"id": "manual-override", "name": "Manual Discount",
                             "amount": self._state.manual_discount or 0.0})
        return snapshot


# ── Debug helpers (module-level) ─────────────────────────

def _log_state_diff(label: str, before: dict[str, Any], after: dict[str, Any]) -> None:
    """Log which fields changed between the previous and the committed state."""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    changes: list[str] = []
    for key in sorted(set(before) | set(after)):
        old, new = before.get(key), after.get(key)
        if old != new:
            changes.append(f"  │  {key}: {_truncate(old)} → {_truncate(new)}")
    if changes:
        logger.debug(f"  ┌─ {label}\n" + "\n".join(changes) + f"\n  └─ ({len(changes)} fields changed)")
    else:
        logger.debug(f"  ── {label}: no changes")


def _truncate(val: Any, max_len: int = 120) -> str:
    """Produce a short repr for debug logging."""
    if val is None:
        return "<None>"
    if isinstance(val, list):
        return f"list({len(val)} items)"
    if isinstance(val, dict):
        s = json.dumps(val, default=str)
        return s if len(s) <= max_len else s[:max_len] + f"…({len(s)} chars)"
    s = str(val)
    return s if len(s) <= max_len else s[:max_len] + "…"

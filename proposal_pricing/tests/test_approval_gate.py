"""
Tests: approval gate, in-memory backend and approval repository.

Run with:
    pytest proposal_pricing/tests/test_approval_gate.py -v
"""

import asyncio

import pytest
from proposal_pricing.config import Settings
from proposal_pricing.exceptions import ApprovalRequired, PermissionUnavailable, PersistenceFailure
from proposal_pricing.models.enums import ApprovalStatus, DiscountCategory, GateState, PendingKind
from proposal_pricing.models.schemas import DiscountType, PendingDiscount
from proposal_pricing.orchestration.transitions import route_after_approval_status, route_authority
from proposal_pricing.services import ApprovalGate, InMemoryPricingBackend


def _pending(percent, requested=2000.0):
    return PendingDiscount(
        kind=PendingKind.MANUAL_OVERRIDE,
        original_value=0.0,
        requested_value=requested,
        discount_percent=percent,
        requested_by=1,
    )


def _gate(backend=None, **settings):
    settings.setdefault("approval_poll_interval_seconds", 0.01)
    return ApprovalGate(backend or InMemoryPricingBackend(), Settings(**settings))


def _with_rep_permissions(gate):
    gate.set_permissions(asyncio.run(gate.backend.get_user_permissions(1)))
    return gate


class FailingApprovalBackend(InMemoryPricingBackend):
    async def create_approval_request(self, *args, **kwargs):
        raise ConnectionError("approval service unreachable")


class TestRouting:
    def test_within_authority(self):
        assert route_authority(10.0, 10.0) == GateState.IDLE

    def test_above_authority(self):
        assert route_authority(10.01, 10.0) == GateState.PENDING

    def test_status_routes(self):
        assert route_after_approval_status(ApprovalStatus.APPROVED) == GateState.APPROVED
        assert route_after_approval_status(ApprovalStatus.REJECTED) == GateState.REJECTED
        assert route_after_approval_status(ApprovalStatus.PENDING) == GateState.PENDING


class TestAuthority:
    def test_permissions_unavailable_raises(self):
        with pytest.raises(PermissionUnavailable):
            _gate().authority_percent()

    def test_default_limit_while_degraded(self):
        assert _gate(default_max_discount_percent=12.5).max_discount_percent() == 12.5

    def test_loaded_limit(self):
        assert _with_rep_permissions(_gate()).max_discount_percent() == 10.0

    def test_catalog_categories_pre_approved(self):
        senior = DiscountType(id="senior", name="Senior", category=DiscountCategory.CUSTOMER_TYPE)
        bundle = DiscountType(id="b", name="Bundle", category=DiscountCategory.BUNDLE)
        auto = DiscountType(id="a", name="Auto", category=DiscountCategory.BUNDLE, is_system_generated=True)
        assert ApprovalGate.is_pre_approved(senior)
        assert ApprovalGate.is_pre_approved(auto)
        assert not ApprovalGate.is_pre_approved(bundle)

    def test_approver_still_bound_by_threshold(self):
        gate = _gate()
        gate.set_permissions(asyncio.run(gate.backend.get_user_permissions(2)))
        with pytest.raises(ApprovalRequired):
            gate.check(_pending(30.0))


class TestGateStates:
    def test_within_limit_passes(self):
        gate = _with_rep_permissions(_gate())
        gate.check(_pending(5.0))
        assert gate.state == GateState.IDLE
        assert gate.pending is None

    def test_over_limit_suspends(self):
        gate = _with_rep_permissions(_gate())
        with pytest.raises(ApprovalRequired) as exc:
            gate.check(_pending(20.0))
        assert gate.state == GateState.PENDING
        assert gate.pending.requested_value == 2000.0
        assert "10.0%" in str(exc.value)

    def test_new_request_supersedes_pending(self):
        gate = _with_rep_permissions(_gate())
        with pytest.raises(ApprovalRequired):
            gate.check(_pending(20.0, requested=2000))
        with pytest.raises(ApprovalRequired):
            gate.check(_pending(30.0, requested=3000))
        assert gate.pending.requested_value == 3000

    def test_submit_and_approve(self):
        backend = InMemoryPricingBackend()
        gate = _with_rep_permissions(_gate(backend))

        async def scenario():
            with pytest.raises(ApprovalRequired):
                gate.check(_pending(20.0))
            created = await gate.submit(proposal_id=7, requestor_id=1, discount_snapshot=[])
            assert created.approver_name == "Demo Manager"
            assert (await gate.refresh()).status == ApprovalStatus.PENDING
            backend.decide_approval(created.request_id, "approve", notes="ok")
            return await gate.refresh()

        result = asyncio.run(scenario())
        assert result.status == ApprovalStatus.APPROVED
        assert gate.state == GateState.APPROVED
        assert gate.take_pending().requested_value == 2000.0
        assert gate.pending is None

    def test_refresh_without_request_is_noop(self):
        assert asyncio.run(_gate().refresh()) is None

    def test_submit_failure_keeps_pending(self):
        gate = _with_rep_permissions(_gate(FailingApprovalBackend()))
        with pytest.raises(ApprovalRequired):
            gate.check(_pending(20.0))
        with pytest.raises(PersistenceFailure) as exc:
            asyncio.run(gate.submit(proposal_id=1, requestor_id=1, discount_snapshot=[]))
        assert "CreateApprovalRequest" in str(exc.value)
        assert gate.state == GateState.PENDING
        assert gate.pending is not None
        assert not gate.is_submitted

    def test_cancel(self):
        gate = _with_rep_permissions(_gate())
        with pytest.raises(ApprovalRequired):
            gate.check(_pending(20.0))
        gate.cancel()
        assert gate.state == GateState.IDLE
        assert gate.pending is None


class TestPolling:
    def test_polling_reports_decision(self):
        backend = InMemoryPricingBackend()
        gate = _with_rep_permissions(_gate(backend))
        decisions = []

        async def scenario():
            with pytest.raises(ApprovalRequired):
                gate.check(_pending(20.0))
            created = await gate.submit(proposal_id=3, requestor_id=1, discount_snapshot=[])
            gate.start_polling(decisions.append)
            assert gate.is_polling
            await asyncio.sleep(0.03)
            backend.decide_approval(created.request_id, "reject", notes="Too deep")
            for _ in range(50):
                if decisions:
                    break
                await asyncio.sleep(0.01)

        asyncio.run(scenario())
        assert len(decisions) == 1
        assert decisions[0].status == ApprovalStatus.REJECTED
        assert decisions[0].notes == "Too deep"
        assert gate.state == GateState.REJECTED

    def test_stop_polling(self):
        gate = _with_rep_permissions(_gate())

        async def scenario():
            with pytest.raises(ApprovalRequired):
                gate.check(_pending(20.0))
            await gate.submit(proposal_id=3, requestor_id=1, discount_snapshot=[])
            gate.start_polling(lambda result: None)
            gate.stop_polling()
            await asyncio.sleep(0)
            return gate.is_polling

        assert asyncio.run(scenario()) is False


class TestApprovalRepository:
    def test_decide_once(self):
        backend = InMemoryPricingBackend()
        created = asyncio.run(backend.create_approval_request(
            proposal_id=1, requestor_id=1, original_value=0, requested_value=2000,
            discount_percent=20, discount_snapshot=[],
        ))
        request = backend.decide_approval(created.request_id, "approve")
        assert request.status == ApprovalStatus.APPROVED
        assert request.approver_id == 2
        assert request.updated_at is not None
        with pytest.raises(ValueError):
            backend.decide_approval(created.request_id, "reject")

    def test_invalid_action(self):
        backend = InMemoryPricingBackend()
        with pytest.raises(ValueError):
            backend.decide_approval(1, "maybe")

    def test_unknown_request(self):
        with pytest.raises(KeyError):
            InMemoryPricingBackend().decide_approval(99, "approve")

    def test_list_filters_by_status(self):
        backend = InMemoryPricingBackend()
        for _ in range(2):
            asyncio.run(backend.create_approval_request(
                proposal_id=1, requestor_id=1, original_value=0, requested_value=2000,
                discount_percent=20, discount_snapshot=[],
            ))
        backend.decide_approval(1, "reject")
        assert [r.id for r in backend.approvals.list_requests(ApprovalStatus.PENDING)] == [2]
        assert len(backend.approvals.list_requests()) == 2

    def test_unknown_user_permissions(self):
        with pytest.raises(LookupError):
            asyncio.run(InMemoryPricingBackend().get_user_permissions(404))

    def test_proposal_versions(self):
        backend = InMemoryPricingBackend()
        proposal_id = asyncio.run(backend.save_or_update_proposal({"status": "draft"}))
        asyncio.run(backend.save_or_update_proposal({"proposalId": proposal_id, "status": "final"}))
        assert backend.proposals.get_version_count(proposal_id) == 2
        assert backend.proposals.load(proposal_id)["status"] == "final"
        assert backend.proposals.load(proposal_id, version=1)["status"] == "draft"

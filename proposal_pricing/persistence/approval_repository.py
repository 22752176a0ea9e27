"""
Approval Repository — the manager-side queue of discount approval requests.

Requests start ``pending`` and move exactly once to ``approved`` or
``rejected`` when a manager acts on them.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from proposal_pricing.models.enums import ApprovalStatus
from proposal_pricing.models.schemas import ApprovalRequest

logger = logging.getLogger(__name__)

_ACTIONS = {"approve": ApprovalStatus.APPROVED, "reject": ApprovalStatus.REJECTED}


class ApprovalRepository:
    def __init__(self):
        self._requests: dict[int, ApprovalRequest] = {}
        self._next_id = 1

    def create(
        self,
        proposal_id: int,
        requestor_id: Optional[int],
        approver_id: Optional[int],
        approver_name: str,
        original_value: float,
        requested_value: float,
        discount_percent: float,
        discount_snapshot: list[dict[str, Any]],
        notes: str = "",
    ) -> ApprovalRequest:
        request = ApprovalRequest(
            id=self._next_id,
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
        self._requests[request.id] = request
        self._next_id += 1
        logger.info(
            f"Approval request #{request.id} created for proposal {proposal_id}: "
            f"${original_value:,.2f} → ${requested_value:,.2f} ({discount_percent:.1f}%)"
        )
        return request

    def get(self, request_id: int) -> Optional[ApprovalRequest]:
        return self._requests.get(request_id)

    def list_requests(self, status: Optional[ApprovalStatus] = None) -> list[ApprovalRequest]:
        requests = sorted(self._requests.values(), key=lambda r: r.created_at, reverse=True)
        if status is None:
            return requests
        return [r for r in requests if r.status == status]

    def decide(
        self,
        request_id: int,
        action: str,
        approver_id: Optional[int],
        approver_name: str,
        notes: str = "",
    ) -> ApprovalRequest:
        """
        Record a manager decision. Raises KeyError for an unknown request and
        ValueError for an invalid action or an already-processed request.
        """
        if action not in _ACTIONS:
            raise ValueError(f"Invalid action: {action!r}")
        request = self._requests.get(request_id)
        if request is None:
            raise KeyError(f"Approval request {request_id} not found")
        if request.status != ApprovalStatus.PENDING:
            raise ValueError(f"Approval request {request_id} has already been {request.status.value}")

        request.status = _ACTIONS[action]
        request.approver_id = approver_id
        request.approver_name = approver_name
        request.notes = notes
        request.updated_at = datetime.now(timezone.utc)
        logger.info(f"Approval request #{request_id} {request.status.value} by {approver_name}")
        return request

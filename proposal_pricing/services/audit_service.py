"""
Audit Service — records and queries the proposal activity log.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from proposal_pricing.models.enums import ActivityAction
from proposal_pricing.models.schemas import ActivityEntry

logger = logging.getLogger(__name__)


class AuditService:
    """
    Records discount requests and decisions, pricing updates and financing
    updates for a proposal. Entries are kept in memory in insertion order.
    """

    def __init__(self):
        self._entries: list[ActivityEntry] = []

    def record(
        self,
        action: ActivityAction,
        proposal_id: Optional[int] = None,
        user_id: Optional[int] = None,
        details: str = "",
        previous: Optional[dict[str, Any]] = None,
        new: Optional[dict[str, Any]] = None,
    ) -> ActivityEntry:
        """Record an activity entry and return it."""
        entry = ActivityEntry(
            proposal_id=proposal_id,
            user_id=user_id,
            action=action,
            details=details,
            previous=previous or {},
            new=new or {},
        )
        self._entries.append(entry)
        logger.debug(f"[AUDIT] {action.value} (proposal={proposal_id}, user={user_id}): {details}")
        return entry

    def get_trail(self, proposal_id: int) -> list[ActivityEntry]:
        """Return all activity entries for a proposal."""
        return [e for e in self._entries if e.proposal_id == proposal_id]

    def get_all(self) -> list[ActivityEntry]:
        return list(self._entries)

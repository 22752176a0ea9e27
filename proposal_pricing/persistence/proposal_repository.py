"""
Proposal Repository — stores proposal drafts and finalized pricing records.
Each save creates a new version (append-only for audit).
Uses an in-memory dict; the pricing engine never depends on storage details.
"""

from __future__ import annotations

import logging
from copy import deepcopy
from typing import Any

logger = logging.getLogger(__name__)


class ProposalRepository:
    """Save/load proposal records with versioned snapshots."""

    def __init__(self):
        self._memory_store: dict[int, list[dict[str, Any]]] = {}
        self._next_id = 1

    def save_or_update(self, record: dict[str, Any]) -> int:
        """
        Save a proposal snapshot and return its proposal id.
        A record without ``proposalId`` creates a new proposal.
        """
        proposal_id = record.get("proposalId") or record.get("proposal_id")
        if not proposal_id:
            proposal_id = self._next_id
            self._next_id += 1
        elif proposal_id >= self._next_id:
            self._next_id = proposal_id + 1

        snapshots = self._memory_store.setdefault(proposal_id, [])
        snapshot = deepcopy(record)
        snapshot["proposalId"] = proposal_id
        snapshot["_version"] = len(snapshots) + 1
        snapshots.append(snapshot)
        logger.info(f"Saved proposal {proposal_id} v{snapshot['_version']}")
        return proposal_id

    def load(self, proposal_id: int, version: int | None = None) -> dict[str, Any] | None:
        """
        Load the latest (or specific version) of a proposal.
        Returns None if not found.
        """
        snapshots = self._memory_store.get(proposal_id, [])
        if not snapshots:
            return None
        if version is not None:
            matches = [s for s in snapshots if s.get("_version") == version]
            return deepcopy(matches[0]) if matches else None
        return deepcopy(snapshots[-1])

    def list_proposals(self) -> list[int]:
        return list(self._memory_store.keys())

    def get_version_count(self, proposal_id: int) -> int:
        return len(self._memory_store.get(proposal_id, []))

"""Persistence — MongoClient, ProposalRepository, ApprovalRepository."""

from proposal_pricing.persistence.mongo_client import MongoClient
from proposal_pricing.persistence.proposal_repository import ProposalRepository
from proposal_pricing.persistence.approval_repository import ApprovalRepository

__all__ = ["MongoClient", "ProposalRepository", "ApprovalRepository"]

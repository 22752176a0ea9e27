"""Services — financing, approval gate, audit, collaborator backend."""

from proposal_pricing.services.backend import InMemoryPricingBackend, PricingBackend
from proposal_pricing.services.audit_service import AuditService
from proposal_pricing.services.approval_gate import ApprovalGate
from proposal_pricing.services.financing import FinancingCatalog

__all__ = [
    "InMemoryPricingBackend",
    "PricingBackend",
    "AuditService",
    "ApprovalGate",
    "FinancingCatalog",
]

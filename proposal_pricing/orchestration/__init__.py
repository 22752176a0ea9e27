"""Orchestration — the PricingOrchestrator façade and its routing functions."""

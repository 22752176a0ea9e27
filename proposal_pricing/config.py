"""
Application configuration using Pydantic Settings.
All environment-specific values are centralized here.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── App ──────────────────────────────────────────────
    app_name: str = "Proposal Pricing Engine"
    debug: bool = True
    mock_mode: bool = True  # When True, collaborators are in-memory and MongoDB is never touched

    # ── MongoDB (admin-edited pricing rules) ─────────────
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_database: str = "proposal_pricing"
    mongodb_timeout_ms: int = 2000

    # ── Discount authority ───────────────────────────────
    default_max_discount_percent: float = 10.0  # used until permissions load
    approval_poll_interval_seconds: float = 10.0

    # ── Financing fallback (no plan selected) ────────────
    default_financing_term_months: int = 60
    default_interest_rate: float = 5.99

    # ── Money ────────────────────────────────────────────
    money_tolerance: float = 0.01

    # ── Logging ──────────────────────────────────────────
    log_level: str = "INFO"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings (singleton)."""
    return Settings()

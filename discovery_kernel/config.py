"""
Deployment settings using Pydantic Settings.

Values come from environment variables prefixed with DISCOVERY_ (or a .env
file) and are turned into a DiscoveryConfig for the kernel.
"""

import logging
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from discovery_kernel.models.config import DiscoveryConfig, RankingWeights
from discovery_kernel.models.response import HumanAssistanceContact


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DISCOVERY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── App ──────────────────────────────────────────────
    app_name: str = "Citizen Service Discovery"
    log_level: str = "INFO"

    # ── Storage ──────────────────────────────────────────
    audit_db_path: str = ":memory:"
    catalog_path: Optional[str] = None      # JSON file with a list of services

    # ── Matching ─────────────────────────────────────────
    clarification_threshold: float = 0.6
    relevance_floor: float = 0.1
    prioritization_epsilon: float = 0.05
    weight_category: float = 0.4
    weight_entity_overlap: float = 0.4
    weight_semantic: float = 0.2
    max_results: int = 10
    max_alternatives: int = 3
    session_ttl_seconds: int = 1800

    # ── Human assistance ─────────────────────────────────
    helpline_name: str = "Citizen Services Helpline"
    helpline_phone: Optional[str] = "1800-11-0001"
    helpline_url: Optional[str] = "https://services.gov.example/help"

    def to_discovery_config(self) -> DiscoveryConfig:
        return DiscoveryConfig(
            clarification_threshold=self.clarification_threshold,
            relevance_floor=self.relevance_floor,
            prioritization_epsilon=self.prioritization_epsilon,
            ranking_weights=RankingWeights(
                category=self.weight_category,
                entity_overlap=self.weight_entity_overlap,
                semantic=self.weight_semantic,
            ),
            max_results=self.max_results,
            max_alternatives=self.max_alternatives,
            session_ttl_seconds=self.session_ttl_seconds,
            human_assistance=HumanAssistanceContact(
                name=self.helpline_name,
                phone=self.helpline_phone,
                url=self.helpline_url,
            ),
        )


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings (singleton)."""
    return Settings()


def setup_logging(level: Optional[str] = None) -> None:
    """Configure root logging once for the process."""
    level_name = (level or get_settings().log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )

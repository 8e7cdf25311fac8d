"""Discovery configuration — thresholds, weights and limits."""

from pydantic import BaseModel, Field, model_validator

from discovery_kernel.models.response import HumanAssistanceContact


class RankingWeights(BaseModel):
    """Linear combination used by the relevance ranker. Must sum to 1."""

    category: float = Field(ge=0.0, le=1.0, default=0.4)
    entity_overlap: float = Field(ge=0.0, le=1.0, default=0.4)
    semantic: float = Field(ge=0.0, le=1.0, default=0.2)

    @model_validator(mode="after")
    def _check_total(self) -> "RankingWeights":
        total = self.category + self.entity_overlap + self.semantic
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"ranking weights must sum to 1.0, got {total:.3f}")
        return self


class DiscoveryConfig(BaseModel):
    """Configuration for the matcher and orchestrator."""

    clarification_threshold: float = Field(ge=0.0, le=1.0, default=0.6)
    relevance_floor: float = Field(ge=0.0, le=1.0, default=0.1)
    prioritization_epsilon: float = Field(ge=0.0, le=1.0, default=0.05)
    ranking_weights: RankingWeights = RankingWeights()
    max_results: int = Field(ge=1, default=10)
    max_alternatives: int = Field(ge=1, default=3)
    session_ttl_seconds: int = Field(ge=0, default=1800)
    # Penalty applied to response confidence per degraded collaborator
    degradation_penalty: float = Field(ge=0.0, le=1.0, default=0.2)
    human_assistance: HumanAssistanceContact = HumanAssistanceContact(
        name="Citizen Services Helpline",
        phone="1800-11-0001",
        url="https://services.gov.example/help",
    )

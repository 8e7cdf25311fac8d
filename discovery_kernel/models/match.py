"""Match results — eligibility, relevance and the matcher's output."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from discovery_kernel.models.service import (
    CriterionOutcome,
    CriterionType,
    ServiceRecord,
)


class EligibilityStatus(str, Enum):
    ELIGIBLE = "eligible"
    PARTIAL = "partial"
    UNKNOWN = "unknown"
    INELIGIBLE = "ineligible"


# Primary sort order of the matcher: eligible > partial > unknown > ineligible
ELIGIBILITY_RANK = {
    EligibilityStatus.ELIGIBLE: 0,
    EligibilityStatus.PARTIAL: 1,
    EligibilityStatus.UNKNOWN: 2,
    EligibilityStatus.INELIGIBLE: 3,
}


class NoMatchReason(str, Enum):
    NO_SERVICES_IN_REGION = "no_services_in_region"
    NO_RELEVANT_SERVICES = "no_relevant_services"
    NO_ALTERNATIVES = "no_alternatives"
    CATALOG_UNAVAILABLE = "catalog_unavailable"


class CriterionEvaluation(BaseModel):
    """Outcome of one criterion against one profile."""

    criterion_id: str
    type: CriterionType
    checkable: bool
    outcome: CriterionOutcome
    reason: str


class EligibilityResult(BaseModel):
    """
    The evaluator's verdict for one service and one profile.

    `matched` lists criteria the citizen satisfies (for a disqualifying
    criterion: the citizen is not disqualified). `failed` lists unmet required
    or preferred criteria and triggered disqualifiers.
    """

    status: EligibilityStatus
    matched: List[str] = []
    failed: List[str] = []
    unknown: List[str] = []
    missing: List[str] = []                 # Checkable criteria that were unknown
    evaluations: List[CriterionEvaluation] = []


class RelevanceScore(BaseModel):
    """Relevance of one service to one query, with the terms that produced it."""

    score: float = Field(ge=0.0, le=1.0)
    category_match: bool
    entity_overlap: float = Field(ge=0.0, le=1.0)
    semantic: float = Field(ge=0.0, le=1.0)
    semantic_available: bool = True
    matched_entities: List[str] = []
    matched_keywords: List[str] = []


class ServiceMatch(BaseModel):
    """One service in the response, with why it matched or didn't."""

    service: ServiceRecord
    relevance_score: float = Field(ge=0.0, le=1.0)
    eligibility_status: EligibilityStatus
    matched_criteria: List[str] = []
    missing_criteria: List[str] = []
    failed_criteria: List[str] = []
    is_alternative: bool = False
    explanation: Optional[RelevanceScore] = None


class MatchResult(BaseModel):
    """
    The matcher's output. When both lists are empty, `no_match_reason`
    says why; an empty result never goes out without one.
    """

    matches: List[ServiceMatch] = []
    alternatives: List[ServiceMatch] = []
    no_match_reason: Optional[NoMatchReason] = None
    candidates_considered: int = 0
    degradations: List[str] = []

    @property
    def used_alternatives(self) -> bool:
        return bool(self.alternatives)

    @property
    def is_empty(self) -> bool:
        return not self.matches and not self.alternatives

    def all_services(self) -> List[ServiceMatch]:
        return self.matches + self.alternatives

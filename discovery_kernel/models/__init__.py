"""Discovery Kernel data models."""

from discovery_kernel.models.audit import TurnRecord
from discovery_kernel.models.config import DiscoveryConfig, RankingWeights
from discovery_kernel.models.conversation import ConversationContext, ConversationTurn
from discovery_kernel.models.match import (
    CriterionEvaluation,
    EligibilityResult,
    EligibilityStatus,
    MatchResult,
    NoMatchReason,
    RelevanceScore,
    ServiceMatch,
)
from discovery_kernel.models.profile import CitizenProfile
from discovery_kernel.models.query import Entity, Intent, ParsedQuery
from discovery_kernel.models.response import (
    HumanAssistanceContact,
    QueryResponse,
    SourceCitation,
)
from discovery_kernel.models.service import (
    NATIONAL,
    Criterion,
    CriterionOutcome,
    CriterionType,
    Predicate,
    PredicateKind,
    ServiceCategory,
    ServiceRecord,
)

__all__ = [
    "NATIONAL",
    "CitizenProfile",
    "ConversationContext",
    "ConversationTurn",
    "Criterion",
    "CriterionEvaluation",
    "CriterionOutcome",
    "CriterionType",
    "DiscoveryConfig",
    "EligibilityResult",
    "EligibilityStatus",
    "Entity",
    "HumanAssistanceContact",
    "Intent",
    "MatchResult",
    "NoMatchReason",
    "ParsedQuery",
    "Predicate",
    "PredicateKind",
    "QueryResponse",
    "RankingWeights",
    "RelevanceScore",
    "ServiceCategory",
    "ServiceMatch",
    "ServiceRecord",
    "SourceCitation",
    "TurnRecord",
]

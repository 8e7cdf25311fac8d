"""
Service Matcher — turns a parsed query and a profile into ranked matches.

Composes the Eligibility Evaluator and the Relevance Ranker over a catalog
snapshot.

Behavioral Contract:
- Only services that are national or scoped to the citizen's region are considered
- Ineligible services never appear in the primary match set
- Below-floor services are dropped, except eligible/partial ones when no
  above-floor eligible/partial service exists
- Ordering: eligibility rank, relevance, inclusive-access (within epsilon),
  popularity, service id. Identical inputs give identical output.
- When no eligible/partial match exists, same-category alternatives are
  returned with their computed eligibility (never promoted to eligible)
- Education queries always surface an alternative-pathway service if the
  regional catalog has one
- An empty result always carries a NoMatchReason
"""

import logging
from itertools import groupby
from typing import Iterable, List, Optional, Sequence

from discovery_kernel.eligibility.evaluator import EligibilityEvaluator
from discovery_kernel.errors import DEGRADED_SCORE
from discovery_kernel.models.config import DiscoveryConfig
from discovery_kernel.models.match import (
    ELIGIBILITY_RANK,
    EligibilityStatus,
    MatchResult,
    NoMatchReason,
    ServiceMatch,
)
from discovery_kernel.models.profile import CitizenProfile
from discovery_kernel.models.query import ParsedQuery
from discovery_kernel.models.service import ServiceCategory, ServiceRecord
from discovery_kernel.ranking.ranker import RelevanceRanker

logger = logging.getLogger(__name__)

_QUALIFYING = (EligibilityStatus.ELIGIBLE, EligibilityStatus.PARTIAL)


def _base_key(match: ServiceMatch):
    return (
        ELIGIBILITY_RANK[match.eligibility_status],
        -match.relevance_score,
        -match.service.popularity,
        match.service.id,
    )


def _alternative_key(match: ServiceMatch):
    return (
        -match.relevance_score,
        ELIGIBILITY_RANK[match.eligibility_status],
        -match.service.popularity,
        match.service.id,
    )


class ServiceMatcher:
    """Finds, filters and orders services for one query and one profile."""

    def __init__(
        self,
        evaluator: Optional[EligibilityEvaluator] = None,
        ranker: Optional[RelevanceRanker] = None,
        config: Optional[DiscoveryConfig] = None,
    ):
        self.config = config or DiscoveryConfig()
        self.evaluator = evaluator or EligibilityEvaluator()
        self.ranker = ranker or RelevanceRanker(weights=self.config.ranking_weights)

    def find_services(
        self,
        parsed: ParsedQuery,
        profile: CitizenProfile,
        catalog: Sequence[ServiceRecord],
    ) -> MatchResult:
        """Run the full matching pipeline over a catalog snapshot."""
        # A region named in the query only feeds the ranking overlap term
        regional = [s for s in catalog if s.serves_region(profile.region)]
        if not regional:
            logger.info(
                "No services serve region %r (catalog size %d)", profile.region, len(catalog)
            )
            return MatchResult(no_match_reason=NoMatchReason.NO_SERVICES_IN_REGION)

        scored = [self.build_match(s, parsed, profile) for s in regional]
        degradations = []
        if any(m.explanation and not m.explanation.semantic_available for m in scored):
            degradations.append(DEGRADED_SCORE)

        primary = self._sort(self._apply_floor(scored))
        matches = primary[: self.config.max_results]

        alternatives: List[ServiceMatch] = []
        if not any(m.eligibility_status in _QUALIFYING for m in matches):
            alternatives = self._alternatives_from(
                scored, parsed, exclude_ids={m.service.id for m in matches}
            )

        if parsed.intent.category == ServiceCategory.EDUCATION:
            matches, alternatives = self._ensure_alternative_pathway(
                matches, alternatives, primary, scored
            )

        reason = None
        if not matches and not alternatives:
            if all(m.relevance_score == 0 for m in scored):
                reason = NoMatchReason.NO_RELEVANT_SERVICES
            else:
                reason = NoMatchReason.NO_ALTERNATIVES

        logger.info(
            "Matched %d services (%d alternatives) from %d candidates for %s",
            len(matches), len(alternatives), len(scored), parsed.intent.category.value,
        )
        return MatchResult(
            matches=matches,
            alternatives=alternatives,
            no_match_reason=reason,
            candidates_considered=len(scored),
            degradations=degradations,
        )

    def get_alternatives(
        self,
        parsed: ParsedQuery,
        profile: CitizenProfile,
        catalog: Sequence[ServiceRecord],
        exclude_ids: Iterable[str] = (),
    ) -> List[ServiceMatch]:
        """Same-category services ranked by relevance, eligibility left as computed."""
        scored = [
            self.build_match(s, parsed, profile)
            for s in catalog
            if s.serves_region(profile.region)
        ]
        return self._alternatives_from(scored, parsed, exclude_ids=set(exclude_ids))

    def build_match(
        self,
        service: ServiceRecord,
        parsed: ParsedQuery,
        profile: CitizenProfile,
    ) -> ServiceMatch:
        """Evaluate and score a single service."""
        eligibility = self.evaluator.evaluate(service.criteria, profile)
        relevance = self.ranker.score(service, parsed)
        return ServiceMatch(
            service=service,
            relevance_score=relevance.score,
            eligibility_status=eligibility.status,
            matched_criteria=eligibility.matched,
            missing_criteria=eligibility.missing,
            failed_criteria=eligibility.failed,
            explanation=relevance,
        )

    def _apply_floor(self, scored: List[ServiceMatch]) -> List[ServiceMatch]:
        """Drop ineligible and below-floor services, keeping the floor exception."""
        floor = self.config.relevance_floor
        viable = [m for m in scored if m.eligibility_status != EligibilityStatus.INELIGIBLE]
        kept = [m for m in viable if m.relevance_score >= floor]

        if any(m.eligibility_status in _QUALIFYING for m in kept):
            return kept

        # Nothing qualifying cleared the floor: keep weak but qualifying services
        rescued = [
            m for m in viable
            if m.relevance_score < floor
            and m.relevance_score > 0
            and m.eligibility_status in _QUALIFYING
        ]
        return kept + rescued

    def _sort(self, matches: List[ServiceMatch]) -> List[ServiceMatch]:
        """
        Composite ordering. Within one eligibility status, services whose
        relevance lies within epsilon of the band's top score form a band,
        and inclusive-access services lead their band.
        """
        epsilon = self.config.prioritization_epsilon
        ordered = sorted(matches, key=_base_key)
        result: List[ServiceMatch] = []

        for _, group in groupby(ordered, key=lambda m: ELIGIBILITY_RANK[m.eligibility_status]):
            band: List[ServiceMatch] = []
            for match in group:
                if band and band[0].relevance_score - match.relevance_score > epsilon:
                    result.extend(_order_band(band))
                    band = []
                band.append(match)
            result.extend(_order_band(band))

        return result

    def _alternatives_from(
        self,
        scored: List[ServiceMatch],
        parsed: ParsedQuery,
        exclude_ids: set,
    ) -> List[ServiceMatch]:
        category = parsed.intent.category
        candidates = [
            m for m in scored
            if m.service.category == category and m.service.id not in exclude_ids
        ]
        candidates.sort(key=_alternative_key)
        return [
            m.model_copy(update={"is_alternative": True})
            for m in candidates[: self.config.max_alternatives]
        ]

    def _ensure_alternative_pathway(
        self,
        matches: List[ServiceMatch],
        alternatives: List[ServiceMatch],
        primary: List[ServiceMatch],
        scored: List[ServiceMatch],
    ):
        """Make sure a vocational / alternative-pathway service is shown."""
        shown = matches + alternatives
        if any(m.service.alternative_pathway for m in shown):
            return matches, alternatives

        # Prefer one from the primary set that fell outside the window
        for match in primary:
            if match.service.alternative_pathway:
                window = matches[: self.config.max_results - 1]
                logger.debug("Surfacing alternative pathway %s", match.service.id)
                return window + [match], alternatives

        pathways = sorted(
            (m for m in scored if m.service.alternative_pathway), key=_alternative_key
        )
        if pathways:
            pick = pathways[0].model_copy(update={"is_alternative": True})
            return matches, alternatives + [pick]
        return matches, alternatives


def _order_band(band: List[ServiceMatch]) -> List[ServiceMatch]:
    return sorted(
        band,
        key=lambda m: (
            not m.service.inclusive_access,
            -m.relevance_score,
            -m.service.popularity,
            m.service.id,
        ),
    )

"""
Query Orchestrator — the single entry point for one conversational turn.

States:
  START → NEED_PARSE → (NEED_CLARIFICATION | READY) → RESPONDED

  - NEED_PARSE: parse through the NLP collaborator (keyword fallback when it
    is unavailable), then enrich with the session context
  - Confidence gate: intent confidence below the clarification threshold asks
    a clarifying question and never calls the matcher
  - READY: fetch the catalog (cached snapshot on failure), match, assemble
  - RESPONDED: the turn is recorded and a new context is returned

The orchestrator is a pure Python state machine over in-memory snapshots.
The context is only replaced once a turn reaches RESPONDED, so a failure
part-way through leaves the caller's context untouched.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import uuid4

from discovery_kernel.audit.store import TurnAuditStore
from discovery_kernel.catalog.store import CachedCatalog, CatalogLookup
from discovery_kernel.conversation.tracker import ConversationContextTracker
from discovery_kernel.errors import (
    DEGRADED_CATALOG,
    DEGRADED_CATALOG_CACHED,
    DEGRADED_PARSE,
    InvalidRequest,
    ParseUnavailable,
)
from discovery_kernel.matching.matcher import ServiceMatcher
from discovery_kernel.models.audit import TurnRecord
from discovery_kernel.models.config import DiscoveryConfig
from discovery_kernel.models.conversation import ConversationContext
from discovery_kernel.models.match import MatchResult, NoMatchReason, ServiceMatch
from discovery_kernel.models.profile import CitizenProfile
from discovery_kernel.models.query import ParsedQuery
from discovery_kernel.models.response import QueryResponse, SourceCitation
from discovery_kernel.models.service import ServiceCategory
from discovery_kernel.nlp.parser import KeywordQueryParser, QueryParser
from discovery_kernel.ranking.ranker import RelevanceRanker

logger = logging.getLogger(__name__)


class OrchestratorState(str, Enum):
    START = "start"
    NEED_PARSE = "need_parse"
    NEED_CLARIFICATION = "need_clarification"
    READY = "ready"
    RESPONDED = "responded"


_CATEGORY_LABELS = {
    ServiceCategory.HEALTHCARE: "healthcare",
    ServiceCategory.WELFARE: "welfare",
    ServiceCategory.EMPLOYMENT: "employment",
    ServiceCategory.EDUCATION: "education",
    ServiceCategory.LEGAL: "legal aid",
    ServiceCategory.HOUSING: "housing",
    ServiceCategory.AGRICULTURE: "agriculture",
    ServiceCategory.OTHER: "general",
}

_RELATED_TOPICS = {
    ServiceCategory.HEALTHCARE: [
        "health insurance schemes", "free medicine programmes", "maternity benefits",
    ],
    ServiceCategory.WELFARE: [
        "old age pensions", "disability allowances", "food ration support",
    ],
    ServiceCategory.EMPLOYMENT: [
        "skill training programmes", "rural employment guarantee", "apprenticeships",
    ],
    ServiceCategory.EDUCATION: [
        "scholarships", "vocational training", "education loans",
    ],
    ServiceCategory.LEGAL: [
        "free legal aid", "consumer complaints", "land record disputes",
    ],
    ServiceCategory.HOUSING: [
        "housing subsidies", "rental assistance", "shelter homes",
    ],
    ServiceCategory.AGRICULTURE: [
        "crop insurance", "farmer income support", "irrigation subsidies",
    ],
    ServiceCategory.OTHER: [
        "healthcare services", "education scholarships", "employment schemes",
    ],
}

_NO_MATCH_TEXT = {
    NoMatchReason.NO_SERVICES_IN_REGION: "no services are listed for your region",
    NoMatchReason.NO_RELEVANT_SERVICES: "no listed service fits this request",
    NoMatchReason.NO_ALTERNATIVES: "no service or related alternative fits this request",
    NoMatchReason.CATALOG_UNAVAILABLE: "the service catalog is unavailable right now",
}


class QueryOrchestrator:
    """
    Coordinates parsing, context enrichment, the confidence gate, matching
    and response assembly for one turn.
    """

    def __init__(
        self,
        catalog: CatalogLookup,
        parser: Optional[QueryParser] = None,
        matcher: Optional[ServiceMatcher] = None,
        tracker: Optional[ConversationContextTracker] = None,
        config: Optional[DiscoveryConfig] = None,
        audit_store: Optional[TurnAuditStore] = None,
        fallback_parser: Optional[QueryParser] = None,
    ):
        self.config = config or DiscoveryConfig()
        self.catalog = catalog if isinstance(catalog, CachedCatalog) else CachedCatalog(catalog)
        self.parser = parser or KeywordQueryParser(self.config.clarification_threshold)
        self.fallback_parser = fallback_parser or KeywordQueryParser(
            self.config.clarification_threshold
        )
        self.matcher = matcher or ServiceMatcher(
            ranker=RelevanceRanker(weights=self.config.ranking_weights),
            config=self.config,
        )
        self.tracker = tracker or ConversationContextTracker()
        self.audit_store = audit_store

    def process_query(
        self,
        raw_text: str,
        session_id: str,
        profile: Optional[CitizenProfile] = None,
        context: Optional[ConversationContext] = None,
    ) -> TurnResult:
        """
        Run one turn to RESPONDED.

        Raises InvalidRequest for malformed input. Every collaborator failure
        is absorbed into a degraded response.
        """
        received = time.monotonic()
        self._validate(raw_text, session_id, context)

        profile = profile or CitizenProfile()
        if context is None:
            context = self.tracker.start(session_id)
        states = [OrchestratorState.START]
        degradations: List[str] = []

        # NEED_PARSE
        states.append(OrchestratorState.NEED_PARSE)
        original = self._parse(raw_text, context, degradations)
        enriched = self.tracker.enrich(context, original)

        match_result: Optional[MatchResult] = None
        if enriched.intent.confidence < self.config.clarification_threshold:
            # NEED_CLARIFICATION: the matcher is not called
            states.append(OrchestratorState.NEED_CLARIFICATION)
            enriched = enriched.model_copy(update={"needs_clarification": True})
            question = self._clarification_question(enriched, profile)
            response = QueryResponse(
                session_id=session_id,
                response_text=question,
                needs_clarification=True,
                clarification_question=question,
                response_time=time.monotonic() - received,
                confidence=self._confidence(enriched, degradations),
                degradations=degradations,
                parsed_query=enriched,
            )
        else:
            # READY
            states.append(OrchestratorState.READY)
            enriched = enriched.model_copy(update={"needs_clarification": False})
            match_result = self._match(enriched, profile, degradations)
            response = self._assemble(
                session_id, enriched, match_result, degradations, received
            )

        # RESPONDED
        states.append(OrchestratorState.RESPONDED)
        new_context = self.tracker.record_turn(
            context,
            original=original,
            enriched=enriched,
            response_summary=_summarize(response),
            service_ids=[m.service.id for m in response.services],
            needs_clarification=response.needs_clarification,
        )
        if self.audit_store is not None:
            self._audit(new_context, enriched, response)

        logger.info(
            "Session %s turn %d: %s (%d services, degradations=%s)",
            session_id, new_context.turn_count,
            "clarification" if response.needs_clarification else "answered",
            len(response.services), degradations,
        )
        return TurnResult(
            response=response,
            context=new_context,
            states=states,
            original_query=original,
            enriched_query=enriched,
            match_result=match_result,
        )

    def _validate(
        self,
        raw_text: str,
        session_id: str,
        context: Optional[ConversationContext],
    ) -> None:
        if not session_id or not str(session_id).strip():
            raise InvalidRequest("session_id is required")
        if raw_text is None or not str(raw_text).strip():
            raise InvalidRequest("query text is empty")
        if context is not None and context.session_id != session_id:
            raise InvalidRequest(
                f"context belongs to session {context.session_id}, not {session_id}"
            )

    def _parse(
        self,
        raw_text: str,
        context: ConversationContext,
        degradations: List[str],
    ) -> ParsedQuery:
        """Parse with the NLP collaborator, falling back to keyword heuristics."""
        try:
            return self.parser.parse(raw_text, context)
        except ParseUnavailable as exc:
            logger.warning("NLP parse unavailable (%s); using keyword heuristics", exc)
        except Exception:
            logger.exception("NLP parser failed; using keyword heuristics")
        degradations.append(DEGRADED_PARSE)
        return self.fallback_parser.parse(raw_text, context)

    def _match(
        self,
        parsed: ParsedQuery,
        profile: CitizenProfile,
        degradations: List[str],
    ) -> MatchResult:
        snapshot = self.catalog.fetch(parsed.intent.category, profile.region)
        if not snapshot.available:
            degradations.append(DEGRADED_CATALOG)
            return MatchResult(no_match_reason=NoMatchReason.CATALOG_UNAVAILABLE)
        if snapshot.from_cache:
            degradations.append(DEGRADED_CATALOG_CACHED)

        result = self.matcher.find_services(parsed, profile, snapshot.services)
        for marker in result.degradations:
            if marker not in degradations:
                degradations.append(marker)
        return result

    def _confidence(self, parsed: ParsedQuery, degradations: List[str]) -> float:
        """Intent confidence, lowered once per degraded collaborator."""
        value = parsed.intent.confidence - self.config.degradation_penalty * len(degradations)
        return round(min(1.0, max(0.0, value)), 6)

    def _clarification_question(
        self, parsed: ParsedQuery, profile: CitizenProfile
    ) -> str:
        """Template a question from the missing or low-confidence slots."""
        intent = parsed.intent
        if intent.category == ServiceCategory.OTHER:
            options = [
                label for category, label in _CATEGORY_LABELS.items()
                if category != ServiceCategory.OTHER
            ]
            question = (
                "Which kind of service are you looking for: "
                f"{', '.join(options[:-1])} or {options[-1]}?"
            )
        else:
            label = _CATEGORY_LABELS[intent.category]
            topic = f" for {intent.subcategory}" if intent.subcategory else ""
            question = (
                f"Are you asking about {label} services{topic}? "
                "Please tell me a little more about what you need."
            )

        if profile.region is None:
            question += " Which state do you live in?"
        return question

    def _assemble(
        self,
        session_id: str,
        parsed: ParsedQuery,
        result: MatchResult,
        degradations: List[str],
        received: float,
    ) -> QueryResponse:
        services = result.all_services()
        suggestions: List[str] = []
        human_assistance = None

        if result.is_empty:
            suggestions = list(_RELATED_TOPICS[parsed.intent.category])
            human_assistance = self.config.human_assistance
            text = self._no_match_text(result.no_match_reason, suggestions)
        else:
            text = self._match_text(parsed, result)

        if DEGRADED_CATALOG_CACHED in degradations or DEGRADED_CATALOG in degradations:
            human_assistance = self.config.human_assistance

        return QueryResponse(
            session_id=session_id,
            response_text=text,
            services=services,
            needs_clarification=False,
            sources=_sources(services),
            response_time=time.monotonic() - received,
            confidence=self._confidence(parsed, degradations),
            degradations=degradations,
            alternatives_used=result.used_alternatives,
            no_match_reason=result.no_match_reason,
            suggestions=suggestions,
            human_assistance=human_assistance,
            parsed_query=parsed,
        )

    def _match_text(self, parsed: ParsedQuery, result: MatchResult) -> str:
        lines: List[str] = []
        if result.matches:
            lines.append(f"I found {len(result.matches)} service(s) that may help:")
            lines.extend(_describe(m) for m in result.matches)
        if result.alternatives:
            label = _CATEGORY_LABELS[parsed.intent.category]
            if not result.matches:
                lines.append(
                    f"I could not find a {label} service you clearly qualify for. "
                    "These related services may still help:"
                )
            else:
                lines.append("You may also want to look at:")
            lines.extend(_describe(m) for m in result.alternatives)
        return "\n".join(lines)

    def _no_match_text(
        self, reason: Optional[NoMatchReason], suggestions: List[str]
    ) -> str:
        contact = self.config.human_assistance
        detail = _NO_MATCH_TEXT.get(reason, "nothing matched this request")
        reach = ", ".join(x for x in (contact.phone, contact.url) if x)
        return (
            f"Sorry, I could not find a matching service: {detail}. "
            f"You could ask about {', '.join(suggestions)}. "
            f"You can also contact the {contact.name} ({reach})."
        )

    def _audit(
        self,
        context: ConversationContext,
        parsed: ParsedQuery,
        response: QueryResponse,
    ) -> None:
        record = TurnRecord(
            id=f"turn_{uuid4().hex[:12]}",
            session_id=context.session_id,
            turn_number=context.turn_count,
            query_text=parsed.text,
            intent_category=parsed.intent.category.value,
            intent_confidence=parsed.intent.confidence,
            needs_clarification=response.needs_clarification,
            service_ids=[m.service.id for m in response.services],
            alternatives_used=response.alternatives_used,
            no_match_reason=(
                response.no_match_reason.value if response.no_match_reason else None
            ),
            degradations=list(response.degradations),
            response_time=response.response_time,
            recorded_at=datetime.utcnow(),
        )
        self.audit_store.append(record)


def _describe(match: ServiceMatch) -> str:
    line = f"- {match.service.name} ({match.eligibility_status.value})"
    if match.missing_criteria:
        line += f"; more details needed: {', '.join(match.missing_criteria)}"
    return line


def _sources(services: List[ServiceMatch]) -> List[SourceCitation]:
    seen = set()
    sources = []
    for match in services:
        service = match.service
        if service.id in seen:
            continue
        seen.add(service.id)
        sources.append(SourceCitation(
            service_id=service.id,
            title=service.name,
            official_source=service.official_source,
            last_updated=service.last_updated,
        ))
    return sources


def _summarize(response: QueryResponse) -> str:
    """One-line summary kept in the conversation history."""
    if response.needs_clarification:
        return f"clarification: {response.clarification_question}"
    if response.no_match_reason:
        return f"no match: {response.no_match_reason.value}"
    ids = ", ".join(m.service.id for m in response.services)
    prefix = "alternatives" if response.alternatives_used else "matched"
    return f"{prefix}: {ids}"


class TurnResult:
    """Result of one orchestrated turn."""

    def __init__(
        self,
        response: QueryResponse,
        context: ConversationContext,
        states: List[OrchestratorState],
        original_query: ParsedQuery,
        enriched_query: ParsedQuery,
        match_result: Optional[MatchResult],
    ):
        self.response = response
        self.context = context
        self.states = states
        self.original_query = original_query
        self.enriched_query = enriched_query
        self.match_result = match_result

    @property
    def final_state(self) -> OrchestratorState:
        return self.states[-1]

"""
Relevance Ranker — scores how well a service answers a parsed query.

The score is a fixed linear combination of three terms:

    score = w_category * category + w_entity * entity_overlap + w_semantic * semantic

with default weights 0.4 / 0.4 / 0.2 (see RankingWeights).

  category        1.0 when the intent category equals the service category
  entity_overlap  fraction of query entities that correspond to the service:
                  a criterion speaks to the entity type, the entity value is
                  one of the service keywords, or a region entity is named in
                  the service's region scope. Queries with no entities fall
                  back to keyword overlap with the query text.
  semantic        injected EmbeddingScorer, 0 when it is unavailable

The category and overlap terms are deterministic and independent of the
embedding backend, so relevance can be checked without a model.
"""

import logging
import re
from typing import List, Optional, Protocol, Set, Tuple

from discovery_kernel.errors import ScoreUnavailable
from discovery_kernel.models.config import RankingWeights
from discovery_kernel.models.match import RelevanceScore
from discovery_kernel.models.query import Entity, ParsedQuery
from discovery_kernel.models.service import ServiceRecord

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"[a-z0-9]+")

_STOPWORDS = {
    "a", "an", "and", "are", "about", "at", "be", "by", "can", "do", "for",
    "from", "get", "how", "i", "in", "is", "it", "me", "my", "of", "on", "or",
    "please", "the", "to", "what", "with", "who", "you", "need", "want",
}

# Keyword matches needed for a full overlap term when the query has no entities
_KEYWORD_SATURATION = 2


def tokenize(text: str) -> Set[str]:
    """Lowercase word tokens without stopwords."""
    return {t for t in _TOKEN_RE.findall(text.lower()) if t not in _STOPWORDS}


class EmbeddingScorer(Protocol):
    """Protocol for semantic similarity — pluggable backend."""

    def score(self, service_description: str, query_text: str) -> float: ...


class LexicalSimilarityScorer:
    """
    Token-overlap (Jaccard) similarity. Stands in for an embedding model so
    the kernel ranks deterministically without one.
    """

    def score(self, service_description: str, query_text: str) -> float:
        doc = tokenize(service_description)
        query = tokenize(query_text)
        if not doc or not query:
            return 0.0
        return len(doc & query) / len(doc | query)


class RelevanceRanker:
    """Scores services against a parsed query with a documented linear combination."""

    def __init__(
        self,
        embedding_scorer: Optional[EmbeddingScorer] = None,
        weights: Optional[RankingWeights] = None,
    ):
        self.embedding = embedding_scorer or LexicalSimilarityScorer()
        self.weights = weights or RankingWeights()

    def score(self, service: ServiceRecord, parsed: ParsedQuery) -> RelevanceScore:
        """Score one service. A failed embedding call zero-weights the semantic term."""
        category_match = parsed.intent.category == service.category

        matched_keywords = _matched_keywords(service, parsed.text)
        if parsed.entities:
            matched_entities = [
                e.type for e in parsed.entities if _entity_corresponds(e, service)
            ]
            overlap = len(matched_entities) / len(parsed.entities)
        else:
            matched_entities = []
            overlap = min(1.0, len(matched_keywords) / _KEYWORD_SATURATION)

        semantic, available = self._semantic(service, parsed.text)

        w = self.weights
        total = (
            w.category * (1.0 if category_match else 0.0)
            + w.entity_overlap * overlap
            + w.semantic * semantic
        )
        return RelevanceScore(
            score=round(min(1.0, max(0.0, total)), 6),
            category_match=category_match,
            entity_overlap=round(overlap, 6),
            semantic=round(semantic, 6),
            semantic_available=available,
            matched_entities=matched_entities,
            matched_keywords=matched_keywords,
        )

    def _semantic(self, service: ServiceRecord, query_text: str) -> Tuple[float, bool]:
        try:
            value = float(self.embedding.score(service.description, query_text))
        except ScoreUnavailable as exc:
            logger.warning("Embedding score unavailable for %s: %s", service.id, exc)
            return 0.0, False
        except Exception:
            logger.exception("Embedding scorer failed for %s", service.id)
            return 0.0, False
        return min(1.0, max(0.0, value)), True


def _entity_corresponds(entity: Entity, service: ServiceRecord) -> bool:
    """Does this query entity speak to something the service declares?"""
    for criterion in service.criteria:
        if entity.type in criterion.related_entity_types():
            return True

    if entity.type == "region":
        return not service.is_national and service.serves_region(entity.value)

    value_tokens = tokenize(entity.value)
    if not value_tokens:
        return False
    for keyword in service.keywords:
        if tokenize(keyword) <= value_tokens or value_tokens <= tokenize(keyword):
            return True
    return False


def _matched_keywords(service: ServiceRecord, text: str) -> List[str]:
    """Service keywords whose every token occurs in the query text."""
    query_tokens = tokenize(text)
    matched = []
    for keyword in service.keywords:
        tokens = tokenize(keyword)
        if tokens and tokens <= query_tokens:
            matched.append(keyword)
    return matched

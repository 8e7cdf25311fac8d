"""
Query parsing — the NLP collaborator contract and a keyword-only fallback.

The kernel does not own the NLP model. Any backend that turns text into a
ParsedQuery can be plugged in through the QueryParser protocol. When that
backend fails (ParseUnavailable), the orchestrator falls back to the
deterministic KeywordQueryParser below.
"""

import re
from typing import Dict, List, Optional, Protocol, Tuple

from discovery_kernel.models.conversation import ConversationContext
from discovery_kernel.models.query import Entity, Intent, ParsedQuery
from discovery_kernel.models.service import ServiceCategory


class QueryParser(Protocol):
    """Protocol for query parsing — pluggable backend."""

    def parse(
        self, text: str, context: Optional[ConversationContext] = None
    ) -> ParsedQuery: ...


_CATEGORY_KEYWORDS: Dict[ServiceCategory, Tuple[str, ...]] = {
    ServiceCategory.HEALTHCARE: (
        "health", "healthcare", "hospital", "doctor", "treatment", "medical",
        "medicine", "diabetes", "clinic", "disease", "surgery", "maternity",
        "pregnancy", "pregnant", "vaccine", "vaccination", "cancer", "tb",
        "tuberculosis", "mental",
    ),
    ServiceCategory.WELFARE: (
        "pension", "ration", "widow", "disability", "disabled", "welfare",
        "allowance", "bpl", "elderly", "food", "subsidy",
    ),
    ServiceCategory.EMPLOYMENT: (
        "job", "jobs", "employment", "unemployed", "unemployment", "work",
        "wage", "wages", "internship", "apprenticeship", "rozgar", "career",
    ),
    ServiceCategory.EDUCATION: (
        "scholarship", "scholarships", "school", "college", "education",
        "student", "students", "study", "tuition", "degree", "diploma",
        "university", "engineering", "vocational", "course", "courses", "iti",
    ),
    ServiceCategory.LEGAL: (
        "legal", "lawyer", "court", "rights", "complaint", "dispute", "advocate",
    ),
    ServiceCategory.HOUSING: (
        "house", "housing", "home", "rent", "shelter", "awas", "homeless",
    ),
    ServiceCategory.AGRICULTURE: (
        "farmer", "farmers", "farming", "crop", "crops", "agriculture",
        "seeds", "irrigation", "fertilizer", "kisan", "livestock", "tractor",
    ),
}

_SUBCATEGORY_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "scholarship": ("scholarship", "scholarships"),
    "vocational": ("vocational", "iti", "skill", "skills"),
    "pension": ("pension",),
    "insurance": ("insurance",),
    "loan": ("loan", "loans", "credit"),
}

_REGIONS: Dict[str, str] = {
    "andhra pradesh": "Andhra Pradesh",
    "assam": "Assam",
    "bihar": "Bihar",
    "delhi": "Delhi",
    "gujarat": "Gujarat",
    "karnataka": "Karnataka",
    "kerala": "Kerala",
    "madhya pradesh": "Madhya Pradesh",
    "maharashtra": "Maharashtra",
    "odisha": "Odisha",
    "punjab": "Punjab",
    "rajasthan": "Rajasthan",
    "tamil nadu": "Tamil Nadu",
    "telangana": "Telangana",
    "uttar pradesh": "Uttar Pradesh",
    "west bengal": "West Bengal",
}

_EDUCATION_LEVELS: Tuple[Tuple[str, str], ...] = (
    (r"\bdiploma\b", "diploma"),
    (r"\b(?:post ?graduate|masters?)\b", "postgraduate"),
    (r"\b(?:graduate|graduation|bachelors?|degree)\b", "graduate"),
    (r"\b(?:12th|class 12|higher secondary)\b", "higher_secondary"),
    (r"\b(?:10th|class 10|secondary school)\b", "secondary"),
    (r"\b(?:phd|doctorate)\b", "doctorate"),
)

_FIELDS = ("engineering", "medicine", "nursing", "law", "arts", "science", "commerce")

_OCCUPATIONS: Dict[str, str] = {
    "farmer": "farmer", "farmers": "farmer",
    "student": "student", "students": "student",
    "unemployed": "unemployed",
    "worker": "worker", "workers": "worker", "labourer": "worker",
    "teacher": "teacher",
}

_CONDITIONS = ("diabetes", "cancer", "tuberculosis", "pregnancy", "disability", "hiv")

_AGE_RE = re.compile(r"\b(\d{1,3})\s*(?:years?|yrs?)(?:\s*old)?\b|\baged?\s+(\d{1,3})\b")
_OLDER_RE = re.compile(r"\b(?:older|elderly|senior|seniors|aged)\b")
_YOUNGER_RE = re.compile(r"\b(?:younger|youth|young)\b")
_FOLLOW_UP_RE = re.compile(
    r"^\s*(?:what about|how about|and for|and what|what if|also|same for)\b"
    r"|\binstead\b"
)
_WORD_RE = re.compile(r"[a-z0-9]+")


def _confidence(best: int, runner_up: int) -> float:
    """Keyword-hit confidence. A clear winner scores high, a tie scores low."""
    if best == 0:
        return 0.2
    if runner_up == 0:
        return min(0.95, 0.55 + 0.15 * best)
    if best == runner_up:
        return 0.4
    return min(0.85, 0.5 + 0.1 * (best - runner_up))


class KeywordQueryParser:
    """
    Deterministic keyword parser. Used as the default parser and as the
    fallback when the NLP collaborator is unavailable.
    """

    def __init__(self, clarification_threshold: float = 0.6):
        self.clarification_threshold = clarification_threshold

    def parse(
        self, text: str, context: Optional[ConversationContext] = None
    ) -> ParsedQuery:
        lowered = text.lower()
        words = _WORD_RE.findall(lowered)

        intent = self._classify(words)
        entities = self._extract_entities(lowered, words)
        language = context.language if context else "en"

        return ParsedQuery(
            text=text,
            intent=intent,
            entities=entities,
            language=language,
            follow_up=bool(_FOLLOW_UP_RE.search(lowered)),
            needs_clarification=intent.confidence < self.clarification_threshold,
        )

    def _classify(self, words: List[str]) -> Intent:
        hits = {
            category: sum(1 for w in words if w in keywords)
            for category, keywords in _CATEGORY_KEYWORDS.items()
        }
        # Stable ordering: most hits first, then declaration order
        ranked = sorted(hits.items(), key=lambda kv: -kv[1])
        (best_category, best), (_, runner_up) = ranked[0], ranked[1]

        if best == 0:
            return Intent(category=ServiceCategory.OTHER, confidence=_confidence(0, 0))

        subcategory = None
        for name, keywords in _SUBCATEGORY_KEYWORDS.items():
            if any(w in keywords for w in words):
                subcategory = name
                break

        return Intent(
            category=best_category,
            subcategory=subcategory,
            confidence=_confidence(best, runner_up),
        )

    def _extract_entities(self, lowered: str, words: List[str]) -> List[Entity]:
        entities: List[Entity] = []

        age_match = _AGE_RE.search(lowered)
        if age_match:
            entities.append(Entity(type="age", value=age_match.group(1) or age_match.group(2)))
        elif _OLDER_RE.search(lowered):
            entities.append(Entity(type="age_group", value="senior", confidence=0.7))
        elif _YOUNGER_RE.search(lowered):
            entities.append(Entity(type="age_group", value="youth", confidence=0.7))

        for alias, region in _REGIONS.items():
            if re.search(rf"\b{alias}\b", lowered):
                entities.append(Entity(type="region", value=region))
                break

        for pattern, level in _EDUCATION_LEVELS:
            if re.search(pattern, lowered):
                entities.append(Entity(type="education_level", value=level))
                break

        for field in _FIELDS:
            if field in words:
                entities.append(Entity(type="field", value=field))
                break

        for word in words:
            if word in _OCCUPATIONS:
                entities.append(Entity(type="occupation", value=_OCCUPATIONS[word]))
                break

        for condition in _CONDITIONS:
            if condition in words:
                entities.append(Entity(type="condition", value=condition))
                break

        return entities

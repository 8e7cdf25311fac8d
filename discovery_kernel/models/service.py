"""Service Record — a government service and its eligibility criteria."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

NATIONAL = "national"


class ServiceCategory(str, Enum):
    HEALTHCARE = "healthcare"
    WELFARE = "welfare"
    EMPLOYMENT = "employment"
    EDUCATION = "education"
    LEGAL = "legal"
    HOUSING = "housing"
    AGRICULTURE = "agriculture"
    OTHER = "other"


class CriterionType(str, Enum):
    REQUIRED = "required"             # Must match. Unmatched means ineligible.
    PREFERRED = "preferred"           # Nice to have. Unmatched means partial.
    DISQUALIFYING = "disqualifying"   # Matching it means ineligible.


class CriterionOutcome(str, Enum):
    MATCHED = "matched"
    UNMATCHED = "unmatched"
    UNKNOWN = "unknown"


class PredicateKind(str, Enum):
    RANGE = "range"             # Numeric attribute within [minimum, maximum]
    ENUM = "enum"               # Attribute value is one of `values`
    MEMBERSHIP = "membership"   # Profile memberships intersect `values`
    CUSTOM = "custom"           # Named rule from the evaluator's registry


class Predicate(BaseModel):
    """Tagged predicate evaluated by the eligibility interpreter."""

    kind: PredicateKind
    attribute: Optional[str] = None         # Profile attribute, e.g. "age"
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    values: List[str] = []
    rule: Optional[str] = None              # Custom rule name
    parameters: dict = {}


class Criterion(BaseModel):
    """A single eligibility rule attached to a service."""

    id: str
    description: str
    type: CriterionType
    checkable: bool = True                  # Can be verified from the profile
    predicate: Optional[Predicate] = None
    entity_types: List[str] = []            # Query entity types this rule speaks to

    def related_entity_types(self) -> List[str]:
        types = list(self.entity_types)
        if self.predicate and self.predicate.attribute:
            types.append(self.predicate.attribute)
        if self.predicate and self.predicate.kind == PredicateKind.MEMBERSHIP:
            types.append("memberships")
        return types


class ServiceRecord(BaseModel):
    """A government service loaded from the external catalog. Read-only in the kernel."""

    id: str
    name: str
    category: ServiceCategory
    subcategory: Optional[str] = None
    description: str
    criteria: List[Criterion] = []
    regions: List[str] = [NATIONAL]
    popularity: float = Field(ge=0.0, le=1.0, default=0.0)
    last_updated: datetime
    official_source: str                    # Citation URL or document reference
    inclusive_access: bool = False          # Targets underserved communities
    alternative_pathway: bool = False       # Vocational / non-degree education route
    keywords: List[str] = []

    @property
    def is_national(self) -> bool:
        return any(r.lower() == NATIONAL for r in self.regions)

    def serves_region(self, region: Optional[str]) -> bool:
        """National services serve everyone; regional ones only their regions."""
        if self.is_national:
            return True
        if not region:
            return False
        return region.strip().lower() in {r.lower() for r in self.regions}

"""Parsed Query — the typed result the NLP step must produce."""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from discovery_kernel.models.service import ServiceCategory


class Intent(BaseModel):
    category: ServiceCategory
    subcategory: Optional[str] = None
    confidence: float = Field(ge=0.0, le=1.0)


class Entity(BaseModel):
    """A typed value extracted from the query text."""

    type: str                               # e.g. "age", "region", "education_level"
    value: str
    confidence: float = Field(ge=0.0, le=1.0, default=1.0)
    inherited: bool = False                 # Copied from an earlier turn


class ParsedQuery(BaseModel):
    """Output of the NLP collaborator, consumed by the kernel."""

    text: str
    intent: Intent
    entities: List[Entity] = []
    language: str = "en"
    follow_up: bool = False                 # Elliptical follow-up ("what about ...")
    needs_clarification: bool = False

    def entity_map(self) -> Dict[str, Entity]:
        """Entities keyed by type. A later entity of the same type wins."""
        return {e.type: e for e in self.entities}

    def get_entity(self, entity_type: str) -> Optional[Entity]:
        return self.entity_map().get(entity_type)

    def own_entities(self) -> List[Entity]:
        """Entities supplied by this turn, excluding inherited ones."""
        return [e for e in self.entities if not e.inherited]

"""
Conversation Context Tracker — resolves follow-up queries against prior turns.

Behavioral Contract:
- enrich() is pure: it never changes the context it is given
- Every entity type missing from the new parse is copied from the merged
  map (marked inherited); types the new parse supplies, and types in the
  same family (age and age_group), are left alone
- record_turn() returns a new context: the turn is appended and the new
  parse's own entities overwrite the merged map for their types
- Omission never erases a known entity; only forget() or a value of the
  same family removes one
- A topic-less follow-up inherits the last intent's category but keeps
  its own confidence, so the clarification gate still applies
- The caller serializes turns for one session; the merge is not commutative
"""

import logging
from datetime import datetime
from typing import List, Optional, Set

from discovery_kernel.models.conversation import ConversationContext, ConversationTurn
from discovery_kernel.models.query import Entity, Intent, ParsedQuery
from discovery_kernel.models.service import ServiceCategory

logger = logging.getLogger(__name__)

# Entity types that describe the same fact; supplying one replaces the others
_OVERRIDE_FAMILIES = {
    "age": ("age", "age_group"),
    "age_group": ("age", "age_group"),
}


def _overridden_types(entities: List[Entity]) -> Set[str]:
    types: Set[str] = set()
    for entity in entities:
        types.update(_OVERRIDE_FAMILIES.get(entity.type, (entity.type,)))
    return types


class ConversationContextTracker:
    """Stateless tracker. All session state lives in the ConversationContext value."""

    def start(
        self,
        session_id: str,
        language: str = "en",
        current_time: Optional[datetime] = None,
    ) -> ConversationContext:
        """Create the context for a session's first turn."""
        now = current_time or datetime.utcnow()
        return ConversationContext(
            session_id=session_id,
            language=language,
            created_at=now,
            updated_at=now,
        )

    def enrich(self, context: ConversationContext, parsed: ParsedQuery) -> ParsedQuery:
        """Merge prior-turn entities (and, for follow-ups, the prior intent) into a parse."""
        own_types = _overridden_types(parsed.entities)
        inherited = [
            entity.model_copy(update={"inherited": True})
            for entity_type, entity in sorted(context.known_entities.items())
            if entity_type not in own_types
        ]

        intent = parsed.intent
        last = context.last_intent
        if (
            last is not None
            and parsed.follow_up
            and parsed.intent.category == ServiceCategory.OTHER
        ):
            # The topic carries over; the confidence stays this parse's own
            intent = Intent(
                category=last.category,
                subcategory=last.subcategory,
                confidence=parsed.intent.confidence,
            )
            logger.debug(
                "Session %s: follow-up inherits intent %s",
                context.session_id, last.category.value,
            )

        if inherited:
            logger.debug(
                "Session %s: inherited entities %s",
                context.session_id, [e.type for e in inherited],
            )

        return parsed.model_copy(
            update={
                "entities": list(parsed.entities) + inherited,
                "intent": intent,
                "language": parsed.language or context.language,
            }
        )

    def record_turn(
        self,
        context: ConversationContext,
        original: ParsedQuery,
        enriched: ParsedQuery,
        response_summary: str,
        service_ids: Optional[List[str]] = None,
        needs_clarification: bool = False,
        current_time: Optional[datetime] = None,
    ) -> ConversationContext:
        """Append a responded turn and fold its own entities into the merged map."""
        now = current_time or datetime.utcnow()

        own = original.own_entities()
        replaced = _overridden_types(own)
        known = {k: v for k, v in context.known_entities.items() if k not in replaced}
        for entity in own:
            known[entity.type] = entity.model_copy(update={"inherited": False})

        turn = ConversationTurn(
            turn_number=context.turn_count + 1,
            original=original,
            enriched=enriched,
            response_summary=response_summary,
            service_ids=service_ids or [],
            needs_clarification=needs_clarification,
            responded_at=now,
        )

        last_intent = context.last_intent
        if enriched.intent.category != ServiceCategory.OTHER:
            last_intent = enriched.intent

        return context.model_copy(
            update={
                "turns": list(context.turns) + [turn],
                "known_entities": known,
                "language": enriched.language or context.language,
                "last_intent": last_intent,
                "updated_at": now,
            }
        )

    def forget(self, context: ConversationContext, entity_type: str) -> ConversationContext:
        """Explicitly drop a known entity (e.g. the citizen corrects themselves)."""
        if entity_type not in context.known_entities:
            return context
        known = {k: v for k, v in context.known_entities.items() if k != entity_type}
        return context.model_copy(
            update={"known_entities": known, "updated_at": datetime.utcnow()}
        )

    def known_value(self, context: ConversationContext, entity_type: str) -> Optional[str]:
        entity: Optional[Entity] = context.known_entities.get(entity_type)
        return entity.value if entity else None

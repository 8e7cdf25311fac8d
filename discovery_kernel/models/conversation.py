"""Conversation Context — per-session turn log and merged entity map."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel

from discovery_kernel.models.query import Entity, Intent, ParsedQuery


class ConversationTurn(BaseModel):
    """One answered turn. Both the parse as received and as enriched are kept."""

    turn_number: int
    original: ParsedQuery
    enriched: ParsedQuery
    response_summary: str
    service_ids: List[str] = []
    needs_clarification: bool = False
    responded_at: datetime


class ConversationContext(BaseModel):
    """
    Session state passed into and returned from every orchestrator call.
    The host layer stores it between calls.
    """

    session_id: str
    turns: List[ConversationTurn] = []      # Append-only within a session
    known_entities: Dict[str, Entity] = {}  # Last writer wins per entity type
    language: str = "en"
    last_intent: Optional[Intent] = None
    created_at: datetime
    updated_at: datetime

    @property
    def turn_count(self) -> int:
        return len(self.turns)

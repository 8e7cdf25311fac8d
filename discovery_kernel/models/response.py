"""Query Response — the envelope returned to the orchestrating application."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from discovery_kernel.models.match import NoMatchReason, ServiceMatch
from discovery_kernel.models.query import ParsedQuery


class SourceCitation(BaseModel):
    service_id: str
    title: str
    official_source: str
    last_updated: datetime


class HumanAssistanceContact(BaseModel):
    name: str
    phone: Optional[str] = None
    url: Optional[str] = None


class QueryResponse(BaseModel):
    """What the presentation layer renders for one turn."""

    session_id: str
    response_text: str
    services: List[ServiceMatch] = []
    needs_clarification: bool = False
    clarification_question: Optional[str] = None
    sources: List[SourceCitation] = []
    response_time: float                    # Seconds from receipt to assembly

    # Uncertainty signaling for the presentation layer
    confidence: float = Field(ge=0.0, le=1.0)
    degradations: List[str] = []

    # No-match payload
    alternatives_used: bool = False
    no_match_reason: Optional[NoMatchReason] = None
    suggestions: List[str] = []
    human_assistance: Optional[HumanAssistanceContact] = None

    parsed_query: Optional[ParsedQuery] = None

"""Turn Record — the audit entry written for every answered turn."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class TurnRecord(BaseModel):
    """
    One audit entry per RESPONDED turn.
    Answers: what was asked, how it was read, what came back, and what degraded.
    """

    id: str
    session_id: str
    turn_number: int
    query_text: str
    intent_category: str
    intent_confidence: float
    needs_clarification: bool
    service_ids: List[str] = []
    alternatives_used: bool = False
    no_match_reason: Optional[str] = None
    degradations: List[str] = []
    response_time: float
    recorded_at: datetime

    # INTEGRITY
    signature: str = ""
    prior_record_hash: Optional[str] = None

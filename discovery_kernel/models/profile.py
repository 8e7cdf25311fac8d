"""Citizen Profile — the demographic snapshot used for eligibility."""

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CitizenProfile(BaseModel):
    """
    Immutable snapshot of a citizen's attributes for one matching call.

    Owned by the caller (profile manager). The kernel only reads it.
    """

    model_config = ConfigDict(frozen=True)

    age: Optional[int] = Field(default=None, ge=0, le=130)
    region: Optional[str] = None            # Region code, e.g. "TN", "Maharashtra"
    education_level: Optional[str] = None   # e.g. "secondary", "diploma", "graduate"
    income: Optional[float] = Field(default=None, ge=0)  # Annual household income
    occupation: Optional[str] = None        # e.g. "farmer", "student"
    gender: Optional[str] = None
    memberships: List[str] = []             # e.g. ["underserved_community", "bpl"]

    def attribute(self, name: str) -> Any:
        """Look up a profile attribute by name. Returns None when unknown."""
        if name == "memberships":
            return self.memberships or None
        if name not in type(self).model_fields:
            return None
        return getattr(self, name)

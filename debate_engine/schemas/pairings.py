"""
Pydantic Schemas for the pairing endpoints.
"""
from typing import List, Optional

from pydantic import BaseModel, Field


class PairingIn(BaseModel):
    """One proposed room."""
    room_name: str = Field(..., description="Free-text room label, sorted by its first number")
    proposition_team_id: Optional[int] = None
    opposition_team_id: Optional[int] = None
    judges: List[int] = Field(default_factory=list, description="Judge user ids")
    head_judge_id: Optional[int] = Field(None, description="Must be one of `judges`")
    is_bye_round: bool = Field(False, description="Public-speaking bye with a single team")


class SavePairingsRequest(BaseModel):
    pairings: List[PairingIn]


class PairingUpdateRequest(BaseModel):
    """Partial update; only the fields sent are applied."""
    room_name: Optional[str] = None
    judges: Optional[List[int]] = None
    head_judge_id: Optional[int] = None
    proposition_team_id: Optional[int] = None
    opposition_team_id: Optional[int] = None


class ValidateRoomRequest(BaseModel):
    proposition_team_id: Optional[int] = None
    opposition_team_id: Optional[int] = None
    judges: List[int] = Field(default_factory=list)
    round_number: Optional[int] = None


"""
Pydantic Schemas for ballot submission and moderation.

Sub-score ranges are checked by the normalizer, which reports a
ValidationError naming the offending field.
"""
from typing import List, Optional

from pydantic import BaseModel, Field


class SpeakerScoreIn(BaseModel):
    speaker_id: int
    team_id: int
    position: str = Field(..., description="Speaking position, e.g. 'first proposition'")
    role_fulfillment: float
    argumentation_clash: float
    content_development: float
    style_strategy_delivery: float
    comments: Optional[str] = None
    bias_detected: Optional[bool] = None


class SubmitBallotRequest(BaseModel):
    winning_team_id: int
    winning_position: str = Field(..., description="'proposition' or 'opposition'")
    speaker_scores: List[SpeakerScoreIn] = Field(default_factory=list)
    notes: Optional[str] = None
    is_final_submission: bool = False
    flag_reason: Optional[str] = Field(None, description="Raise a judge flag for review")


class BallotUpdateRequest(BaseModel):
    """Admin override; only the fields sent are applied."""
    winning_team_id: Optional[int] = None
    winning_position: Optional[str] = None
    speaker_scores: Optional[List[SpeakerScoreIn]] = None
    notes: Optional[str] = None
    feedback_submitted: Optional[bool] = None


class FlagBallotRequest(BaseModel):
    reason: str


class JudgeFeedbackRequest(BaseModel):
    team_id: int
    judge_id: int
    clarity: int
    fairness: int
    knowledge: int
    helpfulness: int
    bias_detected: bool = False
    comments: Optional[str] = None

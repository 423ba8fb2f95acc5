"""
Speaker Score Normalizer

Maps the four 0-25 rubric sub-scores of one speaker to a final score on
the 16.3-30 scale:

    rubric = sum of sub-scores              (0..100)
    raw    = rubric + 5                     (attendance bonus)
    final  = raw / 105 * 30, floored at 16.3, rounded half-up to 0.1

Decimal arithmetic keeps the half-up rounding exact.
"""
import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List

from debate_engine.errors import ValidationError

SUB_SCORE_FIELDS = (
    "role_fulfillment",
    "argumentation_clash",
    "content_development",
    "style_strategy_delivery",
)

SUB_SCORE_MIN = 0
SUB_SCORE_MAX = 25
ATTENDANCE_BONUS = 5
RAW_MAX = Decimal(105)
SCALE_MAX = Decimal(30)
SCORE_FLOOR = Decimal("16.3")
ONE_DECIMAL = Decimal("0.1")


def _check_sub_score(field: str, value: Any) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{field} must be a number", field=field)
    if not math.isfinite(value) or value < SUB_SCORE_MIN or value > SUB_SCORE_MAX:
        raise ValidationError(
            f"{field} must be between {SUB_SCORE_MIN} and {SUB_SCORE_MAX}",
            field=field
        )
    return Decimal(str(value))


def normalize_speaker_score(
    role_fulfillment: float,
    argumentation_clash: float,
    content_development: float,
    style_strategy_delivery: float,
) -> float:
    """
    Compute a speaker's final score.

    Raises:
        ValidationError: any sub-score outside [0, 25]; `field` names it
    """
    rubric = (
        _check_sub_score("role_fulfillment", role_fulfillment)
        + _check_sub_score("argumentation_clash", argumentation_clash)
        + _check_sub_score("content_development", content_development)
        + _check_sub_score("style_strategy_delivery", style_strategy_delivery)
    )
    raw = rubric + ATTENDANCE_BONUS
    final = raw * SCALE_MAX / RAW_MAX
    if final < SCORE_FLOOR:
        final = SCORE_FLOOR
    return float(final.quantize(ONE_DECIMAL, rounding=ROUND_HALF_UP))


def normalize_speaker_scores(speaker_scores: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Return copies of `speaker_scores` with `score` filled in.

    Validates every entry before returning anything, so a single bad
    sub-score rejects the whole list.
    """
    normalized = []
    for entry in speaker_scores:
        missing = [field for field in SUB_SCORE_FIELDS if entry.get(field) is None]
        if missing:
            raise ValidationError(
                f"Speaker {entry.get('speaker_id')} is missing {', '.join(missing)}",
                field=missing[0]
            )
        scored = dict(entry)
        scored["score"] = normalize_speaker_score(*(entry[field] for field in SUB_SCORE_FIELDS))
        normalized.append(scored)
    return normalized

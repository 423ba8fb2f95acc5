"""
Conflict Detector

Pure analysis of proposed or stored pairings. Nothing here touches the
database: callers resolve teams, schools, judges and history first and
pass plain records in.

Per-debate checks (run on every pairing):
- judge_conflict (error): judge shares a school with a participating team
- same_school (warning): both teams of a regular debate share a school

The single-room preview also reports same_team (error) when a team is
proposed against itself.

Aggregate checks (run against tournament history):
- repeat_opponent (error): the two teams met in an earlier round
- side_imbalance (warning): proposition/opposition counts differ by more than 1
- bye_violation (warning): a team received more than one bye
- feedback_conflict (warning): a team rated the judge below 2.0 on average,
  or flagged bias, in an earlier round

Detected conflicts never block persistence; error-severity entries are
returned to the caller for an override decision.
"""
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple


class ConflictType:
    JUDGE_CONFLICT = "judge_conflict"
    SAME_SCHOOL = "same_school"
    REPEAT_OPPONENT = "repeat_opponent"
    SIDE_IMBALANCE = "side_imbalance"
    BYE_VIOLATION = "bye_violation"
    FEEDBACK_CONFLICT = "feedback_conflict"
    SAME_TEAM = "same_team"


class Severity:
    WARNING = "warning"
    ERROR = "error"


FEEDBACK_AVERAGE_THRESHOLD = 2.0
MAX_SIDE_DIFFERENCE = 1
MAX_BYES = 1


# =============================================================================
# Records
# =============================================================================

@dataclass
class Conflict:
    type: str
    description: str
    severity: str
    team_ids: List[int] = field(default_factory=list)
    judge_ids: List[int] = field(default_factory=list)

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.ERROR

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "description": self.description,
            "severity": self.severity,
            "team_ids": list(self.team_ids),
            "judge_ids": list(self.judge_ids),
        }


@dataclass
class TeamRef:
    id: int
    name: str
    school_id: Optional[int] = None
    school_name: Optional[str] = None


@dataclass
class JudgeRef:
    id: int
    name: str
    school_id: Optional[int] = None
    school_name: Optional[str] = None


@dataclass
class ResolvedDebate:
    """A debate with its teams and judges joined in."""
    room_name: str
    proposition: Optional[TeamRef]
    opposition: Optional[TeamRef]
    judges: List[JudgeRef]
    is_bye: bool = False

    @property
    def participants(self) -> List[Tuple[str, TeamRef]]:
        # A bye carries a single team; only that one is checked.
        slots = [("proposition", self.proposition), ("opposition", self.opposition)]
        present = [(side, team) for side, team in slots if team is not None]
        if self.is_bye:
            return present[:1]
        return present


@dataclass
class DebateRecord:
    """One past or current debate, reduced to what history checks need."""
    round_number: int
    proposition_team_id: Optional[int]
    opposition_team_id: Optional[int]
    is_bye: bool = False
    judges: List[int] = field(default_factory=list)
    head_judge_id: Optional[int] = None


@dataclass
class FeedbackRecord:
    judge_id: int
    team_id: int
    round_number: int
    average_score: float
    bias_detected: bool = False


# =============================================================================
# Per-debate detection
# =============================================================================

def detect_debate_conflicts(debate: ResolvedDebate) -> List[Conflict]:
    """Ordered list of school-affiliation conflicts for one debate."""
    conflicts: List[Conflict] = []

    for judge in debate.judges:
        if judge.school_id is None:
            continue
        for side, team in debate.participants:
            if team.school_id == judge.school_id:
                school = team.school_name or judge.school_name or "the same school"
                conflicts.append(Conflict(
                    type=ConflictType.JUDGE_CONFLICT,
                    description=f"Judge {judge.name} is from the same school as {side} team ({school})",
                    severity=Severity.ERROR,
                    team_ids=[team.id],
                    judge_ids=[judge.id],
                ))

    prop, opp = debate.proposition, debate.opposition
    if (
        not debate.is_bye
        and prop is not None
        and opp is not None
        and prop.school_id is not None
        and prop.school_id == opp.school_id
    ):
        conflicts.append(Conflict(
            type=ConflictType.SAME_SCHOOL,
            description=f"Both teams are from {prop.school_name or 'the same school'}",
            severity=Severity.WARNING,
            team_ids=[prop.id, opp.id],
        ))

    return conflicts


# =============================================================================
# History-based detection
# =============================================================================

def have_met(
    history: Iterable[DebateRecord],
    team_a: int,
    team_b: int,
    before_round: Optional[int] = None
) -> bool:
    pair = {team_a, team_b}
    for record in history:
        if record.is_bye:
            continue
        if before_round is not None and record.round_number >= before_round:
            continue
        if {record.proposition_team_id, record.opposition_team_id} == pair:
            return True
    return False


def detect_repeat_opponent(
    history: Iterable[DebateRecord],
    proposition: Optional[TeamRef],
    opposition: Optional[TeamRef],
    before_round: Optional[int] = None
) -> List[Conflict]:
    if proposition is None or opposition is None or proposition.id == opposition.id:
        return []
    if not have_met(history, proposition.id, opposition.id, before_round):
        return []
    return [Conflict(
        type=ConflictType.REPEAT_OPPONENT,
        description=f"{proposition.name} and {opposition.name} have faced each other before",
        severity=Severity.ERROR,
        team_ids=[proposition.id, opposition.id],
    )]


def side_counts(history: Iterable[DebateRecord]) -> Dict[int, Dict[str, int]]:
    counts: Dict[int, Dict[str, int]] = defaultdict(lambda: {"prop": 0, "opp": 0})
    for record in history:
        if record.is_bye:
            continue
        if record.proposition_team_id is not None:
            counts[record.proposition_team_id]["prop"] += 1
        if record.opposition_team_id is not None:
            counts[record.opposition_team_id]["opp"] += 1
    return counts


def detect_side_imbalance(
    history: Iterable[DebateRecord],
    teams: Dict[int, TeamRef]
) -> List[Conflict]:
    conflicts = []
    for team_id, counts in sorted(side_counts(history).items()):
        if abs(counts["prop"] - counts["opp"]) <= MAX_SIDE_DIFFERENCE:
            continue
        team = teams.get(team_id)
        name = team.name if team else f"Team {team_id}"
        conflicts.append(Conflict(
            type=ConflictType.SIDE_IMBALANCE,
            description=(
                f"{name} has argued proposition {counts['prop']} times "
                f"and opposition {counts['opp']} times"
            ),
            severity=Severity.WARNING,
            team_ids=[team_id],
        ))
    return conflicts


def bye_rounds(history: Iterable[DebateRecord]) -> Dict[int, List[int]]:
    byes: Dict[int, List[int]] = defaultdict(list)
    for record in history:
        if record.is_bye and record.proposition_team_id is not None:
            byes[record.proposition_team_id].append(record.round_number)
    return byes


def detect_bye_violations(
    history: Iterable[DebateRecord],
    teams: Dict[int, TeamRef]
) -> List[Conflict]:
    conflicts = []
    for team_id, rounds in sorted(bye_rounds(history).items()):
        if len(rounds) <= MAX_BYES:
            continue
        team = teams.get(team_id)
        name = team.name if team else f"Team {team_id}"
        conflicts.append(Conflict(
            type=ConflictType.BYE_VIOLATION,
            description=f"{name} has {len(rounds)} byes (rounds {', '.join(str(r) for r in sorted(rounds))})",
            severity=Severity.WARNING,
            team_ids=[team_id],
        ))
    return conflicts


def detect_feedback_conflicts(
    feedback: Sequence[FeedbackRecord],
    judges: Sequence[JudgeRef],
    teams: Sequence[TeamRef],
    before_round: Optional[int] = None
) -> List[Conflict]:
    """
    One conflict per (judge, team) whose earlier feedback averages below
    the threshold across all records, or contains a bias flag.
    """
    grouped: Dict[Tuple[int, int], List[FeedbackRecord]] = defaultdict(list)
    for record in feedback:
        if before_round is not None and record.round_number >= before_round:
            continue
        grouped[(record.judge_id, record.team_id)].append(record)

    conflicts = []
    for judge in judges:
        for team in teams:
            records = grouped.get((judge.id, team.id))
            if not records:
                continue
            average = sum(r.average_score for r in records) / len(records)
            biased = any(r.bias_detected for r in records)
            if not biased and average >= FEEDBACK_AVERAGE_THRESHOLD:
                continue
            reason = "bias complaints" if biased else f"low feedback (average {average:.1f})"
            conflicts.append(Conflict(
                type=ConflictType.FEEDBACK_CONFLICT,
                description=f"Judge {judge.name} has received {reason} from {team.name}",
                severity=Severity.WARNING,
                team_ids=[team.id],
                judge_ids=[judge.id],
            ))
    return conflicts


def detect_pairing_conflicts(
    debate: ResolvedDebate,
    round_number: int,
    history: Sequence[DebateRecord] = (),
    feedback: Sequence[FeedbackRecord] = ()
) -> List[Conflict]:
    """Per-debate conflicts followed by the history checks that apply to one room."""
    conflicts = detect_debate_conflicts(debate)
    if not debate.is_bye:
        conflicts.extend(detect_repeat_opponent(
            history, debate.proposition, debate.opposition, before_round=round_number
        ))
    conflicts.extend(detect_feedback_conflicts(
        feedback,
        debate.judges,
        [team for _, team in debate.participants],
        before_round=round_number,
    ))
    return conflicts

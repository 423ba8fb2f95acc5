"""
Pairing quality statistics.

Aggregates a tournament's debates into matchup, side, bye, school and
judge-workload tallies, folds them into a weighted quality score
(lower is better) and derives advice text.
"""
from collections import Counter, defaultdict
from typing import Any, Dict, List, Sequence

from debate_engine.services.conflict_detector import (
    DebateRecord, TeamRef, bye_rounds, side_counts
)

QUALITY_WEIGHTS = {
    "repeat_matchups": 10,
    "side_imbalances": 5,
    "multiple_byes": 20,
    "school_conflicts": 15,
    "judge_overloads": 3,
}

OVERLOAD_MARGIN = 2
SIDE_IMBALANCE_SHARE = 0.3


def compute_judge_workload(history: Sequence[DebateRecord]) -> Dict[int, Dict[str, Any]]:
    workload: Dict[int, Dict[str, Any]] = {}
    for record in history:
        for judge_id in record.judges:
            entry = workload.setdefault(judge_id, {
                "total_assignments": 0,
                "head_judge_count": 0,
                "rounds": [],
                "overload_score": 0.0,
            })
            entry["total_assignments"] += 1
            entry["rounds"].append(record.round_number)
            if record.head_judge_id == judge_id:
                entry["head_judge_count"] += 1

    if workload:
        average = sum(w["total_assignments"] for w in workload.values()) / len(workload)
        for entry in workload.values():
            entry["overload_score"] = max(0.0, entry["total_assignments"] - average)
    return workload


def count_repeat_matchups(history: Sequence[DebateRecord]) -> int:
    """Extra meetings beyond the first, summed over every team pair."""
    meetings = Counter(
        frozenset((r.proposition_team_id, r.opposition_team_id))
        for r in history
        if not r.is_bye and r.proposition_team_id is not None and r.opposition_team_id is not None
    )
    return sum(count - 1 for count in meetings.values() if count > 1)


def generate_pairing_recommendations(
    quality_metrics: Dict[str, int],
    total_teams: int,
    total_rounds: int
) -> List[str]:
    recommendations: List[str] = []

    if quality_metrics["repeat_matchups"] > 0:
        recommendations.append(
            f"{quality_metrics['repeat_matchups']} repeat matchups detected. "
            "Consider using Swiss system for future rounds."
        )
    if quality_metrics["side_imbalances"] > total_teams * SIDE_IMBALANCE_SHARE:
        recommendations.append("High side imbalance detected. Review side assignment algorithm.")
    if quality_metrics["multiple_byes"] > 0:
        recommendations.append(
            f"{quality_metrics['multiple_byes']} teams have multiple bye rounds. Ensure fair distribution."
        )
    if quality_metrics["school_conflicts"] > 0:
        recommendations.append(
            f"{quality_metrics['school_conflicts']} same-school matchups found. Review pairing constraints."
        )
    if quality_metrics["judge_overloads"] > 0:
        recommendations.append("Some judges are overloaded. Consider recruiting more volunteers.")
    if total_rounds > 5 and quality_metrics["repeat_matchups"] == 0:
        recommendations.append("Excellent pairing quality maintained beyond round 5!")

    score = quality_metrics["total_quality_score"]
    if score == 0:
        recommendations.append("Perfect pairing quality achieved!")
    elif score < 20:
        recommendations.append("Good pairing quality with minor issues.")
    elif score < 50:
        recommendations.append("Moderate pairing quality. Consider algorithm adjustments.")
    else:
        recommendations.append("Poor pairing quality. Manual intervention recommended.")
    return recommendations


def compute_pairing_stats(
    teams: Sequence[TeamRef],
    total_rounds: int,
    history: Sequence[DebateRecord]
) -> Dict[str, Any]:
    """
    Build the full statistics payload.

    `teams` are the tournament's active teams; per-team tallies are keyed
    by them, while school and judge tallies cover every debate.
    """
    team_ids = [team.id for team in teams]
    teams_by_id = {team.id: team for team in teams}

    matchup_matrix: Dict[int, set] = {team_id: set() for team_id in team_ids}
    school_conflicts: Dict[int, int] = defaultdict(int)
    for record in history:
        if record.is_bye or record.proposition_team_id is None or record.opposition_team_id is None:
            continue
        prop, opp = record.proposition_team_id, record.opposition_team_id
        if prop in matchup_matrix:
            matchup_matrix[prop].add(opp)
        if opp in matchup_matrix:
            matchup_matrix[opp].add(prop)
        prop_team, opp_team = teams_by_id.get(prop), teams_by_id.get(opp)
        if (
            prop_team is not None and opp_team is not None
            and prop_team.school_id is not None
            and prop_team.school_id == opp_team.school_id
        ):
            school_conflicts[prop_team.school_id] += 1

    counts = side_counts(history)
    side_balance = {}
    for team_id in team_ids:
        prop_count = counts[team_id]["prop"] if team_id in counts else 0
        opp_count = counts[team_id]["opp"] if team_id in counts else 0
        side_balance[team_id] = {
            "prop": prop_count,
            "opp": opp_count,
            "balance_score": abs(prop_count - opp_count),
        }

    byes = bye_rounds(history)
    bye_distribution = {team_id: len(byes.get(team_id, [])) for team_id in team_ids}
    bye_round_map = {team_id: sorted(byes.get(team_id, [])) for team_id in team_ids}

    judge_workload = compute_judge_workload(history)

    quality_metrics = {
        "repeat_matchups": count_repeat_matchups(history),
        "side_imbalances": sum(1 for b in side_balance.values() if b["balance_score"] > 1),
        "multiple_byes": sum(1 for count in bye_distribution.values() if count > 1),
        "school_conflicts": sum(school_conflicts.values()),
        "judge_overloads": sum(
            1 for w in judge_workload.values() if w["overload_score"] > OVERLOAD_MARGIN
        ),
    }
    quality_metrics["total_quality_score"] = sum(
        quality_metrics[name] * weight for name, weight in QUALITY_WEIGHTS.items()
    )

    return {
        "total_rounds": total_rounds,
        "total_teams": len(team_ids),
        "total_debates": len(history),
        "public_speaking_rounds": sum(1 for r in history if r.is_bye),
        "matchup_matrix": {team_id: sorted(opponents) for team_id, opponents in matchup_matrix.items()},
        "side_balance": side_balance,
        "bye_distribution": bye_distribution,
        "bye_rounds": bye_round_map,
        "school_conflicts": dict(school_conflicts),
        "judge_workload": judge_workload,
        "quality_metrics": quality_metrics,
        "recommendations": generate_pairing_recommendations(
            quality_metrics, len(team_ids), total_rounds
        ),
    }

"""
Pairing quality statistics tests (pure, no database).
"""
from debate_engine.services.conflict_detector import DebateRecord, TeamRef
from debate_engine.services.pairing_stats import (
    compute_judge_workload, compute_pairing_stats, count_repeat_matchups
)

TEAMS = [
    TeamRef(id=1, name="Northside A", school_id=10),
    TeamRef(id=2, name="Northside B", school_id=10),
    TeamRef(id=3, name="Southside", school_id=20),
    TeamRef(id=4, name="Eastside", school_id=30),
]

HISTORY = [
    DebateRecord(round_number=1, proposition_team_id=1, opposition_team_id=2,
                 judges=[10, 11], head_judge_id=10),
    DebateRecord(round_number=1, proposition_team_id=3, opposition_team_id=4, judges=[12]),
    DebateRecord(round_number=2, proposition_team_id=1, opposition_team_id=2, judges=[10]),
    DebateRecord(round_number=2, proposition_team_id=3, opposition_team_id=None, is_bye=True),
    DebateRecord(round_number=3, proposition_team_id=3, opposition_team_id=None, is_bye=True),
]


class TestPairingStats:
    def test_counts(self):
        stats = compute_pairing_stats(TEAMS, 3, HISTORY)
        assert stats["total_rounds"] == 3
        assert stats["total_teams"] == 4
        assert stats["total_debates"] == 5
        assert stats["public_speaking_rounds"] == 2

    def test_matchups_sides_and_byes(self):
        stats = compute_pairing_stats(TEAMS, 3, HISTORY)
        assert stats["matchup_matrix"][1] == [2]
        assert stats["matchup_matrix"][3] == [4]
        assert stats["side_balance"][1] == {"prop": 2, "opp": 0, "balance_score": 2}
        assert stats["side_balance"][3] == {"prop": 1, "opp": 0, "balance_score": 1}
        assert stats["bye_distribution"] == {1: 0, 2: 0, 3: 2, 4: 0}
        assert stats["bye_rounds"][3] == [2, 3]
        assert stats["school_conflicts"] == {10: 2}

    def test_quality_score_and_recommendations(self):
        stats = compute_pairing_stats(TEAMS, 3, HISTORY)
        metrics = stats["quality_metrics"]
        assert metrics["repeat_matchups"] == 1
        assert metrics["side_imbalances"] == 2
        assert metrics["multiple_byes"] == 1
        assert metrics["school_conflicts"] == 2
        assert metrics["judge_overloads"] == 0
        # 1*10 + 2*5 + 1*20 + 2*15
        assert metrics["total_quality_score"] == 70
        assert stats["recommendations"] == [
            "1 repeat matchups detected. Consider using Swiss system for future rounds.",
            "High side imbalance detected. Review side assignment algorithm.",
            "1 teams have multiple bye rounds. Ensure fair distribution.",
            "2 same-school matchups found. Review pairing constraints.",
            "Poor pairing quality. Manual intervention recommended.",
        ]

    def test_empty_tournament_is_perfect(self):
        stats = compute_pairing_stats(TEAMS[:2], 0, [])
        assert stats["quality_metrics"]["total_quality_score"] == 0
        assert stats["recommendations"] == ["Perfect pairing quality achieved!"]

    def test_long_clean_tournament_is_praised(self):
        history = [
            DebateRecord(round_number=n, proposition_team_id=prop, opposition_team_id=opp)
            for n, (prop, opp) in enumerate([(1, 3), (4, 1), (2, 4), (3, 2), (1, 4), (3, 1)], 1)
        ]
        stats = compute_pairing_stats(
            [TeamRef(id=t.id, name=t.name) for t in TEAMS], 6, history
        )
        assert stats["quality_metrics"]["repeat_matchups"] == 2
        assert "Excellent pairing quality maintained beyond round 5!" not in stats["recommendations"]

        clean = history[:4]
        stats = compute_pairing_stats([TeamRef(id=t.id, name=t.name) for t in TEAMS], 6, clean)
        assert stats["recommendations"] == [
            "Excellent pairing quality maintained beyond round 5!",
            "Perfect pairing quality achieved!",
        ]


class TestRepeatMatchups:
    def test_counts_extra_meetings_only(self):
        history = [
            DebateRecord(round_number=n, proposition_team_id=1, opposition_team_id=2)
            for n in range(1, 4)
        ]
        assert count_repeat_matchups(history) == 2

    def test_side_swap_is_still_a_repeat(self):
        history = [
            DebateRecord(round_number=1, proposition_team_id=1, opposition_team_id=2),
            DebateRecord(round_number=2, proposition_team_id=2, opposition_team_id=1),
        ]
        assert count_repeat_matchups(history) == 1


class TestJudgeWorkload:
    def test_overload_above_average(self):
        history = [
            DebateRecord(round_number=n, proposition_team_id=1, opposition_team_id=2,
                         judges=[1], head_judge_id=1)
            for n in range(1, 7)
        ] + [
            DebateRecord(round_number=1, proposition_team_id=3, opposition_team_id=4, judges=[j])
            for j in (2, 3, 4)
        ]
        workload = compute_judge_workload(history)
        assert workload[1]["total_assignments"] == 6
        assert workload[1]["head_judge_count"] == 6
        assert workload[1]["overload_score"] == 6 - 9 / 4
        assert workload[2]["overload_score"] == 0.0

        teams = [TeamRef(id=t.id, name=t.name) for t in TEAMS]
        stats = compute_pairing_stats(teams, 6, history)
        assert stats["quality_metrics"]["judge_overloads"] == 1
        assert "Some judges are overloaded. Consider recruiting more volunteers." in stats["recommendations"]

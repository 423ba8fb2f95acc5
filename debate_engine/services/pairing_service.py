"""
Pairing Validator & Store

Accepts an externally produced set of room pairings for one round,
validates it as a whole and replaces the round's debates atomically.

Guarantees:
- All structural violations are collected and reported together
- Existing debates are replaced only while none has started
- Delete and insert happen in one transaction under a round row lock
- Conflicts are computed and returned, never used to block the save
- Notification and audit run after commit and cannot fail the save
"""
import logging
import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Set

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from debate_engine.errors import (
    ConflictStateError, ValidationError, raise_if_violations, require
)
from debate_engine.orm.ballot import Ballot, BallotFlag
from debate_engine.orm.debate import Debate, DebateStatus
from debate_engine.orm.judge_feedback import JudgeFeedback
from debate_engine.orm.team import Team, TeamStatus
from debate_engine.orm.tournament import (
    Round, RoundStatus, RoundType, Tournament, TournamentStatus
)
from debate_engine.orm.user import User, UserRole
from debate_engine.rbac import Actor, ensure_admin
from debate_engine.services import lookups
from debate_engine.services.conflict_detector import (
    Conflict, ConflictType, Severity, detect_pairing_conflicts
)
from debate_engine.services.pairing_stats import compute_pairing_stats
from debate_engine.services.side_effects import (
    Collaborators, audit_best_effort, notify_best_effort
)

logger = logging.getLogger(__name__)

CLOSED_TOURNAMENT_STATUSES = (TournamentStatus.COMPLETED, TournamentStatus.CANCELLED)
STARTED_DEBATE_STATUSES = (DebateStatus.IN_PROGRESS, DebateStatus.COMPLETED)
EDITABLE_PAIRING_FIELDS = (
    "room_name", "judges", "head_judge_id", "proposition_team_id", "opposition_team_id"
)
UNNUMBERED_ROOM = 999


@dataclass
class ProposedPairing:
    room_name: str
    proposition_team_id: Optional[int] = None
    opposition_team_id: Optional[int] = None
    judges: List[int] = field(default_factory=list)
    head_judge_id: Optional[int] = None
    is_bye_round: bool = False


# =============================================================================
# Validation helpers
# =============================================================================

def _room_label(index: int, room_name: Optional[str]) -> str:
    return f"Room {index + 1}" if not room_name else f"Room {index + 1} '{room_name}'"


def validate_room_shape(
    label: str,
    proposition_team_id: Optional[int],
    opposition_team_id: Optional[int],
    judges: Sequence[int],
    head_judge_id: Optional[int],
    is_bye: bool,
    violations: List[str],
) -> None:
    """Checks that only need the room itself."""
    require(
        not (proposition_team_id is not None and proposition_team_id == opposition_team_id),
        violations, f"Team cannot debate itself ({label})"
    )
    team_count = sum(1 for t in (proposition_team_id, opposition_team_id) if t is not None)
    if is_bye:
        require(team_count == 1, violations, f"Bye room must have exactly one team ({label})")
    else:
        require(team_count == 2, violations, f"Room must have two teams ({label})")
        require(len(judges) > 0, violations, f"No judges assigned ({label})")
    require(
        len(set(judges)) == len(judges),
        violations, f"Judge listed more than once ({label})"
    )
    require(
        head_judge_id is None or head_judge_id in judges,
        violations, f"Head judge not in judge list ({label})"
    )


def validate_team_eligibility(
    label: str,
    team_ids: Sequence[int],
    tournament_id: int,
    teams: Dict[int, Team],
    violations: List[str],
) -> None:
    for team_id in team_ids:
        team = teams.get(team_id)
        if team is None or team.tournament_id != tournament_id:
            violations.append(f"Team {team_id} is not registered in this tournament ({label})")
        elif team.status != TeamStatus.ACTIVE:
            violations.append(f"Team '{team.name}' is {team.status.value} ({label})")


def validate_judges(
    label: str,
    judge_ids: Sequence[int],
    users: Dict[int, User],
    violations: List[str],
) -> None:
    """Every panel member must be a known volunteer."""
    for judge_id in judge_ids:
        user = users.get(judge_id)
        if user is None:
            violations.append(f"Unknown judge {judge_id} ({label})")
        elif user.role != UserRole.VOLUNTEER:
            violations.append(f"User {judge_id} is not a judge ({label})")


def even_judge_warning(label: str, judge_count: int, judges_per_debate: int) -> Optional[str]:
    """Even panels other than the configured size risk tied decisions."""
    if judge_count > 1 and judge_count % 2 == 0 and judge_count != judges_per_debate:
        return f"Even number of judges ({judge_count}) may cause tie decisions ({label})"
    return None


def validate_proposal(
    tournament: Tournament,
    pairings: Sequence[ProposedPairing],
    teams: Dict[int, Team],
    judges: Dict[int, User],
) -> List[str]:
    """
    Collect every structural violation of a proposal.

    Raises:
        ValidationError: aggregated violations
    Returns:
        Non-blocking warnings
    """
    violations: List[str] = []
    warnings: List[str] = []
    seen_teams: Set[int] = set()

    require(len(pairings) > 0, violations, "At least one pairing is required")

    for index, pairing in enumerate(pairings):
        label = _room_label(index, pairing.room_name)
        require(bool(pairing.room_name and pairing.room_name.strip()), violations,
                f"Room name is required ({label})")

        validate_room_shape(
            label,
            pairing.proposition_team_id,
            pairing.opposition_team_id,
            pairing.judges,
            pairing.head_judge_id,
            pairing.is_bye_round,
            violations,
        )

        room_teams = [t for t in (pairing.proposition_team_id, pairing.opposition_team_id) if t is not None]
        for team_id in dict.fromkeys(room_teams):
            if team_id in seen_teams:
                violations.append(f"Team appears multiple times in pairings ({label})")
            seen_teams.add(team_id)
        validate_team_eligibility(label, list(dict.fromkeys(room_teams)), tournament.id, teams, violations)

        validate_judges(label, pairing.judges, judges, violations)

        warning = even_judge_warning(label, len(pairing.judges), tournament.judges_per_debate)
        if warning:
            warnings.append(warning)

    raise_if_violations(violations)
    return warnings


def _round_type_for(tournament: Tournament, round_number: int) -> RoundType:
    if round_number <= (tournament.prelim_rounds or 0):
        return RoundType.PRELIMINARY
    return RoundType.ELIMINATION


def bye_slots(proposition_team_id, opposition_team_id, is_bye: bool):
    """A bye's single team always sits in the proposition slot."""
    if is_bye and proposition_team_id is None:
        return opposition_team_id, None
    return proposition_team_id, opposition_team_id


def _normalize_bye(pairing: ProposedPairing) -> ProposedPairing:
    proposition, opposition = bye_slots(
        pairing.proposition_team_id, pairing.opposition_team_id, pairing.is_bye_round
    )
    return replace(pairing, proposition_team_id=proposition, opposition_team_id=opposition)


async def _conflicts_for_debates(
    tournament_id: int,
    round_number: int,
    debates: Sequence[Debate],
    db: AsyncSession,
) -> Dict[int, List[Conflict]]:
    teams = await lookups.fetch_teams(
        [t for d in debates for t in (d.proposition_team_id, d.opposition_team_id)], db
    )
    users = await lookups.fetch_users([j for d in debates for j in d.judges], db)
    schools = await lookups.fetch_schools(
        [t.school_id for t in teams.values()] + [u.school_id for u in users.values()], db
    )
    history = await lookups.load_history(tournament_id, db)
    feedback = await lookups.load_feedback(tournament_id, db)

    conflicts = {}
    for debate in debates:
        resolved = lookups.resolve_debate(
            debate.room_name, debate.proposition_team_id, debate.opposition_team_id,
            debate.judges, bool(debate.is_public_speaking), teams, users, schools,
        )
        conflicts[debate.id] = detect_pairing_conflicts(resolved, round_number, history, feedback)
    return conflicts


async def _delete_debates(debate_ids: List[int], db: AsyncSession) -> None:
    if not debate_ids:
        return
    ballot_ids = select(Ballot.id).where(Ballot.debate_id.in_(debate_ids))
    await db.execute(delete(BallotFlag).where(BallotFlag.ballot_id.in_(ballot_ids)))
    await db.execute(delete(Ballot).where(Ballot.debate_id.in_(debate_ids)))
    await db.execute(delete(JudgeFeedback).where(JudgeFeedback.debate_id.in_(debate_ids)))
    await db.execute(delete(Debate).where(Debate.id.in_(debate_ids)))


# =============================================================================
# Save pairings
# =============================================================================

async def save_pairings(
    tournament_id: int,
    round_number: int,
    pairings: Sequence[ProposedPairing],
    actor: Actor,
    db: AsyncSession,
    collaborators: Collaborators,
) -> Dict[str, Any]:
    """
    Replace the debates of one round with `pairings`.

    Raises:
        AuthorizationError: caller is not an admin
        NotFoundError: tournament missing
        ValidationError: aggregated structural violations
        ConflictStateError: the round or its debates have already started
    """
    ensure_admin(actor, "save pairings")
    if round_number < 1:
        raise ValidationError("Round number must be at least 1", field="round_number")

    pairings = [_normalize_bye(p) for p in pairings]

    try:
        tournament = await lookups.get_tournament(tournament_id, db)
        if tournament.status in CLOSED_TOURNAMENT_STATUSES:
            raise ConflictStateError(
                f"Cannot save pairings: tournament is {tournament.status.value}"
            )

        teams = await lookups.fetch_teams(
            [t for p in pairings for t in (p.proposition_team_id, p.opposition_team_id)], db
        )
        judges = await lookups.fetch_users([j for p in pairings for j in p.judges], db)
        warnings = validate_proposal(tournament, pairings, teams, judges)

        round_obj = await lookups.get_round_by_number(tournament_id, round_number, db, for_update=True)
        replaced = 0
        if round_obj is not None:
            existing = await lookups.fetch_round_debates(round_obj.id, db)
            active = [d for d in existing if d.status in STARTED_DEBATE_STATUSES]
            if active:
                raise ConflictStateError(
                    f"Cannot overwrite pairings: {len(active)} debates are in progress or completed",
                    details={"debate_ids": [d.id for d in active]}
                )
            if (
                tournament.status == TournamentStatus.IN_PROGRESS
                and round_obj.status == RoundStatus.IN_PROGRESS
            ):
                raise ConflictStateError("Cannot overwrite pairings: Round is currently in progress")
            await _delete_debates([d.id for d in existing], db)
            replaced = len(existing)
        else:
            round_obj = Round(
                tournament_id=tournament_id,
                round_number=round_number,
                type=_round_type_for(tournament, round_number),
                status=RoundStatus.PENDING,
                motion="",
                created_at=datetime.utcnow(),
            )
            db.add(round_obj)
            await db.flush()

        debates = []
        for pairing in pairings:
            debate = Debate(
                round_id=round_obj.id,
                tournament_id=tournament_id,
                room_name=pairing.room_name.strip(),
                proposition_team_id=pairing.proposition_team_id,
                opposition_team_id=pairing.opposition_team_id,
                judges=list(pairing.judges),
                head_judge_id=pairing.head_judge_id,
                status=DebateStatus.PENDING,
                is_public_speaking=pairing.is_bye_round,
                created_at=datetime.utcnow(),
            )
            db.add(debate)
            debates.append(debate)
        await db.flush()

        conflicts = await _conflicts_for_debates(tournament_id, round_number, debates, db)

        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.warning(f"Concurrent pairing write for tournament {tournament_id} round {round_number}")
        raise ConflictStateError("Pairings for this round were changed concurrently; retry")
    except Exception:
        await db.rollback()
        raise

    logger.info(
        f"Saved {len(debates)} pairings for tournament {tournament_id} round {round_number} "
        f"(replaced {replaced}, {len(warnings)} warnings)"
    )

    notified = await notify_best_effort(
        collaborators,
        tournament_id,
        f"Round {round_number} Pairings Released",
        f"Pairings for Round {round_number} have been published. "
        "Check your debate schedule and room assignments!",
    )
    await audit_best_effort(
        collaborators,
        user_id=actor.id,
        action="tournament_updated",
        resource_type="tournaments",
        resource_id=tournament_id,
        description=f"Created pairings for Round {round_number} ({len(debates)} pairings)",
    )

    return {
        "success": True,
        "round_id": round_obj.id,
        "debate_ids": [d.id for d in debates],
        "warnings": warnings,
        "conflicts": [
            {
                "debate_id": d.id,
                "room_name": d.room_name,
                "conflicts": [c.to_dict() for c in conflicts.get(d.id, [])],
            }
            for d in debates
        ],
        "has_blocking_conflicts": any(c.is_error for cs in conflicts.values() for c in cs),
        "notifications_sent": notified,
    }


# =============================================================================
# Update a single pairing
# =============================================================================

async def update_pairing(
    debate_id: int,
    updates: Dict[str, Any],
    actor: Actor,
    db: AsyncSession,
    collaborators: Collaborators,
) -> Dict[str, Any]:
    """
    Patch room, judges, head judge or teams of one pending debate.

    Raises:
        ValidationError: unknown field or structural violation
        ConflictStateError: debate has started
    """
    ensure_admin(actor, "update a pairing")

    unknown = sorted(set(updates) - set(EDITABLE_PAIRING_FIELDS))
    if unknown:
        raise ValidationError(f"Fields cannot be updated: {', '.join(unknown)}")

    try:
        debate = await lookups.lock_debate_and_round(debate_id, db)
        if debate.status != DebateStatus.PENDING:
            raise ConflictStateError("Cannot update pairings for debates that have started")

        previous_state = debate.pairing_state()
        merged = dict(previous_state)
        merged.update(updates)
        merged["judges"] = list(merged.get("judges") or [])
        merged["proposition_team_id"], merged["opposition_team_id"] = bye_slots(
            merged["proposition_team_id"], merged["opposition_team_id"], bool(debate.is_public_speaking)
        )

        label = f"Room '{merged['room_name']}'"
        violations: List[str] = []
        require(bool(merged["room_name"] and str(merged["room_name"]).strip()), violations,
                "Room name is required")
        validate_room_shape(
            label,
            merged["proposition_team_id"],
            merged["opposition_team_id"],
            merged["judges"],
            merged["head_judge_id"],
            bool(debate.is_public_speaking),
            violations,
        )

        team_ids = [t for t in (merged["proposition_team_id"], merged["opposition_team_id"]) if t is not None]
        teams = await lookups.fetch_teams(team_ids, db)
        changed_teams = [t for t in team_ids if t not in debate.team_ids]
        validate_team_eligibility(label, changed_teams, debate.tournament_id, teams, violations)

        if changed_teams:
            result = await db.execute(
                select(Debate.id, Debate.proposition_team_id, Debate.opposition_team_id)
                .where(Debate.round_id == debate.round_id, Debate.id != debate.id)
            )
            busy = {t for row in result.all() for t in (row[1], row[2]) if t is not None}
            for team_id in changed_teams:
                require(team_id not in busy, violations,
                        f"Team {team_id} is already paired in this round ({label})")

        judges = await lookups.fetch_users(merged["judges"], db)
        validate_judges(label, merged["judges"], judges, violations)

        raise_if_violations(violations)

        tournament = await lookups.get_tournament(debate.tournament_id, db)
        warning = even_judge_warning(label, len(merged["judges"]), tournament.judges_per_debate)

        debate.room_name = str(merged["room_name"]).strip()
        debate.judges = merged["judges"]
        debate.head_judge_id = merged["head_judge_id"]
        debate.proposition_team_id = merged["proposition_team_id"]
        debate.opposition_team_id = merged["opposition_team_id"]
        await db.flush()

        round_obj = await db.get(Round, debate.round_id)
        conflicts = await _conflicts_for_debates(
            debate.tournament_id, round_obj.round_number, [debate], db
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Updated pairing for debate {debate_id}")
    await audit_best_effort(
        collaborators,
        user_id=actor.id,
        action="debate_updated",
        resource_type="debates",
        resource_id=debate_id,
        description="Updated pairing details",
        previous_state=previous_state,
        new_state=updates,
    )

    return {
        "success": True,
        "debate": debate.to_dict(),
        "warnings": [warning] if warning else [],
        "conflicts": [c.to_dict() for c in conflicts.get(debate.id, [])],
    }


# =============================================================================
# Read side
# =============================================================================

def room_sort_key(room_name: Optional[str]):
    """Order rooms by the first number in their name, then by name."""
    name = room_name or ""
    match = re.search(r"\d+", name)
    number = int(match.group()) if match else UNNUMBERED_ROOM
    return (number, name.casefold(), name)


def _team_view(team: Optional[Team], schools) -> Optional[Dict[str, Any]]:
    if team is None:
        return None
    view = team.to_dict()
    school = schools.get(team.school_id) if team.school_id is not None else None
    view["school"] = school.to_summary() if school else None
    return view


def _user_view(user, schools) -> Dict[str, Any]:
    view = user.to_dict()
    school = schools.get(user.school_id) if user.school_id is not None else None
    view["school"] = school.to_summary() if school else None
    return view


async def get_tournament_pairings(
    tournament_id: int,
    db: AsyncSession,
    round_number: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """
    Rounds with their debates, enriched with team, school and judge
    records and the computed `pairing_conflicts` of each debate.
    """
    await lookups.get_tournament(tournament_id, db)

    if round_number is not None:
        round_obj = await lookups.get_round_by_number(tournament_id, round_number, db)
        rounds = [round_obj] if round_obj else []
    else:
        rounds = await lookups.fetch_rounds(tournament_id, db)
    if not rounds:
        return []

    result = await db.execute(select(Debate).where(Debate.round_id.in_([r.id for r in rounds])))
    debates = list(result.scalars().all())

    teams = await lookups.fetch_teams(
        [t for d in debates for t in (d.proposition_team_id, d.opposition_team_id)], db
    )
    users = await lookups.fetch_users(
        [j for d in debates for j in d.judges] + [d.head_judge_id for d in debates], db
    )
    schools = await lookups.fetch_schools(
        [t.school_id for t in teams.values()] + [u.school_id for u in users.values()], db
    )
    history = await lookups.load_history(tournament_id, db)
    feedback = await lookups.load_feedback(tournament_id, db)

    by_round: Dict[int, List[Debate]] = {r.id: [] for r in rounds}
    for debate in debates:
        by_round[debate.round_id].append(debate)

    enriched_rounds = []
    for round_obj in sorted(rounds, key=lambda r: r.round_number):
        enriched = []
        for debate in by_round[round_obj.id]:
            resolved = lookups.resolve_debate(
                debate.room_name, debate.proposition_team_id, debate.opposition_team_id,
                debate.judges, bool(debate.is_public_speaking), teams, users, schools,
            )
            view = debate.to_dict()
            view["proposition_team"] = _team_view(teams.get(debate.proposition_team_id), schools)
            view["opposition_team"] = _team_view(teams.get(debate.opposition_team_id), schools)
            view["judge_details"] = [_user_view(users[j], schools) for j in debate.judges if j in users]
            head = users.get(debate.head_judge_id) if debate.head_judge_id is not None else None
            view["head_judge"] = _user_view(head, schools) if head else None
            view["pairing_conflicts"] = [
                c.to_dict() for c in detect_pairing_conflicts(
                    resolved, round_obj.round_number, history, feedback
                )
            ]
            enriched.append(view)
        enriched.sort(key=lambda v: room_sort_key(v["room_name"]))

        round_view = round_obj.to_dict()
        round_view["debates"] = enriched
        enriched_rounds.append(round_view)

    return enriched_rounds


async def validate_pairing_conflicts(
    tournament_id: int,
    judges: Sequence[int],
    actor: Actor,
    db: AsyncSession,
    proposition_team_id: Optional[int] = None,
    opposition_team_id: Optional[int] = None,
    round_number: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """Preview the conflicts a single proposed room would carry."""
    ensure_admin(actor, "validate pairing conflicts")
    tournament = await lookups.get_tournament(tournament_id, db)

    if proposition_team_id is None and opposition_team_id is None:
        return []

    conflicts: List[Conflict] = []
    if proposition_team_id == opposition_team_id:
        conflicts.append(Conflict(
            type=ConflictType.SAME_TEAM,
            description="Team cannot debate against itself",
            severity=Severity.ERROR,
            team_ids=[proposition_team_id],
        ))

    teams = await lookups.fetch_teams([proposition_team_id, opposition_team_id], db)
    users = await lookups.fetch_users(judges, db)
    schools = await lookups.fetch_schools(
        [t.school_id for t in teams.values()] + [u.school_id for u in users.values()], db
    )
    history = await lookups.load_history(tournament_id, db)
    feedback = await lookups.load_feedback(tournament_id, db)

    is_bye = proposition_team_id is None or opposition_team_id is None
    resolved = lookups.resolve_debate(
        "", proposition_team_id,
        opposition_team_id if opposition_team_id != proposition_team_id else None,
        judges, is_bye, teams, users, schools,
    )
    conflicts.extend(detect_pairing_conflicts(resolved, round_number, history, feedback))

    if len(judges) == 0:
        conflicts.append(Conflict(
            type=ConflictType.JUDGE_CONFLICT,
            description="No judges assigned to this debate",
            severity=Severity.ERROR,
        ))
    elif len(judges) > 1 and len(judges) % 2 == 0:
        conflicts.append(Conflict(
            type=ConflictType.JUDGE_CONFLICT,
            description=f"Even number of judges ({len(judges)}) may cause tie decisions",
            severity=Severity.WARNING,
            judge_ids=list(judges),
        ))

    logger.info(
        f"Validated proposed room in tournament {tournament.id}: {len(conflicts)} conflicts"
    )
    return [c.to_dict() for c in conflicts]


async def get_pairing_stats(tournament_id: int, actor: Actor, db: AsyncSession) -> Dict[str, Any]:
    ensure_admin(actor, "view pairing statistics")
    await lookups.get_tournament(tournament_id, db)

    rounds = await lookups.fetch_rounds(tournament_id, db)
    history = await lookups.load_history(tournament_id, db)

    result = await db.execute(
        select(Team).where(Team.tournament_id == tournament_id, Team.status == TeamStatus.ACTIVE)
    )
    active_teams = list(result.scalars().all())
    schools = await lookups.fetch_schools([t.school_id for t in active_teams], db)
    team_refs = [lookups.team_ref(team, schools) for team in active_teams]

    return compute_pairing_stats(team_refs, len(rounds), history)


async def check_preliminaries_complete(tournament_id: int, db: AsyncSession) -> Dict[str, Any]:
    tournament = await lookups.get_tournament(tournament_id, db)
    result = await db.execute(
        select(Round)
        .where(Round.tournament_id == tournament_id, Round.type == RoundType.PRELIMINARY)
        .order_by(Round.round_number.asc())
    )
    prelims = list(result.scalars().all())
    incomplete = [r for r in prelims if r.status != RoundStatus.COMPLETED]

    return {
        "total_prelims": tournament.prelim_rounds,
        "completed_prelims": len(prelims) - len(incomplete),
        "all_complete": len(incomplete) == 0,
        "incomplete_rounds": [
            {"round_number": r.round_number, "status": r.status.value} for r in incomplete
        ],
    }

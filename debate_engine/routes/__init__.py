from fastapi import APIRouter

from debate_engine.routes import ballots, pairings, teams

router = APIRouter()
router.include_router(pairings.router)
router.include_router(ballots.router)
router.include_router(teams.router)

__all__ = ["router"]

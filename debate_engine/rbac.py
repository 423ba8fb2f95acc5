"""
debate_engine/rbac.py
Session verification and role checks

Session verification is an external concern; the engine only needs a
verifier that maps a bearer token to {valid, user{id, role}}. The default
verifier decodes HS256 JWTs. Role checks live here so both the routes and
the services enforce the same rules:
- admin: pairing, withdrawal, ballot moderation
- volunteer: ballot submission (further limited to the debate's judges)
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from debate_engine.config.settings import get_settings
from debate_engine.errors import AuthorizationError, ErrorCode
from debate_engine.orm.user import UserRole

logger = logging.getLogger(__name__)

ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 12

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)


@dataclass(frozen=True)
class Actor:
    """The verified caller of an operation."""
    id: int
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


# ================= SESSION VERIFICATION =================

class SessionVerifier:
    async def verify(self, token: Optional[str]) -> Dict[str, Any]:
        raise NotImplementedError


class JWTSessionVerifier(SessionVerifier):
    def __init__(self, secret_key: Optional[str] = None, algorithm: Optional[str] = None):
        settings = get_settings()
        self.secret_key = secret_key or settings.jwt_secret_key
        self.algorithm = algorithm or settings.jwt_algorithm

    async def verify(self, token: Optional[str]) -> Dict[str, Any]:
        if not token:
            return {"valid": False, "user": None}
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError:
            return {"valid": False, "user": None}

        subject, role = payload.get("sub"), payload.get("role")
        try:
            user = {"id": int(subject), "role": UserRole(role)}
        except (TypeError, ValueError):
            return {"valid": False, "user": None}
        return {"valid": True, "user": user}


def create_access_token(
    user_id: int,
    role: UserRole,
    expires_delta: Optional[timedelta] = None,
    secret_key: Optional[str] = None,
) -> str:
    """Issue a token the default verifier accepts."""
    settings = get_settings()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {"sub": str(user_id), "role": role.value, "exp": expire}
    return jwt.encode(to_encode, secret_key or settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def get_session_verifier() -> SessionVerifier:
    return JWTSessionVerifier()


# ================= ROLE CHECKS =================

def ensure_role(actor: Actor, allowed_roles: List[UserRole], action: str) -> None:
    """Raise AuthorizationError (403) unless the actor holds one of `allowed_roles`."""
    if actor.role not in allowed_roles:
        logger.warning(
            f"Access denied: user {actor.id} with role {actor.role.value} attempted to {action}"
        )
        allowed = " or ".join(role.value for role in allowed_roles)
        raise AuthorizationError(f"{allowed.capitalize()} access required")


def ensure_admin(actor: Actor, action: str) -> None:
    ensure_role(actor, [UserRole.ADMIN], action)


def ensure_volunteer(actor: Actor, action: str) -> None:
    ensure_role(actor, [UserRole.VOLUNTEER], action)


# ================= AUTH DEPENDENCIES =================

async def get_current_actor(
    token: Optional[str] = Depends(oauth2_scheme),
    verifier: SessionVerifier = Depends(get_session_verifier),
) -> Actor:
    """Resolve the bearer token; 401 when missing or invalid."""
    result = await verifier.verify(token)
    if not result.get("valid") or not result.get("user"):
        raise AuthorizationError(
            "Invalid or expired token",
            code=ErrorCode.AUTH_INVALID,
            authenticated=False,
        )
    user = result["user"]
    return Actor(id=user["id"], role=user["role"])


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory: resolve the caller and require one of `allowed_roles`.
    Usage: actor: Actor = Depends(require_role([UserRole.ADMIN]))
    """
    async def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        ensure_role(actor, allowed_roles, "access this endpoint")
        return actor
    return dependency

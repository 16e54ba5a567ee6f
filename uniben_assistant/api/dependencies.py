from typing import Callable, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyHeader

from uniben_assistant.core.identity import Actor, Role
from uniben_assistant.core.policy import PolicyDecision
from uniben_assistant.utils.auth_utils import TokenError, decode_access_token, extract_bearer

header_scheme = APIKeyHeader(name="Authorization", auto_error=False)


def get_db(request: Request):
    return request.app.state.db


def get_chat_engine(request: Request):
    return request.app.state.chat_engine


def _unauthorized(code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"message": message, "code": code},
        headers={"WWW-Authenticate": "Bearer"},
    )


def forbidden(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=message)


def not_found(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=message)


def enforce(decision: PolicyDecision) -> None:
    """Map a policy denial to 403."""
    if not decision:
        raise forbidden(decision.reason or "Insufficient permissions for this action")


async def get_current_actor(authorization: Optional[str] = Depends(header_scheme)) -> Actor:
    """Actor for a valid bearer token (guest tokens included); 401 otherwise."""
    try:
        claims = decode_access_token(extract_bearer(authorization))
    except TokenError as e:
        raise _unauthorized(e.code, e.message)
    return Actor.from_claims(claims)


async def get_actor_or_guest(authorization: Optional[str] = Depends(header_scheme)) -> Actor:
    """Actor for guest-tolerant routes: a missing or unusable token means guest."""
    try:
        claims = decode_access_token(extract_bearer(authorization))
    except TokenError:
        return Actor.guest()
    return Actor.from_claims(claims)


async def require_user(actor: Actor = Depends(get_current_actor)) -> Actor:
    if actor.is_guest:
        raise _unauthorized(
            "AUTH_REQUIRED",
            "Authentication required. Please log in with your student or staff credentials.",
        )
    return actor


def require_roles(*roles: Role) -> Callable:
    allowed = frozenset(roles)

    async def _check(actor: Actor = Depends(require_user)) -> Actor:
        if actor.role not in allowed:
            raise forbidden("Insufficient permissions for this action")
        return actor

    return _check


require_system_admin = require_roles(Role.SYSTEM_ADMIN)
require_bursary_admin = require_roles(Role.SYSTEM_ADMIN, Role.BURSARY_ADMIN)
require_departmental_admin = require_roles(Role.SYSTEM_ADMIN, Role.DEPARTMENTAL_ADMIN)

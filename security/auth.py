from __future__ import annotations

from typing import Final

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from core.errors import auth_invalid_token
from security.encrypting_jwt import decode_jwt_token
from security.principal import ADMIN_ACTOR_TYPE, AuthPrincipal

token_auth_scheme = HTTPBearer(auto_error=True)
ACTOR_TYPES: Final[tuple[str, ...]] = ("user", "customer")


def _resolve_principal(credentials: HTTPAuthorizationCredentials) -> AuthPrincipal:
    claims = decode_jwt_token(credentials.credentials)
    if claims is None:
        raise auth_invalid_token()

    actor_type = str(claims.get("actor_type") or "").lower()
    actor_id = claims.get("actor_id")
    if actor_type not in ACTOR_TYPES or not actor_id:
        raise auth_invalid_token(details={"actor_type": claims.get("actor_type")})

    issued_at = claims.get("iat")
    return AuthPrincipal(
        actor_id=str(actor_id),
        actor_type=actor_type,
        auth_identity_id=claims.get("auth_identity_id"),
        jwt_token=credentials.credentials,
        token_issued_at=int(issued_at) if issued_at is not None else None,
    )


async def verify_admin_token(
    credentials: HTTPAuthorizationCredentials = Depends(token_auth_scheme),
) -> AuthPrincipal:
    principal = _resolve_principal(credentials)
    if not principal.is_admin:
        raise auth_invalid_token(details={"required_actor_type": ADMIN_ACTOR_TYPE})
    return principal

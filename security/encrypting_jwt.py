from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import structlog
from pydantic import BaseModel

from core.settings import get_settings

log = structlog.get_logger(__name__)

ALGORITHM = "HS256"

# Token lifetime (in minutes)
ACCESS_TOKEN_EXPIRE_MINUTES = 60


class JWTPayload(BaseModel):
    actor_id: str
    actor_type: str
    auth_identity_id: str | None = None
    exp: datetime
    iat: datetime


def create_jwt_token(
    actor_id: str,
    actor_type: str = "user",
    auth_identity_id: str | None = None,
    expires_in_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES,
) -> str:
    now = datetime.now(timezone.utc)
    payload = JWTPayload(
        actor_id=actor_id,
        actor_type=actor_type,
        auth_identity_id=auth_identity_id,
        exp=now + timedelta(minutes=expires_in_minutes),
        iat=now,
    ).model_dump(exclude_none=True)

    return jwt.encode(
        payload=payload,
        key=get_settings().jwt_secret,
        algorithm=ALGORITHM,
        headers={"typ": "JWT"},
    )


def decode_jwt_token(token: str) -> dict | None:
    try:
        return jwt.decode(token, get_settings().jwt_secret, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        log.info("auth.token_expired")
        return None
    except jwt.InvalidSignatureError:
        log.info("auth.token_invalid_signature")
        return None
    except jwt.InvalidTokenError as exc:
        log.info("auth.token_malformed", error=str(exc))
        return None

from __future__ import annotations

from typing import Final, Literal

from pydantic import BaseModel

ADMIN_ACTOR_TYPE: Final[str] = "user"


class AuthPrincipal(BaseModel):
    actor_id: str
    actor_type: Literal["user", "customer"]
    auth_identity_id: str | None = None
    jwt_token: str
    token_issued_at: int | None = None

    @property
    def is_admin(self) -> bool:
        return self.actor_type == ADMIN_ACTOR_TYPE

from __future__ import annotations

from fastapi import Header

from core.errors import publishable_key_invalid
from core.settings import get_settings

PUBLISHABLE_KEY_HEADER = "x-publishable-api-key"


async def verify_publishable_key(
    x_publishable_api_key: str | None = Header(default=None, alias=PUBLISHABLE_KEY_HEADER),
) -> str | None:
    allowed = get_settings().publishable_api_keys
    if not allowed:
        return x_publishable_api_key
    if not x_publishable_api_key or x_publishable_api_key not in allowed:
        raise publishable_key_invalid()
    return x_publishable_api_key

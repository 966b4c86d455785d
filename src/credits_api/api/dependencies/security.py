import secrets

from fastapi import Header

from credits_api.core.settings import settings
from credits_api.services.errors import Unauthenticated


async def has_internal_api_key(x_api_key: str = Header("", alias="X-API-Key")) -> bool:
    """True when the caller presented the configured internal key.

    A wrong key is rejected outright; no key at all falls through to session auth.
    """

    if not x_api_key:
        return False
    if not settings.internal_api_key or not secrets.compare_digest(x_api_key, settings.internal_api_key):
        raise Unauthenticated("Invalid API key")
    return True

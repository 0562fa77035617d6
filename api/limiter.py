"""
api/limiter.py -- Shared slowapi rate limiter for the sign-in surface.

Only the credential endpoints carry limits (login_rate_limit on
POST /api/auth/signin/credentials, register_rate_limit on
POST /api/auth/register); everything else is unlimited.

Counters live in RATE_LIMIT_STORAGE_URI. The default "memory://" is per
process, so a multi-worker deployment should point it at a shared backend
such as "redis://host:6379".
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

_settings = get_settings()

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=_settings.rate_limit_storage_uri,
    enabled=_settings.rate_limit_enabled,
)

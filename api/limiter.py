"""
api/limiter.py -- Shared slowapi rate limiter instance.

api/main.py mounts it as middleware; api/routes/v1/auth.py applies the login
limit with @limiter.limit(). One shared instance means one counter store --
separate instances per module would each count alone and never trigger.

Keyed by client IP: the login limit is a brute-force brake per source, and
the registry sees at most that many credential checks per minute per IP.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")

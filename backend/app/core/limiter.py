"""
Shared slowapi limiter.

Routers decorate endpoints with @limiter.limit(...); main.py registers the
instance on app.state and installs the RateLimitExceeded handler.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)

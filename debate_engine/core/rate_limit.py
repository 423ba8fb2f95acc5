"""
Per-client request limits for the write-heavy judge endpoints.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address

from debate_engine.config.settings import get_settings

limiter = Limiter(key_func=get_remote_address)

SUBMISSION_LIMIT = get_settings().submission_rate_limit

"""
Rate limiting configuration using SlowAPI
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from vaxtlistan.config import get_settings

settings = get_settings()

# Create limiter instance
limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)

# Rate limit decorators for common use cases
STANDARD_LIMIT = f"{settings.rate_limit_per_minute}/minute"
HEAVY_LIMIT = "10/minute"
LIGHT_LIMIT = "100/minute"

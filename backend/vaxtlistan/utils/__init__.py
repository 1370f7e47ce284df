"""
Utility modules for backend services.
"""

from vaxtlistan.utils.cache import CatalogCache, TTLCache
from vaxtlistan.utils.resilience import with_retry, with_timeout

__all__ = [
    "CatalogCache",
    "TTLCache",
    "with_retry",
    "with_timeout",
]

"""
surl_platform package initializer.
"""

from . import cache
from . import manager
from . import router
from . import storage

__all__ = ["cache", "manager", "router", "storage"]

"""
API route modules.
"""

from .harvest import router as harvest_router
from .content import router as content_router
from .sources import router as sources_router
from .misc import router as misc_router

__all__ = [
    "harvest_router",
    "content_router",
    "sources_router",
    "misc_router",
]

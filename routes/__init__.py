"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.imports import router as imports_router
from routes.scraping import router as scraping_router

__all__ = [
    "imports_router",
    "scraping_router",
]

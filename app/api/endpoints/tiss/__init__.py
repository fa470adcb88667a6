"""
TISS API Endpoints
"""

from .batch import router as lotes_router
from .submission import router as submission_router
from .recurso import router as recurso_router
from .certificate import router as certificate_router
from .glosa import router as glosa_router

__all__ = [
    'lotes_router',
    'submission_router',
    'recurso_router',
    'certificate_router',
    'glosa_router',
]

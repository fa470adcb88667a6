"""
TISS Database Models
SQLAlchemy models for TISS module tables
"""

from .guia import TISSGuia, GuiaStatus, GuiaTipo
from .batch import TISSLote, LoteStatus
from .operadora import TISSOperadora
from .glosa import TISSGlosa, GlosaStatus
from .recurso import TISSRecurso, RecursoStatus
from .certificate import TISSCertificate

__all__ = [
    'TISSGuia',
    'GuiaStatus',
    'GuiaTipo',
    'TISSLote',
    'LoteStatus',
    'TISSOperadora',
    'TISSGlosa',
    'GlosaStatus',
    'TISSRecurso',
    'RecursoStatus',
    'TISSCertificate',
]

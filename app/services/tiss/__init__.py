"""
TISS Services
Claim submission pipeline: lotes, XML, signature, envio, demonstrativos and recursos
"""

from .security import TISSSecurityService
from .certificate import CertificateProvider
from .lote_manager import LoteManagerService
from .submission import LoteSenderService
from .response_handler import ResponseHandlerService
from .recurso_manager import RecursoManagerService
from .parsers import ProtocolParser, DenialInterpreter

__all__ = [
    'TISSSecurityService',
    'CertificateProvider',
    'LoteManagerService',
    'LoteSenderService',
    'ResponseHandlerService',
    'RecursoManagerService',
    'ProtocolParser',
    'DenialInterpreter',
]

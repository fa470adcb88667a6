"""
TISS Submission Services
Sends signed lotes to the operadora WebService over SOAP/HTTPS
"""

from .soap_sender import build_soap_envelope, soap_headers
from .http_transport import HTTPTransport, TransportResponse
from .lote_sender import LoteSenderService

__all__ = [
    'build_soap_envelope',
    'soap_headers',
    'HTTPTransport',
    'TransportResponse',
    'LoteSenderService',
]

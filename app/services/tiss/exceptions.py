"""
TISS error kinds

Raised inside the pipeline and converted into ``success=False`` responses at
every public service method. None of them escapes to the HTTP layer.
"""

from typing import Any, Dict, List, Optional


class TISSError(Exception):
    """Base TISS pipeline error"""
    code = "TISS_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class TISSValidationError(TISSError):
    """Bad input, cross-tenant or cross-operadora references, limits exceeded"""
    code = "VALIDATION_ERROR"

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message, {"errors": errors or [message]})
        self.errors = errors or [message]


class TISSStateError(TISSError):
    """Operation not allowed from the record's current status"""
    code = "STATE_ERROR"


class TISSConfigurationError(TISSError):
    """Missing WebService configuration or operadora"""
    code = "NO_WEBSERVICE"


class CertificateError(TISSConfigurationError):
    """Certificate missing, expired or unreadable"""
    code = "CERTIFICATE_ERROR"


class TISSTransportError(TISSError):
    """Timeout, connection refused, TLS handshake failure"""
    code = "SEND_ERROR"


class TISSProtocolError(TISSError):
    """Insurer answered with a fault or a body that could not be understood"""
    code = "PROTOCOL_ERROR"

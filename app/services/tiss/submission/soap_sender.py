"""
SOAP envelope for TISS WebService calls
The TISS message travels as-is inside a SOAP 1.2 Body.
"""

import re
from typing import Dict, Optional

from config import settings

SOAP_12_NAMESPACE = "http://www.w3.org/2003/05/soap-envelope"
SOAP_CONTENT_TYPE = "application/soap+xml; charset=utf-8"

SOAP_ENVELOPE = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    f'<soap:Envelope xmlns:soap="{SOAP_12_NAMESPACE}">\n'
    '  <soap:Header/>\n'
    '  <soap:Body>\n'
    '{content}\n'
    '  </soap:Body>\n'
    '</soap:Envelope>'
)

_XML_DECLARATION = re.compile(r"^\s*<\?xml[^>]*\?>\s*")


def build_soap_envelope(tiss_xml: str) -> str:
    """Wrap a (signed) TISS message. Its XML declaration is dropped, the rest is untouched."""
    return SOAP_ENVELOPE.format(content=_XML_DECLARATION.sub("", tiss_xml, count=1))


def soap_headers(action: Optional[str] = None) -> Dict[str, str]:
    return {
        "Content-Type": SOAP_CONTENT_TYPE,
        "SOAPAction": action or settings.TISS_SOAP_ACTION,
    }

"""
TISS XML Signer
Enveloped XMLDSig (C14N 1.0, RSA-SHA256) for TISS messages.

The signature is spliced in as text just before the closing root tag. The rest
of the document is never re-serialized, so the epilogue hash stays valid.
"""

import base64
import hashlib
import logging
import re
from copy import deepcopy

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.serialization import Encoding
from cryptography import x509
from lxml import etree

from app.services.tiss.certificate import load_pkcs12
from app.services.tiss.exceptions import CertificateError, TISSValidationError

logger = logging.getLogger(__name__)

DS_NAMESPACE = "http://www.w3.org/2000/09/xmldsig#"
C14N_ALGORITHM = "http://www.w3.org/TR/2001/REC-xml-c14n-20010315"
SIGNATURE_METHOD = "http://www.w3.org/2001/04/xmldsig-more#rsa-sha256"
DIGEST_METHOD = "http://www.w3.org/2001/04/xmlenc#sha256"
ENVELOPED_TRANSFORM = "http://www.w3.org/2000/09/xmldsig#enveloped-signature"

_SIGNATURE_PRESENT = re.compile(r"<(?:[\w.-]+:)?Signature[\s>/]")
_SIGNATURE_VALUE_PLACEHOLDER = "<SignatureValue></SignatureValue>"

SIGNATURE_TEMPLATE = (
    '<Signature xmlns="' + DS_NAMESPACE + '">'
    "<SignedInfo>"
    '<CanonicalizationMethod Algorithm="' + C14N_ALGORITHM + '"/>'
    '<SignatureMethod Algorithm="' + SIGNATURE_METHOD + '"/>'
    '<Reference URI="">'
    "<Transforms>"
    '<Transform Algorithm="' + ENVELOPED_TRANSFORM + '"/>'
    '<Transform Algorithm="' + C14N_ALGORITHM + '"/>'
    "</Transforms>"
    '<DigestMethod Algorithm="' + DIGEST_METHOD + '"/>'
    "<DigestValue>{digest}</DigestValue>"
    "</Reference>"
    "</SignedInfo>"
    + _SIGNATURE_VALUE_PLACEHOLDER +
    "<KeyInfo><X509Data><X509Certificate>{certificate}</X509Certificate></X509Data></KeyInfo>"
    "</Signature>"
)


def is_signed(xml: str) -> bool:
    return bool(_SIGNATURE_PRESENT.search(xml))


def hash_xml(xml: str) -> str:
    """SHA-256 hex of the document, stored with the lote"""
    return hashlib.sha256(xml.encode("utf-8")).hexdigest()


def _parse(xml: str) -> etree._Element:
    parser = etree.XMLParser(resolve_entities=False, no_network=True, huge_tree=True)
    try:
        return etree.fromstring(xml.encode("utf-8"), parser)
    except etree.XMLSyntaxError as e:
        raise TISSValidationError(f"XML inválido para assinatura: {e}")


def _c14n(element: etree._Element) -> bytes:
    return etree.tostring(element, method="c14n", exclusive=False, with_comments=False)


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _insert_before_root_close(xml: str, root: etree._Element, fragment: str) -> str:
    local_name = etree.QName(root).localname
    closing = f"</{root.prefix}:{local_name}" if root.prefix else f"</{local_name}"
    index = xml.rfind(closing)
    if index == -1:
        raise TISSValidationError(f"Elemento raiz {local_name} não encontrado")
    return xml[:index] + fragment + xml[index:]


def sign_xml_document(xml: str, pfx: bytes, password: str) -> str:
    """
    Sign ``xml`` with the PKCS#12 certificate.

    Already-signed documents are returned unchanged.

    Raises:
        CertificateError: unreadable PFX or non-RSA key.
        TISSValidationError: ``xml`` is not well-formed.
    """
    if is_signed(xml):
        logger.info("XML already signed, skipping signature")
        return xml

    key, cert, _ = load_pkcs12(pfx, password)
    if not isinstance(key, rsa.RSAPrivateKey):
        raise CertificateError("O certificado precisa de uma chave RSA para assinar o XML")

    root = _parse(xml)
    digest = _b64(hashlib.sha256(_c14n(root)).digest())
    signature = SIGNATURE_TEMPLATE.format(
        digest=digest,
        certificate=_b64(cert.public_bytes(Encoding.DER)),
    )
    signed = _insert_before_root_close(xml, root, signature)

    # SignedInfo is canonicalized in its final context (inherits the root namespaces)
    signed_root = _parse(signed)
    signed_info = signed_root.find(f".//{{{DS_NAMESPACE}}}SignedInfo")
    signature_value = key.sign(_c14n(signed_info), padding.PKCS1v15(), hashes.SHA256())

    return signed.replace(
        _SIGNATURE_VALUE_PLACEHOLDER,
        f"<SignatureValue>{_b64(signature_value)}</SignatureValue>",
        1,
    )


def verify_xml_signature(xml: str) -> bool:
    """Check digest and signature value against the embedded X509 certificate."""
    root = _parse(xml)
    ns = {"ds": DS_NAMESPACE}
    signature = root.find("ds:Signature", ns)
    if signature is None:
        return False

    cert_text = signature.findtext(".//ds:X509Certificate", namespaces=ns)
    digest_text = signature.findtext(".//ds:DigestValue", namespaces=ns)
    value_text = signature.findtext("ds:SignatureValue", namespaces=ns)
    if not (cert_text and digest_text and value_text):
        return False

    unsigned = deepcopy(root)
    for node in unsigned.findall("ds:Signature", ns):
        unsigned.remove(node)
    if _b64(hashlib.sha256(_c14n(unsigned)).digest()) != digest_text.strip():
        return False

    cert = x509.load_der_x509_certificate(base64.b64decode(cert_text))
    try:
        cert.public_key().verify(
            base64.b64decode(value_text),
            _c14n(signature.find("ds:SignedInfo", ns)),
            padding.PKCS1v15(),
            hashes.SHA256(),
        )
    except InvalidSignature:
        return False
    return True

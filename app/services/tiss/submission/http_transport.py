"""
HTTP transport for operadora WebServices
POSTs a SOAP envelope with the operadora's authentication and returns the buffered response
"""

import base64
import logging
import os
import secrets
import ssl
import tempfile
from dataclasses import dataclass
from typing import Dict, Optional

import httpx
from cryptography.hazmat.primitives import serialization

from app.schemas.tiss import WebServiceConfig
from app.services.tiss.certificate import SigningCertificate, load_pkcs12
from app.services.tiss.exceptions import CertificateError, TISSTransportError
from app.services.tiss.submission.soap_sender import soap_headers

logger = logging.getLogger(__name__)

TIMEOUT_MESSAGE = "Timeout na conexão com a operadora. Tente novamente."
CONNECTION_MESSAGE = "Falha na conexão com a operadora. Verifique a URL do WebService."


@dataclass(frozen=True)
class TransportResponse:
    status_code: int
    body: str


def auth_headers(config: WebServiceConfig) -> Dict[str, str]:
    if config.auth_type == "basic" and config.username and config.password:
        credentials = f"{config.username}:{config.password}"
        encoded = base64.b64encode(credentials.encode("utf-8")).decode("ascii")
        return {"Authorization": f"Basic {encoded}"}
    if config.auth_type == "token" and config.token:
        return {"Authorization": f"Bearer {config.token}"}
    return {}


def build_client_ssl_context(certificate: SigningCertificate) -> ssl.SSLContext:
    """
    SSL context presenting the clinic certificate (mutual TLS).

    ``ssl`` only loads client certificates from files, so the PFX is written to
    temporary PEM files (key encrypted with a one-off passphrase) that are
    removed before this function returns.
    """
    key, cert, extra = load_pkcs12(certificate.pfx, certificate.password)
    passphrase = secrets.token_urlsafe(32)
    chain = cert.public_bytes(serialization.Encoding.PEM) + b"".join(
        c.public_bytes(serialization.Encoding.PEM) for c in extra
    )
    key_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.BestAvailableEncryption(passphrase.encode("ascii")),
    )

    context = ssl.create_default_context()
    paths = []
    try:
        for content in (chain, key_pem):
            fd, path = tempfile.mkstemp(suffix=".pem")
            paths.append(path)
            with os.fdopen(fd, "wb") as handle:
                handle.write(content)
        context.load_cert_chain(certfile=paths[0], keyfile=paths[1], password=passphrase)
    except ssl.SSLError as e:
        raise CertificateError("Não foi possível carregar o certificado para conexão segura") from e
    finally:
        for path in paths:
            try:
                os.unlink(path)
            except FileNotFoundError:
                pass
    return context


class HTTPTransport:
    """
    POST to the operadora WebService.

    Args:
        transport: httpx transport override (``httpx.MockTransport`` in tests)
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport

    async def post(
        self,
        config: WebServiceConfig,
        body: str,
        client_certificate: Optional[SigningCertificate] = None,
    ) -> TransportResponse:
        """
        Raises:
            TISSTransportError: timeout or connection failure
            CertificateError: client certificate could not be loaded
        """
        headers = {**soap_headers(), **auth_headers(config)}
        timeout = httpx.Timeout(config.timeout / 1000)

        client_kwargs = {"timeout": timeout}
        if config.auth_type == "certificate":
            if client_certificate is None:
                raise CertificateError("Certificado digital obrigatório para autenticação por certificado")
            client_kwargs["verify"] = build_client_ssl_context(client_certificate)
        if self._transport is not None:
            # Injected transports ignore verify
            client_kwargs["transport"] = self._transport

        try:
            async with httpx.AsyncClient(**client_kwargs) as client:
                response = await client.post(config.url, content=body.encode("utf-8"), headers=headers)
        except httpx.TimeoutException as e:
            logger.warning(f"Timeout posting to {config.url} after {config.timeout}ms")
            raise TISSTransportError(TIMEOUT_MESSAGE, {"url": config.url}) from e
        except httpx.HTTPError as e:
            logger.warning(f"Connection to {config.url} failed: {type(e).__name__}: {e}")
            raise TISSTransportError(CONNECTION_MESSAGE, {"url": config.url, "reason": str(e)}) from e

        logger.info(f"Operadora answered HTTP {response.status_code} ({len(response.content)} bytes)")
        return TransportResponse(status_code=response.status_code, body=response.text)

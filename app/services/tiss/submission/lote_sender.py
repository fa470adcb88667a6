"""
Lote Sender Service
Signs a lote, sends it to the operadora WebService and records the outcome
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from cryptography.fernet import InvalidToken
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from database import run_in_transaction
from app.models.tiss.batch import LoteStatus, TISSLote
from app.models.tiss.operadora import TISSOperadora
from app.schemas.tiss import SendLoteResponse, WebServiceConfig, WebServiceErrorItem
from app.services.tiss.certificate import CertificateProvider, SigningCertificate
from app.services.tiss.exceptions import (
    CertificateError,
    TISSConfigurationError,
    TISSError,
    TISSStateError,
    TISSValidationError,
)
from app.services.tiss.lote_manager import LoteManagerService, apply_lote_status
from app.services.tiss.parsers.protocol_parser import ProtocolParser
from app.services.tiss.security import TISSSecurityService, get_security_service
from app.services.tiss.status import LOTE_SENDABLE
from app.services.tiss.submission.http_transport import HTTPTransport
from app.services.tiss.submission.soap_sender import build_soap_envelope
from app.services.tiss.xml_signer import hash_xml, is_signed, sign_xml_document

logger = logging.getLogger(__name__)

CERTIFICATE_MESSAGE = "Erro no certificado digital. Verifique se está configurado corretamente."
NO_WEBSERVICE_MESSAGE = "WebService da operadora não configurado"
INVALID_WEBSERVICE_MESSAGE = "Configuração do WebService da operadora inválida"


def webservice_config_for(operadora: Optional[TISSOperadora], security: TISSSecurityService) -> WebServiceConfig:
    """
    Build the operadora WebService config with its secret decrypted.

    Raises:
        TISSConfigurationError: no operadora, no WebService URL, malformed config or unreadable secret
    """
    raw = (operadora.webservice_config or {}) if operadora is not None else {}
    if not raw.get("url"):
        raise TISSConfigurationError(NO_WEBSERVICE_MESSAGE)

    try:
        config = WebServiceConfig(**raw)
    except ValidationError as e:
        fields = sorted({".".join(str(part) for part in error["loc"]) for error in e.errors()})
        raise TISSConfigurationError(INVALID_WEBSERVICE_MESSAGE, {"fields": fields}) from e
    if operadora.webservice_secret_encrypted and config.auth_type in ("basic", "token"):
        try:
            secret = security.decrypt_text(operadora.webservice_secret_encrypted)
        except InvalidToken as e:
            raise TISSConfigurationError("Credenciais do WebService da operadora ilegíveis") from e
        field = "password" if config.auth_type == "basic" else "token"
        config = config.model_copy(update={field: secret})
    return config


class LoteSenderService:
    """Service for sending lotes to operadoras"""

    def __init__(
        self,
        db: AsyncSession,
        transport: Optional[HTTPTransport] = None,
        certificates: Optional[CertificateProvider] = None,
        security: Optional[TISSSecurityService] = None,
        parser: Optional[ProtocolParser] = None,
    ):
        self.db = db
        self.security = security or get_security_service()
        self.transport = transport or HTTPTransport()
        self.certificates = certificates or CertificateProvider(db, self.security)
        self.parser = parser or ProtocolParser()
        self.lotes = LoteManagerService(db)

    async def send_lote(self, clinic_id: int, lote_id: int) -> SendLoteResponse:
        lote = await self.lotes.get_lote(clinic_id, lote_id, refresh=True)
        if lote is None:
            return SendLoteResponse(success=False, error="Lote não encontrado", error_code=TISSValidationError.code)
        if lote.status not in LOTE_SENDABLE:
            return SendLoteResponse(
                success=False,
                error=f"Lote já foi enviado (status: {lote.status.value})",
                error_code=TISSStateError.code,
            )
        if not lote.xml_content:
            return SendLoteResponse(
                success=False,
                error="Lote não possui XML gerado. Gere o XML primeiro.",
                error_code=TISSValidationError.code,
            )
        return await self._send(clinic_id, lote_id, LOTE_SENDABLE)

    async def retry_send_lote(self, clinic_id: int, lote_id: int) -> SendLoteResponse:
        """Resend a lote whose last attempt failed. Any other status is rejected without network I/O."""
        lote = await self.lotes.get_lote(clinic_id, lote_id, refresh=True)
        if lote is None:
            return SendLoteResponse(success=False, error="Lote não encontrado", error_code=TISSValidationError.code)
        if lote.status != LoteStatus.ERRO:
            return SendLoteResponse(
                success=False,
                error=f"Só é possível reenviar lotes com erro (status atual: {lote.status.value})",
                error_code=TISSStateError.code,
            )
        logger.info(f"Retrying lote {lote.numero_lote} for clinic {clinic_id}")
        return await self._send(clinic_id, lote_id, frozenset({LoteStatus.ERRO}))

    async def _send(self, clinic_id: int, lote_id: int, allowed) -> SendLoteResponse:
        if not await self.lotes.acquire_send_lock(clinic_id, lote_id, allowed):
            current = await self.lotes.get_lote(clinic_id, lote_id, refresh=True)
            status = current.status.value if current is not None else "desconhecido"
            return SendLoteResponse(
                success=False,
                error=f"Lote já foi enviado (status: {status})",
                error_code=TISSStateError.code,
            )

        lote = await self.lotes.get_lote(clinic_id, lote_id, refresh=True)
        logger.info(f"Sending lote {lote.numero_lote} ({lote.quantidade_guias} guias) to operadora {lote.registro_ans}")

        try:
            operadora = await self.lotes.get_operadora(clinic_id, lote.registro_ans)
            config = webservice_config_for(operadora, self.security)

            xml = lote.xml_content
            certificate: Optional[SigningCertificate] = None
            if not is_signed(xml) or config.auth_type == "certificate":
                certificate = await self.certificates.get_certificate_for_signing(clinic_id)
            if not is_signed(xml):
                xml = sign_xml_document(xml, certificate.pfx, certificate.password)

            response = await self.transport.post(
                config,
                build_soap_envelope(xml),
                client_certificate=certificate if config.auth_type == "certificate" else None,
            )
        except CertificateError as e:
            logger.warning(f"Certificate problem sending lote {lote_id}: {e.message}")
            await self._record_failure(clinic_id, lote_id, e.message)
            return SendLoteResponse(success=False, error=CERTIFICATE_MESSAGE, error_code=e.code)
        except TISSError as e:
            logger.warning(f"Lote {lote_id} not sent: {e.message}")
            await self._record_failure(clinic_id, lote_id, e.message)
            return SendLoteResponse(success=False, error=e.message, error_code=e.code)
        except Exception as e:
            logger.error(f"Unexpected error sending lote {lote_id}: {e}", exc_info=True)
            await self._record_failure(clinic_id, lote_id, str(e))
            raise

        parsed = self.parser.parse_webservice_response(response.body, response.status_code)
        if not parsed.success:
            logger.error(f"Lote {lote_id} rejected by operadora (HTTP {response.status_code}): {parsed.mensagem}")
            await self._record_failure(clinic_id, lote_id, parsed.mensagem, parsed.erros, response.body)
            return SendLoteResponse(
                success=False,
                error=parsed.mensagem,
                error_code=parsed.erros[0].codigo if parsed.erros else None,
                mensagem=parsed.mensagem,
                erros=parsed.erros,
            )

        return await self._accept(clinic_id, lote_id, xml, parsed.protocolo, response.body, parsed.mensagem)

    async def _accept(
        self,
        clinic_id: int,
        lote_id: int,
        signed_xml: str,
        protocolo: str,
        xml_resposta: str,
        mensagem: Optional[str],
    ) -> SendLoteResponse:
        """
        Persist a lote the operadora has accepted. If its guias cannot be moved
        to ``enviada`` the lote is still recorded as ``enviado`` with the
        protocolo, and the guia problem goes to ``error_message``.
        """
        try:
            await self._record_success(clinic_id, lote_id, signed_xml, protocolo, xml_resposta)
        except (TISSError, SQLAlchemyError) as e:
            code = e.code if isinstance(e, TISSError) else "DATABASE_ERROR"
            reason = e.message if isinstance(e, TISSError) else str(e)
            logger.error(f"Lote {lote_id} accepted (protocolo {protocolo}) but its guias were not updated: {reason}")
            aviso = f"Lote aceito pela operadora (protocolo {protocolo}), mas as guias não foram atualizadas: {reason}"
            erros = [WebServiceErrorItem(codigo=code, mensagem=reason)]
            try:
                await self._record_success(
                    clinic_id, lote_id, signed_xml, protocolo, xml_resposta, aviso=aviso, erros=erros
                )
            except (TISSError, SQLAlchemyError) as fatal:
                logger.critical(f"Could not record protocolo {protocolo} for lote {lote_id}: {fatal}", exc_info=True)
                return SendLoteResponse(
                    success=False,
                    error=f"Lote aceito pela operadora (protocolo {protocolo}), mas não foi possível registrar o envio",
                    error_code="DATABASE_ERROR",
                    protocolo=protocolo,
                )
            return SendLoteResponse(success=True, protocolo=protocolo, mensagem=aviso, erros=erros)

        logger.info(f"Lote {lote_id} accepted, protocolo {protocolo}")
        return SendLoteResponse(success=True, protocolo=protocolo, mensagem=mensagem)

    async def _record_success(
        self,
        clinic_id: int,
        lote_id: int,
        signed_xml: str,
        protocolo: str,
        xml_resposta: str,
        aviso: Optional[str] = None,
        erros: Optional[List[WebServiceErrorItem]] = None,
    ) -> None:
        """Without ``aviso`` the guias are marked ``enviada`` in the same transaction."""
        sent_at = datetime.now(timezone.utc)

        async def work(session: AsyncSession) -> None:
            lote = await self.lotes.get_lote(clinic_id, lote_id, refresh=True)
            apply_lote_status(lote, LoteStatus.ENVIADO, {
                "protocolo": protocolo,
                "xml_resposta": xml_resposta,
                "data_envio": sent_at,
                "xml_content": signed_xml,
                "xml_hash": hash_xml(signed_xml),
                "error_message": aviso,
                "erros": [e.model_dump() for e in erros] if erros else None,
            })
            if aviso is None:
                await self.lotes.mark_guias_enviadas(lote, protocolo, sent_at)

        await run_in_transaction(self.db, work)

    async def _record_failure(
        self,
        clinic_id: int,
        lote_id: int,
        message: str,
        erros: Optional[List[WebServiceErrorItem]] = None,
        xml_resposta: Optional[str] = None,
    ) -> None:
        async def work(session: AsyncSession) -> TISSLote:
            lote = await self.lotes.get_lote(clinic_id, lote_id, refresh=True)
            apply_lote_status(lote, LoteStatus.ERRO, {
                "error_message": message,
                "erros": [e.model_dump() for e in erros] if erros else None,
                "xml_resposta": xml_resposta,
            })
            return lote

        await run_in_transaction(self.db, work)

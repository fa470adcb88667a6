"""
TISS Recurso Manager
Appeals (recursos de glosa): creation against a glosa, signing and sending, status
"""

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from database import run_in_transaction
from app.models.tiss.glosa import GlosaStatus, TISSGlosa
from app.models.tiss.operadora import TISSOperadora
from app.models.tiss.recurso import RecursoStatus, TISSRecurso
from app.schemas.tiss import (
    CreateRecursoResponse,
    ItemContestadoRequest,
    RecursoStatusResponse,
    SendRecursoResponse,
)
from app.services.tiss.certificate import CertificateProvider
from app.services.tiss.exceptions import (
    TISSConfigurationError,
    TISSError,
    TISSStateError,
    TISSValidationError,
)
from app.services.tiss.security import TISSSecurityService, get_security_service
from app.services.tiss.status import ensure_transition
from app.services.tiss.xml import generate_numero_recurso, generate_protocolo_local, generate_recurso_xml
from app.services.tiss.xml.common import round_cent
from app.services.tiss.xml_signer import sign_xml_document

logger = logging.getLogger(__name__)


def _contested_items(glosa: TISSGlosa, itens: List[ItemContestadoRequest]) -> List[dict]:
    """
    Join each contested item with the glosa's own procedure and amounts.
    Only the justification comes from the caller.
    """
    by_sequencial = {int(item["sequencial_item"]): item for item in glosa.itens_glosados or []}
    seen = set()
    contested = []
    for item in itens:
        if item.sequencial_item in seen:
            raise TISSValidationError(f"Item {item.sequencial_item} contestado mais de uma vez")
        seen.add(item.sequencial_item)

        glosa_item = by_sequencial.get(item.sequencial_item)
        if glosa_item is None:
            raise TISSValidationError(f"Item {item.sequencial_item} não pertence a esta glosa")
        contested.append({
            "sequencial_item": item.sequencial_item,
            "codigo_procedimento": glosa_item.get("codigo_procedimento") or "",
            "valor_original": str(round_cent(glosa_item.get("valor_original"))),
            "valor_glosado": str(round_cent(glosa_item.get("valor_glosado"))),
            "codigo_glosa": glosa_item.get("codigo_glosa") or "",
            "justificativa": item.justificativa,
        })
    return contested


class RecursoManagerService:
    """Service for recursos de glosa"""

    def __init__(
        self,
        db: AsyncSession,
        certificates: Optional[CertificateProvider] = None,
        security: Optional[TISSSecurityService] = None,
    ):
        self.db = db
        self.certificates = certificates or CertificateProvider(db, security or get_security_service())

    async def _get_recurso(self, clinic_id: int, recurso_id: str, refresh: bool = False) -> Optional[TISSRecurso]:
        query = select(TISSRecurso).where(TISSRecurso.id == recurso_id, TISSRecurso.clinic_id == clinic_id)
        if refresh:
            query = query.execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def create_recurso(
        self,
        clinic_id: int,
        glosa_id: int,
        itens_contestados: List[ItemContestadoRequest],
        justificativa_geral: Optional[str] = None,
        documentos_anexos: Optional[List[str]] = None,
        created_by: Optional[str] = None,
        today: Optional[date] = None,
    ) -> CreateRecursoResponse:
        """
        Open a recurso in ``rascunho`` for a pending glosa and move the glosa to
        ``em_recurso`` in the same transaction. The glosa's version column makes
        a second concurrent appeal on the same glosa fail.
        """
        if not glosa_id or not itens_contestados:
            return CreateRecursoResponse(
                success=False,
                error="Campos obrigatórios ausentes: glosa_id, itens_contestados",
                error_code=TISSValidationError.code,
            )
        day = today or date.today()

        async def work(session: AsyncSession) -> TISSRecurso:
            result = await session.execute(
                select(TISSGlosa)
                .where(TISSGlosa.id == glosa_id, TISSGlosa.clinic_id == clinic_id)
                .execution_options(populate_existing=True)
            )
            glosa = result.scalar_one_or_none()
            if glosa is None:
                raise TISSValidationError("Glosa não encontrada")
            if day > glosa.prazo_recurso:
                raise TISSValidationError(f"Prazo para recurso expirado em {glosa.prazo_recurso.isoformat()}")
            if glosa.status == GlosaStatus.EM_RECURSO:
                raise TISSStateError("Esta glosa já possui um recurso em andamento")
            ensure_transition(glosa.status, GlosaStatus.EM_RECURSO)

            contested = _contested_items(glosa, itens_contestados)
            valor_contestado = sum((Decimal(i["valor_glosado"]) for i in contested), Decimal("0.00"))

            recurso = TISSRecurso(
                id=generate_numero_recurso(),
                clinic_id=clinic_id,
                glosa_id=glosa.id,
                guia_id=glosa.guia_id,
                operadora_id=glosa.operadora_id,
                numero_guia_prestador=glosa.numero_guia_prestador,
                itens_contestados=contested,
                valor_contestado=valor_contestado,
                justificativa_geral=justificativa_geral,
                documentos_anexos=documentos_anexos,
                status=RecursoStatus.RASCUNHO,
                created_by=created_by,
            )
            session.add(recurso)
            glosa.status = GlosaStatus.EM_RECURSO
            glosa.recurso_id = recurso.id
            return recurso

        try:
            recurso = await run_in_transaction(self.db, work)
        except TISSError as e:
            logger.info(f"Recurso for glosa {glosa_id} rejected: {e.message}")
            return CreateRecursoResponse(success=False, error=e.message, error_code=e.code)
        except SQLAlchemyError as e:
            logger.error(f"Failed to create recurso for glosa {glosa_id}: {e}", exc_info=True)
            return CreateRecursoResponse(success=False, error=str(e), error_code="DATABASE_ERROR")

        logger.info(f"Recurso {recurso.id} created for glosa {glosa_id}, valor contestado {recurso.valor_contestado}")
        return CreateRecursoResponse(success=True, recurso_id=recurso.id, valor_contestado=recurso.valor_contestado)

    async def send_recurso(self, clinic_id: int, recurso_id: str) -> SendRecursoResponse:
        """
        Generate, sign and stamp the recurso. On failure the reason is saved in
        ``error_message`` and the recurso stays in ``rascunho`` to be sent again.
        """
        recurso = await self._get_recurso(clinic_id, recurso_id, refresh=True)
        if recurso is None:
            return SendRecursoResponse(success=False, error="Recurso não encontrado", error_code=TISSValidationError.code)
        if recurso.status != RecursoStatus.RASCUNHO:
            return SendRecursoResponse(
                success=False,
                error=f"Recurso já foi enviado (status: {recurso.status.value})",
                error_code=TISSStateError.code,
            )

        logger.info(f"Sending recurso {recurso_id} for clinic {clinic_id}")
        try:
            result = await self.db.execute(
                select(TISSOperadora).where(
                    TISSOperadora.clinic_id == clinic_id,
                    TISSOperadora.registro_ans == recurso.operadora_id,
                )
            )
            operadora = result.scalar_one_or_none()
            if operadora is None:
                raise TISSConfigurationError("Operadora não encontrada")

            xml = generate_recurso_xml(
                numero_recurso=recurso.id,
                numero_guia_prestador=recurso.numero_guia_prestador,
                itens_contestados=recurso.itens_contestados,
                codigo_prestador=operadora.codigo_prestador or "",
                registro_ans=operadora.registro_ans,
                justificativa_geral=recurso.justificativa_geral,
            )
            certificate = await self.certificates.get_certificate_for_signing(clinic_id)
            signed_xml = sign_xml_document(xml, certificate.pfx, certificate.password)
        except TISSError as e:
            logger.warning(f"Recurso {recurso_id} not sent: {e.message}")
            await self._record_failure(clinic_id, recurso_id, e.message)
            return SendRecursoResponse(success=False, error=e.message, error_code=e.code)

        protocolo = generate_protocolo_local()
        sent_at = datetime.now(timezone.utc)

        async def work(session: AsyncSession) -> None:
            current = await self._get_recurso(clinic_id, recurso_id, refresh=True)
            if current.status != RecursoStatus.RASCUNHO:
                raise TISSStateError(f"Recurso já foi enviado (status: {current.status.value})")
            ensure_transition(current.status, RecursoStatus.ENVIADO)
            current.status = RecursoStatus.ENVIADO
            current.data_envio = sent_at
            current.protocolo = protocolo
            current.xml_content = signed_xml
            current.error_message = None

        try:
            await run_in_transaction(self.db, work)
        except TISSError as e:
            return SendRecursoResponse(success=False, error=e.message, error_code=e.code)

        logger.info(f"Recurso {recurso_id} sent, protocolo {protocolo}")
        return SendRecursoResponse(success=True, protocolo=protocolo)

    async def _record_failure(self, clinic_id: int, recurso_id: str, message: str) -> None:
        async def work(session: AsyncSession) -> None:
            current = await self._get_recurso(clinic_id, recurso_id, refresh=True)
            current.error_message = message

        await run_in_transaction(self.db, work)

    async def get_recurso_status(self, clinic_id: int, recurso_id: str) -> RecursoStatusResponse:
        recurso = await self._get_recurso(clinic_id, recurso_id)
        if recurso is None:
            return RecursoStatusResponse(success=False, error="Recurso não encontrado", error_code=TISSValidationError.code)
        return RecursoStatusResponse(
            success=True,
            status=recurso.status.value,
            protocolo=recurso.protocolo,
            data_envio=recurso.data_envio,
            data_resposta=recurso.data_resposta,
            resposta_operadora=recurso.resposta_operadora,
            valor_recuperado=recurso.valor_recuperado,
            error_message=recurso.error_message,
        )

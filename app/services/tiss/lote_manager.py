"""
TISS Lote Manager
Groups guias into lotes, renders the lote XML and owns every lote status change
"""

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.sql import func

from config import settings
from database import run_in_transaction
from app.models.tiss.batch import LoteStatus, TISSLote
from app.models.tiss.guia import GuiaStatus, GuiaTipo, TISSGuia
from app.models.tiss.operadora import TISSOperadora
from app.schemas.tiss import CreateLoteResponse, LoteXmlResponse, TISSOperationResponse
from app.schemas.tiss_guias import GuiaConsulta, GuiaSADT
from app.services.tiss.exceptions import TISSError, TISSStateError, TISSValidationError
from app.services.tiss.status import GUIA_LOTEAVEIS, LOTE_DELETABLE, LOTE_SENDABLE, ensure_transition
from app.services.tiss.xml import generate_lote_xml, validate_guia_consulta, validate_guia_sadt
from app.services.tiss.xml_signer import hash_xml

logger = logging.getLogger(__name__)

# Fields callers may merge together with a status change
LOTE_MUTABLE_FIELDS = frozenset({
    "protocolo",
    "error_message",
    "erros",
    "xml_content",
    "xml_hash",
    "xml_resposta",
    "data_envio",
})


def apply_lote_status(lote: TISSLote, status: LoteStatus, fields: Optional[Dict[str, Any]] = None) -> None:
    """Check the transition, then merge ``fields`` and the new status into ``lote``."""
    ensure_transition(lote.status, status)
    for name, value in (fields or {}).items():
        if name not in LOTE_MUTABLE_FIELDS:
            raise TISSValidationError(f"Campo de lote não atualizável: {name}")
        setattr(lote, name, value)
    lote.status = status


def guia_payload(guia: TISSGuia):
    """Typed guide built from the stored ``dados``"""
    if guia.tipo == GuiaTipo.SADT:
        return GuiaSADT.model_validate(guia.dados or {})
    return GuiaConsulta.model_validate(guia.dados or {})


class LoteManagerService:
    """Service for creating and managing lotes de guias"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_lote(self, clinic_id: int, lote_id: int, refresh: bool = False) -> Optional[TISSLote]:
        query = select(TISSLote).where(TISSLote.id == lote_id, TISSLote.clinic_id == clinic_id)
        if refresh:
            query = query.execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_operadora(self, clinic_id: int, registro_ans: str) -> Optional[TISSOperadora]:
        result = await self.db.execute(
            select(TISSOperadora).where(
                TISSOperadora.clinic_id == clinic_id,
                TISSOperadora.registro_ans == registro_ans,
                TISSOperadora.is_active.is_(True),
            )
        )
        return result.scalar_one_or_none()

    async def _load_guias(self, session: AsyncSession, clinic_id: int, guia_ids: Iterable[int]) -> Dict[int, TISSGuia]:
        result = await session.execute(
            select(TISSGuia)
            .where(TISSGuia.clinic_id == clinic_id, TISSGuia.id.in_(list(guia_ids)))
            .execution_options(populate_existing=True)
        )
        return {guia.id: guia for guia in result.scalars().all()}

    async def _next_numero_lote(self, session: AsyncSession, clinic_id: int, today: date) -> str:
        """YYYYMMDD-NNNN, sequence per clinic and day"""
        result = await session.execute(
            select(TISSLote.numero_lote).where(
                TISSLote.clinic_id == clinic_id,
                TISSLote.data_geracao == today,
            )
        )
        sequences = [
            int(numero.rsplit("-", 1)[1])
            for numero in result.scalars().all()
            if numero and "-" in numero and numero.rsplit("-", 1)[1].isdigit()
        ]
        return f"{today:%Y%m%d}-{max(sequences, default=0) + 1:04d}"

    @staticmethod
    def _check_guias(
        guia_ids: Sequence[int],
        guias: Dict[int, TISSGuia],
        operadora_id: str,
    ) -> None:
        """First violation wins, in the order the guias were requested."""
        seen = set()
        for guia_id in guia_ids:
            if guia_id in seen:
                raise TISSValidationError(f"Validação falhou: Guia {guia_id} informada mais de uma vez")
            seen.add(guia_id)

            guia = guias.get(guia_id)
            if guia is None:
                raise TISSValidationError(f"Validação falhou: Guia {guia_id} não encontrada")
            if guia.registro_ans != operadora_id:
                raise TISSValidationError(f"Validação falhou: Guia {guia_id} pertence a outra operadora")
            if guia.status not in GUIA_LOTEAVEIS:
                raise TISSValidationError(
                    f"Validação falhou: Guia {guia_id} já foi enviada (status: {guia.status.value})"
                )
            if guia.lote_id is not None:
                raise TISSValidationError(
                    f"Validação falhou: Guia {guia_id} já está no lote {guia.numero_lote or guia.lote_id}"
                )

    async def create_lote(
        self,
        clinic_id: int,
        operadora_id: str,
        guia_ids: List[int],
        created_by: Optional[str] = None,
        today: Optional[date] = None,
    ) -> CreateLoteResponse:
        """
        Create a lote in ``rascunho`` and reserve its guias.

        The guias keep their status; only ``lote_id``/``numero_lote`` are set,
        so a guia can never sit in two lotes at once.
        """
        if not clinic_id or not operadora_id or not guia_ids:
            return CreateLoteResponse(
                success=False,
                error="Campos obrigatórios ausentes: clinic_id, operadora_id, guia_ids",
                error_code=TISSValidationError.code,
            )
        max_guias = settings.TISS_MAX_GUIAS_POR_LOTE
        if len(guia_ids) > max_guias:
            return CreateLoteResponse(
                success=False,
                error=f"Máximo de {max_guias} guias por lote",
                error_code=TISSValidationError.code,
            )

        logger.info(f"Creating lote for clinic {clinic_id}, operadora {operadora_id}, {len(guia_ids)} guias")
        day = today or date.today()

        async def work(session: AsyncSession) -> TISSLote:
            guias = await self._load_guias(session, clinic_id, guia_ids)
            self._check_guias(guia_ids, guias, operadora_id)

            operadora = await self.get_operadora(clinic_id, operadora_id)
            if operadora is None:
                raise TISSValidationError("Operadora não encontrada")

            numero_lote = await self._next_numero_lote(session, clinic_id, day)
            valor_total = sum((Decimal(guias[g].valor_total or 0) for g in guia_ids), Decimal("0.00"))

            lote = TISSLote(
                clinic_id=clinic_id,
                operadora_id=operadora_id,
                registro_ans=operadora_id,
                nome_operadora=operadora.nome,
                numero_lote=numero_lote,
                data_geracao=day,
                guia_ids=list(guia_ids),
                quantidade_guias=len(guia_ids),
                valor_total=valor_total,
                status=LoteStatus.RASCUNHO,
                created_by=created_by,
            )
            session.add(lote)
            await session.flush()

            for guia_id in guia_ids:
                guias[guia_id].lote_id = lote.id
                guias[guia_id].numero_lote = numero_lote
            return lote

        try:
            # A concurrent lote may take the same numero_lote; the unique constraint sends us round again
            lote = await run_in_transaction(self.db, work, retry_on=(StaleDataError, IntegrityError))
        except TISSError as e:
            logger.warning(f"Lote validation failed for clinic {clinic_id}: {e.message}")
            return CreateLoteResponse(success=False, error=e.message, error_code=e.code)
        except SQLAlchemyError as e:
            logger.error(f"Failed to create lote for clinic {clinic_id}: {e}", exc_info=True)
            return CreateLoteResponse(success=False, error=str(e), error_code="DATABASE_ERROR")

        logger.info(f"Lote {lote.numero_lote} created (id={lote.id}, valor_total={lote.valor_total})")
        return CreateLoteResponse(
            success=True,
            lote_id=lote.id,
            numero_lote=lote.numero_lote,
            quantidade_guias=lote.quantidade_guias,
            valor_total=lote.valor_total,
        )

    async def delete_lote(self, clinic_id: int, lote_id: int) -> TISSOperationResponse:
        """Delete a lote that was never sent and release its guias."""

        async def work(session: AsyncSession) -> None:
            lote = await self.get_lote(clinic_id, lote_id, refresh=True)
            if lote is None:
                raise TISSValidationError("Lote não encontrado")
            if lote.status not in LOTE_DELETABLE:
                raise TISSStateError("Não é possível excluir um lote já enviado")

            result = await session.execute(
                select(TISSGuia)
                .where(TISSGuia.clinic_id == clinic_id, TISSGuia.lote_id == lote.id)
                .execution_options(populate_existing=True)
            )
            for guia in result.scalars().all():
                if guia.status not in GUIA_LOTEAVEIS:
                    raise TISSStateError("Não é possível excluir um lote já enviado")
                guia.lote_id = None
                guia.numero_lote = None
            await session.flush()

            # A sender may have locked the lote after it was read
            deleted = await session.execute(
                delete(TISSLote)
                .where(TISSLote.id == lote.id, TISSLote.status.in_(list(LOTE_DELETABLE)))
                .execution_options(synchronize_session=False)
            )
            if deleted.rowcount != 1:
                raise TISSStateError("Não é possível excluir um lote já enviado")
            session.expunge(lote)

        try:
            await run_in_transaction(self.db, work)
        except TISSError as e:
            return TISSOperationResponse(success=False, error=e.message, error_code=e.code)
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete lote {lote_id}: {e}", exc_info=True)
            return TISSOperationResponse(success=False, error=str(e), error_code="DATABASE_ERROR")

        logger.info(f"Lote {lote_id} deleted for clinic {clinic_id}")
        return TISSOperationResponse(success=True)

    async def update_lote_status(
        self,
        clinic_id: int,
        lote_id: int,
        status: LoteStatus,
        extra: Optional[Dict[str, Any]] = None,
    ) -> TISSOperationResponse:
        """Merge ``extra`` into the lote together with the new status. Same status again is a no-op merge."""

        async def work(session: AsyncSession) -> None:
            lote = await self.get_lote(clinic_id, lote_id, refresh=True)
            if lote is None:
                raise TISSValidationError("Lote não encontrado")
            apply_lote_status(lote, LoteStatus(status), extra)

        try:
            await run_in_transaction(self.db, work)
        except TISSError as e:
            return TISSOperationResponse(success=False, error=e.message, error_code=e.code)
        except ValueError:
            return TISSOperationResponse(
                success=False, error=f"Status de lote inválido: {status}", error_code=TISSValidationError.code
            )
        return TISSOperationResponse(success=True)

    async def generate_lote_xml(
        self,
        clinic_id: int,
        lote_id: int,
        timestamp: Optional[datetime] = None,
    ) -> LoteXmlResponse:
        """Render every guia of the lote into one loteGuias message and move it to ``pronto``."""

        async def work(session: AsyncSession) -> TISSLote:
            lote = await self.get_lote(clinic_id, lote_id, refresh=True)
            if lote is None:
                raise TISSValidationError("Lote não encontrado")
            if lote.status not in (LoteStatus.RASCUNHO, LoteStatus.PRONTO):
                raise TISSStateError(f"Lote já foi enviado (status: {lote.status.value})")

            operadora = await self.get_operadora(clinic_id, lote.registro_ans)
            if operadora is None:
                raise TISSValidationError("Operadora não encontrada")

            guias = await self._load_guias(session, clinic_id, lote.guia_ids)
            payloads = []
            for guia_id in lote.guia_ids:
                guia = guias.get(guia_id)
                if guia is None or guia.lote_id != lote.id:
                    raise TISSValidationError(f"Validação falhou: Guia {guia_id} não encontrada")
                payload = guia_payload(guia)
                errors = (
                    validate_guia_sadt(payload) if isinstance(payload, GuiaSADT) else validate_guia_consulta(payload)
                )
                if errors:
                    raise TISSValidationError(
                        f"Validação falhou: Guia {guia.numero_guia_prestador}: {errors[0]}", errors
                    )
                payloads.append(payload)

            xml, _ = generate_lote_xml(
                numero_lote=lote.numero_lote,
                registro_ans=lote.registro_ans,
                codigo_prestador=operadora.codigo_prestador,
                guias=payloads,
                timestamp=timestamp,
            )
            lote.xml_content = xml
            lote.xml_hash = hash_xml(xml)
            apply_lote_status(lote, LoteStatus.PRONTO)
            return lote

        try:
            lote = await run_in_transaction(self.db, work)
        except TISSError as e:
            logger.warning(f"Lote {lote_id} XML generation failed: {e.message}")
            return LoteXmlResponse(success=False, error=e.message, error_code=e.code)

        logger.info(f"Lote {lote.numero_lote} XML generated ({len(lote.xml_content)} chars)")
        return LoteXmlResponse(success=True, lote_id=lote.id, xml_hash=lote.xml_hash)

    async def acquire_send_lock(self, clinic_id: int, lote_id: int, allowed=LOTE_SENDABLE) -> bool:
        """
        Move the lote to ``enviando`` only if it is still in one of ``allowed``.
        Exactly one of several concurrent senders gets ``True``.
        """
        result = await self.db.execute(
            update(TISSLote)
            .where(
                TISSLote.id == lote_id,
                TISSLote.clinic_id == clinic_id,
                TISSLote.status.in_(list(allowed)),
            )
            .values(status=LoteStatus.ENVIANDO, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount == 1

    async def mark_guias_enviadas(
        self,
        lote: TISSLote,
        protocolo: Optional[str],
        data_envio: Optional[datetime] = None,
    ) -> int:
        """Flag every guia of a successfully sent lote as ``enviada``. Runs in the caller's transaction."""
        guias = await self._load_guias(self.db, lote.clinic_id, lote.guia_ids)
        sent_at = data_envio or datetime.now(timezone.utc)
        for guia in guias.values():
            ensure_transition(guia.status, GuiaStatus.ENVIADA)
            guia.status = GuiaStatus.ENVIADA
            guia.protocolo_operadora = protocolo
            guia.data_envio = sent_at
        return len(guias)

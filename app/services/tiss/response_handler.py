"""
TISS Response Handler
Applies a demonstrativo de análise de conta to a sent lote: guia results and new glosas
"""

import logging
from decimal import Decimal
from typing import List

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from database import run_in_transaction
from app.models.tiss.batch import LoteStatus
from app.models.tiss.glosa import GlosaStatus, TISSGlosa
from app.models.tiss.guia import GuiaStatus, TISSGuia
from app.schemas.tiss import ProcessDemonstrativoResponse
from app.services.tiss.exceptions import TISSError, TISSStateError, TISSValidationError
from app.services.tiss.lote_manager import LoteManagerService, apply_lote_status
from app.services.tiss.parsers.demonstrativo_parser import (
    STATUS_APROVADA,
    STATUS_GLOSADA_PARCIAL,
    STATUS_GLOSADA_TOTAL,
    GuiaDemonstrativo,
    calculate_prazo_recurso,
    parse_demonstrativo_xml,
)
from app.services.tiss.status import ensure_transition

logger = logging.getLogger(__name__)

GUIA_STATUS_MAP = {
    STATUS_APROVADA: GuiaStatus.AUTORIZADA,
    STATUS_GLOSADA_PARCIAL: GuiaStatus.GLOSADA_PARCIAL,
    STATUS_GLOSADA_TOTAL: GuiaStatus.GLOSADA_TOTAL,
}

PROCESSABLE_LOTE_STATUSES = frozenset({LoteStatus.ENVIADO, LoteStatus.PROCESSANDO})


def _itens_glosados(guia: GuiaDemonstrativo) -> List[dict]:
    if guia.itens_glosados:
        return [item.to_dict() for item in guia.itens_glosados]
    # Glosa without itemized reasons
    return [{
        "sequencial_item": 1,
        "codigo_procedimento": "",
        "descricao_procedimento": "Valor glosado",
        "valor_original": str(guia.valor_informado),
        "valor_glosado": str(guia.valor_glosado),
        "codigo_glosa": "outros",
        "descricao_glosa": "Motivo não especificado pela operadora",
    }]


class ResponseHandlerService:
    """Service for processing operadora demonstrativos"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.lotes = LoteManagerService(db)

    async def process_demonstrativo(self, clinic_id: int, lote_id: int, xml: str) -> ProcessDemonstrativoResponse:
        """
        Update each guia of the lote with its result, open a ``pendente`` glosa
        for every guia with a glosed value and move the lote to ``processado``
        (nothing glosed) or ``parcial``.
        """
        if not xml or not xml.strip():
            return ProcessDemonstrativoResponse(
                success=False, error="Demonstrativo não informado", error_code=TISSValidationError.code
            )

        async def work(session: AsyncSession) -> ProcessDemonstrativoResponse:
            lote = await self.lotes.get_lote(clinic_id, lote_id, refresh=True)
            if lote is None:
                raise TISSValidationError("Lote não encontrado")
            if lote.status not in PROCESSABLE_LOTE_STATUSES:
                raise TISSStateError(
                    f"Lote não está aguardando demonstrativo (status: {lote.status.value})"
                )

            analise = parse_demonstrativo_xml(xml)
            if analise.numero_lote and analise.numero_lote != lote.numero_lote:
                raise TISSValidationError(
                    f"Demonstrativo pertence ao lote {analise.numero_lote}, não ao lote {lote.numero_lote}"
                )

            result = await session.execute(
                select(TISSGuia)
                .where(TISSGuia.clinic_id == clinic_id, TISSGuia.lote_id == lote.id)
                .execution_options(populate_existing=True)
            )
            guias = {guia.numero_guia_prestador: guia for guia in result.scalars().all()}

            atualizadas = 0
            glosas: List[TISSGlosa] = []
            houve_glosa = False
            for guia_demo in analise.guias:
                guia = guias.get(guia_demo.numero_guia_prestador)
                if guia is None:
                    logger.warning(f"Guia {guia_demo.numero_guia_prestador} in demonstrativo is not part of lote {lote.numero_lote}")
                    continue

                novo_status = GUIA_STATUS_MAP[guia_demo.status]
                ensure_transition(guia.status, novo_status)
                guia.status = novo_status
                guia.valor_aprovado = guia_demo.valor_processado
                guia.valor_glosado = guia_demo.valor_glosado
                if guia_demo.numero_guia_operadora:
                    guia.numero_guia_operadora = guia_demo.numero_guia_operadora
                atualizadas += 1

                if guia_demo.valor_glosado > Decimal("0"):
                    houve_glosa = True
                    glosa = TISSGlosa(
                        clinic_id=clinic_id,
                        guia_id=guia.id,
                        lote_id=lote.id,
                        operadora_id=lote.registro_ans,
                        numero_guia_prestador=guia.numero_guia_prestador,
                        tipo_guia=guia.tipo.value,
                        data_recebimento=analise.data_processamento,
                        valor_original=guia_demo.valor_informado,
                        valor_glosado=guia_demo.valor_glosado,
                        valor_aprovado=guia_demo.valor_processado,
                        itens_glosados=_itens_glosados(guia_demo),
                        prazo_recurso=calculate_prazo_recurso(analise.data_processamento),
                        status=GlosaStatus.PENDENTE,
                    )
                    session.add(glosa)
                    glosas.append(glosa)

            novo_status_lote = LoteStatus.PARCIAL if houve_glosa else LoteStatus.PROCESSADO
            apply_lote_status(lote, novo_status_lote, {"protocolo": lote.protocolo or analise.protocolo})
            await session.flush()

            return ProcessDemonstrativoResponse(
                success=True,
                guias_atualizadas=atualizadas,
                glosas_criadas=[g.id for g in glosas],
                status_lote=novo_status_lote.value,
            )

        try:
            response = await run_in_transaction(self.db, work)
        except TISSError as e:
            logger.warning(f"Demonstrativo for lote {lote_id} rejected: {e.message}")
            return ProcessDemonstrativoResponse(success=False, error=e.message, error_code=e.code)
        except SQLAlchemyError as e:
            logger.error(f"Failed to process demonstrativo for lote {lote_id}: {e}", exc_info=True)
            return ProcessDemonstrativoResponse(success=False, error=str(e), error_code="DATABASE_ERROR")

        logger.info(
            f"Demonstrativo applied to lote {lote_id}: {response.guias_atualizadas} guias, "
            f"{len(response.glosas_criadas)} glosas, status {response.status_lote}"
        )
        return response


"""
TISS Glosa Dashboard
Glosa statistics per period and recurso deadlines that are about to expire
"""

import logging
from collections import Counter
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.tiss.glosa import GlosaStatus, TISSGlosa
from app.models.tiss.recurso import TISSRecurso
from app.schemas.tiss import GlosaMotivo, GlosaPrazo, GlosaPrazosResponse, GlosaStatsResponse
from app.services.tiss.exceptions import TISSValidationError
from app.services.tiss.parsers.denial_interpreter import DenialInterpreter

logger = logging.getLogger(__name__)

PERIOD_DAYS = {
    "month": 30,
    "quarter": 90,
    "year": 365,
}

# Days before prazo_recurso on which a pending glosa is flagged
DEADLINE_ALERT_DAYS = (7, 3, 1)

MAX_MOTIVOS = 10

CENTS = Decimal("0.01")


def _decimal(value) -> Decimal:
    return Decimal(str(value or 0))


class GlosaStatsService:
    """Read-only queries over the clinic's glosas"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.interpreter = DenialInterpreter()

    async def get_glosa_stats(
        self,
        clinic_id: int,
        period: str = "month",
        today: Optional[date] = None,
    ) -> GlosaStatsResponse:
        """
        Totals for the glosas received in the last ``period`` (month, quarter, year).

        ``valor_recuperado`` is what the operadora granted back through recursos of
        those glosas; ``principais_motivos`` groups the glosed items by code, largest
        value first.
        """
        if period not in PERIOD_DAYS:
            return GlosaStatsResponse(
                success=False,
                error=f"Período inválido: {period} (use {', '.join(PERIOD_DAYS)})",
                error_code=TISSValidationError.code,
            )
        data_inicio = (today or date.today()) - timedelta(days=PERIOD_DAYS[period])
        in_period = (TISSGlosa.clinic_id == clinic_id, TISSGlosa.data_recebimento >= data_inicio)

        try:
            result = await self.db.execute(select(TISSGlosa).where(*in_period))
            glosas = result.scalars().all()

            recovered = await self.db.execute(
                select(func.coalesce(func.sum(TISSRecurso.valor_recuperado), 0))
                .join(TISSGlosa, TISSRecurso.glosa_id == TISSGlosa.id)
                .where(TISSRecurso.clinic_id == clinic_id, *in_period)
            )
            valor_recuperado = _decimal(recovered.scalar()).quantize(CENTS)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load glosa stats for clinic {clinic_id}: {e}", exc_info=True)
            return GlosaStatsResponse(success=False, error=str(e), error_code="DATABASE_ERROR")

        valor_total = sum((_decimal(g.valor_glosado) for g in glosas), Decimal("0")).quantize(CENTS)
        por_status = Counter(g.status.value for g in glosas)

        motivos: Dict[str, dict] = {}
        for glosa in glosas:
            for item in glosa.itens_glosados or []:
                codigo = str(item.get("codigo_glosa") or "outros")
                motivo = motivos.setdefault(codigo, {
                    "codigo": codigo,
                    "descricao": item.get("descricao_glosa") or self.interpreter.describe(codigo),
                    "quantidade": 0,
                    "valor": Decimal("0"),
                })
                motivo["quantidade"] += 1
                motivo["valor"] += _decimal(item.get("valor_glosado"))
        principais = sorted(motivos.values(), key=lambda m: m["valor"], reverse=True)[:MAX_MOTIVOS]

        taxa = Decimal("0.00")
        if valor_total > 0:
            taxa = (valor_recuperado / valor_total * 100).quantize(CENTS)

        logger.info(f"Glosa stats for clinic {clinic_id} since {data_inicio}: {len(glosas)} glosas, {valor_total} glosado")
        return GlosaStatsResponse(
            success=True,
            periodo=period,
            data_inicio=data_inicio,
            total_glosas=len(glosas),
            valor_total_glosado=valor_total,
            valor_recuperado=valor_recuperado,
            taxa_recuperacao=taxa,
            glosas_por_status=dict(por_status),
            principais_motivos=[
                GlosaMotivo(
                    codigo=m["codigo"],
                    descricao=m["descricao"],
                    quantidade=m["quantidade"],
                    valor=m["valor"].quantize(CENTS),
                )
                for m in principais
            ],
        )

    async def check_glosa_deadlines(self, clinic_id: int, today: Optional[date] = None) -> GlosaPrazosResponse:
        """Pending glosas whose recurso deadline is exactly 7, 3 or 1 days away"""
        day = today or date.today()
        try:
            result = await self.db.execute(
                select(TISSGlosa)
                .where(
                    TISSGlosa.clinic_id == clinic_id,
                    TISSGlosa.status == GlosaStatus.PENDENTE,
                    TISSGlosa.prazo_recurso >= day,
                    TISSGlosa.prazo_recurso <= day + timedelta(days=max(DEADLINE_ALERT_DAYS)),
                )
                .order_by(TISSGlosa.prazo_recurso, TISSGlosa.id)
            )
            glosas = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to check glosa deadlines for clinic {clinic_id}: {e}", exc_info=True)
            return GlosaPrazosResponse(success=False, error=str(e), error_code="DATABASE_ERROR")

        alertas = []
        for glosa in glosas:
            dias = (glosa.prazo_recurso - day).days
            if dias not in DEADLINE_ALERT_DAYS:
                continue
            alertas.append(GlosaPrazo(
                glosa_id=glosa.id,
                numero_guia_prestador=glosa.numero_guia_prestador,
                operadora_id=glosa.operadora_id,
                valor_glosado=_decimal(glosa.valor_glosado),
                prazo_recurso=glosa.prazo_recurso,
                dias_restantes=dias,
            ))

        if alertas:
            logger.info(f"Clinic {clinic_id} has {len(alertas)} glosas with recurso deadline approaching")
        return GlosaPrazosResponse(success=True, data_referencia=day, alertas=alertas)

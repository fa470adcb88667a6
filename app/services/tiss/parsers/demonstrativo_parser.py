"""
TISS Demonstrativo Parser
Reads the operadora's demonstrativo de análise de conta (per-guia values and glosas)
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from lxml import etree

from config import settings
from app.services.tiss.exceptions import TISSProtocolError
from app.services.tiss.parsers.denial_interpreter import DenialInterpreter

logger = logging.getLogger(__name__)

GUIA_TAGS = ("guiaRecusada", "guiaProcessada", "guia")

STATUS_APROVADA = "aprovada"
STATUS_GLOSADA_PARCIAL = "glosada_parcial"
STATUS_GLOSADA_TOTAL = "glosada_total"


@dataclass
class ItemGlosado:
    sequencial_item: int
    codigo_procedimento: str
    descricao_procedimento: str
    valor_original: Decimal
    valor_glosado: Decimal
    codigo_glosa: str
    descricao_glosa: str

    def to_dict(self) -> dict:
        return {
            "sequencial_item": self.sequencial_item,
            "codigo_procedimento": self.codigo_procedimento,
            "descricao_procedimento": self.descricao_procedimento,
            "valor_original": str(self.valor_original),
            "valor_glosado": str(self.valor_glosado),
            "codigo_glosa": self.codigo_glosa,
            "descricao_glosa": self.descricao_glosa,
        }


@dataclass
class GuiaDemonstrativo:
    numero_guia_prestador: str
    numero_guia_operadora: Optional[str]
    data_atendimento: Optional[date]
    valor_informado: Decimal
    valor_processado: Decimal
    valor_glosado: Decimal
    status: str
    itens_glosados: List[ItemGlosado] = field(default_factory=list)


@dataclass
class DemonstrativoAnalise:
    numero_lote: Optional[str]
    registro_ans: Optional[str]
    protocolo: Optional[str]
    data_processamento: date
    valor_informado: Decimal
    valor_processado: Decimal
    valor_glosado: Decimal
    guias: List[GuiaDemonstrativo] = field(default_factory=list)


def calculate_prazo_recurso(data: date, dias: Optional[int] = None) -> date:
    """Deadline to appeal a glosa received on ``data``"""
    return data + timedelta(days=settings.TISS_PRAZO_RECURSO_DIAS if dias is None else dias)


def _find_all(node, tag: str):
    return node.xpath(f".//*[local-name()='{tag}']")


def _text(node, *tags: str) -> Optional[str]:
    for tag in tags:
        found = _find_all(node, tag)
        if found and found[0].text and found[0].text.strip():
            return found[0].text.strip()
    return None


def _decimal(node, *tags: str) -> Decimal:
    raw = _text(node, *tags)
    if raw is None:
        return Decimal("0.00")
    try:
        return Decimal(raw.replace(",", ".")).quantize(Decimal("0.01"))
    except InvalidOperation:
        logger.warning(f"Invalid monetary value in demonstrativo: {raw!r}")
        return Decimal("0.00")


def _date(node, *tags: str) -> Optional[date]:
    raw = _text(node, *tags)
    if raw is None:
        return None
    try:
        return datetime.strptime(raw[:10], "%Y-%m-%d").date()
    except ValueError:
        logger.warning(f"Invalid date in demonstrativo: {raw!r}")
        return None


def _guia_status(valor_glosado: Decimal, valor_processado: Decimal) -> str:
    if valor_glosado <= 0:
        return STATUS_APROVADA
    return STATUS_GLOSADA_PARCIAL if valor_processado > 0 else STATUS_GLOSADA_TOTAL


def _parse_guia(node, interpreter: DenialInterpreter) -> Optional[GuiaDemonstrativo]:
    numero = _text(node, "numeroGuiaPrestador")
    if not numero:
        return None

    itens = []
    for sequencial, item in enumerate(_find_all(node, "itemGlosado"), start=1):
        codigo_glosa = _text(item, "codigoGlosa") or "outros"
        valor_glosado = _decimal(item, "valorGlosa", "valorGlosado")
        itens.append(ItemGlosado(
            sequencial_item=int(_text(item, "sequencialItem") or sequencial),
            codigo_procedimento=_text(item, "codigoProcedimento") or "",
            descricao_procedimento=_text(item, "descricaoProcedimento") or "",
            valor_original=_decimal(item, "valorInformado", "valorOriginal") or valor_glosado,
            valor_glosado=valor_glosado,
            codigo_glosa=codigo_glosa,
            descricao_glosa=_text(item, "descricaoGlosa") or interpreter.describe(codigo_glosa),
        ))

    valor_informado = _decimal(node, "valorInformado", "valorTotal")
    valor_processado = _decimal(node, "valorProcessado", "valorLiberado")
    valor_glosado = _decimal(node, "valorGlosado", "valorTotalGlosado")
    if valor_glosado == 0 and itens:
        valor_glosado = sum((i.valor_glosado for i in itens), Decimal("0.00"))

    return GuiaDemonstrativo(
        numero_guia_prestador=numero,
        numero_guia_operadora=_text(node, "numeroGuiaOperadora"),
        data_atendimento=_date(node, "dataExecucao", "dataAtendimento"),
        valor_informado=valor_informado,
        valor_processado=valor_processado,
        valor_glosado=valor_glosado,
        status=_guia_status(valor_glosado, valor_processado),
        itens_glosados=itens,
    )


def parse_demonstrativo_xml(xml: str, today: Optional[date] = None) -> DemonstrativoAnalise:
    """
    Parse a demonstrativo de análise de conta.

    Raises:
        TISSProtocolError: when the document is not well-formed XML
    """
    try:
        root = etree.fromstring(xml.encode("utf-8"), parser=etree.XMLParser(resolve_entities=False, no_network=True))
    except etree.XMLSyntaxError as e:
        raise TISSProtocolError("Demonstrativo inválido: XML malformado") from e

    interpreter = DenialInterpreter()
    guias = []
    parsed = set()
    for tag in GUIA_TAGS:
        for node in _find_all(root, tag):
            # a plain <guia> nested in guiaProcessada is the same guia
            if node in parsed or any(a in parsed for a in node.iterancestors()):
                continue
            guia = _parse_guia(node, interpreter)
            if guia is not None:
                parsed.add(node)
                guias.append(guia)

    analise = DemonstrativoAnalise(
        numero_lote=_text(root, "numeroLote", "numeroLotePrestador"),
        registro_ans=_text(root, "registroANS"),
        protocolo=_text(root, "numeroProtocolo", "protocolo"),
        data_processamento=_date(root, "dataProcessamento", "dataRecebimento") or today or date.today(),
        valor_informado=_decimal(root, "valorInformadoLote", "valorTotalInformado"),
        valor_processado=_decimal(root, "valorProcessadoLote", "valorTotalProcessado"),
        valor_glosado=_decimal(root, "valorGlosadoLote", "valorTotalGlosadoLote"),
        guias=guias,
    )
    if analise.valor_informado == 0:
        analise.valor_informado = sum((g.valor_informado for g in guias), Decimal("0.00"))
        analise.valor_processado = sum((g.valor_processado for g in guias), Decimal("0.00"))
        analise.valor_glosado = sum((g.valor_glosado for g in guias), Decimal("0.00"))

    logger.info(f"Demonstrativo parsed: lote {analise.numero_lote}, {len(guias)} guias")
    return analise

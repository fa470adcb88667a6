"""
Recurso de glosa XML generator (TISS 4.02.00)
"""

import secrets
import string
import time
from datetime import datetime
from typing import Iterable, Mapping, Optional

from app.services.tiss.xml.common import (
    PAD_CODIGO_PROCEDIMENTO,
    PAD_REGISTRO_ANS,
    TIPO_RECURSO_GLOSA,
    TISSXmlBuilder,
    format_currency,
    generate_sequencial,
    pad_string,
    start_mensagem,
    write_cabecalho,
)

_BASE36 = string.digits + string.ascii_uppercase


def to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def _epoch_ms() -> int:
    return int(time.time() * 1000)


def generate_numero_recurso() -> str:
    """Unique recurso id: REC + epoch ms in base36 + 4 random base36 chars"""
    random_part = "".join(secrets.choice(_BASE36) for _ in range(4))
    return f"REC{to_base36(_epoch_ms())}{random_part}"


def generate_protocolo_local() -> str:
    """Protocol token stamped locally when a recurso is sent"""
    return f"PROT{to_base36(_epoch_ms())}"


def generate_recurso_xml(
    numero_recurso: str,
    numero_guia_prestador: str,
    itens_contestados: Iterable[Mapping],
    codigo_prestador: str,
    registro_ans: str,
    justificativa_geral: Optional[str] = None,
    timestamp: Optional[datetime] = None,
    sequencial: Optional[str] = None,
    pretty_print: bool = True,
) -> str:
    """
    Build the RECURSO_GLOSA message.

    Each contested item carries the glosa's own procedure code and glosa
    amount (``valor_glosado``) as ``valorRecursado``, plus its justification.
    """
    moment = timestamp or datetime.now()
    registro = pad_string(registro_ans, PAD_REGISTRO_ANS)

    builder = TISSXmlBuilder(pretty_print=pretty_print)
    start_mensagem(builder)
    write_cabecalho(
        builder,
        codigo_prestador=codigo_prestador,
        registro_ans=registro,
        tipo_transacao=TIPO_RECURSO_GLOSA,
        sequencial=sequencial or generate_sequencial(moment),
        timestamp=moment,
    )
    with builder.block("prestadorParaOperadora"):
        with builder.block("recursoGlosa"):
            with builder.block("guiaRecursoGlosa"):
                builder.element("registroANS", registro)
                builder.element("numeroGuiaRecursoGlosa", numero_recurso)
                with builder.block("objetoRecurso"):
                    builder.element("numeroGuiaPrestador", numero_guia_prestador)
                    for item in itens_contestados:
                        with builder.block("itemRecurso"):
                            builder.element("sequencialItem", item["sequencial_item"])
                            builder.element(
                                "codigoProcedimento",
                                pad_string(item["codigo_procedimento"], PAD_CODIGO_PROCEDIMENTO),
                            )
                            builder.element("valorRecursado", format_currency(item["valor_glosado"]))
                            builder.element("justificativa", item["justificativa"])
                builder.element("justificativaRecurso", justificativa_geral)
    xml, _ = builder.finish_with_epilogue()
    return xml

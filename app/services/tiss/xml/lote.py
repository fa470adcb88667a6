"""
Lote de guias XML generator: one TISS message carrying every guide of a lote
"""

from datetime import datetime
from typing import Iterable, Optional, Tuple, Union

from app.schemas.tiss_guias import GuiaConsulta, GuiaSADT
from app.services.tiss.xml.common import (
    TISSXmlBuilder,
    generate_sequencial,
    start_mensagem,
    write_cabecalho,
)
from app.services.tiss.xml.consulta import generate_guia_consulta_element
from app.services.tiss.xml.sadt import generate_guia_sadt_element


def generate_lote_xml(
    numero_lote: str,
    registro_ans: str,
    codigo_prestador: str,
    guias: Iterable[Union[GuiaConsulta, GuiaSADT]],
    timestamp: Optional[datetime] = None,
    sequencial: Optional[str] = None,
    pretty_print: bool = True,
) -> Tuple[str, str]:
    """
    Returns ``(xml, hash)``. Guides are written in the given order; consulta
    and SP/SADT guides may be mixed.
    """
    moment = timestamp or datetime.now()
    builder = TISSXmlBuilder(pretty_print=pretty_print)
    start_mensagem(builder)
    write_cabecalho(
        builder,
        codigo_prestador=codigo_prestador,
        registro_ans=registro_ans,
        sequencial=sequencial or generate_sequencial(moment),
        timestamp=moment,
    )
    with builder.block("prestadorParaOperadora"):
        with builder.block("loteGuias"):
            builder.element("numeroLote", numero_lote)
            with builder.block("guiasTISS"):
                for guia in guias:
                    if isinstance(guia, GuiaSADT):
                        render = generate_guia_sadt_element
                    elif isinstance(guia, GuiaConsulta):
                        render = generate_guia_consulta_element
                    else:
                        raise TypeError(f"Tipo de guia não suportado: {type(guia).__name__}")
                    builder.raw(render(guia, level=builder.level, pretty_print=builder.pretty_print))
    return builder.finish_with_epilogue()

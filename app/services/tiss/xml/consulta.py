"""
Guia de Consulta XML generator and validator (TISS 4.02.00)
"""

from datetime import datetime
from typing import List, Optional, Union

from app.schemas.tiss_guias import GuiaConsulta
from app.services.tiss.xml.common import (
    PAD_CODIGO_PROCEDIMENTO,
    PAD_REGISTRO_ANS,
    TISSXmlBuilder,
    format_currency,
    format_date,
    pad_string,
    start_mensagem,
    write_beneficiario,
    write_cabecalho,
    write_contratado,
    write_profissional,
)


def _as_guia(guia: Union[GuiaConsulta, dict]) -> GuiaConsulta:
    return guia if isinstance(guia, GuiaConsulta) else GuiaConsulta.model_validate(guia)


def write_guia_consulta(builder: TISSXmlBuilder, guia: GuiaConsulta) -> None:
    with builder.block("guiaConsulta"):
        with builder.block("cabecalhoConsulta"):
            builder.element("registroANS", pad_string(guia.registro_ans, PAD_REGISTRO_ANS))
            builder.element("numeroGuiaPrestador", guia.numero_guia_prestador)
            builder.element("numeroGuiaOperadora", guia.numero_guia_operadora)
            if guia.data_autorizacao:
                builder.element("dataAutorizacao", format_date(guia.data_autorizacao))
            builder.element("senha", guia.senha)
            if guia.data_validade_senha:
                builder.element("dataValidadeSenha", format_date(guia.data_validade_senha))

        write_beneficiario(builder, guia.dados_beneficiario)

        with builder.block("dadosSolicitante"):
            write_contratado(builder, guia.contratado_solicitante, "contratadoSolicitante")
            write_profissional(builder, guia.profissional_solicitante, "profissionalSolicitante")

        with builder.block("dadosAtendimento"):
            builder.element("tipoConsulta", guia.tipo_consulta)
            builder.element("indicacaoClinica", guia.indicacao_clinica)
            builder.element("dataAtendimento", format_date(guia.data_atendimento) if guia.data_atendimento else None)
            builder.element("codigoTabela", guia.codigo_tabela)
            builder.element("codigoProcedimento", pad_string(guia.codigo_procedimento, PAD_CODIGO_PROCEDIMENTO))
            builder.element("valorProcedimento", format_currency(guia.valor_procedimento))

        builder.element("observacao", guia.observacao)


def generate_xml_consulta(
    guia: Union[GuiaConsulta, dict],
    include_declaration: bool = True,
    pretty_print: bool = True,
    timestamp: Optional[datetime] = None,
    sequencial: str = "1",
    numero_lote: str = "1",
) -> str:
    """
    Generate a complete TISS message carrying a single Guia de Consulta.

    The SHA-1 in ``epilogo`` covers every byte written before it. Passing the
    same ``timestamp`` and ``sequencial`` yields byte-identical output.
    """
    guia = _as_guia(guia)
    builder = TISSXmlBuilder(pretty_print=pretty_print)
    start_mensagem(builder, include_declaration)
    write_cabecalho(
        builder,
        codigo_prestador=guia.contratado_solicitante.codigo_prestador_na_operadora,
        registro_ans=guia.registro_ans,
        sequencial=sequencial,
        timestamp=timestamp,
    )
    with builder.block("prestadorParaOperadora"):
        with builder.block("loteGuias"):
            builder.element("numeroLote", numero_lote)
            with builder.block("guiasTISS"):
                write_guia_consulta(builder, guia)
    xml, _ = builder.finish_with_epilogue()
    return xml


def generate_guia_consulta_element(guia: Union[GuiaConsulta, dict], level: int = 0, pretty_print: bool = True) -> str:
    """Only the ``guiaConsulta`` element, indented for ``level``, for embedding in a lote."""
    builder = TISSXmlBuilder(pretty_print=pretty_print, level=level)
    write_guia_consulta(builder, _as_guia(guia))
    return builder.getvalue()


def validate_guia_consulta(guia: Union[GuiaConsulta, dict]) -> List[str]:
    """Return every problem found; an empty list means the guide can be sent."""
    guia = _as_guia(guia)
    errors: List[str] = []

    if not guia.registro_ans or len(guia.registro_ans) != 6:
        errors.append("Registro ANS deve ter 6 dígitos")
    if not guia.numero_guia_prestador:
        errors.append("Número da guia do prestador é obrigatório")
    if not guia.dados_beneficiario.numero_carteira:
        errors.append("Número da carteira do beneficiário é obrigatório")
    if not guia.dados_beneficiario.nome_beneficiario:
        errors.append("Nome do beneficiário é obrigatório")
    if not guia.contratado_solicitante.codigo_prestador_na_operadora:
        errors.append("Código do prestador na operadora é obrigatório")
    if not guia.profissional_solicitante.conselho_profissional:
        errors.append("Conselho profissional é obrigatório")
    if not guia.profissional_solicitante.numero_conselho_profissional:
        errors.append("Número no conselho profissional é obrigatório")
    if not guia.profissional_solicitante.uf:
        errors.append("UF do conselho profissional é obrigatório")
    if not guia.tipo_consulta:
        errors.append("Tipo de consulta é obrigatório")
    if not guia.data_atendimento:
        errors.append("Data do atendimento é obrigatória")
    if not guia.codigo_tabela:
        errors.append("Código da tabela é obrigatório")
    if not guia.codigo_procedimento:
        errors.append("Código do procedimento é obrigatório")
    if guia.valor_procedimento is None or guia.valor_procedimento < 0:
        errors.append("Valor do procedimento deve ser maior ou igual a zero")

    return errors

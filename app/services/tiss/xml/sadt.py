"""
Guia SP/SADT XML generator, validator and totals (TISS 4.02.00)
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Union

from app.schemas.tiss_guias import GuiaSADT, ProcedimentoRealizado, TotaisSADT
from app.services.tiss.xml.common import (
    PAD_CODIGO_PROCEDIMENTO,
    PAD_REGISTRO_ANS,
    TISSXmlBuilder,
    format_currency,
    format_date,
    format_time,
    pad_string,
    round_cent,
    start_mensagem,
    write_beneficiario,
    write_cabecalho,
    write_contratado,
    write_profissional,
)


def _as_guia(guia: Union[GuiaSADT, dict]) -> GuiaSADT:
    return guia if isinstance(guia, GuiaSADT) else GuiaSADT.model_validate(guia)


def calculate_procedimento_total(proc: ProcedimentoRealizado) -> Decimal:
    """quantidade x valor unitário, rounded to the cent"""
    if proc.valor_unitario is None:
        return round_cent(proc.valor_total)
    return round_cent(Decimal(proc.quantidade_realizada) * proc.valor_unitario)


def calculate_sadt_totals(
    procedimentos: Iterable[ProcedimentoRealizado],
    valor_taxas=None,
    valor_materiais=None,
    valor_medicamentos=None,
    valor_opme=None,
) -> TotaisSADT:
    """
    Sum of the per-procedure totals. Each procedure is rounded before summing,
    so the guide total always matches the sum of the lines the operadora sees.
    """
    procedimentos = [
        p if isinstance(p, ProcedimentoRealizado) else ProcedimentoRealizado.model_validate(p)
        for p in procedimentos
    ]
    total_procedimentos = sum((calculate_procedimento_total(p) for p in procedimentos), Decimal("0.00"))
    total_geral = total_procedimentos + sum(
        (round_cent(v) for v in (valor_taxas, valor_materiais, valor_medicamentos, valor_opme)),
        Decimal("0.00"),
    )
    return TotaisSADT(
        valor_total_procedimentos=round_cent(total_procedimentos),
        valor_total_geral=round_cent(total_geral),
    )


def _totais(guia: GuiaSADT) -> TotaisSADT:
    calculados = calculate_sadt_totals(
        guia.procedimentos_realizados,
        guia.valor_total_taxas,
        guia.valor_total_materiais,
        guia.valor_total_medicamentos,
        guia.valor_total_opme,
    )
    return TotaisSADT(
        valor_total_procedimentos=(
            guia.valor_total_procedimentos
            if guia.valor_total_procedimentos is not None
            else calculados.valor_total_procedimentos
        ),
        valor_total_geral=(
            guia.valor_total_geral if guia.valor_total_geral is not None else calculados.valor_total_geral
        ),
    )


def _write_procedimento(builder: TISSXmlBuilder, proc: ProcedimentoRealizado, sequencial: int) -> None:
    with builder.block("procedimentoRealizado"):
        builder.element("sequencialItem", sequencial)
        builder.element("dataRealizacao", format_date(proc.data_realizacao) if proc.data_realizacao else None)
        if proc.hora_inicial:
            builder.element("horaInicial", format_time(proc.hora_inicial))
        if proc.hora_final:
            builder.element("horaFinal", format_time(proc.hora_final))
        builder.element("codigoTabela", proc.codigo_tabela)
        builder.element("codigoProcedimento", pad_string(proc.codigo_procedimento, PAD_CODIGO_PROCEDIMENTO))
        builder.element("descricaoProcedimento", proc.descricao_procedimento)
        builder.element("quantidadeRealizada", proc.quantidade_realizada)
        builder.element("valorUnitario", format_currency(proc.valor_unitario))
        builder.element("valorTotal", format_currency(calculate_procedimento_total(proc)))
        builder.element("viaAcesso", proc.via_acesso)
        builder.element("tecnicaUtilizada", proc.tecnica_utilizada)


def _write_valor_total(builder: TISSXmlBuilder, guia: GuiaSADT) -> None:
    totais = _totais(guia)
    with builder.block("valorTotal"):
        builder.element("valorProcedimentos", format_currency(totais.valor_total_procedimentos))
        for tag, value in (
            ("valorTaxasAlugueis", guia.valor_total_taxas),
            ("valorMateriais", guia.valor_total_materiais),
            ("valorMedicamentos", guia.valor_total_medicamentos),
            ("valorOPME", guia.valor_total_opme),
        ):
            if value is not None and value > 0:
                builder.element(tag, format_currency(value))
        builder.element("valorTotalGeral", format_currency(totais.valor_total_geral))


def write_guia_sadt(builder: TISSXmlBuilder, guia: GuiaSADT) -> None:
    with builder.block("guiaSP-SADT"):
        with builder.block("cabecalhoGuia"):
            builder.element("registroANS", pad_string(guia.registro_ans, PAD_REGISTRO_ANS))
            builder.element("numeroGuiaPrestador", guia.numero_guia_prestador)
            builder.element("numeroGuiaPrincipal", guia.numero_guia_principal)
            if guia.data_autorizacao:
                builder.element("dataAutorizacao", format_date(guia.data_autorizacao))
            builder.element("senha", guia.senha)
            if guia.data_validade_senha:
                builder.element("dataValidadeSenha", format_date(guia.data_validade_senha))
            builder.element("numeroGuiaOperadora", guia.numero_guia_operadora)

        write_beneficiario(builder, guia.dados_beneficiario)

        with builder.block("dadosSolicitante"):
            write_contratado(builder, guia.contratado_solicitante, "contratadoSolicitante")
            write_profissional(builder, guia.profissional_solicitante, "profissionalSolicitante")

        with builder.block("dadosExecutante"):
            write_contratado(builder, guia.contratado_executante, "contratadoExecutante")
            write_profissional(builder, guia.profissional_executante, "profissionalExecutante")

        with builder.block("dadosSolicitacao"):
            builder.element("caraterAtendimento", guia.carater_atendimento)
            builder.element("dataSolicitacao", format_date(guia.data_solicitacao) if guia.data_solicitacao else None)
            builder.element("indicacaoClinica", guia.indicacao_clinica)

        with builder.block("procedimentosRealizados"):
            for sequencial, proc in enumerate(guia.procedimentos_realizados, start=1):
                _write_procedimento(builder, proc, sequencial)

        _write_valor_total(builder, guia)
        builder.element("observacao", guia.observacao)


def generate_xml_sadt(
    guia: Union[GuiaSADT, dict],
    include_declaration: bool = True,
    pretty_print: bool = True,
    timestamp: Optional[datetime] = None,
    sequencial: str = "1",
    numero_lote: str = "1",
) -> str:
    """
    Generate a complete TISS message carrying a single Guia SP/SADT.

    Deterministic for a fixed ``timestamp``/``sequencial``; the epilogue hash
    is the uppercase SHA-1 of everything before ``<ans:epilogo>``.
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
                write_guia_sadt(builder, guia)
    xml, _ = builder.finish_with_epilogue()
    return xml


def generate_guia_sadt_element(guia: Union[GuiaSADT, dict], level: int = 0, pretty_print: bool = True) -> str:
    """Only the ``guiaSP-SADT`` element, indented for ``level``, for embedding in a lote."""
    builder = TISSXmlBuilder(pretty_print=pretty_print, level=level)
    write_guia_sadt(builder, _as_guia(guia))
    return builder.getvalue()


def _validate_participante(guia: GuiaSADT, papel: str, errors: List[str]) -> None:
    contratado = getattr(guia, f"contratado_{papel}")
    profissional = getattr(guia, f"profissional_{papel}")
    if not contratado.codigo_prestador_na_operadora:
        errors.append(f"Código do prestador {papel} é obrigatório")
    if not profissional.conselho_profissional:
        errors.append(f"Conselho profissional do {papel} é obrigatório")
    if not profissional.numero_conselho_profissional:
        errors.append(f"Número no conselho do {papel} é obrigatório")


def validate_guia_sadt(guia: Union[GuiaSADT, dict]) -> List[str]:
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

    _validate_participante(guia, "solicitante", errors)
    _validate_participante(guia, "executante", errors)

    if not guia.carater_atendimento:
        errors.append("Caráter do atendimento é obrigatório")
    if not guia.data_solicitacao:
        errors.append("Data da solicitação é obrigatória")
    if not guia.indicacao_clinica:
        errors.append("Indicação clínica é obrigatória")

    if not guia.procedimentos_realizados:
        errors.append("Pelo menos um procedimento é obrigatório")
    for index, proc in enumerate(guia.procedimentos_realizados, start=1):
        prefix = f"Procedimento {index}"
        if not proc.data_realizacao:
            errors.append(f"{prefix}: data de realização é obrigatória")
        if not proc.codigo_procedimento:
            errors.append(f"{prefix}: código do procedimento é obrigatório")
        if not proc.descricao_procedimento:
            errors.append(f"{prefix}: descrição é obrigatória")
        if not proc.quantidade_realizada or proc.quantidade_realizada <= 0:
            errors.append(f"{prefix}: quantidade deve ser maior que zero")
        if proc.valor_unitario is None or proc.valor_unitario < 0:
            errors.append(f"{prefix}: valor unitário não pode ser negativo")

    if guia.valor_total_geral is None or guia.valor_total_geral < 0:
        errors.append("Valor total geral é obrigatório e não pode ser negativo")

    return errors

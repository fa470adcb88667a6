"""
TISS Guide Schemas
Payloads used by the XML generators (Guia de Consulta and Guia SP/SADT).

Every field has a default so a partially filled guide can be built and run
through the validators, which report everything that is missing at once.
"""
from typing import List, Optional, Union
from datetime import date, datetime, time
from decimal import Decimal
from pydantic import BaseModel, Field

DateValue = Optional[Union[date, datetime, str]]
TimeValue = Optional[Union[time, str]]


class DadosBeneficiario(BaseModel):
    numero_carteira: str = ""
    validade_carteira: DateValue = None
    nome_beneficiario: str = ""
    cns: Optional[str] = None


class DadosContratado(BaseModel):
    codigo_prestador_na_operadora: str = ""
    nome_contratado: Optional[str] = None
    cnes: Optional[str] = None


class DadosProfissional(BaseModel):
    nome_profissional: Optional[str] = None
    conselho_profissional: str = ""
    numero_conselho_profissional: str = ""
    uf: str = ""
    cbo: Optional[str] = None


class ProcedimentoRealizado(BaseModel):
    """Procedimento executado numa guia SP/SADT"""
    data_realizacao: DateValue = None
    hora_inicial: TimeValue = None
    hora_final: TimeValue = None
    codigo_tabela: str = "22"  # TUSS
    codigo_procedimento: str = ""
    descricao_procedimento: str = ""
    quantidade_realizada: int = 0
    valor_unitario: Optional[Decimal] = None
    # Derived from quantidade_realizada x valor_unitario when omitted
    valor_total: Optional[Decimal] = None
    via_acesso: Optional[str] = None
    tecnica_utilizada: Optional[str] = None


class GuiaConsulta(BaseModel):
    """Guia de Consulta"""
    registro_ans: str = ""
    numero_guia_prestador: str = ""
    numero_guia_operadora: Optional[str] = None
    data_autorizacao: DateValue = None
    senha: Optional[str] = None
    data_validade_senha: DateValue = None

    dados_beneficiario: DadosBeneficiario = Field(default_factory=DadosBeneficiario)
    contratado_solicitante: DadosContratado = Field(default_factory=DadosContratado)
    profissional_solicitante: DadosProfissional = Field(default_factory=DadosProfissional)

    tipo_consulta: str = ""  # 1 primeira, 2 seguimento, 3 pré-natal, 4 por encaminhamento
    indicacao_clinica: Optional[str] = None
    data_atendimento: DateValue = None
    codigo_tabela: str = ""
    codigo_procedimento: str = ""
    valor_procedimento: Optional[Decimal] = None
    observacao: Optional[str] = None


class GuiaSADT(BaseModel):
    """Guia SP/SADT"""
    registro_ans: str = ""
    numero_guia_prestador: str = ""
    numero_guia_principal: Optional[str] = None
    data_autorizacao: DateValue = None
    senha: Optional[str] = None
    data_validade_senha: DateValue = None
    numero_guia_operadora: Optional[str] = None

    dados_beneficiario: DadosBeneficiario = Field(default_factory=DadosBeneficiario)
    contratado_solicitante: DadosContratado = Field(default_factory=DadosContratado)
    profissional_solicitante: DadosProfissional = Field(default_factory=DadosProfissional)
    contratado_executante: DadosContratado = Field(default_factory=DadosContratado)
    profissional_executante: DadosProfissional = Field(default_factory=DadosProfissional)

    carater_atendimento: str = ""  # 1 eletivo, 2 urgência/emergência
    data_solicitacao: DateValue = None
    indicacao_clinica: str = ""

    procedimentos_realizados: List[ProcedimentoRealizado] = Field(default_factory=list)

    valor_total_procedimentos: Optional[Decimal] = None
    valor_total_taxas: Optional[Decimal] = None
    valor_total_materiais: Optional[Decimal] = None
    valor_total_medicamentos: Optional[Decimal] = None
    valor_total_opme: Optional[Decimal] = None
    valor_total_geral: Optional[Decimal] = None

    observacao: Optional[str] = None


class TotaisSADT(BaseModel):
    valor_total_procedimentos: Decimal
    valor_total_geral: Decimal

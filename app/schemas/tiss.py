"""
TISS Pipeline Schemas
Requests and responses for lotes, envio, recursos, certificados e demonstrativos.

Service methods never raise for expected failures; they return one of these
responses with ``success=False`` and a message in Portuguese.
"""
from typing import Dict, List, Literal, Optional
from datetime import date, datetime
from decimal import Decimal
from pydantic import BaseModel, Field

from app.models.tiss.batch import LoteStatus


class TISSOperationResponse(BaseModel):
    """Base result of every pipeline operation"""
    success: bool
    error: Optional[str] = None
    error_code: Optional[str] = None


# Lotes

class CreateLoteRequest(BaseModel):
    operadora_id: str = Field(..., description="Registro ANS da operadora")
    guia_ids: List[int]


class CreateLoteResponse(TISSOperationResponse):
    lote_id: Optional[int] = None
    numero_lote: Optional[str] = None
    quantidade_guias: Optional[int] = None
    valor_total: Optional[Decimal] = None


class LoteXmlResponse(TISSOperationResponse):
    lote_id: Optional[int] = None
    xml_hash: Optional[str] = None


class UpdateLoteStatusRequest(BaseModel):
    status: str
    error_message: Optional[str] = None


class LoteResponse(BaseModel):
    id: int
    clinic_id: int
    operadora_id: str
    numero_lote: str
    status: LoteStatus
    quantidade_guias: int
    valor_total: Decimal
    guia_ids: List[int]
    protocolo: Optional[str] = None
    xml_hash: Optional[str] = None
    error_message: Optional[str] = None
    erros: Optional[List[dict]] = None
    data_geracao: date
    data_envio: Optional[datetime] = None

    class Config:
        from_attributes = True


# WebService / envio

class WebServiceConfig(BaseModel):
    """WebService da operadora, com as credenciais já decifradas"""
    url: str
    versao_tiss: str = "4.02.00"
    timeout: int = 30000  # ms
    auth_type: Literal["certificate", "basic", "token"] = "certificate"
    username: Optional[str] = None
    password: Optional[str] = Field(default=None, repr=False)
    token: Optional[str] = Field(default=None, repr=False)


class WebServiceErrorItem(BaseModel):
    codigo: Optional[str] = None
    mensagem: str


class WebServiceResponse(BaseModel):
    """Interpreted answer of the operadora"""
    success: bool
    protocolo: Optional[str] = None
    mensagem: Optional[str] = None
    erros: List[WebServiceErrorItem] = Field(default_factory=list)
    xml_resposta: Optional[str] = None
    http_status: Optional[int] = None


class SendLoteResponse(TISSOperationResponse):
    protocolo: Optional[str] = None
    mensagem: Optional[str] = None
    erros: List[WebServiceErrorItem] = Field(default_factory=list)


# Recursos de glosa

class ItemContestadoRequest(BaseModel):
    sequencial_item: int
    justificativa: str = Field(..., min_length=1)


class CreateRecursoRequest(BaseModel):
    glosa_id: int
    itens_contestados: List[ItemContestadoRequest] = Field(..., min_length=1)
    justificativa_geral: Optional[str] = None
    documentos_anexos: Optional[List[str]] = None


class CreateRecursoResponse(TISSOperationResponse):
    recurso_id: Optional[str] = None
    valor_contestado: Optional[Decimal] = None


class SendRecursoResponse(TISSOperationResponse):
    protocolo: Optional[str] = None


class RecursoStatusResponse(TISSOperationResponse):
    status: Optional[str] = None
    protocolo: Optional[str] = None
    data_envio: Optional[datetime] = None
    data_resposta: Optional[datetime] = None
    resposta_operadora: Optional[str] = None
    valor_recuperado: Optional[Decimal] = None
    error_message: Optional[str] = None


# Certificados

class CertificateInfo(BaseModel):
    subject: str
    cnpj: Optional[str] = None
    issuer: str
    serial_number: str
    valid_from: datetime
    valid_until: datetime
    tipo: Literal["A1", "A3"]
    days_until_expiry: int
    is_valid: bool


class CertificateUploadRequest(BaseModel):
    pfx_base64: str
    password: str = Field(..., repr=False)


class ValidateCertificateResponse(TISSOperationResponse):
    valid: bool = False
    info: Optional[CertificateInfo] = None


class StoreCertificateResponse(TISSOperationResponse):
    info: Optional[CertificateInfo] = None


# Demonstrativos

class DemonstrativoRequest(BaseModel):
    xml: str


class ProcessDemonstrativoResponse(TISSOperationResponse):
    guias_atualizadas: int = 0
    glosas_criadas: List[int] = Field(default_factory=list)
    status_lote: Optional[str] = None


# Painel de glosas

class GlosaMotivo(BaseModel):
    codigo: str
    descricao: str
    quantidade: int
    valor: Decimal


class GlosaStatsResponse(TISSOperationResponse):
    periodo: Optional[str] = None
    data_inicio: Optional[date] = None
    total_glosas: int = 0
    valor_total_glosado: Decimal = Decimal("0.00")
    valor_recuperado: Decimal = Decimal("0.00")
    taxa_recuperacao: Decimal = Decimal("0.00")
    glosas_por_status: Dict[str, int] = Field(default_factory=dict)
    principais_motivos: List[GlosaMotivo] = Field(default_factory=list)


class GlosaPrazo(BaseModel):
    glosa_id: int
    numero_guia_prestador: str
    operadora_id: str
    valor_glosado: Decimal
    prazo_recurso: date
    dias_restantes: int


class GlosaPrazosResponse(TISSOperationResponse):
    data_referencia: Optional[date] = None
    alertas: List[GlosaPrazo] = Field(default_factory=list)

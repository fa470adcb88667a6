"""
TISS Guia Model
Guias de consulta e SP/SADT faturadas para as operadoras
"""

from sqlalchemy import (
    Column, Integer, ForeignKey, String, Date, DateTime,
    Numeric, JSON, Index, Enum as SQLEnum
)
from sqlalchemy.sql import func
from database import Base
import enum


def enum_values(enum_cls):
    return [member.value for member in enum_cls]


class GuiaTipo(str, enum.Enum):
    """Tipo de guia TISS"""
    CONSULTA = "consulta"
    SADT = "sadt"


class GuiaStatus(str, enum.Enum):
    """Status da guia no ciclo de faturamento"""
    RASCUNHO = "rascunho"
    VALIDADA = "validada"
    ENVIADA = "enviada"
    EM_ANALISE = "em_analise"
    AUTORIZADA = "autorizada"
    NEGADA = "negada"
    GLOSADA_PARCIAL = "glosada_parcial"
    GLOSADA_TOTAL = "glosada_total"
    PAGA = "paga"
    RECURSO = "recurso"


class TISSGuia(Base):
    """
    Guia TISS
    Uma guia só pode pertencer a um lote por vez (lote_id); o conteúdo completo
    usado na geração do XML fica em ``dados``.
    """
    __tablename__ = "tiss_guias"

    id = Column(Integer, primary_key=True, index=True)
    clinic_id = Column(Integer, nullable=False, index=True)

    tipo = Column(SQLEnum(GuiaTipo, native_enum=False, values_callable=enum_values, length=20), nullable=False)
    numero_guia_prestador = Column(String(20), nullable=False)
    numero_guia_operadora = Column(String(20), nullable=True)
    registro_ans = Column(String(6), nullable=False, index=True)
    codigo_prestador = Column(String(20), nullable=True)

    # Beneficiário (desnormalizado para listagens)
    numero_carteira = Column(String(20), nullable=True)
    nome_beneficiario = Column(String(70), nullable=True)

    data_atendimento = Column(Date, nullable=True)
    valor_total = Column(Numeric(12, 2), nullable=False, default=0)
    valor_aprovado = Column(Numeric(12, 2), nullable=True)
    valor_glosado = Column(Numeric(12, 2), nullable=True)

    status = Column(
        SQLEnum(GuiaStatus, native_enum=False, values_callable=enum_values, length=20),
        nullable=False, default=GuiaStatus.RASCUNHO, index=True
    )

    # Payload completo (GuiaConsulta / GuiaSADT serializados)
    dados = Column(JSON, nullable=False, default=dict)

    # Reserva pelo lote
    lote_id = Column(Integer, ForeignKey("tiss_lotes.id", ondelete="SET NULL"), nullable=True, index=True)
    numero_lote = Column(String(20), nullable=True)

    protocolo_operadora = Column(String(50), nullable=True)
    data_envio = Column(DateTime(timezone=True), nullable=True)

    version_id = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    __mapper_args__ = {"version_id_col": version_id}

    __table_args__ = (
        Index('ix_tiss_guias_clinic_status', 'clinic_id', 'status'),
    )

    def __repr__(self):
        return f"<TISSGuia(id={self.id}, numero='{self.numero_guia_prestador}', status='{self.status}')>"

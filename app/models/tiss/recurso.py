"""
TISS Recurso de Glosa Model
"""

from sqlalchemy import (
    Column, Integer, ForeignKey, String, DateTime,
    Numeric, Text, JSON, Index, Enum as SQLEnum
)
from sqlalchemy.sql import func
from database import Base
from app.models.tiss.guia import enum_values
import enum


class RecursoStatus(str, enum.Enum):
    """Status do recurso de glosa"""
    RASCUNHO = "rascunho"
    ENVIADO = "enviado"
    EM_ANALISE = "em_analise"
    ACEITO = "aceito"
    NEGADO = "negado"
    ACEITO_PARCIAL = "aceito_parcial"


class TISSRecurso(Base):
    """
    Recurso de glosa.
    ``itens_contestados``: [{sequencial_item, codigo_procedimento, valor_original,
    valor_glosado, codigo_glosa, justificativa}]
    """
    __tablename__ = "tiss_recursos"

    id = Column(String(32), primary_key=True)  # REC + timestamp base36 + aleatório
    clinic_id = Column(Integer, nullable=False, index=True)

    glosa_id = Column(Integer, ForeignKey("tiss_glosas.id", ondelete="CASCADE"), nullable=False, index=True)
    guia_id = Column(Integer, ForeignKey("tiss_guias.id", ondelete="SET NULL"), nullable=True)
    operadora_id = Column(String(6), nullable=False)
    numero_guia_prestador = Column(String(20), nullable=False)

    itens_contestados = Column(JSON, nullable=False)
    valor_contestado = Column(Numeric(12, 2), nullable=False)
    justificativa_geral = Column(Text, nullable=True)
    documentos_anexos = Column(JSON, nullable=True)

    status = Column(
        SQLEnum(RecursoStatus, native_enum=False, values_callable=enum_values, length=20),
        nullable=False, default=RecursoStatus.RASCUNHO, index=True
    )
    protocolo = Column(String(50), nullable=True)
    xml_content = Column(Text, nullable=True)
    data_envio = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)

    # Resposta da operadora
    resposta_operadora = Column(Text, nullable=True)
    data_resposta = Column(DateTime(timezone=True), nullable=True)
    valor_recuperado = Column(Numeric(12, 2), nullable=True)

    created_by = Column(String(128), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    __table_args__ = (
        Index('ix_tiss_recursos_clinic_status', 'clinic_id', 'status'),
    )

    def __repr__(self):
        return f"<TISSRecurso(id='{self.id}', status='{self.status}')>"

"""
TISS Lote Model
Lote de guias enviado a uma operadora
"""

from sqlalchemy import Column, Integer, String, Date, Numeric, Text, DateTime, JSON, Index, UniqueConstraint, Enum as SQLEnum
from sqlalchemy.sql import func
from database import Base
from app.models.tiss.guia import enum_values
import enum


class LoteStatus(str, enum.Enum):
    """Status do lote"""
    RASCUNHO = "rascunho"
    PRONTO = "pronto"  # XML gerado
    ENVIANDO = "enviando"
    ENVIADO = "enviado"
    PROCESSANDO = "processando"
    PROCESSADO = "processado"
    PARCIAL = "parcial"
    ERRO = "erro"


class TISSLote(Base):
    """TISS Lote - Lote de Guias"""
    __tablename__ = "tiss_lotes"

    id = Column(Integer, primary_key=True, index=True)
    clinic_id = Column(Integer, nullable=False, index=True)

    # Operadora (registro ANS)
    operadora_id = Column(String(6), nullable=False, index=True)
    registro_ans = Column(String(6), nullable=False)
    nome_operadora = Column(String(255), nullable=True)

    # Identificação: YYYYMMDD-NNNN, sequência diária por clínica
    numero_lote = Column(String(20), nullable=False, index=True)
    data_geracao = Column(Date, nullable=False, index=True)

    guia_ids = Column(JSON, nullable=False)
    quantidade_guias = Column(Integer, nullable=False)
    valor_total = Column(Numeric(12, 2), nullable=False)

    status = Column(
        SQLEnum(LoteStatus, native_enum=False, values_callable=enum_values, length=20),
        nullable=False, default=LoteStatus.RASCUNHO, index=True
    )

    # Conteúdo
    xml_content = Column(Text, nullable=True)
    xml_hash = Column(String(64), nullable=True)
    xml_resposta = Column(Text, nullable=True)

    # Retorno da operadora
    protocolo = Column(String(50), nullable=True)
    error_message = Column(Text, nullable=True)
    erros = Column(JSON, nullable=True)  # [{"codigo": ..., "mensagem": ...}]

    data_envio = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(String(128), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('clinic_id', 'numero_lote', name='uq_tiss_lotes_clinic_numero'),
        Index('ix_tiss_lotes_clinic_status', 'clinic_id', 'status'),
        Index('ix_tiss_lotes_clinic_data', 'clinic_id', 'data_geracao'),
    )

    def __repr__(self):
        return f"<TISSLote(id={self.id}, numero_lote='{self.numero_lote}', status='{self.status}')>"

"""
TISS Glosa Model
Glosas recebidas nos demonstrativos de análise de conta
"""

from sqlalchemy import (
    Column, Integer, ForeignKey, String, Date, DateTime,
    Numeric, Text, JSON, Index, Enum as SQLEnum
)
from sqlalchemy.sql import func
from database import Base
from app.models.tiss.guia import enum_values
import enum


class GlosaStatus(str, enum.Enum):
    """Status da glosa"""
    PENDENTE = "pendente"
    EM_RECURSO = "em_recurso"
    RESOLVIDA = "resolvida"


class TISSGlosa(Base):
    """
    Glosa de uma guia.
    ``itens_glosados``: [{sequencial_item, codigo_procedimento, descricao_procedimento,
    valor_original, valor_glosado, codigo_glosa, descricao_glosa}]
    """
    __tablename__ = "tiss_glosas"

    id = Column(Integer, primary_key=True, index=True)
    clinic_id = Column(Integer, nullable=False, index=True)

    guia_id = Column(Integer, ForeignKey("tiss_guias.id", ondelete="SET NULL"), nullable=True, index=True)
    lote_id = Column(Integer, ForeignKey("tiss_lotes.id", ondelete="SET NULL"), nullable=True, index=True)
    operadora_id = Column(String(6), nullable=False)
    numero_guia_prestador = Column(String(20), nullable=False)
    tipo_guia = Column(String(20), nullable=True)

    data_recebimento = Column(Date, nullable=False)
    valor_original = Column(Numeric(12, 2), nullable=False, default=0)
    valor_glosado = Column(Numeric(12, 2), nullable=False, default=0)
    valor_aprovado = Column(Numeric(12, 2), nullable=False, default=0)

    itens_glosados = Column(JSON, nullable=False, default=list)
    observacao_operadora = Column(Text, nullable=True)

    prazo_recurso = Column(Date, nullable=False)
    status = Column(
        SQLEnum(GlosaStatus, native_enum=False, values_callable=enum_values, length=20),
        nullable=False, default=GlosaStatus.PENDENTE, index=True
    )
    recurso_id = Column(String(32), nullable=True)

    version_id = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    __mapper_args__ = {"version_id_col": version_id}

    __table_args__ = (
        Index('ix_tiss_glosas_clinic_status', 'clinic_id', 'status'),
    )

    def __repr__(self):
        return f"<TISSGlosa(id={self.id}, guia='{self.numero_guia_prestador}', status='{self.status}')>"

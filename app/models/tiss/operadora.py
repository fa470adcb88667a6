"""
TISS Operadora Model
Operadoras de saúde conveniadas e a configuração do WebService de cada uma
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, Boolean, UniqueConstraint
from sqlalchemy.sql import func
from database import Base


class TISSOperadora(Base):
    """
    Operadora conveniada à clínica.

    ``webservice_config`` guarda url, versao_tiss, timeout (ms), auth_type e
    username. A senha (basic) ou o token (bearer) ficam apenas em
    ``webservice_secret_encrypted``.
    """
    __tablename__ = "tiss_operadoras"

    id = Column(Integer, primary_key=True, index=True)
    clinic_id = Column(Integer, nullable=False, index=True)

    registro_ans = Column(String(6), nullable=False, index=True)
    nome = Column(String(255), nullable=False)
    cnpj = Column(String(14), nullable=True)
    codigo_prestador = Column(String(20), nullable=False)  # Código da clínica na operadora

    webservice_config = Column(JSON, nullable=True)
    webservice_secret_encrypted = Column(Text, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('clinic_id', 'registro_ans', name='uq_tiss_operadoras_clinic_ans'),
    )

    def __repr__(self):
        return f"<TISSOperadora(id={self.id}, registro_ans='{self.registro_ans}', nome='{self.nome}')>"

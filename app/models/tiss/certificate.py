"""
TISS Certificate Model
Certificado digital ICP-Brasil (A1) da clínica, armazenado criptografado
"""

from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.sql import func
from database import Base


class TISSCertificate(Base):
    """Certificado digital usado para assinar o XML e para mTLS"""
    __tablename__ = "tiss_certificates"

    id = Column(Integer, primary_key=True, index=True)
    clinic_id = Column(Integer, nullable=False, unique=True, index=True)

    # Material sensível (Fernet)
    encrypted_pfx = Column(Text, nullable=False)
    encrypted_password = Column(Text, nullable=False)

    # Informações públicas do certificado
    subject = Column(String(500), nullable=False)
    cnpj = Column(String(14), nullable=True)
    issuer = Column(String(500), nullable=False)
    serial_number = Column(String(64), nullable=False)
    valid_from = Column(DateTime(timezone=True), nullable=False)
    valid_until = Column(DateTime(timezone=True), nullable=False)
    tipo = Column(String(2), nullable=False, default="A1")  # A1 | A3

    uploaded_by = Column(String(128), nullable=True)
    uploaded_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<TISSCertificate(clinic_id={self.clinic_id}, serial='{self.serial_number}')>"

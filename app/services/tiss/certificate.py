"""
Certificate Provider
Stores the clinic's ICP-Brasil A1 certificate encrypted and hands it out, decrypted,
for the duration of a single signing or transport call.
"""

import base64
import binascii
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Tuple

from cryptography import x509
from cryptography.fernet import InvalidToken
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from app.models.tiss.certificate import TISSCertificate
from app.schemas.tiss import (
    CertificateInfo,
    StoreCertificateResponse,
    TISSOperationResponse,
    ValidateCertificateResponse,
)
from app.services.tiss.exceptions import CertificateError
from app.services.tiss.security import TISSSecurityService, get_security_service

logger = logging.getLogger(__name__)

# ICP-Brasil: CNPJ da pessoa jurídica titular
OID_ICP_BRASIL_CNPJ = "2.16.76.1.3.3"

# Certificates valid for longer than this are hardware tokens (A3)
A3_MIN_VALIDITY_DAYS = 400

_CNPJ_IN_TEXT = re.compile(r"\d{2}\.?\d{3}\.?\d{3}/?\d{4}-?\d{2}")
_CNPJ_DIGITS = re.compile(rb"\d{14}")


@dataclass(frozen=True)
class SigningCertificate:
    """Decrypted certificate material. Do not persist or log."""
    pfx: bytes = field(repr=False)
    password: str = field(repr=False)
    info: CertificateInfo


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def load_pkcs12(pfx: bytes, password: str):
    """Returns ``(private_key, certificate, additional_certificates)``."""
    try:
        key, cert, extra = pkcs12.load_key_and_certificates(pfx, password.encode("utf-8") if password else None)
    except ValueError as e:
        raise CertificateError("Certificado inválido ou senha incorreta") from e
    if cert is None:
        raise CertificateError("Nenhum certificado encontrado no arquivo PFX")
    if key is None:
        raise CertificateError("Chave privada não encontrada no certificado")
    return key, cert, extra or []


def _name_value(name: x509.Name, oid) -> Optional[str]:
    attributes = name.get_attributes_for_oid(oid)
    return str(attributes[0].value) if attributes else None


def extract_cnpj(cert: x509.Certificate) -> Optional[str]:
    """CNPJ (14 digits) from the ICP-Brasil OID, the subject serial number or the CN."""
    for attribute in cert.subject:
        if attribute.oid.dotted_string == OID_ICP_BRASIL_CNPJ:
            digits = re.sub(r"\D", "", str(attribute.value))
            if len(digits) == 14:
                return digits

    try:
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    except x509.ExtensionNotFound:
        san = None
    if san is not None:
        for other_name in san.get_values_for_type(x509.OtherName):
            if other_name.type_id.dotted_string == OID_ICP_BRASIL_CNPJ:
                match = _CNPJ_DIGITS.search(other_name.value)
                if match:
                    return match.group(0).decode("ascii")

    serial = _name_value(cert.subject, NameOID.SERIAL_NUMBER)
    if serial:
        match = re.search(r"\d{14}", serial)
        if match:
            return match.group(0)

    common_name = _name_value(cert.subject, NameOID.COMMON_NAME)
    if common_name:
        match = _CNPJ_IN_TEXT.search(common_name)
        if match:
            return re.sub(r"\D", "", match.group(0))
    return None


def determine_certificate_type(cert: x509.Certificate) -> str:
    validity = cert.not_valid_after_utc - cert.not_valid_before_utc
    return "A3" if validity.days > A3_MIN_VALIDITY_DAYS else "A1"


def extract_certificate_info(pfx: bytes, password: str, now: Optional[datetime] = None) -> CertificateInfo:
    """Read the public details of a PKCS#12 certificate. Requires an e-CNPJ."""
    _, cert, _ = load_pkcs12(pfx, password)
    now = now or datetime.now(timezone.utc)

    subject = _name_value(cert.subject, NameOID.COMMON_NAME) or _name_value(cert.subject, NameOID.ORGANIZATION_NAME) or "Unknown"
    issuer = _name_value(cert.issuer, NameOID.COMMON_NAME) or _name_value(cert.issuer, NameOID.ORGANIZATION_NAME) or "Unknown"

    cnpj = extract_cnpj(cert)
    if not cnpj:
        raise CertificateError("CNPJ não encontrado no certificado. Verifique se é um certificado e-CNPJ.")

    valid_until = cert.not_valid_after_utc
    days_until_expiry = (valid_until - now).days
    return CertificateInfo(
        subject=subject[:200],
        cnpj=cnpj,
        issuer=issuer[:100],
        serial_number=format(cert.serial_number, "X"),
        valid_from=cert.not_valid_before_utc,
        valid_until=valid_until,
        tipo=determine_certificate_type(cert),
        days_until_expiry=days_until_expiry,
        is_valid=cert.not_valid_before_utc <= now <= valid_until,
    )


def _decode_pfx(pfx_base64: str) -> bytes:
    try:
        return base64.b64decode(pfx_base64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CertificateError("Arquivo de certificado inválido. Envie um arquivo .pfx ou .p12 válido.") from e


class CertificateProvider:
    """Clinic certificate lifecycle backed by ``tiss_certificates``"""

    def __init__(self, db: AsyncSession, security: Optional[TISSSecurityService] = None):
        self.db = db
        self.security = security or get_security_service()

    def _log_ref(self, pfx: bytes) -> str:
        return self.security.calculate_integrity_hash(pfx)[:12]

    def _check_usable(self, pfx_base64: str, password: str) -> Tuple[bytes, CertificateInfo]:
        if not pfx_base64 or not password:
            raise CertificateError("Certificado e senha são obrigatórios")
        pfx = _decode_pfx(pfx_base64)
        info = extract_certificate_info(pfx, password)
        if info.days_until_expiry < 0:
            raise CertificateError(f"Certificado expirado há {abs(info.days_until_expiry)} dias")
        if info.days_until_expiry < settings.TISS_CERT_EXPIRY_WARNING_DAYS:
            logger.warning(f"Certificate {self._log_ref(pfx)} expires in {info.days_until_expiry} days")
        return pfx, info

    async def validate_certificate(self, pfx_base64: str, password: str) -> ValidateCertificateResponse:
        try:
            pfx, info = self._check_usable(pfx_base64, password)
        except CertificateError as e:
            logger.info(f"Certificate validation failed: {e.message}")
            return ValidateCertificateResponse(success=False, valid=False, error=e.message, error_code=e.code)
        return ValidateCertificateResponse(success=True, valid=True, info=info)

    async def store_certificate(
        self,
        clinic_id: int,
        pfx_base64: str,
        password: str,
        uploaded_by: Optional[str] = None,
    ) -> StoreCertificateResponse:
        """Validate and replace the clinic's certificate. Only ciphertext is written."""
        try:
            pfx, info = self._check_usable(pfx_base64, password)
        except CertificateError as e:
            return StoreCertificateResponse(success=False, error=e.message, error_code=e.code)

        result = await self.db.execute(select(TISSCertificate).where(TISSCertificate.clinic_id == clinic_id))
        stored = result.scalar_one_or_none()
        if stored is None:
            stored = TISSCertificate(clinic_id=clinic_id)
            self.db.add(stored)

        stored.encrypted_pfx = self.security.encrypt_data(pfx).decode("ascii")
        stored.encrypted_password = self.security.encrypt_text(password)
        stored.subject = info.subject
        stored.cnpj = info.cnpj
        stored.issuer = info.issuer
        stored.serial_number = info.serial_number
        stored.valid_from = info.valid_from
        stored.valid_until = info.valid_until
        stored.tipo = info.tipo
        stored.uploaded_by = uploaded_by
        stored.uploaded_at = datetime.now(timezone.utc)
        await self.db.commit()

        logger.info(f"Certificate {self._log_ref(pfx)} stored for clinic {clinic_id}, valid until {info.valid_until.date()}")
        return StoreCertificateResponse(success=True, info=info)

    async def delete_certificate(self, clinic_id: int) -> TISSOperationResponse:
        result = await self.db.execute(select(TISSCertificate).where(TISSCertificate.clinic_id == clinic_id))
        stored = result.scalar_one_or_none()
        if stored is None:
            return TISSOperationResponse(
                success=False, error="Nenhum certificado configurado para esta clínica", error_code=CertificateError.code
            )
        await self.db.delete(stored)
        await self.db.commit()
        logger.info(f"Certificate deleted for clinic {clinic_id}")
        return TISSOperationResponse(success=True)

    async def get_certificate_for_signing(self, clinic_id: int) -> SigningCertificate:
        """
        Decrypt the clinic's certificate.

        Raises:
            CertificateError: none configured, expired, or undecryptable.
        """
        result = await self.db.execute(select(TISSCertificate).where(TISSCertificate.clinic_id == clinic_id))
        stored = result.scalar_one_or_none()
        if stored is None:
            raise CertificateError("Nenhum certificado digital configurado para esta clínica")

        now = datetime.now(timezone.utc)
        if _as_utc(stored.valid_until) < now:
            raise CertificateError("Certificado digital expirado. Envie um novo certificado.")

        try:
            pfx = self.security.decrypt_data(stored.encrypted_pfx.encode("ascii"))
            password = self.security.decrypt_text(stored.encrypted_password)
        except InvalidToken as e:
            raise CertificateError("Não foi possível decifrar o certificado armazenado") from e

        days_until_expiry = (_as_utc(stored.valid_until) - now).days
        if days_until_expiry < settings.TISS_CERT_EXPIRY_WARNING_DAYS:
            logger.warning(f"Certificate for clinic {clinic_id} expires in {days_until_expiry} days")

        info = CertificateInfo(
            subject=stored.subject,
            cnpj=stored.cnpj,
            issuer=stored.issuer,
            serial_number=stored.serial_number,
            valid_from=_as_utc(stored.valid_from),
            valid_until=_as_utc(stored.valid_until),
            tipo=stored.tipo,
            days_until_expiry=days_until_expiry,
            is_valid=True,
        )
        return SigningCertificate(pfx=pfx, password=password, info=info)

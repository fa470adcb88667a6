"""
Certificate provider tests
"""
import base64
import logging
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from app.models.tiss import TISSCertificate
from app.services.tiss.certificate import CertificateProvider, extract_certificate_info
from app.services.tiss.exceptions import CertificateError
from tests.factories import CERT_PASSWORD, CLINIC_ID, CNPJ, OTHER_CLINIC_ID, build_pfx


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


@pytest.mark.unit
def test_extract_certificate_info(pfx_bytes):
    info = extract_certificate_info(pfx_bytes, CERT_PASSWORD)
    assert info.cnpj == CNPJ
    assert info.tipo == "A1"
    assert info.is_valid
    assert 360 <= info.days_until_expiry <= 365
    assert info.subject.startswith("CLINICA TESTE LTDA")


@pytest.mark.unit
def test_certificate_without_cnpj_is_rejected():
    pfx = build_pfx(common_name="Pessoa Fisica Sem CNPJ")
    with pytest.raises(CertificateError) as exc_info:
        extract_certificate_info(pfx, CERT_PASSWORD)
    assert "CNPJ" in exc_info.value.message


@pytest.mark.integration
async def test_validate_certificate(db_session, security, pfx_base64):
    provider = CertificateProvider(db_session, security)

    ok = await provider.validate_certificate(pfx_base64, CERT_PASSWORD)
    assert ok.success and ok.valid
    assert ok.info.cnpj == CNPJ

    wrong = await provider.validate_certificate(pfx_base64, "senha-errada")
    assert not wrong.success
    assert wrong.error == "Certificado inválido ou senha incorreta"
    assert wrong.error_code == "CERTIFICATE_ERROR"

    garbage = await provider.validate_certificate("não é base64!", CERT_PASSWORD)
    assert not garbage.success

    missing = await provider.validate_certificate("", "")
    assert missing.error == "Certificado e senha são obrigatórios"


@pytest.mark.integration
async def test_expired_certificate_is_rejected(db_session, security):
    now = datetime.now(timezone.utc)
    expired = build_pfx(not_before=now - timedelta(days=400), not_after=now - timedelta(days=10))
    result = await CertificateProvider(db_session, security).validate_certificate(b64(expired), CERT_PASSWORD)
    assert not result.success
    assert result.error.startswith("Certificado expirado há")


@pytest.mark.integration
async def test_store_certificate_encrypts_material(db_session, security, pfx_bytes, stored_certificate):
    result = await db_session.execute(select(TISSCertificate).where(TISSCertificate.clinic_id == CLINIC_ID))
    stored = result.scalar_one()

    assert stored.cnpj == CNPJ
    assert stored.uploaded_by == "user-1"
    assert CERT_PASSWORD not in stored.encrypted_password
    assert b64(pfx_bytes) not in stored.encrypted_pfx
    assert security.decrypt_data(stored.encrypted_pfx.encode("ascii")) == pfx_bytes
    assert security.decrypt_text(stored.encrypted_password) == CERT_PASSWORD


@pytest.mark.integration
async def test_store_certificate_replaces_previous(db_session, security, stored_certificate):
    replacement = build_pfx()
    result = await CertificateProvider(db_session, security).store_certificate(
        CLINIC_ID, b64(replacement), CERT_PASSWORD
    )
    assert result.success
    assert result.info.serial_number != stored_certificate.serial_number

    rows = await db_session.execute(select(TISSCertificate).where(TISSCertificate.clinic_id == CLINIC_ID))
    assert len(rows.scalars().all()) == 1


@pytest.mark.integration
async def test_get_certificate_for_signing(db_session, security, pfx_bytes, stored_certificate):
    certificate = await CertificateProvider(db_session, security).get_certificate_for_signing(CLINIC_ID)
    assert certificate.pfx == pfx_bytes
    assert certificate.password == CERT_PASSWORD
    assert certificate.info.cnpj == CNPJ
    # Secrets never show up in reprs
    assert CERT_PASSWORD not in repr(certificate)


@pytest.mark.integration
async def test_get_certificate_for_other_clinic_fails(db_session, security, stored_certificate):
    with pytest.raises(CertificateError) as exc_info:
        await CertificateProvider(db_session, security).get_certificate_for_signing(OTHER_CLINIC_ID)
    assert exc_info.value.message == "Nenhum certificado digital configurado para esta clínica"


@pytest.mark.integration
async def test_certificate_material_is_not_logged(db_session, security, pfx_base64, caplog):
    caplog.set_level(logging.DEBUG)
    provider = CertificateProvider(db_session, security)
    await provider.store_certificate(CLINIC_ID, pfx_base64, CERT_PASSWORD)
    await provider.get_certificate_for_signing(CLINIC_ID)

    assert CERT_PASSWORD not in caplog.text
    assert pfx_base64[:40] not in caplog.text


@pytest.mark.integration
async def test_delete_certificate(db_session, security, stored_certificate):
    provider = CertificateProvider(db_session, security)
    assert (await provider.delete_certificate(CLINIC_ID)).success

    again = await provider.delete_certificate(CLINIC_ID)
    assert not again.success
    assert again.error_code == "CERTIFICATE_ERROR"
    with pytest.raises(CertificateError):
        await provider.get_certificate_for_signing(CLINIC_ID)

"""
Pytest configuration and fixtures
"""
import os

from cryptography.fernet import Fernet

# Settings are read on import, so the test environment goes first
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENVIRONMENT"] = "test"
os.environ.setdefault("TISS_ENCRYPTION_KEY", Fernet.generate_key().decode())
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-jwt-signing-only")

import base64
from datetime import date
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base
from app.core.security import create_access_token
from app.models.tiss import GuiaStatus, GuiaTipo, TISSGuia, TISSOperadora
from app.services.tiss.certificate import CertificateProvider
from app.services.tiss.security import TISSSecurityService, get_security_service
from tests.factories import (
    CERT_PASSWORD,
    CLINIC_ID,
    REGISTRO_ANS,
    WEBSERVICE_URL,
    build_pfx,
    consulta_dados,
    sadt_dados,
)


# Test database URL (use in-memory SQLite for testing)
TEST_DATABASE_URL = os.getenv(
    "TEST_DATABASE_URL",
    "sqlite+aiosqlite:///:memory:"
)


@pytest.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create a test database session
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False} if "sqlite" in TEST_DATABASE_URL else {},
        poolclass=StaticPool if "sqlite" in TEST_DATABASE_URL else None,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session_maker = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session_maker() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def security() -> TISSSecurityService:
    """The same instance the services use by default"""
    return get_security_service()


@pytest.fixture(scope="session")
def pfx_bytes() -> bytes:
    return build_pfx()


@pytest.fixture
def pfx_base64(pfx_bytes: bytes) -> str:
    return base64.b64encode(pfx_bytes).decode("ascii")


@pytest.fixture
async def operadora(db_session: AsyncSession, security: TISSSecurityService) -> TISSOperadora:
    """Active operadora with a basic-auth WebService"""
    operadora = TISSOperadora(
        clinic_id=CLINIC_ID,
        registro_ans=REGISTRO_ANS,
        nome="Operadora Teste Saúde",
        codigo_prestador="99887766",
        webservice_config={
            "url": WEBSERVICE_URL,
            "auth_type": "basic",
            "username": "clinica",
            "timeout": 5000,
        },
        webservice_secret_encrypted=security.encrypt_text("senha-ws"),
        is_active=True,
    )
    db_session.add(operadora)
    await db_session.commit()
    return operadora


@pytest.fixture
def make_guia(db_session: AsyncSession):
    """Factory for stored guias"""

    async def _make(
        numero: str,
        tipo: GuiaTipo = GuiaTipo.CONSULTA,
        clinic_id: int = CLINIC_ID,
        registro_ans: str = REGISTRO_ANS,
        valor_total: str = "150.00",
        status: GuiaStatus = GuiaStatus.VALIDADA,
        dados: Optional[dict] = None,
    ) -> TISSGuia:
        if dados is None:
            dados = (
                sadt_dados(numero, registro_ans)
                if tipo == GuiaTipo.SADT
                else consulta_dados(numero, registro_ans, valor_total)
            )
        guia = TISSGuia(
            clinic_id=clinic_id,
            tipo=tipo,
            numero_guia_prestador=numero,
            registro_ans=registro_ans,
            codigo_prestador="99887766",
            numero_carteira="0001234500012345",
            nome_beneficiario="Maria da Silva",
            data_atendimento=date(2026, 10, 1),
            valor_total=Decimal(valor_total),
            status=status,
            dados=dados,
        )
        db_session.add(guia)
        await db_session.commit()
        return guia

    return _make


@pytest.fixture
async def stored_certificate(db_session: AsyncSession, security: TISSSecurityService, pfx_base64: str):
    """The clinic's certificate, stored encrypted"""
    result = await CertificateProvider(db_session, security).store_certificate(
        CLINIC_ID, pfx_base64, CERT_PASSWORD, uploaded_by="user-1"
    )
    assert result.success, result.error
    return result.info


@pytest.fixture
def test_token() -> str:
    """
    Create a test JWT token
    """
    return create_access_token(data={"sub": "user-1", "clinic_id": CLINIC_ID, "role": "admin"})


@pytest.fixture
def auth_headers(test_token: str) -> dict:
    """
    Create authorization headers for testing
    """
    return {"Authorization": f"Bearer {test_token}"}

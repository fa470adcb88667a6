"""
Test data builders shared by the test modules
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

CLINIC_ID = 1
OTHER_CLINIC_ID = 2
REGISTRO_ANS = "123456"
CNPJ = "12345678000195"
CERT_PASSWORD = "senha-do-certificado"
WEBSERVICE_URL = "https://ws.operadora.test/tiss/loteGuias"


def build_pfx(
    common_name: str = f"CLINICA TESTE LTDA:{CNPJ}",
    password: str = CERT_PASSWORD,
    not_before: Optional[datetime] = None,
    not_after: Optional[datetime] = None,
) -> bytes:
    """Self-signed RSA certificate packed as PKCS#12"""
    now = datetime.now(timezone.utc)
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([
        x509.NameAttribute(NameOID.COUNTRY_NAME, "BR"),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "ICP-Brasil Teste"),
        x509.NameAttribute(NameOID.COMMON_NAME, common_name),
    ])
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before or now - timedelta(days=1))
        .not_valid_after(not_after or now + timedelta(days=365))
        .sign(key, hashes.SHA256())
    )
    return pkcs12.serialize_key_and_certificates(
        b"clinica",
        key,
        cert,
        None,
        serialization.BestAvailableEncryption(password.encode()),
    )


def consulta_dados(numero: str, registro_ans: str = REGISTRO_ANS, valor: str = "150.00") -> dict:
    return {
        "registro_ans": registro_ans,
        "numero_guia_prestador": numero,
        "dados_beneficiario": {
            "numero_carteira": "0001234500012345",
            "nome_beneficiario": "Maria da Silva",
        },
        "contratado_solicitante": {
            "codigo_prestador_na_operadora": "99887766",
            "nome_contratado": "Clinica Teste",
        },
        "profissional_solicitante": {
            "nome_profissional": "Dr. Joao Souza",
            "conselho_profissional": "6",
            "numero_conselho_profissional": "123456",
            "uf": "35",
            "cbo": "225125",
        },
        "tipo_consulta": "1",
        "data_atendimento": "2026-10-01",
        "codigo_tabela": "22",
        "codigo_procedimento": "10101012",
        "valor_procedimento": valor,
    }


def sadt_dados(numero: str, registro_ans: str = REGISTRO_ANS) -> dict:
    participante = {
        "conselho_profissional": "6",
        "numero_conselho_profissional": "654321",
        "uf": "35",
        "nome_profissional": "Dra. Ana Lima",
    }
    return {
        "registro_ans": registro_ans,
        "numero_guia_prestador": numero,
        "dados_beneficiario": {
            "numero_carteira": "0001234500012345",
            "nome_beneficiario": "Maria da Silva",
        },
        "contratado_solicitante": {"codigo_prestador_na_operadora": "99887766"},
        "profissional_solicitante": participante,
        "contratado_executante": {"codigo_prestador_na_operadora": "99887766"},
        "profissional_executante": participante,
        "carater_atendimento": "1",
        "data_solicitacao": "2026-10-01",
        "indicacao_clinica": "Investigação de dor abdominal",
        "procedimentos_realizados": [
            {
                "data_realizacao": "2026-10-02",
                "codigo_procedimento": "40301630",
                "descricao_procedimento": "Hemograma completo",
                "quantidade_realizada": 1,
                "valor_unitario": "35.50",
            },
            {
                "data_realizacao": "2026-10-02",
                "codigo_procedimento": "40901114",
                "descricao_procedimento": "Ultrassonografia abdominal",
                "quantidade_realizada": 2,
                "valor_unitario": "120.00",
            },
        ],
        "valor_total_geral": "275.50",
    }

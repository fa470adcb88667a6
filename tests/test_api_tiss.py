"""
TISS API endpoint tests
"""
from datetime import date, timedelta
from decimal import Decimal

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from database import get_async_session
from main import app
from app.api.endpoints.tiss.submission import get_http_transport
from app.core.security import create_access_token
from app.models.tiss import GlosaStatus, TISSGlosa
from app.services.tiss.submission import HTTPTransport
from tests.factories import CERT_PASSWORD, CLINIC_ID, OTHER_CLINIC_ID, REGISTRO_ANS
from tests.samples import PROTOCOLO_OK


@pytest.fixture
async def client(db_session):
    async def override_session():
        yield db_session

    def mock_transport():
        return HTTPTransport(transport=httpx.MockTransport(lambda request: httpx.Response(200, text=PROTOCOLO_OK)))

    app.dependency_overrides[get_async_session] = override_session
    app.dependency_overrides[get_http_transport] = mock_transport
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


def token_for(role: str, clinic_id: int = CLINIC_ID) -> dict:
    token = create_access_token(data={"sub": "user-2", "clinic_id": clinic_id, "role": role})
    return {"Authorization": f"Bearer {token}"}


@pytest.mark.integration
@pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer not-a-jwt"}])
async def test_requires_authentication(client, headers):
    response = await client.post("/api/v1/tiss/lotes", json={"operadora_id": REGISTRO_ANS, "guia_ids": [1]}, headers=headers)
    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"


@pytest.mark.integration
async def test_receptionist_cannot_bill(client):
    response = await client.post(
        "/api/v1/tiss/lotes",
        json={"operadora_id": REGISTRO_ANS, "guia_ids": [1]},
        headers=token_for("receptionist"),
    )
    assert response.status_code == 403


@pytest.mark.integration
async def test_lote_lifecycle(client, auth_headers, operadora, make_guia, stored_certificate):
    guia_ids = [(await make_guia("GC-1")).id, (await make_guia("GC-2")).id]

    created = await client.post("/api/v1/tiss/lotes", json={"operadora_id": REGISTRO_ANS, "guia_ids": guia_ids}, headers=auth_headers)
    assert created.status_code == 201
    body = created.json()
    assert body["success"] is True
    assert body["valor_total"] == "300.00"
    lote_id = body["lote_id"]

    xml = await client.post(f"/api/v1/tiss/lotes/{lote_id}/xml", headers=auth_headers)
    assert xml.status_code == 200
    assert len(xml.json()["xml_hash"]) == 64

    sent = await client.post(f"/api/v1/tiss/submission/{lote_id}/send", headers=auth_headers)
    assert sent.status_code == 200
    assert sent.json()["protocolo"] == "2026101800123"

    lote = await client.get(f"/api/v1/tiss/lotes/{lote_id}", headers=auth_headers)
    assert lote.status_code == 200
    assert lote.json()["status"] == "enviado"
    assert lote.json()["guia_ids"] == guia_ids

    conflict = await client.post(f"/api/v1/tiss/submission/{lote_id}/send", headers=auth_headers)
    assert conflict.status_code == 409
    assert conflict.json()["error_code"] == "STATE_ERROR"

    delete = await client.delete(f"/api/v1/tiss/lotes/{lote_id}", headers=auth_headers)
    assert delete.status_code == 409
    assert delete.json()["error"] == "Não é possível excluir um lote já enviado"


@pytest.mark.integration
async def test_lote_of_other_clinic_is_not_visible(client, operadora, make_guia):
    guia_id = (await make_guia("GC-1")).id
    created = await client.post(
        "/api/v1/tiss/lotes", json={"operadora_id": REGISTRO_ANS, "guia_ids": [guia_id]}, headers=token_for("owner")
    )
    lote_id = created.json()["lote_id"]

    response = await client.get(f"/api/v1/tiss/lotes/{lote_id}", headers=token_for("owner", OTHER_CLINIC_ID))
    assert response.status_code == 404
    assert response.json()["error"]["message"] == "Lote não encontrado"


@pytest.mark.integration
async def test_validation_failure_maps_to_400(client, auth_headers, operadora):
    response = await client.post(
        "/api/v1/tiss/lotes", json={"operadora_id": REGISTRO_ANS, "guia_ids": [4242]}, headers=auth_headers
    )
    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "error": "Validação falhou: Guia 4242 não encontrada",
        "error_code": "VALIDATION_ERROR",
        "lote_id": None,
        "numero_lote": None,
        "quantidade_guias": None,
        "valor_total": None,
    }


@pytest.mark.integration
async def test_malformed_request_body(client, auth_headers):
    response = await client.post("/api/v1/tiss/lotes", json={"guia_ids": "todas"}, headers=auth_headers)
    assert response.status_code == 422
    assert response.json()["error"]["type"] == "ValidationError"


@pytest.mark.integration
async def test_certificate_endpoints_never_echo_secrets(client, auth_headers, pfx_base64):
    payload = {"pfx_base64": pfx_base64, "password": CERT_PASSWORD}

    validated = await client.post("/api/v1/tiss/certificates/validate", json=payload, headers=auth_headers)
    assert validated.status_code == 200
    assert validated.json()["info"]["tipo"] == "A1"

    stored = await client.put("/api/v1/tiss/certificates", json=payload, headers=auth_headers)
    assert stored.status_code == 200
    assert CERT_PASSWORD not in stored.text
    assert pfx_base64[:32] not in stored.text

    wrong = await client.put(
        "/api/v1/tiss/certificates", json={**payload, "password": "errada"}, headers=auth_headers
    )
    assert wrong.status_code == 422
    assert wrong.json()["error_code"] == "CERTIFICATE_ERROR"

    professional = await client.put("/api/v1/tiss/certificates", json=payload, headers=token_for("professional"))
    assert professional.status_code == 403

    deleted = await client.delete("/api/v1/tiss/certificates", headers=auth_headers)
    assert deleted.status_code == 200


@pytest.mark.integration
async def test_recurso_not_found(client, auth_headers):
    response = await client.get("/api/v1/tiss/recursos/RECNAOEXISTE/status", headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "Recurso não encontrado"


@pytest.mark.integration
async def test_manual_status_update(client, auth_headers, operadora, make_guia):
    guia_id = (await make_guia("GC-1")).id
    created = await client.post("/api/v1/tiss/lotes", json={"operadora_id": REGISTRO_ANS, "guia_ids": [guia_id]}, headers=auth_headers)
    lote_id = created.json()["lote_id"]
    url = f"/api/v1/tiss/lotes/{lote_id}/status"

    assert (await client.patch(url, json={"status": "pronto"}, headers=token_for("professional"))).status_code == 403

    invalid = await client.patch(url, json={"status": "arquivado"}, headers=auth_headers)
    assert invalid.status_code == 400
    assert invalid.json()["error"] == "Status de lote inválido: arquivado"

    illegal = await client.patch(url, json={"status": "enviado"}, headers=auth_headers)
    assert illegal.status_code == 409

    ok = await client.patch(url, json={"status": "pronto"}, headers=auth_headers)
    assert ok.status_code == 200
    assert (await client.get(f"/api/v1/tiss/lotes/{lote_id}", headers=auth_headers)).json()["status"] == "pronto"


@pytest.mark.integration
async def test_glosa_dashboard(client, auth_headers, db_session):
    db_session.add(TISSGlosa(
        clinic_id=CLINIC_ID,
        operadora_id=REGISTRO_ANS,
        numero_guia_prestador="GC-1",
        data_recebimento=date.today(),
        valor_original=Decimal("150.00"),
        valor_glosado=Decimal("150.00"),
        itens_glosados=[{"sequencial_item": 1, "valor_glosado": "150.00", "codigo_glosa": "A9"}],
        prazo_recurso=date.today() + timedelta(days=3),
        status=GlosaStatus.PENDENTE,
    ))
    await db_session.commit()

    stats = await client.get("/api/v1/tiss/glosas/stats", headers=auth_headers)
    assert stats.status_code == 200
    body = stats.json()
    assert body["periodo"] == "month"
    assert body["total_glosas"] == 1
    assert body["principais_motivos"][0]["descricao"] == "Documentação incompleta"

    assert (await client.get("/api/v1/tiss/glosas/stats?period=week", headers=auth_headers)).status_code == 400
    assert (await client.get("/api/v1/tiss/glosas/stats", headers=token_for("receptionist"))).status_code == 403

    prazos = await client.get("/api/v1/tiss/glosas/prazos", headers=auth_headers)
    assert prazos.status_code == 200
    assert [(a["numero_guia_prestador"], a["dias_restantes"]) for a in prazos.json()["alertas"]] == [("GC-1", 3)]

    other = await client.get("/api/v1/tiss/glosas/prazos", headers=token_for("admin", OTHER_CLINIC_ID))
    assert other.json()["alertas"] == []

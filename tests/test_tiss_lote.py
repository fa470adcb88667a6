"""
Lote manager tests
"""
from datetime import date, datetime
from decimal import Decimal

import pytest
from lxml import etree
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.models.tiss import GuiaStatus, GuiaTipo, LoteStatus, TISSGuia, TISSLote, TISSOperadora
from app.services.tiss.lote_manager import LoteManagerService
from app.services.tiss.xml import TISS_NAMESPACE, generate_sha1_hash
from app.services.tiss.xml_signer import hash_xml
from database import Base
from tests.factories import CLINIC_ID, OTHER_CLINIC_ID, REGISTRO_ANS, consulta_dados

NS = {"ans": TISS_NAMESPACE}
TODAY = date(2026, 10, 18)


async def reload_guias(db_session):
    rows = await db_session.execute(select(TISSGuia).execution_options(populate_existing=True))
    return {g.numero_guia_prestador: g for g in rows.scalars().all()}


@pytest.mark.integration
async def test_create_lote(db_session, operadora, make_guia):
    a = await make_guia("GC-1", valor_total="150.00")
    b = await make_guia("SP-1", tipo=GuiaTipo.SADT, valor_total="275.50")
    manager = LoteManagerService(db_session)

    result = await manager.create_lote(CLINIC_ID, REGISTRO_ANS, [a.id, b.id], created_by="user-1", today=TODAY)

    assert result.success, result.error
    assert result.numero_lote == "20261018-0001"
    assert result.quantidade_guias == 2
    assert result.valor_total == Decimal("425.50")

    lote = await manager.get_lote(CLINIC_ID, result.lote_id)
    assert lote.status == LoteStatus.RASCUNHO
    assert lote.guia_ids == [a.id, b.id]
    assert lote.nome_operadora == "Operadora Teste Saúde"

    guias = await reload_guias(db_session)
    assert guias["GC-1"].lote_id == lote.id
    assert guias["GC-1"].numero_lote == "20261018-0001"
    # Reserving does not change the guia status
    assert guias["SP-1"].status == GuiaStatus.VALIDADA


@pytest.mark.integration
async def test_lote_numbers_are_sequential_per_day(db_session, operadora, make_guia):
    manager = LoteManagerService(db_session)
    ids = [(await make_guia(f"GC-{i}")).id for i in range(4)]

    first = await manager.create_lote(CLINIC_ID, REGISTRO_ANS, [ids[0]], today=TODAY)
    second = await manager.create_lote(CLINIC_ID, REGISTRO_ANS, [ids[1]], today=TODAY)
    assert (first.numero_lote, second.numero_lote) == ("20261018-0001", "20261018-0002")

    # Deleting the first lote does not free its number
    assert (await manager.delete_lote(CLINIC_ID, first.lote_id)).success
    third = await manager.create_lote(CLINIC_ID, REGISTRO_ANS, [ids[2]], today=TODAY)
    assert third.numero_lote == "20261018-0003"

    next_day = await manager.create_lote(CLINIC_ID, REGISTRO_ANS, [ids[3]], today=date(2026, 10, 19))
    assert next_day.numero_lote == "20261019-0001"


@pytest.mark.integration
async def test_create_lote_required_fields(db_session):
    result = await LoteManagerService(db_session).create_lote(CLINIC_ID, REGISTRO_ANS, [])
    assert not result.success
    assert result.error == "Campos obrigatórios ausentes: clinic_id, operadora_id, guia_ids"
    assert result.error_code == "VALIDATION_ERROR"


@pytest.mark.integration
async def test_create_lote_limit(db_session, monkeypatch):
    from config import settings
    monkeypatch.setattr(settings, "TISS_MAX_GUIAS_POR_LOTE", 2)
    result = await LoteManagerService(db_session).create_lote(CLINIC_ID, REGISTRO_ANS, [1, 2, 3])
    assert result.error == "Máximo de 2 guias por lote"


@pytest.mark.integration
async def test_create_lote_rejections(db_session, operadora, make_guia):
    manager = LoteManagerService(db_session)
    own = (await make_guia("GC-1")).id
    other_operadora = (await make_guia("GC-2", registro_ans="654321")).id
    other_clinic = (await make_guia("GC-3", clinic_id=OTHER_CLINIC_ID)).id
    sent = (await make_guia("GC-4", status=GuiaStatus.ENVIADA)).id

    cases = [
        ([own, own], f"Validação falhou: Guia {own} informada mais de uma vez"),
        ([own, 9999], "Validação falhou: Guia 9999 não encontrada"),
        ([own, other_clinic], f"Validação falhou: Guia {other_clinic} não encontrada"),
        ([other_operadora], f"Validação falhou: Guia {other_operadora} pertence a outra operadora"),
        ([sent], f"Validação falhou: Guia {sent} já foi enviada (status: enviada)"),
    ]
    for guia_ids, message in cases:
        result = await manager.create_lote(CLINIC_ID, REGISTRO_ANS, guia_ids, today=TODAY)
        assert not result.success
        assert result.error == message
        assert result.error_code == "VALIDATION_ERROR"

    # Nothing was written by the rejected attempts
    assert (await db_session.execute(select(TISSLote))).scalars().all() == []
    guias = await reload_guias(db_session)
    assert all(g.lote_id is None for g in guias.values())


@pytest.mark.integration
async def test_guia_cannot_be_in_two_lotes(db_session, operadora, make_guia):
    manager = LoteManagerService(db_session)
    guia_id = (await make_guia("GC-1")).id

    first = await manager.create_lote(CLINIC_ID, REGISTRO_ANS, [guia_id], today=TODAY)
    second = await manager.create_lote(CLINIC_ID, REGISTRO_ANS, [guia_id], today=TODAY)

    assert first.success
    assert not second.success
    assert second.error == f"Validação falhou: Guia {guia_id} já está no lote 20261018-0001"


@pytest.mark.integration
async def test_unknown_operadora(db_session, make_guia):
    guia_id = (await make_guia("GC-1")).id
    result = await LoteManagerService(db_session).create_lote(CLINIC_ID, REGISTRO_ANS, [guia_id])
    assert result.error == "Operadora não encontrada"


@pytest.mark.integration
async def test_generate_lote_xml(db_session, operadora, make_guia):
    manager = LoteManagerService(db_session)
    ids = [(await make_guia("SP-1", tipo=GuiaTipo.SADT, valor_total="275.50")).id, (await make_guia("GC-1")).id]
    created = await manager.create_lote(CLINIC_ID, REGISTRO_ANS, ids, today=TODAY)

    result = await manager.generate_lote_xml(CLINIC_ID, created.lote_id, timestamp=datetime(2026, 10, 18, 12, 0, 0))
    assert result.success, result.error

    lote = await manager.get_lote(CLINIC_ID, created.lote_id, refresh=True)
    assert lote.status == LoteStatus.PRONTO
    assert lote.xml_hash == hash_xml(lote.xml_content) == result.xml_hash

    root = etree.fromstring(lote.xml_content.encode("utf-8"))
    assert root.findtext(".//ans:numeroLote", namespaces=NS) == "20261018-0001"
    assert root.findtext(".//ans:codigoPrestadorNaOperadora", namespaces=NS) == "99887766"
    guias = root.find(".//ans:guiasTISS", NS)
    assert [etree.QName(g).localname for g in guias] == ["guiaSP-SADT", "guiaConsulta"]

    content = lote.xml_content[:lote.xml_content.index("<ans:epilogo>")].rstrip(" ")
    assert root.findtext(".//ans:epilogo/ans:hash", namespaces=NS) == generate_sha1_hash(content)

    # Regenerating while still pronto is allowed
    assert (await manager.generate_lote_xml(CLINIC_ID, created.lote_id)).success


@pytest.mark.integration
async def test_generate_lote_xml_reports_invalid_guia(db_session, operadora, make_guia):
    manager = LoteManagerService(db_session)
    broken = {"registro_ans": REGISTRO_ANS, "numero_guia_prestador": "GC-BAD"}
    guia_id = (await make_guia("GC-BAD", dados=broken)).id
    created = await manager.create_lote(CLINIC_ID, REGISTRO_ANS, [guia_id], today=TODAY)

    result = await manager.generate_lote_xml(CLINIC_ID, created.lote_id)
    assert not result.success
    assert result.error == "Validação falhou: Guia GC-BAD: Número da carteira do beneficiário é obrigatório"

    lote = await manager.get_lote(CLINIC_ID, created.lote_id, refresh=True)
    assert lote.status == LoteStatus.RASCUNHO
    assert lote.xml_content is None


@pytest.mark.integration
async def test_delete_lote_releases_guias(db_session, operadora, make_guia):
    manager = LoteManagerService(db_session)
    guia_id = (await make_guia("GC-1")).id
    created = await manager.create_lote(CLINIC_ID, REGISTRO_ANS, [guia_id], today=TODAY)

    result = await manager.delete_lote(CLINIC_ID, created.lote_id)
    assert result.success

    assert await manager.get_lote(CLINIC_ID, created.lote_id) is None
    guias = await reload_guias(db_session)
    assert guias["GC-1"].lote_id is None
    assert guias["GC-1"].numero_lote is None

    # The guia can go into a new lote
    assert (await manager.create_lote(CLINIC_ID, REGISTRO_ANS, [guia_id], today=TODAY)).success


@pytest.mark.integration
async def test_sent_lote_cannot_be_deleted(db_session, operadora, make_guia):
    manager = LoteManagerService(db_session)
    guia_id = (await make_guia("GC-1")).id
    created = await manager.create_lote(CLINIC_ID, REGISTRO_ANS, [guia_id], today=TODAY)
    assert (await manager.update_lote_status(CLINIC_ID, created.lote_id, LoteStatus.ENVIANDO)).success

    result = await manager.delete_lote(CLINIC_ID, created.lote_id)
    assert not result.success
    assert result.error == "Não é possível excluir um lote já enviado"
    assert result.error_code == "STATE_ERROR"

    missing = await manager.delete_lote(CLINIC_ID, 9999)
    assert missing.error == "Lote não encontrado"


@pytest.mark.integration
async def test_update_lote_status(db_session, operadora, make_guia):
    manager = LoteManagerService(db_session)
    guia_id = (await make_guia("GC-1")).id
    created = await manager.create_lote(CLINIC_ID, REGISTRO_ANS, [guia_id], today=TODAY)
    lote_id = created.lote_id

    illegal = await manager.update_lote_status(CLINIC_ID, lote_id, LoteStatus.PROCESSADO)
    assert not illegal.success
    assert illegal.error == "Transição de status inválida: rascunho -> processado"

    invalid = await manager.update_lote_status(CLINIC_ID, lote_id, "inexistente")
    assert invalid.error == "Status de lote inválido: inexistente"

    not_mutable = await manager.update_lote_status(CLINIC_ID, lote_id, LoteStatus.ENVIANDO, {"valor_total": 0})
    assert not not_mutable.success

    assert (await manager.update_lote_status(CLINIC_ID, lote_id, LoteStatus.ENVIANDO)).success
    merged = await manager.update_lote_status(
        CLINIC_ID, lote_id, LoteStatus.ERRO, {"error_message": "Falha", "erros": [{"codigo": "1", "mensagem": "x"}]}
    )
    assert merged.success

    lote = await manager.get_lote(CLINIC_ID, lote_id, refresh=True)
    assert lote.status == LoteStatus.ERRO
    assert lote.error_message == "Falha"
    assert lote.erros == [{"codigo": "1", "mensagem": "x"}]


@pytest.mark.integration
async def test_send_lock_is_exclusive(db_session, operadora, make_guia):
    manager = LoteManagerService(db_session)
    guia_id = (await make_guia("GC-1")).id
    created = await manager.create_lote(CLINIC_ID, REGISTRO_ANS, [guia_id], today=TODAY)

    assert await manager.acquire_send_lock(CLINIC_ID, created.lote_id) is True
    assert await manager.acquire_send_lock(CLINIC_ID, created.lote_id) is False
    assert await manager.acquire_send_lock(OTHER_CLINIC_ID, created.lote_id) is False

    lote = await manager.get_lote(CLINIC_ID, created.lote_id, refresh=True)
    assert lote.status == LoteStatus.ENVIANDO


@pytest.mark.integration
async def test_taken_lote_number_is_retried(db_session, operadora, make_guia, monkeypatch):
    manager = LoteManagerService(db_session)
    first_guia = (await make_guia("GC-1")).id
    second_guia = (await make_guia("GC-2")).id
    first = await manager.create_lote(CLINIC_ID, REGISTRO_ANS, [first_guia], today=TODAY)
    assert first.numero_lote == "20261018-0001"

    original = LoteManagerService._next_numero_lote
    calls = []

    async def stale_numero(self, session, clinic_id, today):
        calls.append(today)
        if len(calls) == 1:
            # What a concurrent request that read the table before the first commit would compute
            return "20261018-0001"
        return await original(self, session, clinic_id, today)

    monkeypatch.setattr(LoteManagerService, "_next_numero_lote", stale_numero)

    second = await manager.create_lote(CLINIC_ID, REGISTRO_ANS, [second_guia], today=TODAY)

    assert second.success, second.error
    assert second.numero_lote == "20261018-0002"
    assert len(calls) == 2
    lotes = (await db_session.execute(select(TISSLote.numero_lote).order_by(TISSLote.id))).scalars().all()
    assert lotes == ["20261018-0001", "20261018-0002"]
    guias = await reload_guias(db_session)
    assert guias["GC-2"].numero_lote == "20261018-0002"


@pytest.mark.integration
async def test_concurrent_lotes_cannot_share_a_guia(tmp_path):
    """Two requests reserving the same guia: the later commit loses and re-validates"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'lotes.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    try:
        async with session_maker() as setup:
            setup.add(TISSOperadora(
                clinic_id=CLINIC_ID,
                registro_ans=REGISTRO_ANS,
                nome="Operadora Teste Saúde",
                codigo_prestador="99887766",
                is_active=True,
            ))
            guia = TISSGuia(
                clinic_id=CLINIC_ID,
                tipo=GuiaTipo.CONSULTA,
                numero_guia_prestador="GC-1",
                registro_ans=REGISTRO_ANS,
                codigo_prestador="99887766",
                numero_carteira="0001234500012345",
                nome_beneficiario="Maria da Silva",
                data_atendimento=date(2026, 10, 1),
                valor_total=Decimal("150.00"),
                status=GuiaStatus.VALIDADA,
                dados=consulta_dados("GC-1"),
            )
            setup.add(guia)
            await setup.commit()
            guia_id = guia.id

        async with session_maker() as session_a, session_maker() as session_b:
            service_a = LoteManagerService(session_a)
            service_b = LoteManagerService(session_b)
            results = {}
            lookup = service_a.get_operadora

            async def interleaved(clinic_id, registro_ans):
                # B runs its whole request after A has loaded and checked the guia
                if "b" not in results:
                    results["b"] = await service_b.create_lote(CLINIC_ID, REGISTRO_ANS, [guia_id], today=TODAY)
                return await lookup(clinic_id, registro_ans)

            service_a.get_operadora = interleaved
            results["a"] = await service_a.create_lote(CLINIC_ID, REGISTRO_ANS, [guia_id], today=TODAY)

        assert results["b"].success, results["b"].error
        assert results["b"].numero_lote == "20261018-0001"
        assert not results["a"].success
        assert results["a"].error_code == "VALIDATION_ERROR"
        assert "já está no lote 20261018-0001" in results["a"].error

        async with session_maker() as check:
            lotes = (await check.execute(select(TISSLote))).scalars().all()
            stored = await check.get(TISSGuia, guia_id)
            assert [lote.id for lote in lotes] == [results["b"].lote_id]
            assert stored.lote_id == results["b"].lote_id
    finally:
        await engine.dispose()

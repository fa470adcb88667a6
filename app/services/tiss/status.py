"""
Status state machines for lotes, guias, glosas and recursos.

Every status change in the pipeline goes through ``ensure_transition`` so an
illegal move is rejected before anything is written.
"""

from typing import Dict, FrozenSet, Type
import enum

from app.models.tiss.batch import LoteStatus
from app.models.tiss.guia import GuiaStatus
from app.models.tiss.glosa import GlosaStatus
from app.models.tiss.recurso import RecursoStatus
from app.services.tiss.exceptions import TISSStateError


LOTE_TRANSITIONS: Dict[LoteStatus, FrozenSet[LoteStatus]] = {
    LoteStatus.RASCUNHO: frozenset({LoteStatus.PRONTO, LoteStatus.ENVIANDO}),
    LoteStatus.PRONTO: frozenset({LoteStatus.ENVIANDO}),
    LoteStatus.ENVIANDO: frozenset({LoteStatus.ENVIADO, LoteStatus.ERRO}),
    LoteStatus.ERRO: frozenset({LoteStatus.ENVIANDO}),
    LoteStatus.ENVIADO: frozenset({LoteStatus.PROCESSANDO, LoteStatus.PROCESSADO, LoteStatus.PARCIAL}),
    LoteStatus.PROCESSANDO: frozenset({LoteStatus.PROCESSADO, LoteStatus.PARCIAL}),
    LoteStatus.PROCESSADO: frozenset(),
    LoteStatus.PARCIAL: frozenset(),
}

# Lotes that may be (re)sent or deleted
LOTE_SENDABLE = frozenset({LoteStatus.RASCUNHO, LoteStatus.PRONTO, LoteStatus.ERRO})
LOTE_DELETABLE = LOTE_SENDABLE

_GUIA_RESULTADOS = frozenset({
    GuiaStatus.EM_ANALISE,
    GuiaStatus.AUTORIZADA,
    GuiaStatus.NEGADA,
    GuiaStatus.GLOSADA_PARCIAL,
    GuiaStatus.GLOSADA_TOTAL,
})

GUIA_TRANSITIONS: Dict[GuiaStatus, FrozenSet[GuiaStatus]] = {
    GuiaStatus.RASCUNHO: frozenset({GuiaStatus.VALIDADA, GuiaStatus.ENVIADA}),
    GuiaStatus.VALIDADA: frozenset({GuiaStatus.RASCUNHO, GuiaStatus.ENVIADA}),
    GuiaStatus.ENVIADA: _GUIA_RESULTADOS,
    GuiaStatus.EM_ANALISE: _GUIA_RESULTADOS - {GuiaStatus.EM_ANALISE},
    GuiaStatus.AUTORIZADA: frozenset({GuiaStatus.PAGA}),
    GuiaStatus.GLOSADA_PARCIAL: frozenset({GuiaStatus.RECURSO, GuiaStatus.PAGA}),
    GuiaStatus.GLOSADA_TOTAL: frozenset({GuiaStatus.RECURSO}),
    GuiaStatus.NEGADA: frozenset({GuiaStatus.RECURSO}),
    GuiaStatus.RECURSO: frozenset({GuiaStatus.AUTORIZADA, GuiaStatus.PAGA, GuiaStatus.GLOSADA_PARCIAL, GuiaStatus.GLOSADA_TOTAL}),
    GuiaStatus.PAGA: frozenset(),
}

# Guias that may still be placed in a lote
GUIA_LOTEAVEIS = frozenset({GuiaStatus.RASCUNHO, GuiaStatus.VALIDADA})

GLOSA_TRANSITIONS: Dict[GlosaStatus, FrozenSet[GlosaStatus]] = {
    GlosaStatus.PENDENTE: frozenset({GlosaStatus.EM_RECURSO, GlosaStatus.RESOLVIDA}),
    GlosaStatus.EM_RECURSO: frozenset({GlosaStatus.RESOLVIDA}),
    GlosaStatus.RESOLVIDA: frozenset(),
}

_RECURSO_RESPOSTAS = frozenset({RecursoStatus.ACEITO, RecursoStatus.NEGADO, RecursoStatus.ACEITO_PARCIAL})

RECURSO_TRANSITIONS: Dict[RecursoStatus, FrozenSet[RecursoStatus]] = {
    RecursoStatus.RASCUNHO: frozenset({RecursoStatus.ENVIADO}),
    RecursoStatus.ENVIADO: _RECURSO_RESPOSTAS | {RecursoStatus.EM_ANALISE},
    RecursoStatus.EM_ANALISE: _RECURSO_RESPOSTAS,
    RecursoStatus.ACEITO: frozenset(),
    RecursoStatus.NEGADO: frozenset(),
    RecursoStatus.ACEITO_PARCIAL: frozenset(),
}

_TABLES: Dict[Type[enum.Enum], Dict] = {
    LoteStatus: LOTE_TRANSITIONS,
    GuiaStatus: GUIA_TRANSITIONS,
    GlosaStatus: GLOSA_TRANSITIONS,
    RecursoStatus: RECURSO_TRANSITIONS,
}


def can_transition(current: enum.Enum, target: enum.Enum) -> bool:
    """Writing the current status again is an idempotent no-op and always allowed."""
    if current == target:
        return True
    table = _TABLES[type(target)]
    return target in table.get(type(target)(current), frozenset())


def ensure_transition(current: enum.Enum, target: enum.Enum) -> None:
    if not can_transition(current, target):
        current_value = getattr(current, "value", current)
        raise TISSStateError(
            f"Transição de status inválida: {current_value} -> {target.value}",
            {"current": current_value, "target": target.value},
        )

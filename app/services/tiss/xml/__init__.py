"""
TISS 4.02.00 XML generators
"""

from .common import (
    TISS_NAMESPACE,
    TISS_VERSION,
    TISSXmlBuilder,
    escape_xml,
    format_currency,
    format_date,
    format_time,
    generate_sha1_hash,
    pad_string,
)
from .consulta import generate_guia_consulta_element, generate_xml_consulta, validate_guia_consulta
from .sadt import (
    calculate_procedimento_total,
    calculate_sadt_totals,
    generate_guia_sadt_element,
    generate_xml_sadt,
    validate_guia_sadt,
)
from .recurso import generate_numero_recurso, generate_protocolo_local, generate_recurso_xml
from .lote import generate_lote_xml

__all__ = [
    'TISS_NAMESPACE',
    'TISS_VERSION',
    'TISSXmlBuilder',
    'escape_xml',
    'format_currency',
    'format_date',
    'format_time',
    'generate_sha1_hash',
    'pad_string',
    'generate_xml_consulta',
    'generate_guia_consulta_element',
    'validate_guia_consulta',
    'generate_xml_sadt',
    'generate_guia_sadt_element',
    'validate_guia_sadt',
    'calculate_procedimento_total',
    'calculate_sadt_totals',
    'generate_recurso_xml',
    'generate_numero_recurso',
    'generate_protocolo_local',
    'generate_lote_xml',
]

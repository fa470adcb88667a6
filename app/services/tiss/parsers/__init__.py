"""
TISS Parsers
Parsers for processing TISS responses from operators
"""

from .protocol_parser import ProtocolParser
from .denial_interpreter import DenialInterpreter
from .demonstrativo_parser import (
    DemonstrativoAnalise,
    GuiaDemonstrativo,
    ItemGlosado,
    calculate_prazo_recurso,
    parse_demonstrativo_xml,
)

__all__ = [
    'ProtocolParser',
    'DenialInterpreter',
    'DemonstrativoAnalise',
    'GuiaDemonstrativo',
    'ItemGlosado',
    'calculate_prazo_recurso',
    'parse_demonstrativo_xml',
]

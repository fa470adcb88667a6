"""
Shared pieces of the TISS 4.02.00 XML generators: formatting rules, escaping,
the ordered element builder and the SHA-1 epilogue hash.
"""

import hashlib
import re
from contextlib import contextmanager
from datetime import date, datetime, time
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterator, List, Optional, Tuple, Union

from config import settings

TISS_VERSION = settings.TISS_VERSION
TISS_NAMESPACE = "http://www.ans.gov.br/padroes/tiss/schemas"
XSI_NAMESPACE = "http://www.w3.org/2001/XMLSchema-instance"
XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'
ROOT_TAG = "mensagemTISS"

TIPO_ENVIO_LOTE = "ENVIO_LOTE_GUIAS"
TIPO_RECURSO_GLOSA = "RECURSO_GLOSA"

# Zero-left padding widths
PAD_REGISTRO_ANS = 6
PAD_CODIGO_PROCEDIMENTO = 10
PAD_CNES = 7
PAD_NUMERO_CARTEIRA = 17
PAD_CNS = 15

CENT = Decimal("0.01")

# Code points that cannot appear in an XML 1.0 document, even escaped
_ILLEGAL_XML_CHARS = re.compile(
    "[^\u0009\u000A\u000D\u0020-\uD7FF\uE000-\uFFFD\U00010000-\U0010FFFF]"
)
_ESCAPES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&apos;",
    # Parsers normalize a literal CR to LF
    "\r": "&#13;",
}
_ESCAPE_PATTERN = re.compile("[&<>\"'\r]")

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_PATTERN = re.compile(r"^\d{2}:\d{2}(:\d{2})?$")

Number = Union[Decimal, int, float, str]


def escape_xml(value) -> str:
    """Escape text for an XML element, dropping characters XML 1.0 forbids."""
    if value is None:
        return ""
    text = _ILLEGAL_XML_CHARS.sub("", str(value))
    return _ESCAPE_PATTERN.sub(lambda m: _ESCAPES[m.group(0)], text)


def format_date(value: Union[date, datetime, str]) -> str:
    """Format to YYYY-MM-DD"""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip()
    if _DATE_PATTERN.match(text):
        return text
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        raise ValueError(f"Formato de data inválido: {value}")


def format_time(value: Union[time, datetime, str]) -> str:
    """Format to HH:MM"""
    if isinstance(value, (time, datetime)):
        return value.strftime("%H:%M")
    text = str(value).strip()
    if not _TIME_PATTERN.match(text):
        raise ValueError(f"Formato de hora inválido: {value}")
    return text[:5]


def to_decimal(value: Optional[Number]) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_cent(value: Optional[Number]) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_currency(value: Optional[Number]) -> str:
    return str(round_cent(value))


def pad_string(value, length: int, char: str = "0") -> str:
    return str(value if value is not None else "").rjust(length, char)


def generate_sha1_hash(content: str) -> str:
    """SHA-1 of the UTF-8 bytes, uppercase hex"""
    return hashlib.sha1(content.encode("utf-8")).hexdigest().upper()


def generate_sequencial(timestamp: Optional[datetime] = None) -> str:
    """Transaction sequence number: the last 10 digits of the epoch in milliseconds."""
    moment = timestamp or datetime.now()
    return str(int(moment.timestamp() * 1000))[-10:]


class TISSXmlBuilder:
    """
    Ordered, append-only writer for ``ans:`` elements.

    Text only enters the document through ``element``, which escapes it, so
    markup cannot leak in from guide data. ``finish_with_epilogue`` hashes
    exactly the bytes written so far and appends the epilogue after them.
    """

    def __init__(self, pretty_print: bool = True, level: int = 0, indent_unit: str = "  "):
        self.pretty_print = pretty_print
        self.indent_unit = indent_unit if pretty_print else ""
        self.level = level
        self._parts: List[str] = []

    @property
    def newline(self) -> str:
        return "\n" if self.pretty_print else ""

    def _line(self, text: str) -> None:
        self._parts.append(f"{self.indent_unit * self.level}{text}{self.newline}")

    def raw(self, text: str) -> None:
        """Append trusted markup (declaration, pre-rendered fragments)."""
        self._parts.append(text)

    def open(self, tag: str, attrs: Optional[Dict[str, str]] = None) -> None:
        rendered = "".join(f' {name}="{escape_xml(value)}"' for name, value in (attrs or {}).items())
        self._line(f"<ans:{tag}{rendered}>")
        self.level += 1

    def close(self, tag: str) -> None:
        self.level -= 1
        self._line(f"</ans:{tag}>")

    @contextmanager
    def block(self, tag: str, attrs: Optional[Dict[str, str]] = None) -> Iterator["TISSXmlBuilder"]:
        self.open(tag, attrs)
        yield self
        self.close(tag)

    def element(self, tag: str, value) -> None:
        """Write ``<ans:tag>value</ans:tag>``; empty optional values are omitted."""
        if value is None or value == "":
            return
        self._line(f"<ans:{tag}>{escape_xml(value)}</ans:{tag}>")

    def getvalue(self) -> str:
        return "".join(self._parts)

    def finish_with_epilogue(self, root_tag: str = ROOT_TAG) -> Tuple[str, str]:
        """Close the message: hash the content so far, append epilogo and the root end tag."""
        content_hash = generate_sha1_hash(self.getvalue())
        with self.block("epilogo"):
            self.element("hash", content_hash)
        self.close(root_tag)
        return self.getvalue(), content_hash


def start_mensagem(builder: TISSXmlBuilder, include_declaration: bool = True) -> None:
    if include_declaration:
        builder.raw(XML_DECLARATION + builder.newline)
    builder.open(ROOT_TAG, {"xmlns:ans": TISS_NAMESPACE, "xmlns:xsi": XSI_NAMESPACE})


def write_cabecalho(
    builder: TISSXmlBuilder,
    codigo_prestador: str,
    registro_ans: str,
    tipo_transacao: str = TIPO_ENVIO_LOTE,
    sequencial: str = "1",
    timestamp: Optional[datetime] = None,
    versao: str = TISS_VERSION,
) -> None:
    moment = timestamp or datetime.now()
    with builder.block("cabecalho"):
        with builder.block("identificacaoTransacao"):
            builder.element("tipoTransacao", tipo_transacao)
            builder.element("sequencialTransacao", sequencial)
            builder.element("dataRegistroTransacao", format_date(moment))
            builder.element("horaRegistroTransacao", moment.strftime("%H:%M:%S"))
        with builder.block("origem"):
            with builder.block("identificacaoPrestador"):
                builder.element("codigoPrestadorNaOperadora", codigo_prestador)
        with builder.block("destino"):
            builder.element("registroANS", pad_string(registro_ans, PAD_REGISTRO_ANS))
        builder.element("versaoPadrao", versao)


def write_beneficiario(builder: TISSXmlBuilder, beneficiario) -> None:
    with builder.block("dadosBeneficiario"):
        builder.element("numeroCarteira", pad_string(beneficiario.numero_carteira, PAD_NUMERO_CARTEIRA))
        if beneficiario.validade_carteira:
            builder.element("validadeCarteira", format_date(beneficiario.validade_carteira))
        builder.element("nomeBeneficiario", beneficiario.nome_beneficiario)
        if beneficiario.cns:
            builder.element("cns", pad_string(beneficiario.cns, PAD_CNS))


def write_contratado(builder: TISSXmlBuilder, contratado, tag: str) -> None:
    with builder.block(tag):
        builder.element("codigoPrestadorNaOperadora", contratado.codigo_prestador_na_operadora)
        builder.element("nomeContratado", contratado.nome_contratado)
        if contratado.cnes:
            builder.element("CNES", pad_string(contratado.cnes, PAD_CNES))


def write_profissional(builder: TISSXmlBuilder, profissional, tag: str) -> None:
    with builder.block(tag):
        builder.element("nomeProfissional", profissional.nome_profissional)
        builder.element("conselhoProfissional", profissional.conselho_profissional)
        builder.element("numeroConselhoProfissional", profissional.numero_conselho_profissional)
        builder.element("UF", profissional.uf)
        builder.element("CBOS", profissional.cbo)

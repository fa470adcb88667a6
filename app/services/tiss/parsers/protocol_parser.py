"""
TISS Protocol Parser
Interprets the WebService answer of an operadora after a lote is sent
"""

import html
import logging
import re
from typing import List, Optional

from app.schemas.tiss import WebServiceErrorItem, WebServiceResponse

logger = logging.getLogger(__name__)

MENSAGEM_NAO_RECONHECIDA = "Resposta da operadora não reconhecida"

_PREFIX = r"(?:[\w.-]+:)?"
_CDATA = re.compile(r"^<!\[CDATA\[([\s\S]*)\]\]>$")


def _tag_pattern(tag: str) -> re.Pattern:
    return re.compile(
        rf"<{_PREFIX}{tag}(?:\s[^>]*)?>([\s\S]*?)</{_PREFIX}{tag}\s*>",
        re.IGNORECASE,
    )


_FAULT = re.compile(rf"<{_PREFIX}Fault[\s>]", re.IGNORECASE)
_FAULTSTRING = _tag_pattern("faultstring")
_REASON = _tag_pattern("Reason")
_TEXT = _tag_pattern("Text")
_PROTOCOLO = _tag_pattern("numeroProtocolo")
_MENSAGEM = _tag_pattern("mensagem")
_DESCRICAO_ERRO = _tag_pattern("descricaoErro")
_CODIGO = _tag_pattern("codigo")
_CODIGO_ERRO = _tag_pattern("codigoErro")


class ProtocolParser:
    """
    Parser for operadora responses.

    Matching ignores namespace prefixes, since operadoras use different (and
    sometimes undeclared) prefixes. Order of precedence: SOAP fault, protocol
    number, operadora error message, otherwise an unrecognized-response
    failure.
    """

    def _extract_text(self, pattern: re.Pattern, content: str) -> Optional[str]:
        match = pattern.search(content)
        if not match:
            return None
        return self._clean(match.group(1))

    def _extract_all(self, pattern: re.Pattern, content: str) -> List[str]:
        return [text for text in (self._clean(m) for m in pattern.findall(content)) if text]

    @staticmethod
    def _clean(raw: str) -> str:
        text = raw.strip()
        cdata = _CDATA.match(text)
        if cdata:
            return cdata.group(1).strip()
        return html.unescape(text)

    def _fault_message(self, body: str) -> str:
        message = self._extract_text(_FAULTSTRING, body)
        if not message:
            reason = self._extract_text(_REASON, body)
            if reason:
                message = self._extract_text(_TEXT, reason) or reason
        return message or "Erro SOAP sem descrição"

    def _operadora_errors(self, body: str) -> List[WebServiceErrorItem]:
        mensagens = self._extract_all(_MENSAGEM, body) or self._extract_all(_DESCRICAO_ERRO, body)
        codigos = self._extract_all(_CODIGO, body) or self._extract_all(_CODIGO_ERRO, body)
        return [
            WebServiceErrorItem(codigo=codigos[i] if i < len(codigos) else None, mensagem=mensagem)
            for i, mensagem in enumerate(mensagens)
        ]

    def parse_webservice_response(self, body: Optional[str], http_status: Optional[int] = None) -> WebServiceResponse:
        body = body or ""

        if _FAULT.search(body):
            message = self._fault_message(body)
            logger.warning(f"SOAP fault from operadora (HTTP {http_status}): {message}")
            return WebServiceResponse(
                success=False,
                mensagem=message,
                erros=[WebServiceErrorItem(codigo="SOAP_FAULT", mensagem=message)],
                xml_resposta=body,
                http_status=http_status,
            )

        protocolo = self._extract_text(_PROTOCOLO, body)
        if protocolo:
            logger.info(f"Operadora returned protocol {protocolo}")
            return WebServiceResponse(
                success=True,
                protocolo=protocolo,
                mensagem="Lote recebido pela operadora",
                xml_resposta=body,
                http_status=http_status,
            )

        erros = self._operadora_errors(body)
        if erros:
            return WebServiceResponse(
                success=False,
                mensagem=erros[0].mensagem,
                erros=erros,
                xml_resposta=body,
                http_status=http_status,
            )

        logger.warning(f"Unrecognized operadora response (HTTP {http_status}, {len(body)} bytes)")
        return WebServiceResponse(
            success=False,
            mensagem=MENSAGEM_NAO_RECONHECIDA,
            erros=[WebServiceErrorItem(codigo="PARSE_ERROR", mensagem=MENSAGEM_NAO_RECONHECIDA)],
            xml_resposta=body,
            http_status=http_status,
        )

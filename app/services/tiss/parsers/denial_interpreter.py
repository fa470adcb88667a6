"""
TISS Denial Interpreter
Describes glosa codes and suggests whether an appeal (recurso) is worthwhile
"""

import logging
from typing import Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)


class DenialInterpreter:
    """Interpreter for TISS glosa codes"""

    GLOSA_CODES = {
        # Administrative
        'A1': {'category': 'administrativa', 'description': 'Guia não preenchida corretamente', 'recurso': True},
        'A2': {'category': 'cobertura', 'description': 'Procedimento não coberto pelo plano', 'recurso': False},
        'A3': {'category': 'cobertura', 'description': 'Procedimento já realizado no período', 'recurso': True},
        'A4': {'category': 'cobertura', 'description': 'Beneficiário sem cobertura ativa', 'recurso': False},
        'A5': {'category': 'cobertura', 'description': 'Carência não cumprida', 'recurso': False},
        'A6': {'category': 'administrativa', 'description': 'Cobrança em duplicidade', 'recurso': True},
        'A7': {'category': 'valor', 'description': 'Valor acima do contratado', 'recurso': True},
        'A8': {'category': 'autorizacao', 'description': 'Ausência de autorização prévia', 'recurso': True},
        'A9': {'category': 'documentacao', 'description': 'Documentação incompleta', 'recurso': True},
        'A10': {'category': 'administrativa', 'description': 'Prazo de envio excedido', 'recurso': False},
        # Clinical
        'B1': {'category': 'tecnica', 'description': 'CID incompatível com procedimento', 'recurso': True},
        'B2': {'category': 'tecnica', 'description': 'Quantidade acima do permitido', 'recurso': True},
        # Registration
        'C1': {'category': 'cadastral', 'description': 'Profissional não cadastrado na operadora', 'recurso': True},
    }

    UNKNOWN_DESCRIPTION = 'Motivo não especificado'

    def describe(self, codigo_glosa: Optional[str]) -> str:
        info = self.GLOSA_CODES.get((codigo_glosa or '').upper())
        return info['description'] if info else self.UNKNOWN_DESCRIPTION

    def interpret_glosa(self, codigo_glosa: str, descricao: Optional[str] = None) -> Dict:
        """
        Args:
            codigo_glosa: Code sent by the operadora (e.g. 'A7')
            descricao: Operadora's own description, preferred when present
        """
        info = self.GLOSA_CODES.get((codigo_glosa or '').upper())
        if info is None:
            logger.info(f"Unknown glosa code {codigo_glosa}")
            return {
                'codigo': codigo_glosa,
                'category': 'desconhecida',
                'description': descricao or self.UNKNOWN_DESCRIPTION,
                'recurso_recomendado': True,
            }
        return {
            'codigo': codigo_glosa,
            'category': info['category'],
            'description': descricao or info['description'],
            'recurso_recomendado': info['recurso'],
        }

    def interpret_multiple(self, itens: Iterable[Dict]) -> Dict:
        """Summary for a list of ``{'codigo_glosa': ..., 'descricao_glosa': ...}`` items"""
        interpreted: List[Dict] = [
            self.interpret_glosa(item.get('codigo_glosa'), item.get('descricao_glosa')) for item in itens
        ]
        categories: Dict[str, int] = {}
        for item in interpreted:
            categories[item['category']] = categories.get(item['category'], 0) + 1
        return {
            'glosas': interpreted,
            'summary': {
                'total': len(interpreted),
                'categories': categories,
                'recurso_recomendado': any(i['recurso_recomendado'] for i in interpreted),
            },
        }

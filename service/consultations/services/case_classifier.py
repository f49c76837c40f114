"""
case_classifier.py — keyword-based legal category for a consultation.

Categories are checked in a fixed priority order and the first one with any
keyword hit wins, so a consultation mentioning both "divorcio" and "despido"
is classified as family law. Keywords are matched on normalised text at word
starts, which lets stems like "despid" catch "despidieron" and "despido".
"""

from __future__ import annotations

import re

from .markers import normalize

FAMILY = "familia"
LABOR = "laboral"
CRIMINAL = "penal"
COMMERCIAL = "comercial"
ADMINISTRATIVE = "administrativo"
GENERAL = "general"

# Order matters: it is the tie-break between categories.
CASE_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    (FAMILY, (
        "divorci", "separacion", "custodia", "alimentos", "cuota alimentaria",
        "pension alimenticia", "patria potestad", "regimen de visitas", "visitas",
        "matrimonio", "union marital", "paternidad", "violencia intrafamiliar",
        "conyuge",
    )),
    (LABOR, (
        "despid", "despedid", "trabaj", "empleador", "empleado", "salario",
        "sueldo", "liquidacion", "prestaciones", "cesantias", "vacaciones",
        "horas extra", "contrato laboral", "contrato de trabajo", "acoso laboral",
        "incapacidad", "jefe",
    )),
    (CRIMINAL, (
        "denuncia", "robo", "hurto", "agresion", "amenaza", "estafa", "delito",
        "fiscalia", "policia", "lesiones", "captura", "extorsion", "homicidio",
    )),
    (COMMERCIAL, (
        "empresa", "sociedad", "negocio", "factura", "pagare", "letra de cambio",
        "cheque", "proveedor", "deuda", "cobro", "socio", "comerciante",
        "establecimiento de comercio",
    )),
    (ADMINISTRATIVE, (
        "tutela", "derecho de peticion", "entidad publica", "alcaldia",
        "gobernacion", "multa", "comparendo", "eps", "licencia", "servicio publico",
        "funcionario", "sancion administrativa", "subsidio",
    )),
)

_KEYWORD_PATTERNS: tuple[tuple[str, tuple[re.Pattern, ...]], ...] = tuple(
    (category, tuple(re.compile(r"\b" + re.escape(keyword)) for keyword in keywords))
    for category, keywords in CASE_KEYWORDS
)

CATEGORY_LABELS: dict[str, str] = {
    FAMILY: "Derecho de Familia",
    LABOR: "Derecho Laboral",
    CRIMINAL: "Derecho Penal",
    COMMERCIAL: "Derecho Comercial",
    ADMINISTRATIVE: "Derecho Administrativo",
    GENERAL: "Consulta General",
}

FOLLOW_UP_LINES = 2


def classification_text(user_lines: list[str]) -> str:
    """Opening user line plus up to two following lines, normalised."""
    return normalize(" ".join(user_lines[: 1 + FOLLOW_UP_LINES]))


def score_categories(text: str) -> dict[str, int]:
    """Number of distinct keyword hits per category, in priority order."""
    normalized = normalize(text)
    return {
        category: sum(1 for pattern in patterns if pattern.search(normalized))
        for category, patterns in _KEYWORD_PATTERNS
    }


def classify_case(user_lines: list[str]) -> str:
    """Return the first category in priority order with a keyword hit, else ``general``."""
    scores = score_categories(classification_text(user_lines))
    for category, score in scores.items():
        if score > 0:
            return category
    return GENERAL

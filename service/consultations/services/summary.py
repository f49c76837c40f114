"""
summary.py — deterministic consultation summaries.

The summary is never free-form text. It is always the same fixed template,
filled from the consultation content:

    Consulta principal: <visitor's opening line>
    Contexto adicional: <up to two follow-up lines>
    Orientacion preliminar del asistente: <best bot guidance line or fallback>
    Area sugerida: <category label>
    Orientacion para el consultorio:
    - <category bullet>
    - <category bullet>
    Preguntas de seguimiento:
    1. <category question>
    2. <category question>
    3. <category question>

The guidance line is picked by scoring bot replies (see ``score_bot_line``);
ties keep the earliest line.
"""

from __future__ import annotations

import re

from .case_classifier import (
    ADMINISTRATIVE,
    CATEGORY_LABELS,
    COMMERCIAL,
    CRIMINAL,
    FAMILY,
    GENERAL,
    LABOR,
    classify_case,
)
from .markers import is_bot_boilerplate, is_internal_flow, normalize
from .segmenter import Segment, extract_consultation_content

EMPTY_SUMMARY = "Aun no hay resumen generado para esta consulta."

NO_GUIDANCE_FALLBACK = (
    "El asistente aun no entrego una orientacion concreta; revisar la conversacion completa"
)
TECHNICAL_FAILURE_FALLBACK = (
    "El asistente presento una falla tecnica y no pudo entregar orientacion; "
    "se recomienda contactar al usuario"
)
DEFAULT_TOPIC = "una consulta legal"

MAIN_LINE_LENGTH = 240
DETAIL_LINE_LENGTH = 140
GUIDANCE_LINE_LENGTH = 220
MAX_DETAILS = 2

LENGTH_SCORE_CAP = 120
TRANSITION_BONUS = 50
ROUTE_BONUS = 25
ENUMERATION_BONUS = 10

_TRANSITION_PHRASES = ("con lo que", "puedes empezar")
_ROUTE_VOCABULARY = (
    "ruta", "orientacion", "recomend", "debes", "acudir", "tramite", "demanda",
    "conciliacion", "derecho de peticion", "tutela", "documentos",
    "consultorio juridico", "abogad", "pasos", "primer paso", "siguiente paso",
)
_ENUMERATION_MARKERS = ("1)", "2)", "3)")

# Courtesy lines that only count when nothing better was said
_FILLER_PHRASES = (
    "gracias por", "con gusto", "en que mas puedo", "algo mas en lo que",
    "estoy aqui para", "entiendo tu situacion", "lamento", "espero haberte ayudado",
)
_TECHNICAL_FAILURE_PHRASES = (
    "ocurrio un error", "hubo un error", "error al procesar", "error tecnico",
    "error interno", "problema tecnico", "falla tecnica", "no pude procesar",
    "no fue posible procesar", "intenta de nuevo", "intentalo de nuevo",
    "servicio no disponible",
)

_MARKDOWN_RE = re.compile(r"[`*_~]")
_BULLET_RE = re.compile(r"[•▪◦]")
_DASH_RE = re.compile(r"\s*[-–—]\s*")
_WHITESPACE_RE = re.compile(r"\s+")

CATEGORY_GUIDANCE: dict[str, tuple[str, str]] = {
    FAMILY: (
        "Verificar si existe conciliacion previa o acuerdo sobre alimentos, custodia o visitas.",
        "Reunir registros civiles de matrimonio y nacimiento de los hijos involucrados.",
    ),
    LABOR: (
        "Confirmar el tipo de contrato, las fechas de vinculacion y de terminacion.",
        "Solicitar desprendibles de pago, carta de despido y soportes de liquidacion.",
    ),
    CRIMINAL: (
        "Establecer si ya se presento denuncia ante la Fiscalia o la Policia.",
        "Identificar evidencias, testigos y medidas de proteccion necesarias.",
    ),
    COMMERCIAL: (
        "Revisar los contratos, facturas o titulos valores que soportan la obligacion.",
        "Verificar la calidad de comerciante de las partes y los plazos de cobro.",
    ),
    ADMINISTRATIVE: (
        "Identificar la entidad publica involucrada y las peticiones ya radicadas.",
        "Evaluar la procedencia de derecho de peticion, recurso o accion de tutela.",
    ),
    GENERAL: (
        "Precisar los hechos principales y la fecha en que ocurrieron.",
        "Determinar el area del derecho y si el caso es competencia del consultorio.",
    ),
}

CATEGORY_QUESTIONS: dict[str, tuple[str, str, str]] = {
    FAMILY: (
        "Hay hijos menores de edad involucrados?",
        "Existe alguna conciliacion o sentencia previa sobre el asunto?",
        "Cual es la situacion economica actual de las partes?",
    ),
    LABOR: (
        "Cuanto tiempo trabajo y cual era su salario?",
        "Tenia contrato escrito y de que tipo?",
        "Recibio liquidacion o algun pago al terminar la relacion laboral?",
    ),
    CRIMINAL: (
        "Cuando y donde ocurrieron los hechos?",
        "Ya presento denuncia? Tiene el numero de noticia criminal?",
        "Hay testigos o pruebas de lo ocurrido?",
    ),
    COMMERCIAL: (
        "Existe un contrato o titulo valor firmado?",
        "Cual es el monto de la obligacion y desde cuando esta vencida?",
        "Ha realizado algun requerimiento de pago por escrito?",
    ),
    ADMINISTRATIVE: (
        "Que entidad publica esta involucrada?",
        "Ha radicado algun derecho de peticion o recurso? En que fecha?",
        "Recibio respuesta de la entidad?",
    ),
    GENERAL: (
        "Puede describir con mas detalle lo ocurrido?",
        "Cuando ocurrieron los hechos?",
        "Cuenta con documentos relacionados con el caso?",
    ),
}


def compact_line(text: str, max_length: int = 220) -> str:
    single_line = _WHITESPACE_RE.sub(" ", text or "").strip()
    if len(single_line) <= max_length:
        return single_line
    return f"{single_line[: max_length - 3]}..."


def to_summary_phrase(text: str, max_length: int = 220) -> str:
    """Strip markdown markers, bullets and dashes, then compact to one line."""
    cleaned = _MARKDOWN_RE.sub("", str(text or ""))
    cleaned = _BULLET_RE.sub(" ", cleaned)
    cleaned = _DASH_RE.sub(" ", cleaned)
    return compact_line(cleaned, max_length)


def _contains_any(normalized: str, phrases: tuple[str, ...]) -> bool:
    return any(phrase in normalized for phrase in phrases)


def _word_pattern(phrases: tuple[str, ...]) -> re.Pattern:
    """Match any of ``phrases`` starting at a word boundary."""
    return re.compile(r"\b(?:" + "|".join(re.escape(phrase) for phrase in phrases) + ")")


_ROUTE_RE = _word_pattern(_ROUTE_VOCABULARY)
_TECHNICAL_FAILURE_RE = _word_pattern(_TECHNICAL_FAILURE_PHRASES)


def is_filler_line(text: str) -> bool:
    return _contains_any(normalize(text), _FILLER_PHRASES)


def is_technical_failure(text: str) -> bool:
    return bool(_TECHNICAL_FAILURE_RE.search(normalize(text)))


def score_bot_line(text: str) -> int:
    """
    Rank a bot reply as a candidate guidance line.

    Length counts up to 120, transition phrases add 50, route vocabulary adds 25
    and enumerated steps ("1)", "2)", "3)") add 10.
    """
    normalized = normalize(text)
    score = min(LENGTH_SCORE_CAP, len(text))
    if _contains_any(normalized, _TRANSITION_PHRASES):
        score += TRANSITION_BONUS
    if _ROUTE_RE.search(normalized):
        score += ROUTE_BONUS
    # Enumeration markers are checked on the raw text; normalisation eats ")".
    if any(marker in text for marker in _ENUMERATION_MARKERS):
        score += ENUMERATION_BONUS
    return score


def pick_guidance_line(bot_lines: list[str]) -> str | None:
    """Best-scoring bot line, preferring non-filler lines when there are any."""
    candidates = [line for line in bot_lines if not is_technical_failure(line)]
    substantive = [line for line in candidates if not is_filler_line(line)]
    pool = substantive or candidates
    if not pool:
        return None
    # sorted() is stable, so equal scores keep transcript order
    return sorted(pool, key=score_bot_line, reverse=True)[0]


def _sentence(text: str) -> str:
    text = text.strip()
    if text and text[-1] not in ".!?":
        return f"{text}."
    return text


def split_content(segment: Segment) -> tuple[list[str], list[str]]:
    """Visitor lines and bot lines of the consultation content, noise removed."""
    content = extract_consultation_content(segment.messages)

    user_lines = [
        str(message.text or "").strip()
        for message in content
        if message.is_inbound
    ]
    user_lines = [text for text in user_lines if text and not is_internal_flow(text)]

    bot_lines = [
        str(message.text or "").strip()
        for message in content
        if message.is_outbound
    ]
    bot_lines = [text for text in bot_lines if text and not is_bot_boilerplate(text)]

    return user_lines, bot_lines


def build_consultation_summary(segment: Segment, category: str | None = None) -> str:
    """
    Compose the fixed-structure summary for a segment.

    Returns ``EMPTY_SUMMARY`` when the consultation has no usable content.
    """
    user_lines, bot_lines = split_content(segment)
    if not user_lines and not bot_lines:
        return EMPTY_SUMMARY

    if category is None:
        category = classify_case(user_lines)
    if category not in CATEGORY_GUIDANCE:
        category = GENERAL

    main = to_summary_phrase(
        user_lines[0] if user_lines else (segment.first_user_message or DEFAULT_TOPIC),
        MAIN_LINE_LENGTH,
    )
    details = [to_summary_phrase(text, DETAIL_LINE_LENGTH) for text in user_lines[1: 1 + MAX_DETAILS]]
    details = [text for text in details if text and text != main]

    guidance = pick_guidance_line(bot_lines)
    if guidance is not None:
        guidance_text = to_summary_phrase(guidance, GUIDANCE_LINE_LENGTH)
    elif any(is_technical_failure(text) for text in bot_lines):
        guidance_text = TECHNICAL_FAILURE_FALLBACK
    else:
        guidance_text = NO_GUIDANCE_FALLBACK

    bullets = CATEGORY_GUIDANCE[category]
    questions = CATEGORY_QUESTIONS[category]

    lines = [
        f"Consulta principal: {_sentence(main)}",
        f"Contexto adicional: {_sentence('; '.join(details)) if details else 'Sin contexto adicional.'}",
        f"Orientacion preliminar del asistente: {_sentence(guidance_text)}",
        f"Area sugerida: {CATEGORY_LABELS[category]}",
        "Orientacion para el consultorio:",
        *[f"- {bullet}" for bullet in bullets],
        "Preguntas de seguimiento:",
        *[f"{index}. {question}" for index, question in enumerate(questions, start=1)],
    ]
    return "\n".join(lines)

"""
markers.py — text normalisation and marker predicates for chatbot transcripts.

Every predicate here works on normalised text, so "¡Hola!", "hola." and "HOLA"
are the same marker. All functions are pure and total.
"""

from __future__ import annotations

import re
import unicodedata

_PUNCTUATION_RE = re.compile(r"[!¡?¿.,;:]+")
_WHITESPACE_RE = re.compile(r"\s+")

START_COMMANDS = frozenset(["hola", "reset", "/start", "/startmutu"])
END_COMMANDS = frozenset(["salir", "/salir"])

# Bot-menu answers that carry no consultation content
_FLOW_ANSWERS = frozenset(["si", "no", "ok"])
_FLOW_PREFIXES = (
    "/",
    "confirmar cita",
    "cambiar ",
    "cancelar cita",
    "reprogramar cita",
)

# Welcome banners and generic menu prompts sent by the bot on every session
_BOT_BOILERPLATE = (
    "puedo orientarte de manera preliminar",
    "escribe reset",
    "si deseas agendar una cita",
    "para finalizar la conversacion escribe salir",
)


def normalize(text: str | None) -> str:
    """
    Canonicalise text for marker matching.

    Decomposes and drops diacritics, collapses runs of ``!¡?¿.,;:`` to a single
    space, collapses whitespace, lower-cases and trims.
    """
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", str(text))
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    stripped = _PUNCTUATION_RE.sub(" ", stripped)
    stripped = _WHITESPACE_RE.sub(" ", stripped)
    return stripped.strip().lower()


def is_start_command(text: str | None) -> bool:
    return normalize(text) in START_COMMANDS


def is_end_command(text: str | None) -> bool:
    normalized = normalize(text)
    if normalized in END_COMMANDS:
        return True
    return "agendar" in normalized and "cita" in normalized


def is_internal_flow(text: str | None) -> bool:
    """True for bot-menu control chatter (commands, yes/no, appointment actions)."""
    normalized = normalize(text)
    if not normalized:
        return True
    if is_start_command(normalized) or is_end_command(normalized):
        return True
    if normalized in _FLOW_ANSWERS:
        return True
    return normalized.startswith(_FLOW_PREFIXES)


def is_consultation_content(text: str | None) -> bool:
    """True for an inbound line that carries the visitor's actual question."""
    normalized = normalize(text)
    if not normalized:
        return False
    if is_start_command(normalized) or is_end_command(normalized):
        return False
    return not is_internal_flow(normalized)


def is_bot_boilerplate(text: str | None) -> bool:
    normalized = normalize(text)
    if not normalized:
        return True
    if "bienvenido" in normalized and "consultorio juridico" in normalized:
        return True
    return any(marker in normalized for marker in _BOT_BOILERPLATE)

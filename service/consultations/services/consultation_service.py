"""
ConsultationService — read/write API behind the staff console.

Consultations have no table of their own. Every call reloads the transcript,
re-segments it, and applies the latest overlay version on top, so the same
transcript and overlay always produce the same views.

Public interface::

    service = ConsultationService()
    service.list_consultations(ConsultationFilters(tipo_caso="familia"))
    service.get_consultation("<conversation uuid>:<start message id>")
    service.get_messages(consultation_id)
    service.set_summary(consultation_id, "Resumen corregido")
    service.soft_delete(consultation_id)
    service.stats()

Raises:
    ConsultationNotFound — unknown id, malformed id, or soft-deleted consultation
    OverlayStoreError    — overlay read/write failure (no retries here)
"""

from __future__ import annotations

import logging
import uuid
from collections import Counter
from dataclasses import dataclass
from datetime import date

from django.utils import timezone

from .case_classifier import CATEGORY_LABELS, classify_case
from .markers import normalize
from .overlay import OverlayStore, get_stored_summary, is_deleted
from .segmenter import (
    SEGMENT_CLOSED,
    ChatMessage,
    Segment,
    extract_consultation_content,
    segment_consultations,
)
from .summary import build_consultation_summary, compact_line, split_content

logger = logging.getLogger(__name__)

TOPIC_LENGTH = 120

ESTADO_BY_STATUS = {
    "open": "abierta",
    "closed": "cerrada",
}

CANAL_BY_CHANNEL = {
    "whatsapp": "whatsapp",
    "webchat": "web",
}


class ConsultationNotFound(Exception):
    """Raised when a consultation id matches no live (non-deleted) consultation."""


@dataclass
class ConsultationFilters:
    estado: str | None = None
    tipo_caso: str | None = None
    canal: str | None = None
    search: str | None = None
    fecha_inicio: date | None = None
    fecha_fin: date | None = None
    conversation: str | None = None


def parse_consultation_id(consultation_id: str) -> tuple[str, str]:
    """
    Split ``"<conversation uuid>:<start message id>"``.

    Raises ConsultationNotFound for anything that cannot be a consultation id.
    """
    conversation_part, sep, message_part = str(consultation_id or "").partition(":")
    if not sep or not message_part:
        raise ConsultationNotFound(f"Consultation '{consultation_id}' not found.")
    try:
        conversation_uuid = uuid.UUID(conversation_part)
    except ValueError as exc:
        raise ConsultationNotFound(f"Consultation '{consultation_id}' not found.") from exc
    return str(conversation_uuid), message_part


def transcript_for(conversation) -> list[ChatMessage]:
    return [
        ChatMessage(
            id=str(message.id),
            direction=message.direction,
            text=message.text,
            created_at=message.created_at,
        )
        for message in conversation.messages.all()
    ]


def message_view(message: ChatMessage) -> dict:
    return {
        "id": message.id,
        "tipo": "ia" if message.is_outbound else "usuario",
        "contenido": message.text,
        "createdAt": message.created_at,
    }


def _contact_view(contact) -> dict | None:
    if contact is None:
        return None
    return {
        "id": str(contact.id),
        "nombre": contact.display_name or contact.external_id or "Usuario",
        "documento": contact.external_id or "",
    }


class ConsultationService:
    def __init__(self, overlay_store: OverlayStore | None = None):
        self.overlay_store = overlay_store or OverlayStore()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_consultations(self, filters: ConsultationFilters | None = None) -> list[dict]:
        """All live consultations matching ``filters``, most recent first."""
        filters = filters or ConsultationFilters()
        views = [
            view
            for view in self._iter_views(conversation_id=filters.conversation)
            if self._matches(view, filters)
        ]
        views.sort(key=lambda view: view["createdAt"], reverse=True)
        return views

    def get_consultation(self, consultation_id: str) -> dict:
        conversation, segment, overlay = self._resolve(consultation_id)
        return self._build_view(conversation, segment, overlay, include_messages=True)

    def get_messages(self, consultation_id: str) -> list[dict]:
        _, segment, _ = self._resolve(consultation_id)
        return [message_view(message) for message in extract_consultation_content(segment.messages)]

    def stats(self) -> dict:
        """Totals of live consultations, overall and per category / state."""
        views = list(self._iter_views())
        return {
            "total": len(views),
            "porTipoCaso": dict(sorted(Counter(view["tipoCaso"] for view in views).items())),
            "porEstado": dict(sorted(Counter(view["estado"] for view in views).items())),
        }

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set_summary(self, consultation_id: str, summary: str) -> dict:
        """Store a staff summary override and return the refreshed view."""
        conversation, segment, _ = self._resolve(consultation_id)
        self.overlay_store.set_summary(conversation.pk, segment.id, summary.strip())
        return self.get_consultation(segment.id)

    def soft_delete(self, consultation_id: str) -> None:
        conversation, segment, _ = self._resolve(consultation_id)
        self.overlay_store.soft_delete(conversation.pk, segment.id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _conversations(self, conversation_id: str | None = None):
        from consultations.models import Conversation

        queryset = Conversation.objects.select_related("contact").prefetch_related("messages")
        if conversation_id:
            queryset = queryset.filter(pk=conversation_id)
        return queryset

    def _iter_views(self, conversation_id: str | None = None):
        if conversation_id:
            try:
                conversation_id = str(uuid.UUID(str(conversation_id)))
            except ValueError:
                return

        conversations = list(self._conversations(conversation_id))
        overlays = self.overlay_store.latest_by_conversation(c.pk for c in conversations)

        for conversation in conversations:
            overlay = overlays.get(str(conversation.pk), {})
            for segment in segment_consultations(str(conversation.pk), transcript_for(conversation)):
                if is_deleted(overlay, segment.id):
                    continue
                yield self._build_view(conversation, segment, overlay)

    def _resolve(self, consultation_id: str) -> tuple[object, Segment, dict]:
        """Conversation, live segment, and latest overlay for a consultation id."""
        conversation_id, _ = parse_consultation_id(consultation_id)
        conversation = self._conversations(conversation_id).first()
        if conversation is None:
            raise ConsultationNotFound(f"Consultation '{consultation_id}' not found.")

        canonical_id = f"{conversation_id}:{consultation_id.partition(':')[2]}"
        segment = next(
            (
                s
                for s in segment_consultations(str(conversation.pk), transcript_for(conversation))
                if s.id == canonical_id
            ),
            None,
        )
        if segment is None:
            raise ConsultationNotFound(f"Consultation '{consultation_id}' not found.")

        overlay = self.overlay_store.latest(conversation.pk)
        if is_deleted(overlay, segment.id):
            # Deleted consultations are indistinguishable from missing ones
            raise ConsultationNotFound(f"Consultation '{consultation_id}' not found.")

        return conversation, segment, overlay

    def _build_view(self, conversation, segment: Segment, overlay: dict, include_messages: bool = False) -> dict:
        user_lines, _ = split_content(segment)
        category = classify_case(user_lines)

        summary = get_stored_summary(overlay, segment.id)
        if summary is None:
            summary = build_consultation_summary(segment, category)

        content = extract_consultation_content(segment.messages)
        view = {
            "id": segment.id,
            "conversationId": segment.conversation_id,
            "temaLegal": compact_line(segment.first_user_message, TOPIC_LENGTH),
            "consultorio": CATEGORY_LABELS[category],
            "tipoCaso": category,
            "estado": ESTADO_BY_STATUS[segment.status],
            "status": segment.status,
            "canal": CANAL_BY_CHANNEL.get(conversation.channel, conversation.channel),
            "resumen": summary,
            "primerMensaje": segment.first_user_message,
            "startCommand": segment.start_command,
            "endCommand": segment.end_command if segment.status == SEGMENT_CLOSED else None,
            "createdAt": segment.started_at,
            "endedAt": segment.ended_at,
            "estudiante": _contact_view(conversation.contact),
            "messageCount": len(content),
        }
        if include_messages:
            view["mensajes"] = [message_view(message) for message in content]
        return view

    @staticmethod
    def _matches(view: dict, filters: ConsultationFilters) -> bool:
        if filters.estado:
            wanted = filters.estado.strip().lower()
            if wanted not in (view["estado"], view["status"]):
                return False

        if filters.tipo_caso and normalize(filters.tipo_caso) != view["tipoCaso"]:
            return False

        if filters.canal:
            wanted = CANAL_BY_CHANNEL.get(filters.canal.strip().lower(), filters.canal.strip().lower())
            if wanted != view["canal"]:
                return False

        created_on = timezone.localtime(view["createdAt"]).date()
        if filters.fecha_inicio and created_on < filters.fecha_inicio:
            return False
        if filters.fecha_fin and created_on > filters.fecha_fin:
            return False

        if filters.search:
            needle = normalize(filters.search)
            student = view["estudiante"] or {}
            haystack = normalize(" ".join([
                view["temaLegal"],
                view["primerMensaje"],
                view["resumen"],
                student.get("nombre", ""),
                student.get("documento", ""),
            ]))
            if needle and needle not in haystack:
                return False

        return True

"""
overlay.py — staff annotations layered over derived consultations.

Staff can override a consultation's summary or soft-delete it. Neither touches
the transcript: both are recorded in a per-conversation overlay document that
is append-only and versioned (``ConversationContext``). The document shape is::

    {
        "profile": {
            "consultationSummaries": {"<consultation id>": "summary text"},
            "deletedConsultations": {"<consultation id>": true},
        },
        "resumen": "legacy single summary (optional)",
    }

Readers always use the latest version. Writers read the latest version, merge
one key, and append ``version + 1``.
"""

from __future__ import annotations

import copy
import logging
from typing import Any

from django.db import DatabaseError, IntegrityError, transaction

logger = logging.getLogger(__name__)

SUMMARIES_KEY = "consultationSummaries"
DELETED_KEY = "deletedConsultations"
_LEGACY_SUMMARY_KEYS = ("resumen", "summary")


class OverlayStoreError(Exception):
    """Raised when the overlay store cannot be read or written."""


class OverlayConflictError(OverlayStoreError):
    """Raised when a concurrent writer appended the same overlay version first."""


# ---------------------------------------------------------------------------
# Pure resolvers
# ---------------------------------------------------------------------------

def _profile_map(overlay: dict | None, key: str) -> dict:
    if not isinstance(overlay, dict):
        return {}
    profile = overlay.get("profile")
    if not isinstance(profile, dict):
        return {}
    bucket = profile.get(key)
    return bucket if isinstance(bucket, dict) else {}


def get_stored_summary(overlay: dict | None, consultation_id: str) -> str | None:
    """
    Staff summary for a consultation, or None.

    Falls back to the legacy conversation-wide ``resumen``/``summary`` field.
    """
    stored = _profile_map(overlay, SUMMARIES_KEY).get(consultation_id)
    if isinstance(stored, str) and stored.strip():
        return stored.strip()

    if isinstance(overlay, dict):
        for key in _LEGACY_SUMMARY_KEYS:
            legacy = overlay.get(key)
            if isinstance(legacy, str) and legacy.strip():
                return legacy.strip()

    return None


def is_deleted(overlay: dict | None, consultation_id: str) -> bool:
    return _profile_map(overlay, DELETED_KEY).get(consultation_id) is True


def merge_overlay(overlay: dict | None, key: str, consultation_id: str, value: Any) -> dict:
    """
    Return a new overlay document with ``profile[key][consultation_id] = value``.

    The input document is left untouched.
    """
    merged = copy.deepcopy(overlay) if isinstance(overlay, dict) else {}
    profile = merged.get("profile")
    profile = dict(profile) if isinstance(profile, dict) else {}
    bucket = profile.get(key)
    bucket = dict(bucket) if isinstance(bucket, dict) else {}

    bucket[consultation_id] = value
    profile[key] = bucket
    merged["profile"] = profile
    return merged


# ---------------------------------------------------------------------------
# Versioned store
# ---------------------------------------------------------------------------

class OverlayStore:
    """
    Latest-version lookup and version append over ``ConversationContext``.

    Usage::

        store = OverlayStore()
        data = store.latest(conversation_id)
        store.set_summary(conversation_id, consultation_id, "Resumen corregido")
    """

    def latest(self, conversation_id) -> dict:
        """Data of the newest overlay version, or ``{}`` if none exists."""
        from consultations.models import ConversationContext

        try:
            context = (
                ConversationContext.objects.filter(conversation_id=conversation_id)
                .order_by("-version")
                .first()
            )
        except DatabaseError as exc:
            logger.error("OverlayStore.latest failed for conversation %s: %s", conversation_id, exc)
            raise OverlayStoreError(f"Could not read overlay: {exc}") from exc

        if context is None or not isinstance(context.data, dict):
            return {}
        return context.data

    def latest_by_conversation(self, conversation_ids) -> dict[str, dict]:
        """Newest overlay data for many conversations in one query."""
        from consultations.models import ConversationContext

        latest: dict[str, dict] = {}
        try:
            rows = (
                ConversationContext.objects.filter(conversation_id__in=list(conversation_ids))
                .order_by("conversation_id", "-version")
                .values_list("conversation_id", "data")
            )
            for conversation_id, data in rows:
                key = str(conversation_id)
                if key not in latest:
                    latest[key] = data if isinstance(data, dict) else {}
        except DatabaseError as exc:
            logger.error("OverlayStore.latest_by_conversation failed: %s", exc)
            raise OverlayStoreError(f"Could not read overlays: {exc}") from exc
        return latest

    def set_summary(self, conversation_id, consultation_id: str, summary: str):
        return self._append(conversation_id, SUMMARIES_KEY, consultation_id, summary)

    def soft_delete(self, conversation_id, consultation_id: str):
        return self._append(conversation_id, DELETED_KEY, consultation_id, True)

    def _append(self, conversation_id, key: str, consultation_id: str, value: Any):
        """
        Read the latest version, merge one key, and append it as ``version + 1``.

        The conversation row is locked for the duration so writers for the same
        conversation are serialised; the unique (conversation, version)
        constraint turns any remaining race into ``OverlayConflictError``.
        """
        from consultations.models import Conversation, ConversationContext

        try:
            with transaction.atomic():
                Conversation.objects.select_for_update().filter(pk=conversation_id).first()
                previous = (
                    ConversationContext.objects.filter(conversation_id=conversation_id)
                    .order_by("-version")
                    .first()
                )
                previous_version = previous.version if previous else 0
                previous_data = previous.data if previous else {}

                context = ConversationContext.objects.create(
                    conversation_id=conversation_id,
                    version=previous_version + 1,
                    data=merge_overlay(previous_data, key, consultation_id, value),
                )
        except IntegrityError as exc:
            logger.warning(
                "OverlayStore: concurrent overlay write for conversation %s (%s)",
                conversation_id, key,
            )
            raise OverlayConflictError(
                f"Overlay for conversation {conversation_id} changed concurrently."
            ) from exc
        except DatabaseError as exc:
            logger.error(
                "OverlayStore: could not append overlay for conversation %s: %s",
                conversation_id, exc,
            )
            raise OverlayStoreError(f"Could not write overlay: {exc}") from exc

        logger.info(
            "OverlayStore: conversation %s overlay v%d (%s for %s)",
            conversation_id, context.version, key, consultation_id,
        )
        return context

"""Tests for the staff overlay resolvers and the versioned overlay store."""

import pytest
from django.db import DatabaseError, IntegrityError

from consultations.models import ConversationContext
from consultations.services.overlay import (
    DELETED_KEY,
    SUMMARIES_KEY,
    OverlayConflictError,
    OverlayStore,
    OverlayStoreError,
    get_stored_summary,
    is_deleted,
    merge_overlay,
)


class TestResolvers:
    def test_stored_summary_is_trimmed(self):
        overlay = {"profile": {SUMMARIES_KEY: {"c:1": "  Resumen del consultorio  "}}}
        assert get_stored_summary(overlay, "c:1") == "Resumen del consultorio"

    def test_blank_summary_is_ignored(self):
        overlay = {"profile": {SUMMARIES_KEY: {"c:1": "   "}}}
        assert get_stored_summary(overlay, "c:1") is None

    def test_legacy_summary_fallback(self):
        assert get_stored_summary({"resumen": "Resumen anterior"}, "c:1") == "Resumen anterior"
        assert get_stored_summary({"summary": "Old summary"}, "c:1") == "Old summary"

    def test_per_consultation_summary_beats_legacy(self):
        overlay = {"resumen": "General", "profile": {SUMMARIES_KEY: {"c:1": "Propio"}}}
        assert get_stored_summary(overlay, "c:1") == "Propio"
        assert get_stored_summary(overlay, "c:2") == "General"

    def test_missing_or_malformed_overlay(self):
        assert get_stored_summary({}, "c:1") is None
        assert get_stored_summary(None, "c:1") is None
        assert get_stored_summary({"profile": "roto"}, "c:1") is None

    def test_only_literal_true_deletes(self):
        overlay = {"profile": {DELETED_KEY: {"c:1": True, "c:2": "true", "c:3": 1}}}
        assert is_deleted(overlay, "c:1")
        assert not is_deleted(overlay, "c:2")
        assert not is_deleted(overlay, "c:3")
        assert not is_deleted(overlay, "c:4")
        assert not is_deleted(None, "c:1")

    def test_merge_keeps_other_keys_and_input(self):
        original = {
            "stage": "triage",
            "profile": {SUMMARIES_KEY: {"c:1": "uno"}, "name": "Laura"},
        }

        merged = merge_overlay(original, SUMMARIES_KEY, "c:2", "dos")

        assert merged["stage"] == "triage"
        assert merged["profile"]["name"] == "Laura"
        assert merged["profile"][SUMMARIES_KEY] == {"c:1": "uno", "c:2": "dos"}
        assert original["profile"][SUMMARIES_KEY] == {"c:1": "uno"}

    def test_merge_into_empty(self):
        assert merge_overlay(None, DELETED_KEY, "c:1", True) == {"profile": {DELETED_KEY: {"c:1": True}}}


@pytest.mark.django_db
class TestOverlayStore:
    def setup_method(self):
        self.store = OverlayStore()

    def _conversation(self, transcript):
        conversation, _ = transcript([("IN", "hola", 0), ("IN", "necesito un divorcio", 1)])
        return conversation

    def test_latest_without_versions(self, transcript):
        conversation = self._conversation(transcript)
        assert self.store.latest(conversation.pk) == {}

    def test_writes_append_versions(self, transcript):
        conversation = self._conversation(transcript)
        consultation_id = f"{conversation.pk}:1"

        first = self.store.set_summary(conversation.pk, consultation_id, "Primera versión")
        second = self.store.soft_delete(conversation.pk, consultation_id)

        assert (first.version, second.version) == (1, 2)
        latest = self.store.latest(conversation.pk)
        assert latest["profile"][SUMMARIES_KEY][consultation_id] == "Primera versión"
        assert latest["profile"][DELETED_KEY][consultation_id] is True

        first.refresh_from_db()
        assert DELETED_KEY not in first.data["profile"]
        assert ConversationContext.objects.filter(conversation=conversation).count() == 2

    def test_latest_summary_wins(self, transcript):
        conversation = self._conversation(transcript)
        consultation_id = f"{conversation.pk}:1"

        self.store.set_summary(conversation.pk, consultation_id, "Borrador")
        self.store.set_summary(conversation.pk, consultation_id, "Definitivo")

        assert get_stored_summary(self.store.latest(conversation.pk), consultation_id) == "Definitivo"

    def test_latest_by_conversation(self, transcript):
        first = self._conversation(transcript)
        second = self._conversation(transcript)
        self.store.set_summary(first.pk, f"{first.pk}:1", "a")
        self.store.set_summary(first.pk, f"{first.pk}:1", "b")

        latest = self.store.latest_by_conversation([first.pk, second.pk])

        assert list(latest) == [str(first.pk)]
        assert latest[str(first.pk)]["profile"][SUMMARIES_KEY] == {f"{first.pk}:1": "b"}

    def test_version_conflict(self, transcript, monkeypatch):
        conversation = self._conversation(transcript)

        def conflict(**kwargs):
            raise IntegrityError("duplicate key value violates unique constraint")

        monkeypatch.setattr(ConversationContext.objects, "create", conflict)

        with pytest.raises(OverlayConflictError):
            self.store.set_summary(conversation.pk, f"{conversation.pk}:1", "x")

    def test_write_failure(self, transcript, monkeypatch):
        conversation = self._conversation(transcript)

        def unavailable(**kwargs):
            raise DatabaseError("connection lost")

        monkeypatch.setattr(ConversationContext.objects, "create", unavailable)

        with pytest.raises(OverlayStoreError) as excinfo:
            self.store.soft_delete(conversation.pk, f"{conversation.pk}:1")
        assert not isinstance(excinfo.value, OverlayConflictError)

    def test_read_failure(self, transcript, monkeypatch):
        conversation = self._conversation(transcript)

        def unavailable(*args, **kwargs):
            raise DatabaseError("connection lost")

        monkeypatch.setattr(ConversationContext.objects, "filter", unavailable)

        with pytest.raises(OverlayStoreError):
            self.store.latest(conversation.pk)

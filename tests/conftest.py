"""Shared fixtures for the consultation tests."""

from datetime import datetime, timedelta, timezone

import pytest

from consultations.services.segmenter import ChatMessage

BASE_TIME = datetime(2025, 3, 10, 14, 0, tzinfo=timezone.utc)


def at(minutes: int) -> datetime:
    return BASE_TIME + timedelta(minutes=minutes)


@pytest.fixture
def chat():
    """Factory for engine-level transcript messages: chat(id, direction, text, minute)."""

    def _make(message_id, direction, text, minutes):
        return ChatMessage(id=str(message_id), direction=direction, text=text, created_at=at(minutes))

    return _make


@pytest.fixture
def transcript(db):
    """Factory that stores a conversation transcript: transcript([(direction, text, minute), ...])."""
    from consultations.models import Contact, Conversation, Message

    def _make(lines, channel="whatsapp", contact_name="Laura Gómez", external_id="573001112233"):
        contact = Contact.objects.create(display_name=contact_name, external_id=external_id)
        conversation = Conversation.objects.create(contact=contact, channel=channel, created_at=at(0))
        messages = [
            Message.objects.create(
                conversation=conversation,
                direction=direction,
                text=text,
                created_at=at(minutes),
            )
            for direction, text, minutes in lines
        ]
        return conversation, messages

    return _make


@pytest.fixture
def minute():
    """Timestamp helper: minute(n) is n minutes after the transcript start."""
    return at

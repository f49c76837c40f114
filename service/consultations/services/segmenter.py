"""
segmenter.py — split a chatbot transcript into consultation segments.

A transcript is the append-only list of messages exchanged with one visitor.
Sessions inside it are delimited only by what the visitor typed: a start command
("hola", "reset", ...) opens a consultation and an end command ("salir",
"agendar una cita", ...) closes it. The walk below is a two-state machine
(idle / active) consumed message by message with no lookahead.

Usage::

    segments = segment_consultations(conversation_id, messages)
    for segment in segments:
        content = extract_consultation_content(segment.messages)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Iterable

from django.utils.dateparse import parse_datetime

from .markers import (
    is_consultation_content,
    is_end_command,
    is_internal_flow,
    is_start_command,
)

logger = logging.getLogger(__name__)

INBOUND = "IN"
OUTBOUND = "OUT"

DEFAULT_FIRST_MESSAGE = "Consulta de chatbot"

SEGMENT_OPEN = "open"
SEGMENT_CLOSED = "closed"


@dataclass(frozen=True)
class ChatMessage:
    id: str
    direction: str
    text: str
    created_at: datetime | str | None

    @property
    def is_inbound(self) -> bool:
        return self.direction == INBOUND

    @property
    def is_outbound(self) -> bool:
        return self.direction == OUTBOUND


@dataclass
class Segment:
    id: str
    conversation_id: str
    started_at: datetime
    ended_at: datetime | None
    status: str
    start_command: str
    first_user_message: str
    messages: list[ChatMessage] = field(default_factory=list)
    end_command: str | None = None


def parse_timestamp(value) -> datetime | None:
    """
    Coerce a message timestamp to an aware datetime, or None when unparsable.

    Naive values are taken as UTC so that mixed inputs still compare.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = parse_datetime(value.strip())
        except ValueError:
            return None
        if parsed is None:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def segment_id(conversation_id: str, start_message_id: str) -> str:
    return f"{conversation_id}:{start_message_id}"


def _ordered(messages: Iterable[ChatMessage]) -> list[ChatMessage]:
    """Drop unusable messages and sort by time, source order breaking ties."""
    usable: list[tuple[datetime, int, ChatMessage]] = []
    skipped = 0
    for index, message in enumerate(messages):
        created_at = parse_timestamp(message.created_at)
        text = str(message.text or "").strip()
        if created_at is None or not text:
            skipped += 1
            continue
        usable.append((created_at, index, replace(message, text=text, created_at=created_at)))

    if skipped:
        logger.debug("segmenter: skipped %d message(s) with empty text or bad timestamp", skipped)

    usable.sort(key=lambda item: (item[0], item[1]))
    return [message for _, _, message in usable]


def pick_first_user_message(messages: list[ChatMessage]) -> str:
    """
    Return the visitor's opening question for a segment.

    Falls back to the first non-empty inbound line, then to a fixed label.
    """
    for message in messages:
        text = str(message.text or "").strip()
        if message.is_inbound and text and not is_internal_flow(text):
            return text

    for message in messages:
        text = str(message.text or "").strip()
        if message.is_inbound and text:
            return text

    return DEFAULT_FIRST_MESSAGE


def extract_consultation_content(messages: list[ChatMessage]) -> list[ChatMessage]:
    """
    Drop the welcome boilerplate and confirmations that precede the real question.

    Returns the suffix starting at the first inbound content message. If there is
    no such message, or it already leads the buffer, the buffer is returned as is.
    """
    if not messages:
        return []

    first_content_index = next(
        (
            index
            for index, message in enumerate(messages)
            if message.is_inbound and is_consultation_content(message.text)
        ),
        -1,
    )
    if first_content_index <= 0:
        return list(messages)
    return list(messages[first_content_index:])


class _ActiveSession:
    """In-progress segment buffer while the machine is in the active state."""

    def __init__(self, start: ChatMessage):
        self.start_message_id = str(start.id)
        self.started_at = start.created_at
        self.start_command = start.text
        self.messages: list[ChatMessage] = [start]

    def flush(self, conversation_id: str, status: str, end: ChatMessage | None = None) -> Segment:
        ended_at = end.created_at if end is not None else self.messages[-1].created_at
        return Segment(
            id=segment_id(conversation_id, self.start_message_id),
            conversation_id=conversation_id,
            started_at=self.started_at,
            ended_at=ended_at,
            status=status,
            start_command=self.start_command,
            end_command=end.text if end is not None else None,
            first_user_message=pick_first_user_message(self.messages),
            messages=self.messages,
        )


def segment_consultations(conversation_id: str, messages: Iterable[ChatMessage]) -> list[Segment]:
    """
    Walk a transcript and return one Segment per detected consultation.

    Segments come back most-recent-first. A session still active when a new
    start command arrives, or when the transcript ends, is emitted as ``open``.
    """
    conversation_id = str(conversation_id)
    segments: list[Segment] = []
    current: _ActiveSession | None = None

    for message in _ordered(messages):
        inbound = message.is_inbound

        if inbound and is_start_command(message.text):
            if current is not None:
                segments.append(current.flush(conversation_id, SEGMENT_OPEN))
            current = _ActiveSession(message)
            continue

        if current is None:
            # Pre-session noise cannot belong to any consultation
            continue

        current.messages.append(message)

        if inbound and is_end_command(message.text):
            segments.append(current.flush(conversation_id, SEGMENT_CLOSED, end=message))
            current = None

    if current is not None and current.messages:
        segments.append(current.flush(conversation_id, SEGMENT_OPEN))

    segments.sort(key=lambda segment: segment.started_at, reverse=True)
    return segments

import uuid

from django.db import models
from django.utils import timezone


class Contact(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    display_name = models.CharField(max_length=255, blank=True)
    external_id = models.CharField(max_length=255, blank=True, help_text="Phone number or web session id from the channel")
    phone = models.CharField(max_length=50, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Contact"
        verbose_name_plural = "Contacts"
        ordering = ["display_name"]
        indexes = [
            models.Index(fields=["external_id"], name="consultatio_externa_5b1c2e_idx"),
        ]

    def __str__(self):
        return self.display_name or self.external_id or str(self.id)


class Conversation(models.Model):
    class Channel(models.TextChoices):
        WHATSAPP = "whatsapp", "WhatsApp"
        WEBCHAT = "webchat", "Web Chat"

    class Status(models.TextChoices):
        OPEN = "open", "Open"
        CLOSED = "closed", "Closed"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    contact = models.ForeignKey(
        Contact, on_delete=models.SET_NULL, related_name="conversations", null=True, blank=True, db_index=True
    )
    channel = models.CharField(max_length=20, choices=Channel.choices, default=Channel.WHATSAPP)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.OPEN)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Conversation"
        verbose_name_plural = "Conversations"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["channel"], name="consultatio_channel_7d2a41_idx"),
            models.Index(fields=["created_at"], name="consultatio_created_0c9e7f_idx"),
        ]

    def __str__(self):
        return f"{self.get_channel_display()} conversation with {self.contact or 'unknown contact'}"


class Message(models.Model):
    """One transcript line as produced by the bot runtime. Never edited."""

    class Direction(models.TextChoices):
        INBOUND = "IN", "Inbound"
        OUTBOUND = "OUT", "Outbound"

    # Integer key so that insertion order breaks created_at ties
    id = models.BigAutoField(primary_key=True)
    conversation = models.ForeignKey(Conversation, on_delete=models.CASCADE, related_name="messages", db_index=True)
    direction = models.CharField(max_length=3, choices=Direction.choices)
    text = models.TextField(blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        verbose_name = "Message"
        verbose_name_plural = "Messages"
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["conversation", "created_at"], name="consultatio_convers_4f8b6d_idx"),
        ]

    def __str__(self):
        return f"[{self.direction}] {self.text[:60]}"


class ConversationContext(models.Model):
    """Append-only overlay version: staff summaries and soft-deletes per consultation."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    conversation = models.ForeignKey(
        Conversation, on_delete=models.CASCADE, related_name="contexts", db_index=True
    )
    version = models.PositiveIntegerField()
    data = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Conversation Context"
        verbose_name_plural = "Conversation Contexts"
        ordering = ["conversation", "-version"]
        constraints = [
            models.UniqueConstraint(fields=["conversation", "version"], name="unique_context_version"),
        ]

    def __str__(self):
        return f"Context v{self.version} ({self.conversation_id})"

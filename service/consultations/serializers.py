from rest_framework import serializers

from .models import Contact, Conversation, Message


class ContactSerializer(serializers.ModelSerializer):
    class Meta:
        model = Contact
        fields = "__all__"


class MessageSerializer(serializers.ModelSerializer):
    class Meta:
        model = Message
        fields = ("id", "direction", "text", "created_at")


class ConversationSerializer(serializers.ModelSerializer):
    contact = ContactSerializer(read_only=True)
    message_count = serializers.SerializerMethodField()

    class Meta:
        model = Conversation
        fields = ("id", "contact", "channel", "status", "created_at", "updated_at", "message_count")

    def get_message_count(self, obj):
        return len(obj.messages.all())


class ConversationDetailSerializer(ConversationSerializer):
    messages = MessageSerializer(many=True, read_only=True)

    class Meta(ConversationSerializer.Meta):
        fields = ConversationSerializer.Meta.fields + ("messages",)


# ---------------------------------------------------------------------------
# Consultation views (derived, not model-backed)
# ---------------------------------------------------------------------------

class ConsultationMessageSerializer(serializers.Serializer):
    id = serializers.CharField()
    tipo = serializers.CharField()
    contenido = serializers.CharField()
    createdAt = serializers.DateTimeField()


class StudentSerializer(serializers.Serializer):
    id = serializers.CharField()
    nombre = serializers.CharField()
    documento = serializers.CharField(allow_blank=True)


class ConsultationSerializer(serializers.Serializer):
    id = serializers.CharField()
    conversationId = serializers.CharField()
    temaLegal = serializers.CharField()
    consultorio = serializers.CharField()
    tipoCaso = serializers.CharField()
    estado = serializers.CharField()
    status = serializers.CharField()
    canal = serializers.CharField()
    resumen = serializers.CharField()
    primerMensaje = serializers.CharField()
    startCommand = serializers.CharField()
    endCommand = serializers.CharField(allow_null=True)
    createdAt = serializers.DateTimeField()
    endedAt = serializers.DateTimeField(allow_null=True)
    estudiante = StudentSerializer(allow_null=True)
    messageCount = serializers.IntegerField()


class ConsultationDetailSerializer(ConsultationSerializer):
    mensajes = ConsultationMessageSerializer(many=True)


class ConsultationFilterSerializer(serializers.Serializer):
    """Query-string filters for the consultation listing."""

    estado = serializers.CharField(required=False, allow_blank=True)
    tipoCaso = serializers.CharField(required=False, allow_blank=True)
    canal = serializers.CharField(required=False, allow_blank=True)
    search = serializers.CharField(required=False, allow_blank=True)
    fechaInicio = serializers.DateField(required=False)
    fechaFin = serializers.DateField(required=False)
    conversation = serializers.CharField(required=False, allow_blank=True)

    def validate(self, data):
        start, end = data.get("fechaInicio"), data.get("fechaFin")
        if start and end and start > end:
            raise serializers.ValidationError("fechaInicio must not be after fechaFin.")
        return data


class SummaryUpdateSerializer(serializers.Serializer):
    resumen = serializers.CharField(trim_whitespace=True, allow_blank=False, max_length=10000)

from django.contrib import admin

from .models import Contact, Conversation, ConversationContext, Message


@admin.register(Contact)
class ContactAdmin(admin.ModelAdmin):
    list_display = ("__str__", "external_id", "phone", "created_at")
    search_fields = ("display_name", "external_id", "phone")
    list_filter = ("created_at",)


class MessageInline(admin.TabularInline):
    model = Message
    extra = 0
    fields = ("created_at", "direction", "text")
    readonly_fields = ("created_at", "direction", "text")
    can_delete = False
    show_change_link = False


class ConversationContextInline(admin.TabularInline):
    model = ConversationContext
    extra = 0
    fields = ("version", "data", "created_at")
    readonly_fields = ("version", "data", "created_at")
    can_delete = False


@admin.register(Conversation)
class ConversationAdmin(admin.ModelAdmin):
    list_display = ("__str__", "contact", "channel", "status", "created_at")
    search_fields = ("contact__display_name", "contact__external_id")
    list_filter = ("channel", "status", "created_at")
    inlines = [MessageInline, ConversationContextInline]


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = ("__str__", "conversation", "direction", "created_at")
    search_fields = ("text",)
    list_filter = ("direction", "created_at")

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(ConversationContext)
class ConversationContextAdmin(admin.ModelAdmin):
    """Overlay history is append-only; the admin only shows it."""

    list_display = ("conversation", "version", "created_at")
    search_fields = ("conversation__id",)
    list_filter = ("created_at",)

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

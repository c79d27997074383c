from django.contrib import admin

from .models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ("type", "user", "delivery_status", "attempts", "is_read", "created_at")
    list_filter = ("type", "delivery_status", "is_read")
    search_fields = ("title", "user__email", "dedupe_key")
    raw_id_fields = ("user",)
    readonly_fields = ("dedupe_key", "attempts", "last_error", "created_at")

from __future__ import annotations

import uuid
from datetime import timezone as dt_timezone

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone


class Notification(models.Model):
    class DeliveryStatus(models.TextChoices):
        PENDING = "pending", "Pending"
        SENT = "sent", "Sent"
        FAILED = "failed", "Failed"
        SKIPPED = "skipped", "Skipped"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="notifications",
    )
    type = models.CharField(max_length=40, default="announcement")
    title = models.CharField(max_length=200, null=True, blank=True)
    message = models.TextField()
    meta = models.JSONField(null=True, blank=True)
    is_read = models.BooleanField(default=False)
    read_at = models.DateTimeField(null=True, blank=True)
    link = models.CharField(max_length=300, null=True, blank=True)
    channel = models.CharField(max_length=20, default="in_app")
    priority = models.CharField(max_length=10, default="normal")
    dedupe_key = models.CharField(max_length=160, blank=True, default="")
    delivery_status = models.CharField(
        max_length=10, choices=DeliveryStatus.choices, default=DeliveryStatus.PENDING, db_index=True
    )
    attempts = models.PositiveSmallIntegerField(default=0)
    last_error = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "dj_notifications"
        ordering = ["-created_at", "-id"]
        constraints = [
            models.UniqueConstraint(
                fields=["user", "dedupe_key"],
                condition=~Q(dedupe_key=""),
                name="dj_notification_dedupe",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.type}:{self.user_id}"

    def mark_read(self) -> None:
        if not self.is_read:
            self.is_read = True
            self.read_at = timezone.now()

    def to_dict(self) -> dict[str, object | None]:
        created = self.created_at
        if created is not None and timezone.is_naive(created):
            created = timezone.make_aware(created, timezone=dt_timezone.utc)
        iso_created = created.isoformat() if created else None
        return {
            "id": str(self.id),
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "link": self.link,
            "meta": self.meta,
            "isRead": bool(self.is_read),
            "createdAt": iso_created,
        }

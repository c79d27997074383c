from __future__ import annotations

import uuid

from django.utils import timezone
from drf_spectacular.utils import extend_schema
from rest_framework.exceptions import NotFound
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.core.pagination import decode_cursor, page_payload, paginate, parse_limit

from .models import Notification


class NotificationsMyView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Notifications"])
    def get(self, request):
        limit = parse_limit(request.query_params.get("limit"))
        cursor = decode_cursor(request.query_params.get("cursor"))
        qs = Notification.objects.filter(user=request.user)
        if request.query_params.get("unread") in ("1", "true"):
            qs = qs.filter(is_read=False)
        rows, has_more, next_cursor = paginate(qs, limit, cursor)
        return Response(page_payload([row.to_dict() for row in rows], limit, has_more, next_cursor))


class NotificationMarkAllReadView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Notifications"])
    def patch(self, request):
        updated = Notification.objects.filter(user=request.user, is_read=False).update(
            is_read=True, read_at=timezone.now()
        )
        return Response({"ok": True, "updated": updated})


class NotificationMarkOneReadView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Notifications"])
    def patch(self, request, pk: uuid.UUID):
        # other users' notifications are indistinguishable from missing ones
        notification = Notification.objects.filter(pk=pk, user=request.user).first()
        if notification is None:
            raise NotFound("Notification not found")
        if not notification.is_read:
            notification.mark_read()
            notification.save(update_fields=["is_read", "read_at"])
        return Response(notification.to_dict())

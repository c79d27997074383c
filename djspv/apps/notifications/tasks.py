"""
Celery tasks that deliver distribution notifications.

Every recipient gets one in-app ``Notification`` row per (event, distribution);
email and SMS delivery is attempted from that row and recorded on it so that
``retry_failed_notifications`` can pick up what the first pass could not send.
"""
from __future__ import annotations

import logging
from smtplib import SMTPException
from typing import Iterable, Optional

from celery import shared_task
from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.mail import send_mail
from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.distributions.models import Distribution, InvestorDistribution

from .dispatch import Events
from .models import Notification
from .sms import SmsGateway, SmsGatewayError

logger = logging.getLogger(__name__)

UserModel = get_user_model()

RETRY_BATCH_SIZE = 100

_TEMPLATES = {
    Events.REVIEW_REQUESTED_ASSET_MANAGER: (
        "Distribution {number} awaits your approval",
        "Distribution {number} for {spv} has been calculated. Net distributable amount: {currency} {net}. "
        "Please review and approve.",
    ),
    Events.REVIEW_REQUESTED_COMPLIANCE: (
        "Distribution {number} awaits compliance review",
        "The asset manager approved distribution {number} for {spv}. Compliance review is required.",
    ),
    Events.REVIEW_REQUESTED_ADMIN: (
        "Distribution {number} awaits final approval",
        "Compliance approved distribution {number} for {spv}. Final admin approval is required.",
    ),
    Events.DISTRIBUTION_APPROVED: (
        "Distribution {number} approved",
        "Distribution {number} for {spv} is fully approved and ready for payment processing.",
    ),
    Events.INVESTOR_PAID: (
        "Distribution payment received",
        "Your distribution of {currency} {investor_net} from {spv} ({number}) has been paid. Reference: {reference}.",
    ),
    Events.DISTRIBUTION_COMPLETED: (
        "Distribution {number} completed",
        "All investor payments for distribution {number} ({spv}) have been completed.",
    ),
    Events.DISTRIBUTION_CANCELLED: (
        "Distribution {number} cancelled",
        "Distribution {number} for {spv} was cancelled. Reason: {reason}",
    ),
}


def _active_users(**filters):
    return UserModel.objects.filter(is_active=True, status=UserModel.Status.ACTIVE, **filters)


def _asset_manager_recipients(distribution: Distribution) -> list:
    manager = distribution.project.asset_manager
    if manager is not None:
        return [manager]
    return list(_active_users(role=UserModel.Roles.ASSET_MANAGER))


def resolve_recipients(event: str, distribution: Distribution, recipient_ids: Optional[Iterable[str]] = None) -> list:
    if recipient_ids is not None:
        return list(_active_users(id__in=list(recipient_ids)))

    if event == Events.REVIEW_REQUESTED_ASSET_MANAGER:
        return _asset_manager_recipients(distribution)
    if event == Events.REVIEW_REQUESTED_COMPLIANCE:
        return list(_active_users(role=UserModel.Roles.COMPLIANCE_OFFICER))
    if event == Events.REVIEW_REQUESTED_ADMIN:
        return list(_active_users(role=UserModel.Roles.ADMIN))
    if event in (Events.DISTRIBUTION_APPROVED, Events.DISTRIBUTION_CANCELLED):
        users = {u.pk: u for u in _asset_manager_recipients(distribution)}
        for admin in _active_users(role=UserModel.Roles.ADMIN):
            users.setdefault(admin.pk, admin)
        return list(users.values())
    if event == Events.DISTRIBUTION_COMPLETED:
        users = {u.pk: u for u in _asset_manager_recipients(distribution)}
        investor_ids = distribution.investor_distributions.values_list("investor_id", flat=True)
        for investor in _active_users(id__in=list(investor_ids)):
            users.setdefault(investor.pk, investor)
        return list(users.values())
    return []


def _render(event: str, distribution: Distribution, user) -> tuple[str, str, dict]:
    context = {
        "number": distribution.distribution_number,
        "spv": distribution.spv.name,
        "currency": distribution.currency,
        "net": distribution.net_distributable_amount,
        "reason": distribution.cancellation_reason or "-",
        "investor_net": "",
        "reference": "",
    }
    meta: dict = {"distributionId": str(distribution.id), "event": event}
    if event == Events.INVESTOR_PAID:
        row = distribution.investor_distributions.filter(investor_id=user.pk).first()
        if row is not None:
            context["investor_net"] = row.net_amount
            context["reference"] = row.utr or row.transaction_id
            meta["investorDistributionId"] = row.pk
    title_tpl, message_tpl = _TEMPLATES[event]
    return title_tpl.format(**context), message_tpl.format(**context), meta


def _link(distribution: Distribution) -> Optional[str]:
    base = (getattr(settings, "FRONTEND_BASE_URL", "") or "").rstrip("/")
    if not base:
        return None
    return f"{base}/distributions/{distribution.id}"


def deliver(notification: Notification, gateway: Optional[SmsGateway] = None) -> bool:
    """Send one notification by email and SMS; the outcome is saved on the row."""
    user = notification.user
    gateway = gateway or SmsGateway()
    errors: list[str] = []
    channels: list[str] = []

    if user.email:
        try:
            send_mail(
                notification.title or "Distribution update",
                notification.message,
                settings.DEFAULT_FROM_EMAIL,
                [user.email],
            )
            channels.append("email")
        except (SMTPException, OSError) as exc:
            errors.append(f"email: {exc}")

    if user.phone_number and gateway.configured:
        try:
            gateway.send(user.phone_number, notification.message)
            channels.append("sms")
        except SmsGatewayError as exc:
            errors.append(f"sms: {exc}")

    notification.attempts += 1
    if errors:
        notification.delivery_status = Notification.DeliveryStatus.FAILED
        notification.last_error = "; ".join(errors)[:2000]
    elif channels:
        notification.delivery_status = Notification.DeliveryStatus.SENT
        notification.last_error = ""
    else:
        notification.delivery_status = Notification.DeliveryStatus.SKIPPED
    if channels:
        notification.channel = "+".join(["in_app", *channels])
    notification.save(update_fields=["attempts", "delivery_status", "last_error", "channel"])

    if errors:
        logger.warning(
            "Notification delivery failed",
            extra={"notification_id": str(notification.id), "errors": errors, "attempts": notification.attempts},
        )
    return not errors


def _record_confirmation(notification: Notification) -> None:
    meta = notification.meta or {}
    row_id = meta.get("investorDistributionId")
    if row_id and notification.delivery_status == Notification.DeliveryStatus.SENT:
        InvestorDistribution.objects.filter(pk=row_id, confirmation_sent_at__isnull=True).update(
            confirmation_sent_at=timezone.now()
        )


@shared_task(bind=True, ignore_result=True)
def send_distribution_notification(self, event: str, distribution_id: str, recipient_ids: Optional[list[str]] = None):
    distribution = (
        Distribution.objects.select_related("project", "project__asset_manager", "spv")
        .filter(pk=distribution_id)
        .first()
    )
    if distribution is None:
        logger.warning("Notification for unknown distribution", extra={"event": event, "distribution_id": distribution_id})
        return {"event": event, "created": 0, "sent": 0}

    created = 0
    sent = 0
    gateway = SmsGateway()
    for user in resolve_recipients(event, distribution, recipient_ids):
        title, message, meta = _render(event, distribution, user)
        try:
            with transaction.atomic():
                notification, was_created = Notification.objects.get_or_create(
                    user=user,
                    dedupe_key=f"{event}:{distribution.id}",
                    defaults={
                        "type": event,
                        "title": title[:200],
                        "message": message,
                        "meta": meta,
                        "link": _link(distribution),
                        "priority": "high" if event.startswith("review_requested") else "normal",
                    },
                )
        except IntegrityError:
            # concurrent worker created the same row
            continue
        if not was_created:
            continue
        created += 1
        if deliver(notification, gateway):
            sent += 1
        _record_confirmation(notification)

    logger.info(
        "Distribution notification processed",
        extra={"event": event, "distribution_id": distribution_id, "created": created, "sent": sent},
    )
    return {"event": event, "created": created, "sent": sent}


@shared_task(ignore_result=True)
def retry_failed_notifications():
    max_attempts = int(getattr(settings, "NOTIFICATION_MAX_ATTEMPTS", 5))
    pending = list(
        Notification.objects.select_related("user")
        .filter(delivery_status=Notification.DeliveryStatus.FAILED, attempts__lt=max_attempts)
        .order_by("created_at")[:RETRY_BATCH_SIZE]
    )
    gateway = SmsGateway()
    recovered = 0
    for notification in pending:
        if deliver(notification, gateway):
            recovered += 1
            _record_confirmation(notification)
    if pending:
        logger.info("Retried failed notifications", extra={"retried": len(pending), "recovered": recovered})
    return {"retried": len(pending), "recovered": recovered}

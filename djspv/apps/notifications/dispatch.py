"""
Fire-and-forget entry point for distribution notifications.

Callers run inside ``transaction.atomic()``; the Celery task is only queued
once the surrounding transaction commits, so a rolled back write never
notifies anyone and a broker outage never rolls back a committed write.
"""
from __future__ import annotations

import logging
from typing import Iterable, Optional

from django.db import transaction

logger = logging.getLogger(__name__)


class Events:
    REVIEW_REQUESTED_ASSET_MANAGER = "review_requested_asset_manager"
    REVIEW_REQUESTED_COMPLIANCE = "review_requested_compliance"
    REVIEW_REQUESTED_ADMIN = "review_requested_admin"
    DISTRIBUTION_APPROVED = "distribution_approved"
    INVESTOR_PAID = "investor_paid"
    DISTRIBUTION_COMPLETED = "distribution_completed"
    DISTRIBUTION_CANCELLED = "distribution_cancelled"

    ALL = frozenset({
        REVIEW_REQUESTED_ASSET_MANAGER,
        REVIEW_REQUESTED_COMPLIANCE,
        REVIEW_REQUESTED_ADMIN,
        DISTRIBUTION_APPROVED,
        INVESTOR_PAID,
        DISTRIBUTION_COMPLETED,
        DISTRIBUTION_CANCELLED,
    })


def _enqueue(event: str, distribution_id: str, recipient_ids: Optional[list[str]]) -> None:
    from .tasks import send_distribution_notification

    try:
        send_distribution_notification.delay(event, distribution_id, recipient_ids)
    except Exception:
        logger.exception(
            "Failed to queue distribution notification",
            extra={"event": event, "distribution_id": distribution_id},
        )


def dispatch_distribution_event(
    event: str,
    distribution_id,
    recipient_ids: Optional[Iterable] = None,
) -> None:
    if event not in Events.ALL:
        raise ValueError(f"unknown notification event: {event}")
    dist_id = str(distribution_id)
    recipients = [str(r) for r in recipient_ids] if recipient_ids is not None else None
    logger.info(
        "Distribution notification scheduled",
        extra={"event": event, "distribution_id": dist_id, "recipients": len(recipients or [])},
    )
    transaction.on_commit(lambda: _enqueue(event, dist_id, recipients))

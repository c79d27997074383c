"""
Per-investor payment reconciliation.

Lock order is always investor row first, distribution row second. Marking
one investor locks only that investor's row; the distribution row is locked
at the end of the transaction for the completion check, so the last two
payments of a distribution cannot both miss the transition to completed.
"""
from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone

from apps.notifications.dispatch import Events, dispatch_distribution_event

from .errors import (
    DistributionValidationError,
    InvestorNotFoundError,
    PaymentConflictError,
    PaymentValidationError,
    StatusConflictError,
)
from .models import (
    PAYABLE_STATUSES,
    Distribution,
    DistributionStatus,
    InvestorDistribution,
    PaymentAttempt,
    PaymentMethod,
    PaymentStatus,
)
from .services import clean_text, get_distribution_or_raise, require_role

logger = logging.getLogger(__name__)

UserModel = get_user_model()


@dataclass
class PaymentResult:
    row: InvestorDistribution
    distribution: Distribution
    replayed: bool = False
    distribution_completed: bool = False


def _clean_reference(value: Any, name: str, max_length: int) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise PaymentValidationError(f"{name} must be a string", code="VALIDATION_ERROR")
    text = value.strip()
    if len(text) > max_length:
        raise PaymentValidationError(f"{name} must be at most {max_length} characters", code="VALIDATION_ERROR")
    return text


def _is_replay(row: InvestorDistribution, transaction_id: str, utr: str) -> bool:
    if transaction_id and row.transaction_id and transaction_id != row.transaction_id:
        return False
    if utr and row.utr and utr != row.utr:
        return False
    return row.matches_reference(transaction_id, utr)


def _lock_investor_row(distribution_id, investor_id) -> InvestorDistribution:
    try:
        row = (
            InvestorDistribution.objects.select_for_update()
            .filter(distribution_id=distribution_id, investor_id=investor_id)
            .first()
        )
    except (DjangoValidationError, ValueError, TypeError):
        row = None
    if row is not None:
        return row
    # distinguish a missing distribution from an investor that is not part of it
    get_distribution_or_raise(distribution_id)
    raise InvestorNotFoundError(f"investor {investor_id} is not part of distribution {distribution_id}")


def _require_payable(distribution: Distribution) -> None:
    if distribution.status not in PAYABLE_STATUSES:
        raise StatusConflictError(
            f"payments are not accepted while the distribution is {distribution.status}",
            code="NOT_PAYABLE",
            status=distribution.status,
        )


def _promote_to_processing(distribution_id) -> bool:
    return bool(
        Distribution.objects.filter(pk=distribution_id, status=DistributionStatus.APPROVED).update(
            status=DistributionStatus.PROCESSING, updated_at=timezone.now()
        )
    )


def _complete_if_settled(distribution_id) -> tuple[Distribution, bool]:
    distribution = get_distribution_or_raise(distribution_id, lock=True)
    # a concurrent cancellation must not be overwritten by this transaction's payment
    _require_payable(distribution)
    outstanding = InvestorDistribution.objects.filter(distribution_id=distribution_id).exclude(
        payment_status=PaymentStatus.COMPLETED
    )
    if outstanding.exists():
        return distribution, False
    now = timezone.now()
    updated = Distribution.objects.filter(pk=distribution_id, status=DistributionStatus.PROCESSING).update(
        status=DistributionStatus.COMPLETED, completed_at=now, updated_at=now
    )
    if updated:
        distribution.refresh_from_db()
    return distribution, bool(updated)


def mark_investor_paid(
    distribution_id,
    investor_id,
    actor,
    *,
    transaction_id: Any = None,
    utr: Any = None,
    payment_date: Optional[datetime.date] = None,
    payment_method: Any = None,
) -> PaymentResult:
    require_role(actor, UserModel.Roles.ADMIN)
    txn = _clean_reference(transaction_id, "transactionId", 120)
    utr_ref = _clean_reference(utr, "utr", 64)
    if not txn and not utr_ref:
        raise PaymentValidationError("transactionId or utr is required")
    method = (payment_method or "").strip().lower() if isinstance(payment_method, str) else ""
    if payment_method and method not in PaymentMethod.values:
        raise DistributionValidationError(f"unknown payment method '{payment_method}'")

    with transaction.atomic():
        row = _lock_investor_row(distribution_id, investor_id)

        if row.payment_status == PaymentStatus.COMPLETED:
            if _is_replay(row, txn, utr_ref):
                logger.info(
                    "Payment confirmation replayed",
                    extra={"distribution_id": str(row.distribution_id), "investor_id": str(row.investor_id)},
                )
                return PaymentResult(row=row, distribution=get_distribution_or_raise(row.distribution_id), replayed=True)
            raise PaymentConflictError(
                "investor has already been paid with a different reference", code="ALREADY_PAID"
            )

        distribution = get_distribution_or_raise(row.distribution_id)
        _require_payable(distribution)

        paid_on = payment_date or timezone.localdate()
        PaymentAttempt.objects.create(
            investor_distribution=row,
            outcome=PaymentAttempt.Outcome.COMPLETED,
            transaction_id=txn,
            utr=utr_ref,
            payment_date=paid_on,
            payment_method=method,
            recorded_by=actor,
        )
        row.payment_status = PaymentStatus.COMPLETED
        row.transaction_id = txn
        row.utr = utr_ref
        row.payment_date = paid_on
        row.payment_method = method
        row.payment_failure_reason = ""
        row.save(
            update_fields=[
                "payment_status",
                "transaction_id",
                "utr",
                "payment_date",
                "payment_method",
                "payment_failure_reason",
                "updated_at",
            ]
        )

        _promote_to_processing(row.distribution_id)
        distribution, completed = _complete_if_settled(row.distribution_id)

        logger.info(
            "Investor payment recorded",
            extra={
                "distribution_id": str(row.distribution_id),
                "investor_id": str(row.investor_id),
                "net_amount": str(row.net_amount),
                "distribution_status": distribution.status,
            },
        )
        dispatch_distribution_event(Events.INVESTOR_PAID, row.distribution_id, recipient_ids=[row.investor_id])
        if completed:
            logger.info("Distribution completed", extra={"distribution_id": str(row.distribution_id)})
            dispatch_distribution_event(Events.DISTRIBUTION_COMPLETED, row.distribution_id)

    return PaymentResult(row=row, distribution=distribution, distribution_completed=completed)


def mark_investor_payment_failed(distribution_id, investor_id, actor, reason: Any) -> PaymentResult:
    require_role(actor, UserModel.Roles.ADMIN)
    text = clean_text(reason, "reason", required=True)

    with transaction.atomic():
        row = _lock_investor_row(distribution_id, investor_id)
        if row.payment_status == PaymentStatus.COMPLETED:
            raise PaymentConflictError("a completed payment cannot be marked as failed", code="ALREADY_PAID")

        distribution = get_distribution_or_raise(row.distribution_id)
        _require_payable(distribution)

        PaymentAttempt.objects.create(
            investor_distribution=row,
            outcome=PaymentAttempt.Outcome.FAILED,
            failure_reason=text,
            recorded_by=actor,
        )
        row.payment_status = PaymentStatus.FAILED
        row.payment_failure_reason = text
        row.save(update_fields=["payment_status", "payment_failure_reason", "updated_at"])

        if _promote_to_processing(row.distribution_id):
            distribution.refresh_from_db()

        logger.warning(
            "Investor payment failed",
            extra={"distribution_id": str(row.distribution_id), "investor_id": str(row.investor_id), "reason": text},
        )
    return PaymentResult(row=row, distribution=distribution)


def start_payment_processing(distribution_id, actor) -> Distribution:
    """Approved → processing; pending rows become ``initiated``."""
    require_role(actor, UserModel.Roles.ADMIN)
    with transaction.atomic():
        initiated = InvestorDistribution.objects.filter(
            distribution_id=distribution_id,
            distribution__status=DistributionStatus.APPROVED,
            payment_status=PaymentStatus.PENDING,
        ).update(payment_status=PaymentStatus.INITIATED, updated_at=timezone.now())
        if not _promote_to_processing(distribution_id):
            current = get_distribution_or_raise(distribution_id)
            raise StatusConflictError(
                f"only approved distributions can start processing (status: {current.status})",
                code="NOT_APPROVED",
                status=current.status,
            )
        distribution = get_distribution_or_raise(distribution_id)
        logger.info(
            "Payment processing started",
            extra={"distribution_id": str(distribution.pk), "initiated": initiated, "actor_id": str(actor.pk)},
        )
    return distribution


def payment_stats(distribution: Distribution) -> dict[str, Any]:
    rows = InvestorDistribution.objects.filter(distribution=distribution)
    counts = {status: 0 for status in PaymentStatus.values}
    for item in rows.values("payment_status").annotate(n=Count("id")):
        counts[item["payment_status"]] = item["n"]
    totals = rows.aggregate(
        total=Sum("net_amount"),
        paid=Sum("net_amount", filter=Q(payment_status=PaymentStatus.COMPLETED)),
    )
    total = totals["total"] or Decimal("0.00")
    paid = totals["paid"] or Decimal("0.00")
    return {
        "totalInvestors": sum(counts.values()),
        "byStatus": counts,
        "totalNet": str(total),
        "paidNet": str(paid),
        "outstandingNet": str(total - paid),
    }

"""
Three-role sign-off for calculated distributions.

Stages are granted strictly in order: asset manager, compliance, admin. Every
write is a conditional UPDATE guarded by the expected prior values, so two
racing approvers can never both succeed and a stage can never be granted
before its prerequisite. When the guarded update touches no row the current
state is re-read only to explain the conflict.
"""
from __future__ import annotations

import datetime
import logging
from typing import Any, Optional

from django.contrib.auth import get_user_model
from django.db import models, transaction
from django.db.models import Q
from django.utils import timezone

from apps.notifications.dispatch import Events, dispatch_distribution_event

from .errors import ApprovalConflictError, DistributionNotFoundError, DistributionValidationError, StatusConflictError
from .models import REVIEWABLE_STATUSES, TERMINAL_STATUSES, Distribution, DistributionStatus
from .services import clean_text, get_distribution_or_raise, require_project_manager, require_role

logger = logging.getLogger(__name__)

UserModel = get_user_model()

ASSET_MANAGER = "asset_manager"
COMPLIANCE = "compliance"
ADMIN = "admin"

STAGES = (ASSET_MANAGER, COMPLIANCE, ADMIN)

STAGE_ROLE = {
    ASSET_MANAGER: UserModel.Roles.ASSET_MANAGER,
    COMPLIANCE: UserModel.Roles.COMPLIANCE_OFFICER,
    ADMIN: UserModel.Roles.ADMIN,
}

PREREQUISITE = {
    ASSET_MANAGER: None,
    COMPLIANCE: ASSET_MANAGER,
    ADMIN: COMPLIANCE,
}

NEXT_EVENT = {
    ASSET_MANAGER: Events.REVIEW_REQUESTED_COMPLIANCE,
    COMPLIANCE: Events.REVIEW_REQUESTED_ADMIN,
    ADMIN: Events.DISTRIBUTION_APPROVED,
}

SCHEDULE_EDITABLE_STATUSES = frozenset({
    DistributionStatus.DRAFT,
    DistributionStatus.CALCULATED,
    DistributionStatus.UNDER_REVIEW,
})


class ApprovalStage(models.TextChoices):
    AWAITING_ASSET_MANAGER = "awaiting_asset_manager", "Awaiting asset manager"
    AWAITING_COMPLIANCE = "awaiting_compliance", "Awaiting compliance"
    AWAITING_ADMIN = "awaiting_admin", "Awaiting admin"
    APPROVED = "approved", "Approved"


_AWAITING = {
    ApprovalStage.AWAITING_ASSET_MANAGER: ASSET_MANAGER,
    ApprovalStage.AWAITING_COMPLIANCE: COMPLIANCE,
    ApprovalStage.AWAITING_ADMIN: ADMIN,
}


def approval_stage(distribution: Distribution) -> Optional[str]:
    """Derived from the three records; ``None`` for drafts and cancelled distributions."""
    if distribution.status in (DistributionStatus.DRAFT, DistributionStatus.CANCELLED):
        return None
    if distribution.admin_approved:
        return ApprovalStage.APPROVED
    if distribution.compliance_approved:
        return ApprovalStage.AWAITING_ADMIN
    if distribution.asset_manager_approved:
        return ApprovalStage.AWAITING_COMPLIANCE
    return ApprovalStage.AWAITING_ASSET_MANAGER


def is_awaiting_review_by(distribution: Distribution, user) -> bool:
    if distribution.status not in REVIEWABLE_STATUSES:
        return False
    stage = _AWAITING.get(approval_stage(distribution))
    if stage is None or getattr(user, "role", None) != STAGE_ROLE[stage]:
        return False
    if stage == ASSET_MANAGER:
        manager_id = distribution.project.asset_manager_id
        return manager_id is None or manager_id == user.pk
    return True


def awaiting_review_q(user) -> Q:
    """Queryset form of :func:`is_awaiting_review_by`."""
    reviewable = Q(status__in=list(REVIEWABLE_STATUSES))
    role = getattr(user, "role", None)
    if role == UserModel.Roles.ASSET_MANAGER:
        return reviewable & Q(asset_manager_approved=False) & (
            Q(project__asset_manager__isnull=True) | Q(project__asset_manager=user)
        )
    if role == UserModel.Roles.COMPLIANCE_OFFICER:
        return reviewable & Q(asset_manager_approved=True, compliance_approved=False)
    if role == UserModel.Roles.ADMIN:
        return reviewable & Q(compliance_approved=True, admin_approved=False)
    return Q(pk__in=[])


def _explain_rejected_approval(stage: str, distribution_id) -> None:
    current = Distribution.objects.filter(pk=distribution_id).first()
    if current is None:
        raise DistributionNotFoundError(f"distribution {distribution_id} not found")
    if getattr(current, f"{stage}_approved"):
        raise ApprovalConflictError(
            f"{stage} approval has already been recorded",
            code="ALREADY_APPROVED",
            approval=current.approval_record(stage),
        )
    if current.status not in REVIEWABLE_STATUSES:
        raise StatusConflictError(
            f"distribution is {current.status} and cannot be approved",
            code="NOT_REVIEWABLE",
            status=current.status,
        )
    prerequisite = PREREQUISITE[stage]
    if prerequisite and not getattr(current, f"{prerequisite}_approved"):
        raise ApprovalConflictError(
            f"{prerequisite} approval is required first",
            code="OUT_OF_ORDER",
            missing_stage=prerequisite,
        )
    # state moved between the update and this read
    raise ApprovalConflictError("distribution changed concurrently, retry", code="CONCURRENT_UPDATE")


def _approve(stage: str, distribution_id, actor, comments: Any) -> Distribution:
    text = clean_text(comments, "comments")
    with transaction.atomic():
        distribution = get_distribution_or_raise(distribution_id)
        require_role(actor, STAGE_ROLE[stage])
        if stage == ASSET_MANAGER:
            require_project_manager(actor, distribution.project)

        guard = Q(pk=distribution.pk, status__in=list(REVIEWABLE_STATUSES), **{f"{stage}_approved": False})
        prerequisite = PREREQUISITE[stage]
        if prerequisite:
            guard &= Q(**{f"{prerequisite}_approved": True})

        now = timezone.now()
        values = {
            f"{stage}_approved": True,
            f"{stage}_approved_by": actor,
            f"{stage}_approved_at": now,
            f"{stage}_comments": text,
            "updated_at": now,
        }
        if stage == ADMIN:
            values["status"] = DistributionStatus.APPROVED
            values["approved_at"] = now

        updated = Distribution.objects.filter(guard).update(**values)
        if updated != 1:
            _explain_rejected_approval(stage, distribution.pk)

        distribution.refresh_from_db()
        logger.info(
            "Distribution approval recorded",
            extra={
                "distribution_id": str(distribution.pk),
                "stage": stage,
                "actor_id": str(actor.pk),
                "status": distribution.status,
            },
        )
        dispatch_distribution_event(NEXT_EVENT[stage], distribution.pk)
    return distribution


def approve_as_asset_manager(distribution_id, actor, comments: Any = None) -> Distribution:
    return _approve(ASSET_MANAGER, distribution_id, actor, comments)


def approve_as_compliance(distribution_id, actor, comments: Any = None) -> Distribution:
    return _approve(COMPLIANCE, distribution_id, actor, comments)


def approve_as_admin(distribution_id, actor, comments: Any = None) -> Distribution:
    return _approve(ADMIN, distribution_id, actor, comments)


def submit_for_review(distribution_id, actor) -> Distribution:
    with transaction.atomic():
        distribution = get_distribution_or_raise(distribution_id)
        require_role(actor, UserModel.Roles.ASSET_MANAGER, UserModel.Roles.ADMIN)
        require_project_manager(actor, distribution.project)
        updated = Distribution.objects.filter(pk=distribution.pk, status=DistributionStatus.CALCULATED).update(
            status=DistributionStatus.UNDER_REVIEW, updated_at=timezone.now()
        )
        if updated != 1:
            current = Distribution.objects.filter(pk=distribution.pk).values_list("status", flat=True).first()
            raise StatusConflictError(
                f"only calculated distributions can be submitted for review (status: {current})",
                code="NOT_CALCULATED",
                status=current,
            )
        distribution.refresh_from_db()
        logger.info(
            "Distribution submitted for review",
            extra={"distribution_id": str(distribution.pk), "actor_id": str(actor.pk)},
        )
    return distribution


def cancel_distribution(distribution_id, actor, reason: Any) -> Distribution:
    text = clean_text(reason, "reason", required=True)
    with transaction.atomic():
        distribution = get_distribution_or_raise(distribution_id, lock=True)
        require_role(actor, UserModel.Roles.ADMIN)
        if distribution.status in TERMINAL_STATUSES:
            raise StatusConflictError(
                f"distribution is already {distribution.status}", code="TERMINAL_STATUS", status=distribution.status
            )
        paid = distribution.investor_distributions.filter(payment_status="completed").count()
        if paid:
            logger.warning(
                "Cancelling distribution with completed payments",
                extra={"distribution_id": str(distribution.pk), "completed_payments": paid},
            )
        now = timezone.now()
        distribution.status = DistributionStatus.CANCELLED
        distribution.cancellation_reason = text
        distribution.cancelled_at = now
        distribution.append_note(f"Cancelled: {text}", by=str(actor.pk))
        distribution.save(update_fields=["status", "cancellation_reason", "cancelled_at", "notes", "updated_at"])
        logger.info(
            "Distribution cancelled",
            extra={"distribution_id": str(distribution.pk), "actor_id": str(actor.pk)},
        )
        dispatch_distribution_event(Events.DISTRIBUTION_CANCELLED, distribution.pk)
    return distribution


_UNSET = object()


def update_distribution(
    distribution_id,
    actor,
    *,
    record_date: Any = _UNSET,
    payment_date: Any = _UNSET,
    note: Any = None,
) -> Distribution:
    """
    Admin edits: the record/payment schedule until the distribution is
    approved, and free-text notes for as long as it is not terminal.
    """
    note_text = clean_text(note, "note")
    schedule_changes: dict[str, Optional[datetime.date]] = {}
    if record_date is not _UNSET:
        schedule_changes["record_date"] = record_date
    if payment_date is not _UNSET:
        schedule_changes["payment_date"] = payment_date
    if not schedule_changes and not note_text:
        raise DistributionValidationError("nothing to update")

    with transaction.atomic():
        distribution = get_distribution_or_raise(distribution_id, lock=True)
        require_role(actor, UserModel.Roles.ADMIN)
        if distribution.status in TERMINAL_STATUSES:
            raise StatusConflictError(
                f"distribution is {distribution.status}", code="TERMINAL_STATUS", status=distribution.status
            )
        fields = ["updated_at"]
        if schedule_changes:
            if distribution.status not in SCHEDULE_EDITABLE_STATUSES:
                raise StatusConflictError(
                    "schedule is locked once the distribution is approved",
                    code="SCHEDULE_LOCKED",
                    status=distribution.status,
                )
            new_record = schedule_changes.get("record_date", distribution.record_date)
            new_payment = schedule_changes.get("payment_date", distribution.payment_date)
            if new_record and new_payment and new_payment < new_record:
                raise DistributionValidationError("paymentDate must not precede recordDate")
            for name, value in schedule_changes.items():
                setattr(distribution, name, value)
                fields.append(name)
        if note_text:
            distribution.append_note(note_text, by=str(actor.pk))
            fields.append("notes")
        distribution.save(update_fields=fields)
        logger.info(
            "Distribution updated",
            extra={"distribution_id": str(distribution.pk), "actor_id": str(actor.pk), "fields": fields},
        )
    return distribution

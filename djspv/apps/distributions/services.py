from __future__ import annotations

import datetime
import logging
import secrets
import uuid
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.holdings.models import CapTableEntry, Project, SPV
from apps.notifications.dispatch import Events, dispatch_distribution_event

from .allocation import AllocationError, ShareholdingSnapshot, as_money, compute_allocation, sum_items
from .errors import (
    DistributionNotFoundError,
    DistributionValidationError,
    RoleForbiddenError,
    StatusConflictError,
)
from .models import Distribution, DistributionStatus, DistributionType, InvestorDistribution

logger = logging.getLogger(__name__)

UserModel = get_user_model()

MAX_TEXT_LENGTH = 2000
NUMBER_ATTEMPTS = 5


def generate_distribution_number(now: Optional[datetime.datetime] = None) -> str:
    now = now or timezone.now()
    return f"DIST-{now:%Y%m%d}-{secrets.token_hex(3).upper()}"


def default_tds_rate() -> Decimal:
    return Decimal(str(getattr(settings, "DISTRIBUTION_DEFAULT_TDS_RATE", 20)))


def require_role(actor, *roles: str) -> None:
    role = getattr(actor, "role", None) or ""
    if role not in roles:
        raise RoleForbiddenError(f"role '{role or 'anonymous'}' may not perform this operation")


def require_project_manager(actor, project: Project) -> None:
    """Asset managers act only on projects assigned to them (or unassigned ones)."""
    if actor.role == UserModel.Roles.ASSET_MANAGER and project.asset_manager_id and project.asset_manager_id != actor.pk:
        raise RoleForbiddenError("not the asset manager assigned to this project")


def clean_text(value: Any, name: str, *, required: bool = False) -> str:
    if value is None:
        text = ""
    elif isinstance(value, str):
        text = value.strip()
    else:
        raise DistributionValidationError(f"{name} must be a string")
    if required and not text:
        raise DistributionValidationError(f"{name} is required")
    if len(text) > MAX_TEXT_LENGTH:
        raise DistributionValidationError(f"{name} must be at most {MAX_TEXT_LENGTH} characters")
    return text


def get_distribution_or_raise(distribution_id, *, lock: bool = False) -> Distribution:
    qs = Distribution.objects.select_related("project", "spv")
    if lock:
        # of=("self",) keeps the lock off the joined project/spv rows
        qs = qs.select_for_update(of=("self",))
    try:
        return qs.get(pk=distribution_id)
    except (Distribution.DoesNotExist, DjangoValidationError, ValueError, TypeError):
        raise DistributionNotFoundError(f"distribution {distribution_id} not found")


def _parse_investor_ids(snapshot: ShareholdingSnapshot) -> list[uuid.UUID]:
    ids = []
    for holding in snapshot.holdings:
        try:
            ids.append(uuid.UUID(str(holding.investor_id)))
        except (ValueError, TypeError):
            raise DistributionValidationError(
                f"investor id {holding.investor_id!r} is not a valid identifier", code="UNKNOWN_INVESTOR"
            )
    return ids


def _coerce_snapshot(snapshot: Any) -> ShareholdingSnapshot:
    if isinstance(snapshot, ShareholdingSnapshot):
        return snapshot
    if isinstance(snapshot, Mapping):
        return ShareholdingSnapshot.from_payload(snapshot)
    raise DistributionValidationError("shareholdingSnapshot must be an object")


def _coerce_items(items: Optional[Iterable[Mapping[str, Any]]], name: str) -> tuple[list[dict], Decimal]:
    cleaned = []
    for idx, item in enumerate(items or []):
        if not isinstance(item, Mapping):
            raise DistributionValidationError(f"{name}[{idx}] must be an object with label and amount")
        label = clean_text(item.get("label"), f"{name}[{idx}].label", required=True)
        cleaned.append({"label": label[:120], "amount": str(as_money(item.get("amount", 0), f"{name}[{idx}].amount"))})
    return cleaned, sum_items(cleaned, name)


def _coerce_rate(value: Any) -> Decimal:
    if value is None or value == "":
        return default_tds_rate()
    try:
        rate = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise AllocationError("INVALID_TDS_RATE", "tdsRate is not a number")
    if not rate.is_finite() or rate < 0 or rate > 100:
        raise AllocationError("INVALID_TDS_RATE", "tdsRate must be between 0 and 100")
    if rate != rate.quantize(Decimal("0.001")):
        raise AllocationError("INVALID_TDS_RATE", "tdsRate has more than three decimal places")
    return rate


def snapshot_from_cap_table(spv: SPV) -> ShareholdingSnapshot:
    """Freeze the active cap table of an SPV, one holding per shareholder in first-seen order."""
    shares: dict[str, int] = {}
    entries = (
        CapTableEntry.objects.filter(spv=spv, status=CapTableEntry.Status.ACTIVE, number_of_shares__gt=0)
        .order_by("id")
        .values_list("shareholder_id", "number_of_shares")
    )
    for shareholder_id, count in entries:
        key = str(shareholder_id)
        shares[key] = shares.get(key, 0) + int(count)
    return ShareholdingSnapshot.from_mapping(shares, total_shares=sum(shares.values()))


def create_draft_distribution(
    *,
    project: Project,
    spv: SPV,
    distribution_type: str,
    gross_proceeds: Any,
    snapshot: Any = None,
    actor=None,
    deduction_items: Optional[Iterable[Mapping[str, Any]]] = None,
    platform_fee_items: Optional[Iterable[Mapping[str, Any]]] = None,
    tds_rate: Any = None,
    record_date: Optional[datetime.date] = None,
    payment_date: Optional[datetime.date] = None,
    notes: Optional[str] = None,
) -> Distribution:
    if actor is not None:
        require_role(actor, UserModel.Roles.ASSET_MANAGER, UserModel.Roles.ADMIN)
        require_project_manager(actor, project)
    if spv.project_id != project.pk:
        raise DistributionValidationError("spv does not belong to the project", code="SPV_PROJECT_MISMATCH")
    if distribution_type not in DistributionType.values:
        raise DistributionValidationError(f"unknown distribution type '{distribution_type}'")
    if record_date and payment_date and payment_date < record_date:
        raise DistributionValidationError("paymentDate must not precede recordDate")

    gross = as_money(gross_proceeds, "grossProceeds")
    deductions, total_deductions = _coerce_items(deduction_items, "deductions")
    fees, total_fees = _coerce_items(platform_fee_items, "platformFees")
    rate = _coerce_rate(tds_rate)
    snap = _coerce_snapshot(snapshot) if snapshot is not None else snapshot_from_cap_table(spv)

    note = clean_text(notes, "notes")
    last_error: Optional[IntegrityError] = None
    for _ in range(NUMBER_ATTEMPTS):
        distribution = Distribution(
            distribution_number=generate_distribution_number(),
            project=project,
            spv=spv,
            distribution_type=distribution_type,
            gross_proceeds=gross,
            deduction_items=deductions,
            total_deductions=total_deductions,
            platform_fee_items=fees,
            total_platform_fees=total_fees,
            tds_rate=rate,
            currency=getattr(settings, "DISTRIBUTION_CURRENCY", "INR"),
            shareholding_snapshot=snap.to_payload(),
            record_date=record_date,
            payment_date=payment_date,
            created_by=actor,
        )
        if note:
            distribution.append_note(note, by=str(actor.pk) if actor is not None else "system")
        try:
            with transaction.atomic():
                distribution.save(force_insert=True)
        except IntegrityError as exc:
            # distribution_number collision; anything else re-raises after the last attempt
            last_error = exc
            continue
        logger.info(
            "Distribution draft created",
            extra={
                "distribution_id": str(distribution.id),
                "distribution_number": distribution.distribution_number,
                "spv_id": str(spv.pk),
                "holders": len(snap.holdings),
            },
        )
        return distribution
    raise last_error  # type: ignore[misc]


def calculate_distribution(distribution_id, *, actor=None) -> Distribution:
    """
    Run the allocation over the stored snapshot and persist the investor rows.

    Only a draft can be calculated, and only once: the row lock plus the
    status check make a second call a ``StatusConflictError``. An
    ``AllocationError`` leaves the draft untouched.
    """
    with transaction.atomic():
        distribution = get_distribution_or_raise(distribution_id, lock=True)
        if actor is not None:
            require_role(actor, UserModel.Roles.ASSET_MANAGER, UserModel.Roles.ADMIN)
            require_project_manager(actor, distribution.project)
        if distribution.status != DistributionStatus.DRAFT:
            raise StatusConflictError(
                "distribution has already been calculated", code="ALREADY_CALCULATED", status=distribution.status
            )

        snapshot = ShareholdingSnapshot.from_payload(distribution.shareholding_snapshot or {})
        result = compute_allocation(
            gross_proceeds=distribution.gross_proceeds,
            total_deductions=distribution.total_deductions,
            total_platform_fees=distribution.total_platform_fees,
            tds_rate=distribution.tds_rate,
            snapshot=snapshot,
        )

        investor_ids = _parse_investor_ids(snapshot)
        known = set(UserModel.objects.filter(pk__in=investor_ids).values_list("pk", flat=True))
        missing = [str(i) for i in investor_ids if i not in known]
        if missing:
            raise DistributionValidationError(
                f"snapshot references unknown investors: {', '.join(missing[:5])}", code="UNKNOWN_INVESTOR"
            )

        InvestorDistribution.objects.bulk_create(
            [
                InvestorDistribution(
                    distribution=distribution,
                    investor_id=uuid.UUID(row.investor_id),
                    position=position,
                    number_of_shares=row.number_of_shares,
                    ownership_percentage=row.ownership_percentage,
                    gross_amount=row.gross_amount,
                    tds_amount=row.tds_amount,
                    net_amount=row.net_amount,
                )
                for position, row in enumerate(result.rows)
            ]
        )

        now = timezone.now()
        distribution.net_distributable_amount = result.net_distributable_amount
        distribution.tds_amount = result.total_tds
        distribution.distribution_per_share = result.distribution_per_share
        distribution.status = DistributionStatus.CALCULATED
        distribution.calculated_at = now
        distribution.save(
            update_fields=[
                "net_distributable_amount",
                "tds_amount",
                "distribution_per_share",
                "status",
                "calculated_at",
                "updated_at",
            ]
        )

        logger.info(
            "Distribution calculated",
            extra={
                "distribution_id": str(distribution.id),
                "net_distributable": str(result.net_distributable_amount),
                "total_tds": str(result.total_tds),
                "investors": len(result.rows),
                "remainder_investor": result.remainder_investor_id,
                "gross_remainder_minor": result.gross_remainder_minor,
                "tds_remainder_minor": result.tds_remainder_minor,
            },
        )
        dispatch_distribution_event(Events.REVIEW_REQUESTED_ASSET_MANAGER, distribution.id)
    return distribution


def create_calculated_distribution(**kwargs) -> Distribution:
    """Draft and calculate in one transaction; nothing is persisted if the allocation fails."""
    with transaction.atomic():
        draft = create_draft_distribution(**kwargs)
        return calculate_distribution(draft.id, actor=kwargs.get("actor"))

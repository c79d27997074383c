from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db.models import Prefetch, Q, QuerySet

from .approvals import awaiting_review_q
from .errors import DistributionNotFoundError, DistributionValidationError, InvestorNotFoundError
from .models import Distribution, DistributionStatus, DistributionType, InvestorDistribution, PaymentAttempt

logger = logging.getLogger(__name__)


@dataclass
class DistributionFilters:
    status: Optional[str] = None
    distribution_type: Optional[str] = None
    spv_id: Optional[str] = None
    project_id: Optional[str] = None
    asset_manager_id: Optional[str] = None
    awaiting_review_by: Optional[object] = None
    search: Optional[str] = None


def _base_queryset() -> QuerySet:
    rows = InvestorDistribution.objects.select_related("investor").order_by("position", "id")
    return Distribution.objects.select_related(
        "project",
        "project__asset_manager",
        "spv",
        "created_by",
        "asset_manager_approved_by",
        "compliance_approved_by",
        "admin_approved_by",
    ).prefetch_related(Prefetch("investor_distributions", queryset=rows))


def _summary_queryset() -> QuerySet:
    return Distribution.objects.select_related("project", "project__asset_manager", "spv")


def get_distribution_by_id(distribution_id) -> Distribution:
    try:
        return _base_queryset().get(pk=distribution_id)
    except (Distribution.DoesNotExist, DjangoValidationError, ValueError):
        raise DistributionNotFoundError(f"distribution {distribution_id} not found")


def get_my_distributions(investor_id) -> QuerySet:
    """Distributions that include the investor, with only the investor's own row prefetched as ``my_rows``."""
    mine = InvestorDistribution.objects.filter(investor_id=investor_id).select_related("investor")
    return (
        _summary_queryset()
        .filter(investor_distributions__investor_id=investor_id)
        .prefetch_related(Prefetch("investor_distributions", queryset=mine, to_attr="my_rows"))
        .distinct()
    )


def get_distributions_by_asset_manager(manager_id) -> QuerySet:
    return _summary_queryset().filter(project__asset_manager_id=manager_id)


def get_distributions_by_spv(spv_id) -> QuerySet:
    return _summary_queryset().filter(spv_id=spv_id)


def get_all_distributions(filters: Optional[DistributionFilters] = None) -> QuerySet:
    filters = filters or DistributionFilters()
    qs = _summary_queryset()
    if filters.status:
        if filters.status not in DistributionStatus.values:
            raise DistributionValidationError(f"unknown status '{filters.status}'")
        qs = qs.filter(status=filters.status)
    if filters.distribution_type:
        if filters.distribution_type not in DistributionType.values:
            raise DistributionValidationError(f"unknown distribution type '{filters.distribution_type}'")
        qs = qs.filter(distribution_type=filters.distribution_type)
    try:
        if filters.spv_id:
            qs = qs.filter(spv_id=filters.spv_id)
        if filters.project_id:
            qs = qs.filter(project_id=filters.project_id)
        if filters.asset_manager_id:
            qs = qs.filter(project__asset_manager_id=filters.asset_manager_id)
    except DjangoValidationError as exc:
        raise DistributionValidationError("malformed identifier in filters") from exc
    if filters.awaiting_review_by is not None:
        qs = qs.filter(awaiting_review_q(filters.awaiting_review_by))
    if filters.search:
        qs = qs.filter(
            Q(distribution_number__icontains=filters.search.strip())
            | Q(spv__name__icontains=filters.search.strip())
        )
    return qs


def investor_can_view(distribution: Distribution, user) -> bool:
    return distribution.investor_distributions.filter(investor_id=user.pk).exists()


def get_payment_history(investor_id, distribution_id=None) -> QuerySet:
    """
    Recorded payment outcomes for an investor, newest first once paginated.

    With ``distribution_id`` the history is limited to that distribution, and
    an investor who has no row in it is reported as not found.
    """
    qs = PaymentAttempt.objects.select_related(
        "investor_distribution__distribution", "recorded_by"
    ).filter(investor_distribution__investor_id=investor_id)
    if distribution_id is None:
        return qs
    try:
        member = InvestorDistribution.objects.filter(
            distribution_id=distribution_id, investor_id=investor_id
        ).exists()
        known = member or Distribution.objects.filter(pk=distribution_id).exists()
    except (DjangoValidationError, ValueError):
        member = known = False
    if not member:
        if not known:
            raise DistributionNotFoundError(f"distribution {distribution_id} not found")
        raise InvestorNotFoundError(f"investor {investor_id} is not part of distribution {distribution_id}")
    return qs.filter(investor_distribution__distribution_id=distribution_id)

from __future__ import annotations

import uuid

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone


class DistributionStatus(models.TextChoices):
    DRAFT = "draft", "Draft"
    CALCULATED = "calculated", "Calculated"
    UNDER_REVIEW = "under_review", "Under review"
    APPROVED = "approved", "Approved"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"


TERMINAL_STATUSES = frozenset({DistributionStatus.COMPLETED, DistributionStatus.CANCELLED})
REVIEWABLE_STATUSES = frozenset({DistributionStatus.CALCULATED, DistributionStatus.UNDER_REVIEW})
PAYABLE_STATUSES = frozenset({DistributionStatus.APPROVED, DistributionStatus.PROCESSING})


class DistributionType(models.TextChoices):
    SALE_PROCEEDS = "sale_proceeds", "Sale proceeds"
    RENTAL_INCOME = "rental_income", "Rental income"
    OTHER = "other", "Other"


class PaymentStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    INITIATED = "initiated", "Initiated"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


class PaymentMethod(models.TextChoices):
    NEFT = "neft", "NEFT"
    RTGS = "rtgs", "RTGS"
    IMPS = "imps", "IMPS"
    UPI = "upi", "UPI"


def _money_field(**kwargs):
    return models.DecimalField(max_digits=18, decimal_places=2, **kwargs)


class Distribution(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    distribution_number = models.CharField(max_length=32, unique=True)
    project = models.ForeignKey('holdings.Project', on_delete=models.PROTECT, related_name='distributions')
    spv = models.ForeignKey('holdings.SPV', on_delete=models.PROTECT, related_name='distributions')
    distribution_type = models.CharField(max_length=32, choices=DistributionType.choices)
    status = models.CharField(
        max_length=20, choices=DistributionStatus.choices, default=DistributionStatus.DRAFT, db_index=True
    )

    gross_proceeds = _money_field()
    deduction_items = models.JSONField(default=list, blank=True)
    total_deductions = _money_field(default=0)
    platform_fee_items = models.JSONField(default=list, blank=True)
    total_platform_fees = _money_field(default=0)
    tds_rate = models.DecimalField(max_digits=6, decimal_places=3, default=0)
    tds_amount = _money_field(default=0)
    net_distributable_amount = _money_field(default=0)
    distribution_per_share = models.DecimalField(max_digits=24, decimal_places=6, null=True, blank=True)
    currency = models.CharField(max_length=3, default='INR')

    shareholding_snapshot = models.JSONField(default=dict, blank=True)
    record_date = models.DateField(null=True, blank=True)
    payment_date = models.DateField(null=True, blank=True)

    asset_manager_approved = models.BooleanField(default=False)
    asset_manager_approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, null=True, blank=True, related_name='+'
    )
    asset_manager_approved_at = models.DateTimeField(null=True, blank=True)
    asset_manager_comments = models.TextField(blank=True, default='')

    compliance_approved = models.BooleanField(default=False)
    compliance_approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, null=True, blank=True, related_name='+'
    )
    compliance_approved_at = models.DateTimeField(null=True, blank=True)
    compliance_comments = models.TextField(blank=True, default='')

    admin_approved = models.BooleanField(default=False)
    admin_approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, null=True, blank=True, related_name='+'
    )
    admin_approved_at = models.DateTimeField(null=True, blank=True)
    admin_comments = models.TextField(blank=True, default='')

    notes = models.JSONField(default=list, blank=True)
    cancellation_reason = models.TextField(blank=True, default='')

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, null=True, blank=True, related_name='created_distributions'
    )
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)
    calculated_at = models.DateTimeField(null=True, blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'dj_distributions'
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['spv', '-created_at'], name='dj_dist_spv_created_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(compliance_approved=False) | Q(asset_manager_approved=True),
                name='dj_dist_compliance_after_asset_manager',
            ),
            models.CheckConstraint(
                condition=Q(admin_approved=False) | Q(compliance_approved=True),
                name='dj_dist_admin_after_compliance',
            ),
        ]

    def __str__(self) -> str:
        return self.distribution_number

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def approval_record(self, stage: str) -> dict:
        """One of ``asset_manager``, ``compliance``, ``admin`` as a plain record."""
        approved_at = getattr(self, f"{stage}_approved_at")
        return {
            'stage': stage,
            'approved': bool(getattr(self, f"{stage}_approved")),
            'approvedBy': str(getattr(self, f"{stage}_approved_by_id")) if getattr(self, f"{stage}_approved_by_id") else None,
            'approvedAt': approved_at.isoformat() if approved_at else None,
            'comments': getattr(self, f"{stage}_comments") or '',
        }

    def append_note(self, text: str, by: str = 'system') -> None:
        notes = list(self.notes or [])
        notes.append({'by': by, 'text': text[:2000], 'at': timezone.now().isoformat()})
        self.notes = notes


class InvestorDistribution(models.Model):
    id = models.BigAutoField(primary_key=True)
    distribution = models.ForeignKey(Distribution, on_delete=models.CASCADE, related_name='investor_distributions')
    investor = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='distribution_rows')
    position = models.PositiveIntegerField(default=0)
    number_of_shares = models.PositiveBigIntegerField()
    ownership_percentage = models.DecimalField(max_digits=9, decimal_places=6)
    gross_amount = _money_field()
    tds_amount = _money_field(default=0)
    net_amount = _money_field()

    payment_status = models.CharField(
        max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING, db_index=True
    )
    payment_method = models.CharField(max_length=10, choices=PaymentMethod.choices, blank=True, default='')
    transaction_id = models.CharField(max_length=120, blank=True, default='')
    utr = models.CharField(max_length=64, blank=True, default='')
    payment_date = models.DateField(null=True, blank=True)
    payment_failure_reason = models.TextField(blank=True, default='')
    form16_document = models.CharField(max_length=255, blank=True, default='')
    confirmation_sent_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'dj_investor_distributions'
        ordering = ['position', 'id']
        constraints = [
            models.UniqueConstraint(fields=['distribution', 'investor'], name='dj_invdist_unique_investor'),
            models.CheckConstraint(
                condition=~Q(payment_status='completed') | ~Q(transaction_id='') | ~Q(utr=''),
                name='dj_invdist_completed_has_reference',
            ),
        ]

    def __str__(self) -> str:
        return f"{self.distribution_id}:{self.investor_id}"

    def matches_reference(self, transaction_id: str, utr: str) -> bool:
        return bool(
            (transaction_id and transaction_id == self.transaction_id)
            or (utr and utr == self.utr)
        )


class PaymentAttempt(models.Model):
    class Outcome(models.TextChoices):
        COMPLETED = "completed", "Completed"
        FAILED = "failed", "Failed"

    id = models.BigAutoField(primary_key=True)
    investor_distribution = models.ForeignKey(
        InvestorDistribution, on_delete=models.CASCADE, related_name='payment_attempts'
    )
    outcome = models.CharField(max_length=12, choices=Outcome.choices)
    transaction_id = models.CharField(max_length=120, blank=True, default='')
    utr = models.CharField(max_length=64, blank=True, default='')
    payment_date = models.DateField(null=True, blank=True)
    payment_method = models.CharField(max_length=10, blank=True, default='')
    failure_reason = models.TextField(blank=True, default='')
    recorded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, null=True, blank=True, related_name='+'
    )
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'dj_payment_attempts'
        ordering = ['created_at', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['investor_distribution'],
                condition=Q(outcome='completed'),
                name='dj_payattempt_single_completion',
            ),
        ]

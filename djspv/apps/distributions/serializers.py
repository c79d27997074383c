from __future__ import annotations

from rest_framework import serializers

from apps.users.serializers import UserRefSerializer

from .approvals import STAGES, approval_stage, is_awaiting_review_by
from .models import DistributionType, PaymentMethod


def _money(**kwargs):
    return serializers.DecimalField(max_digits=18, decimal_places=2, **kwargs)


# -- Requests ----------------------------------------------------------------

class MoneyItemSerializer(serializers.Serializer):
    label = serializers.CharField(max_length=120)
    amount = _money(min_value=0)


class CalculateDistributionRequestSerializer(serializers.Serializer):
    projectId = serializers.UUIDField()
    spvId = serializers.UUIDField()
    distributionType = serializers.ChoiceField(choices=DistributionType.choices)
    grossProceeds = _money()
    deductions = MoneyItemSerializer(many=True, required=False, default=list)
    platformFees = MoneyItemSerializer(many=True, required=False, default=list)
    tdsRate = serializers.DecimalField(max_digits=6, decimal_places=3, required=False, allow_null=True)
    shareholdingSnapshot = serializers.JSONField(required=False, allow_null=True)
    recordDate = serializers.DateField(required=False, allow_null=True)
    paymentDate = serializers.DateField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=2000)


class ApprovalRequestSerializer(serializers.Serializer):
    comments = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=2000)


class CancelRequestSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=2000)


class UpdateDistributionRequestSerializer(serializers.Serializer):
    recordDate = serializers.DateField(required=False, allow_null=True)
    paymentDate = serializers.DateField(required=False, allow_null=True)
    note = serializers.CharField(required=False, allow_blank=True, max_length=2000)


class MarkPaidRequestSerializer(serializers.Serializer):
    transactionId = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=120)
    utr = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=64)
    paymentDate = serializers.DateField(required=False, allow_null=True)
    paymentMethod = serializers.ChoiceField(choices=PaymentMethod.choices, required=False, allow_null=True)


class MarkFailedRequestSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=2000)


# -- Responses ---------------------------------------------------------------

class _RefSerializer(serializers.Serializer):
    id = serializers.UUIDField()
    name = serializers.CharField()


class InvestorDistributionSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    investor = UserRefSerializer()
    position = serializers.IntegerField()
    numberOfShares = serializers.IntegerField(source='number_of_shares')
    ownershipPercentage = serializers.DecimalField(source='ownership_percentage', max_digits=9, decimal_places=6)
    grossAmount = _money(source='gross_amount')
    tdsAmount = _money(source='tds_amount')
    netAmount = _money(source='net_amount')
    paymentStatus = serializers.CharField(source='payment_status')
    paymentMethod = serializers.CharField(source='payment_method')
    transactionId = serializers.CharField(source='transaction_id')
    utr = serializers.CharField()
    paymentDate = serializers.DateField(source='payment_date', allow_null=True)
    paymentFailureReason = serializers.CharField(source='payment_failure_reason')
    form16Document = serializers.CharField(source='form16_document')
    confirmationSentAt = serializers.DateTimeField(source='confirmation_sent_at', allow_null=True)
    updatedAt = serializers.DateTimeField(source='updated_at')


class DistributionSummarySerializer(serializers.Serializer):
    id = serializers.UUIDField()
    distributionNumber = serializers.CharField(source='distribution_number')
    project = _RefSerializer()
    spv = _RefSerializer()
    distributionType = serializers.CharField(source='distribution_type')
    status = serializers.CharField()
    stage = serializers.SerializerMethodField()
    grossProceeds = _money(source='gross_proceeds')
    totalDeductions = _money(source='total_deductions')
    totalPlatformFees = _money(source='total_platform_fees')
    tdsRate = serializers.DecimalField(source='tds_rate', max_digits=6, decimal_places=3)
    tdsAmount = _money(source='tds_amount')
    netDistributableAmount = _money(source='net_distributable_amount')
    distributionPerShare = serializers.DecimalField(
        source='distribution_per_share', max_digits=24, decimal_places=6, allow_null=True
    )
    currency = serializers.CharField()
    recordDate = serializers.DateField(source='record_date', allow_null=True)
    paymentDate = serializers.DateField(source='payment_date', allow_null=True)
    awaitingMyReview = serializers.SerializerMethodField()
    createdAt = serializers.DateTimeField(source='created_at')
    updatedAt = serializers.DateTimeField(source='updated_at')
    calculatedAt = serializers.DateTimeField(source='calculated_at', allow_null=True)
    approvedAt = serializers.DateTimeField(source='approved_at', allow_null=True)
    completedAt = serializers.DateTimeField(source='completed_at', allow_null=True)
    cancelledAt = serializers.DateTimeField(source='cancelled_at', allow_null=True)

    def get_stage(self, obj):
        stage = approval_stage(obj)
        return str(stage) if stage else None

    def get_awaitingMyReview(self, obj):
        user = self.context.get('user')
        if user is None:
            return False
        return is_awaiting_review_by(obj, user)


class DistributionDetailSerializer(DistributionSummarySerializer):
    deductions = serializers.JSONField(source='deduction_items')
    platformFees = serializers.JSONField(source='platform_fee_items')
    approvals = serializers.SerializerMethodField()
    investorDistributions = serializers.SerializerMethodField()
    notes = serializers.JSONField()
    cancellationReason = serializers.CharField(source='cancellation_reason')
    createdBy = UserRefSerializer(source='created_by', allow_null=True)
    paymentStats = serializers.SerializerMethodField()

    def get_approvals(self, obj):
        out = {}
        for stage in STAGES:
            record = obj.approval_record(stage)
            approver = getattr(obj, f"{stage}_approved_by")
            record['approvedBy'] = UserRefSerializer(approver).data if approver else None
            out[stage] = record
        return out

    def get_investorDistributions(self, obj):
        rows = list(obj.investor_distributions.all())
        only_investor = self.context.get('only_investor_id')
        if only_investor is not None:
            rows = [r for r in rows if r.investor_id == only_investor]
        return InvestorDistributionSerializer(rows, many=True).data

    def get_paymentStats(self, obj):
        return self.context.get('payment_stats')


class MyDistributionSerializer(DistributionSummarySerializer):
    myDistribution = serializers.SerializerMethodField()

    def get_myDistribution(self, obj):
        rows = getattr(obj, 'my_rows', None) or []
        return InvestorDistributionSerializer(rows[0]).data if rows else None


class PaymentResultSerializer(serializers.Serializer):
    replayed = serializers.BooleanField()
    distributionStatus = serializers.CharField(source='distribution.status')
    distributionCompleted = serializers.BooleanField(source='distribution_completed')
    investorDistribution = InvestorDistributionSerializer(source='row')


class PaymentAttemptSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    distributionId = serializers.UUIDField(source='investor_distribution.distribution_id')
    distributionNumber = serializers.CharField(source='investor_distribution.distribution.distribution_number')
    investorId = serializers.UUIDField(source='investor_distribution.investor_id')
    netAmount = _money(source='investor_distribution.net_amount')
    outcome = serializers.CharField()
    transactionId = serializers.CharField(source='transaction_id')
    utr = serializers.CharField()
    paymentDate = serializers.DateField(source='payment_date', allow_null=True)
    paymentMethod = serializers.CharField(source='payment_method')
    failureReason = serializers.CharField(source='failure_reason')
    recordedBy = UserRefSerializer(source='recorded_by', allow_null=True)
    createdAt = serializers.DateTimeField(source='created_at')

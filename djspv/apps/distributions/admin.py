from django.contrib import admin

from .models import Distribution, InvestorDistribution, PaymentAttempt

MONEY_FIELDS = (
    "gross_proceeds",
    "total_deductions",
    "total_platform_fees",
    "tds_rate",
    "tds_amount",
    "net_distributable_amount",
    "distribution_per_share",
)


class InvestorDistributionInline(admin.TabularInline):
    model = InvestorDistribution
    extra = 0
    can_delete = False
    fields = (
        "position",
        "investor",
        "number_of_shares",
        "ownership_percentage",
        "gross_amount",
        "tds_amount",
        "net_amount",
        "payment_status",
        "utr",
        "transaction_id",
    )
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Distribution)
class DistributionAdmin(admin.ModelAdmin):
    list_display = ("distribution_number", "spv", "distribution_type", "status", "net_distributable_amount", "created_at")
    list_filter = ("status", "distribution_type")
    search_fields = ("distribution_number", "spv__name", "project__name")
    date_hierarchy = "created_at"
    inlines = [InvestorDistributionInline]
    readonly_fields = MONEY_FIELDS + (
        "distribution_number",
        "status",
        "shareholding_snapshot",
        "asset_manager_approved",
        "asset_manager_approved_by",
        "asset_manager_approved_at",
        "compliance_approved",
        "compliance_approved_by",
        "compliance_approved_at",
        "admin_approved",
        "admin_approved_by",
        "admin_approved_at",
        "calculated_at",
        "approved_at",
        "completed_at",
        "cancelled_at",
    )
    raw_id_fields = ("project", "spv", "created_by")

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(PaymentAttempt)
class PaymentAttemptAdmin(admin.ModelAdmin):
    list_display = ("investor_distribution", "outcome", "utr", "transaction_id", "payment_date", "created_at")
    list_filter = ("outcome",)
    search_fields = ("utr", "transaction_id")
    readonly_fields = [f.name for f in PaymentAttempt._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

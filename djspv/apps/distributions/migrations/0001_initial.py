import uuid

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models

STATUS_CHOICES = [
    ("draft", "Draft"),
    ("calculated", "Calculated"),
    ("under_review", "Under review"),
    ("approved", "Approved"),
    ("processing", "Processing"),
    ("completed", "Completed"),
    ("cancelled", "Cancelled"),
]

TYPE_CHOICES = [
    ("sale_proceeds", "Sale proceeds"),
    ("rental_income", "Rental income"),
    ("other", "Other"),
]

PAYMENT_STATUS_CHOICES = [
    ("pending", "Pending"),
    ("initiated", "Initiated"),
    ("processing", "Processing"),
    ("completed", "Completed"),
    ("failed", "Failed"),
]

PAYMENT_METHOD_CHOICES = [
    ("neft", "NEFT"),
    ("rtgs", "RTGS"),
    ("imps", "IMPS"),
    ("upi", "UPI"),
]


def _approver():
    return models.ForeignKey(
        blank=True,
        null=True,
        on_delete=django.db.models.deletion.PROTECT,
        related_name="+",
        to=settings.AUTH_USER_MODEL,
    )


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("holdings", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Distribution",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("distribution_number", models.CharField(max_length=32, unique=True)),
                ("distribution_type", models.CharField(choices=TYPE_CHOICES, max_length=32)),
                ("status", models.CharField(choices=STATUS_CHOICES, db_index=True, default="draft", max_length=20)),
                ("gross_proceeds", models.DecimalField(decimal_places=2, max_digits=18)),
                ("deduction_items", models.JSONField(blank=True, default=list)),
                ("total_deductions", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
                ("platform_fee_items", models.JSONField(blank=True, default=list)),
                ("total_platform_fees", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
                ("tds_rate", models.DecimalField(decimal_places=3, default=0, max_digits=6)),
                ("tds_amount", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
                ("net_distributable_amount", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
                ("distribution_per_share", models.DecimalField(blank=True, decimal_places=6, max_digits=24, null=True)),
                ("currency", models.CharField(default="INR", max_length=3)),
                ("shareholding_snapshot", models.JSONField(blank=True, default=dict)),
                ("record_date", models.DateField(blank=True, null=True)),
                ("payment_date", models.DateField(blank=True, null=True)),
                ("asset_manager_approved", models.BooleanField(default=False)),
                ("asset_manager_approved_at", models.DateTimeField(blank=True, null=True)),
                ("asset_manager_comments", models.TextField(blank=True, default="")),
                ("compliance_approved", models.BooleanField(default=False)),
                ("compliance_approved_at", models.DateTimeField(blank=True, null=True)),
                ("compliance_comments", models.TextField(blank=True, default="")),
                ("admin_approved", models.BooleanField(default=False)),
                ("admin_approved_at", models.DateTimeField(blank=True, null=True)),
                ("admin_comments", models.TextField(blank=True, default="")),
                ("notes", models.JSONField(blank=True, default=list)),
                ("cancellation_reason", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("calculated_at", models.DateTimeField(blank=True, null=True)),
                ("approved_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("admin_approved_by", _approver()),
                ("asset_manager_approved_by", _approver()),
                ("compliance_approved_by", _approver()),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="created_distributions", to=settings.AUTH_USER_MODEL)),
                ("project", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="distributions", to="holdings.project")),
                ("spv", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="distributions", to="holdings.spv")),
            ],
            options={
                "db_table": "dj_distributions",
                "ordering": ["-created_at", "-id"],
                "indexes": [models.Index(fields=["spv", "-created_at"], name="dj_dist_spv_created_idx")],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("compliance_approved", False), ("asset_manager_approved", True), _connector="OR"),
                        name="dj_dist_compliance_after_asset_manager",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("admin_approved", False), ("compliance_approved", True), _connector="OR"),
                        name="dj_dist_admin_after_compliance",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="InvestorDistribution",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("position", models.PositiveIntegerField(default=0)),
                ("number_of_shares", models.PositiveBigIntegerField()),
                ("ownership_percentage", models.DecimalField(decimal_places=6, max_digits=9)),
                ("gross_amount", models.DecimalField(decimal_places=2, max_digits=18)),
                ("tds_amount", models.DecimalField(decimal_places=2, default=0, max_digits=18)),
                ("net_amount", models.DecimalField(decimal_places=2, max_digits=18)),
                ("payment_status", models.CharField(choices=PAYMENT_STATUS_CHOICES, db_index=True, default="pending", max_length=20)),
                ("payment_method", models.CharField(blank=True, choices=PAYMENT_METHOD_CHOICES, default="", max_length=10)),
                ("transaction_id", models.CharField(blank=True, default="", max_length=120)),
                ("utr", models.CharField(blank=True, default="", max_length=64)),
                ("payment_date", models.DateField(blank=True, null=True)),
                ("payment_failure_reason", models.TextField(blank=True, default="")),
                ("form16_document", models.CharField(blank=True, default="", max_length=255)),
                ("confirmation_sent_at", models.DateTimeField(blank=True, null=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("distribution", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="investor_distributions", to="distributions.distribution")),
                ("investor", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="distribution_rows", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "db_table": "dj_investor_distributions",
                "ordering": ["position", "id"],
                "constraints": [
                    models.UniqueConstraint(fields=("distribution", "investor"), name="dj_invdist_unique_investor"),
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(("payment_status", "completed"), _negated=True),
                            models.Q(("transaction_id", ""), _negated=True),
                            models.Q(("utr", ""), _negated=True),
                            _connector="OR",
                        ),
                        name="dj_invdist_completed_has_reference",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="PaymentAttempt",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("outcome", models.CharField(choices=[("completed", "Completed"), ("failed", "Failed")], max_length=12)),
                ("transaction_id", models.CharField(blank=True, default="", max_length=120)),
                ("utr", models.CharField(blank=True, default="", max_length=64)),
                ("payment_date", models.DateField(blank=True, null=True)),
                ("payment_method", models.CharField(blank=True, default="", max_length=10)),
                ("failure_reason", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("investor_distribution", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="payment_attempts", to="distributions.investordistribution")),
                ("recorded_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="+", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "db_table": "dj_payment_attempts",
                "ordering": ["created_at", "id"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("outcome", "completed")),
                        fields=("investor_distribution",),
                        name="dj_payattempt_single_completion",
                    ),
                ],
            },
        ),
    ]

import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Project",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("asset_manager", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="managed_projects", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "db_table": "dj_projects",
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="SPV",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("project", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="spvs", to="holdings.project")),
            ],
            options={
                "verbose_name": "SPV",
                "verbose_name_plural": "SPVs",
                "db_table": "dj_spvs",
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="CapTableEntry",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("number_of_shares", models.PositiveBigIntegerField()),
                ("status", models.CharField(choices=[("active", "Active"), ("transferred", "Transferred"), ("redeemed", "Redeemed")], default="active", max_length=20)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("shareholder", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="holdings", to=settings.AUTH_USER_MODEL)),
                ("spv", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="cap_table", to="holdings.spv")),
            ],
            options={
                "db_table": "dj_cap_table_entries",
                "ordering": ["id"],
                "indexes": [models.Index(fields=["spv", "status"], name="dj_captable_spv_status_idx")],
            },
        ),
        migrations.CreateModel(
            name="BankAccount",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("account_holder_name", models.CharField(max_length=255)),
                ("account_number", models.CharField(max_length=34)),
                ("ifsc_code", models.CharField(max_length=11)),
                ("bank_name", models.CharField(blank=True, max_length=255)),
                ("branch_name", models.CharField(blank=True, max_length=255)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="bank_accounts", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "db_table": "dj_bank_accounts",
                "ordering": ["-is_active", "-created_at"],
            },
        ),
    ]

from __future__ import annotations

import uuid

from django.conf import settings
from django.db import models


class Project(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    asset_manager = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='managed_projects',
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'dj_projects'
        ordering = ['name']

    def __str__(self) -> str:
        return self.name


class SPV(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    project = models.ForeignKey(Project, on_delete=models.PROTECT, related_name='spvs')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'dj_spvs'
        verbose_name = 'SPV'
        verbose_name_plural = 'SPVs'
        ordering = ['name']

    def __str__(self) -> str:
        return self.name


class CapTableEntry(models.Model):
    class Status(models.TextChoices):
        ACTIVE = "active", "Active"
        TRANSFERRED = "transferred", "Transferred"
        REDEEMED = "redeemed", "Redeemed"

    id = models.BigAutoField(primary_key=True)
    spv = models.ForeignKey(SPV, on_delete=models.CASCADE, related_name='cap_table')
    shareholder = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='holdings')
    number_of_shares = models.PositiveBigIntegerField()
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.ACTIVE)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'dj_cap_table_entries'
        ordering = ['id']
        indexes = [
            models.Index(fields=['spv', 'status'], name='dj_captable_spv_status_idx'),
        ]

    def __str__(self) -> str:
        return f"{self.shareholder_id} x{self.number_of_shares} in {self.spv_id}"


class BankAccount(models.Model):
    id = models.BigAutoField(primary_key=True)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='bank_accounts')
    account_holder_name = models.CharField(max_length=255)
    account_number = models.CharField(max_length=34)
    ifsc_code = models.CharField(max_length=11)
    bank_name = models.CharField(max_length=255, blank=True)
    branch_name = models.CharField(max_length=255, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'dj_bank_accounts'
        ordering = ['-is_active', '-created_at']

    def __str__(self) -> str:
        return f"{self.account_holder_name} ({self.ifsc_code})"

    @property
    def masked_account_number(self) -> str:
        tail = (self.account_number or '')[-4:]
        return f"XXXX{tail}" if tail else ''

import uuid

from django.contrib.auth.models import AbstractUser
from django.db import models
from django.utils.translation import gettext_lazy as _


class User(AbstractUser):
    class Status(models.TextChoices):
        ACTIVE = "active", _("Active")
        SUSPENDED = "suspended", _("Suspended")
        DISABLED = "disabled", _("Disabled")

    class Roles(models.TextChoices):
        INVESTOR = "investor", _("Investor")
        ASSET_MANAGER = "asset_manager", _("Asset Manager")
        COMPLIANCE_OFFICER = "compliance_officer", _("Compliance Officer")
        ADMIN = "admin", _("Admin")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    role = models.CharField(max_length=32, choices=Roles.choices, default=Roles.INVESTOR, db_index=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.ACTIVE)
    full_name = models.CharField(max_length=255, blank=True)
    phone_number = models.CharField(max_length=64, blank=True)

    class Meta:
        db_table = 'dj_users'
        verbose_name = 'user'
        verbose_name_plural = 'users'

    def __str__(self):
        return self.username

    @property
    def display_name(self) -> str:
        if self.full_name:
            return self.full_name
        joined = f"{self.first_name} {self.last_name}".strip()
        return joined or self.email or self.username

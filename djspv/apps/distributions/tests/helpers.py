from __future__ import annotations

import uuid

from django.contrib.auth import get_user_model

from apps.distributions import approvals, services
from apps.holdings.models import CapTableEntry, Project, SPV

UserModel = get_user_model()


def make_user(role: str = "investor", **extra):
    username = extra.pop("username", f"{role}-{uuid.uuid4().hex[:8]}")
    extra.setdefault("email", f"{username}@example.com")
    return UserModel.objects.create_user(username=username, password="pw-123456", role=role, **extra)


class DistributionFixture:
    """Project, SPV, staff users and two investors holding 60/40."""

    def __init__(self):
        self.asset_manager = make_user("asset_manager")
        self.compliance = make_user("compliance_officer")
        self.admin = make_user("admin")
        self.investor_a = make_user("investor", phone_number="+919800000001")
        self.investor_b = make_user("investor")
        self.project = Project.objects.create(name="Green Acres", asset_manager=self.asset_manager)
        self.spv = SPV.objects.create(name="Green Acres SPV", project=self.project)
        CapTableEntry.objects.create(spv=self.spv, shareholder=self.investor_a, number_of_shares=60)
        CapTableEntry.objects.create(spv=self.spv, shareholder=self.investor_b, number_of_shares=40)

    def calculated(self, **overrides):
        params = dict(
            project=self.project,
            spv=self.spv,
            distribution_type="sale_proceeds",
            gross_proceeds="1000000.00",
            actor=self.asset_manager,
            deduction_items=[{"label": "Brokerage", "amount": "50000"}],
            platform_fee_items=[{"label": "Platform fee", "amount": "20000"}],
            tds_rate="20",
        )
        params.update(overrides)
        return services.create_calculated_distribution(**params)

    def approved(self, **overrides):
        distribution = self.calculated(**overrides)
        approvals.approve_as_asset_manager(distribution.id, self.asset_manager)
        approvals.approve_as_compliance(distribution.id, self.compliance)
        return approvals.approve_as_admin(distribution.id, self.admin)

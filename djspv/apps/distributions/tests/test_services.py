import re
import uuid
from datetime import date
from decimal import Decimal
from unittest.mock import patch

from django.test import TestCase, override_settings

from apps.distributions import services
from apps.distributions.allocation import AllocationError
from apps.distributions.errors import (
    DistributionNotFoundError,
    DistributionValidationError,
    RoleForbiddenError,
    StatusConflictError,
)
from apps.distributions.models import Distribution, DistributionStatus, InvestorDistribution
from apps.holdings.models import CapTableEntry, Project, SPV

from .helpers import DistributionFixture, make_user


class CreateCalculatedDistributionTests(TestCase):
    def setUp(self):
        self.fx = DistributionFixture()

    def test_persists_totals_and_investor_rows(self):
        distribution = self.fx.calculated()

        distribution.refresh_from_db()
        self.assertEqual(distribution.status, DistributionStatus.CALCULATED)
        self.assertRegex(distribution.distribution_number, r"^DIST-\d{8}-[0-9A-F]{6}$")
        self.assertEqual(distribution.total_deductions, Decimal("50000.00"))
        self.assertEqual(distribution.total_platform_fees, Decimal("20000.00"))
        self.assertEqual(distribution.net_distributable_amount, Decimal("930000.00"))
        self.assertEqual(distribution.tds_amount, Decimal("186000.00"))
        self.assertIsNotNone(distribution.calculated_at)
        self.assertEqual(distribution.created_by, self.fx.asset_manager)

        rows = list(InvestorDistribution.objects.filter(distribution=distribution))
        self.assertEqual([r.investor_id for r in rows], [self.fx.investor_a.pk, self.fx.investor_b.pk])
        self.assertEqual(rows[0].net_amount, Decimal("446400.00"))
        self.assertEqual(rows[1].net_amount, Decimal("297600.00"))
        self.assertTrue(all(r.payment_status == "pending" for r in rows))

    def test_snapshot_is_frozen_from_active_cap_table(self):
        CapTableEntry.objects.create(
            spv=self.fx.spv,
            shareholder=make_user("investor"),
            number_of_shares=100,
            status=CapTableEntry.Status.TRANSFERRED,
        )
        distribution = self.fx.calculated()

        snapshot = distribution.shareholding_snapshot
        self.assertEqual(snapshot["totalShares"], 100)
        self.assertEqual(
            snapshot["holdings"],
            [
                {"investorId": str(self.fx.investor_a.pk), "shares": 60},
                {"investorId": str(self.fx.investor_b.pk), "shares": 40},
            ],
        )

    def test_explicit_snapshot_overrides_cap_table(self):
        distribution = self.fx.calculated(
            snapshot={"holdings": [{"investorId": str(self.fx.investor_b.pk), "shares": 1}], "totalShares": 1}
        )
        rows = InvestorDistribution.objects.filter(distribution=distribution)
        self.assertEqual(rows.count(), 1)
        self.assertEqual(rows.get().gross_amount, Decimal("930000.00"))

    @override_settings(DISTRIBUTION_DEFAULT_TDS_RATE="10")
    def test_default_rate_comes_from_settings(self):
        distribution = self.fx.calculated(tds_rate=None)
        self.assertEqual(distribution.tds_rate, Decimal("10"))
        self.assertEqual(distribution.tds_amount, Decimal("93000.00"))

    def test_allocation_error_leaves_nothing_behind(self):
        with self.assertRaises(AllocationError) as ctx:
            self.fx.calculated(deduction_items=[{"label": "Everything", "amount": "2000000"}])
        self.assertEqual(ctx.exception.code, "INSUFFICIENT_PROCEEDS")
        self.assertFalse(Distribution.objects.exists())

    def test_unknown_investor_in_snapshot(self):
        stranger = str(uuid.uuid4())
        with self.assertRaises(DistributionValidationError) as ctx:
            self.fx.calculated(snapshot={"holdings": [{"investorId": stranger, "shares": 1}]})
        self.assertEqual(ctx.exception.code, "UNKNOWN_INVESTOR")
        self.assertFalse(Distribution.objects.exists())

    def test_spv_must_belong_to_project(self):
        other_project = Project.objects.create(name="Elsewhere", asset_manager=self.fx.asset_manager)
        with self.assertRaises(DistributionValidationError) as ctx:
            self.fx.calculated(project=other_project)
        self.assertEqual(ctx.exception.code, "SPV_PROJECT_MISMATCH")

    def test_payment_date_before_record_date_rejected(self):
        with self.assertRaises(DistributionValidationError):
            self.fx.calculated(record_date=date(2024, 5, 10), payment_date=date(2024, 5, 1))

    def test_item_without_label_rejected(self):
        with self.assertRaises(DistributionValidationError):
            self.fx.calculated(deduction_items=[{"amount": "10"}])

    def test_rate_with_too_many_decimals(self):
        with self.assertRaises(AllocationError) as ctx:
            self.fx.calculated(tds_rate="10.0001")
        self.assertEqual(ctx.exception.code, "INVALID_TDS_RATE")

    def test_investor_cannot_calculate(self):
        with self.assertRaises(RoleForbiddenError):
            self.fx.calculated(actor=self.fx.investor_a)

    def test_asset_manager_of_another_project_cannot_calculate(self):
        with self.assertRaises(RoleForbiddenError):
            self.fx.calculated(actor=make_user("asset_manager"))

    def test_notes_are_recorded(self):
        distribution = self.fx.calculated(notes="  Q2 rental  ")
        self.assertEqual(distribution.notes[0]["text"], "Q2 rental")
        self.assertEqual(distribution.notes[0]["by"], str(self.fx.asset_manager.pk))


class CalculateDistributionTests(TestCase):
    def setUp(self):
        self.fx = DistributionFixture()

    def test_calculating_twice_conflicts(self):
        distribution = self.fx.calculated()
        with self.assertRaises(StatusConflictError) as ctx:
            services.calculate_distribution(distribution.id, actor=self.fx.admin)
        self.assertEqual(ctx.exception.code, "ALREADY_CALCULATED")
        self.assertEqual(InvestorDistribution.objects.filter(distribution=distribution).count(), 2)

    def test_draft_then_calculate(self):
        draft = services.create_draft_distribution(
            project=self.fx.project,
            spv=self.fx.spv,
            distribution_type="rental_income",
            gross_proceeds="100.00",
            tds_rate="0",
        )
        self.assertEqual(draft.status, DistributionStatus.DRAFT)
        self.assertFalse(draft.investor_distributions.exists())

        calculated = services.calculate_distribution(draft.id)
        self.assertEqual(calculated.status, DistributionStatus.CALCULATED)
        self.assertEqual(calculated.investor_distributions.count(), 2)

    def test_missing_distribution(self):
        with self.assertRaises(DistributionNotFoundError):
            services.calculate_distribution(uuid.uuid4())

    def test_malformed_identifier_is_not_found(self):
        with self.assertRaises(DistributionNotFoundError):
            services.get_distribution_or_raise("not-a-uuid")


class DistributionNumberTests(TestCase):
    def test_number_format(self):
        self.assertTrue(re.fullmatch(r"DIST-\d{8}-[0-9A-F]{6}", services.generate_distribution_number()))

    def test_collision_is_retried(self):
        fx = DistributionFixture()
        existing = fx.calculated()
        numbers = iter([existing.distribution_number, "DIST-20240101-ABCDEF"])
        with patch("apps.distributions.services.generate_distribution_number", side_effect=lambda: next(numbers)):
            draft = services.create_draft_distribution(
                project=fx.project, spv=fx.spv, distribution_type="other", gross_proceeds="10.00"
            )
        self.assertEqual(draft.distribution_number, "DIST-20240101-ABCDEF")


class CleanTextTests(TestCase):
    def test_strips_and_limits(self):
        self.assertEqual(services.clean_text("  ok ", "notes"), "ok")
        with self.assertRaises(DistributionValidationError):
            services.clean_text("x" * 2001, "notes")
        with self.assertRaises(DistributionValidationError):
            services.clean_text("   ", "reason", required=True)
        with self.assertRaises(DistributionValidationError):
            services.clean_text(42, "reason")

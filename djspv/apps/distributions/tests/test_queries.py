import uuid

from django.test import TestCase

from apps.distributions import approvals, payments, queries
from apps.distributions.errors import DistributionNotFoundError, DistributionValidationError, InvestorNotFoundError
from apps.distributions.models import PaymentAttempt
from apps.holdings.models import CapTableEntry, Project, SPV

from .helpers import DistributionFixture, make_user


class DistributionQueryTests(TestCase):
    def setUp(self):
        self.fx = DistributionFixture()
        self.first = self.fx.calculated(distribution_type="rental_income")
        self.second = self.fx.approved()

        other_manager = make_user("asset_manager")
        other_project = Project.objects.create(name="Hill View", asset_manager=other_manager)
        self.other_spv = SPV.objects.create(name="Hill View SPV", project=other_project)
        self.outsider = make_user("investor")
        CapTableEntry.objects.create(spv=self.other_spv, shareholder=self.outsider, number_of_shares=10)
        self.other = self.fx.calculated(project=other_project, spv=self.other_spv, actor=other_manager)

    def test_by_id_prefetches_rows(self):
        d = queries.get_distribution_by_id(self.first.id)
        with self.assertNumQueries(0):
            rows = list(d.investor_distributions.all())
            _ = [r.investor.email for r in rows]
        self.assertEqual(len(rows), 2)

    def test_by_id_missing(self):
        with self.assertRaises(DistributionNotFoundError):
            queries.get_distribution_by_id(uuid.uuid4())

    def test_my_distributions_only_include_my_rows(self):
        mine = list(queries.get_my_distributions(self.fx.investor_a.pk))
        self.assertEqual({d.id for d in mine}, {self.first.id, self.second.id})
        for d in mine:
            self.assertEqual([r.investor_id for r in d.my_rows], [self.fx.investor_a.pk])

        self.assertEqual([d.id for d in queries.get_my_distributions(self.outsider.pk)], [self.other.id])

    def test_by_asset_manager_and_spv(self):
        by_manager = queries.get_distributions_by_asset_manager(self.fx.asset_manager.pk)
        self.assertEqual({d.id for d in by_manager}, {self.first.id, self.second.id})
        self.assertEqual([d.id for d in queries.get_distributions_by_spv(self.other_spv.pk)], [self.other.id])

    def test_filters(self):
        def ids(**kwargs):
            return {d.id for d in queries.get_all_distributions(queries.DistributionFilters(**kwargs))}

        self.assertEqual(ids(), {self.first.id, self.second.id, self.other.id})
        self.assertEqual(ids(status="approved"), {self.second.id})
        self.assertEqual(ids(distribution_type="rental_income"), {self.first.id})
        self.assertEqual(ids(spv_id=self.other_spv.pk), {self.other.id})
        self.assertEqual(ids(project_id=self.fx.project.pk), {self.first.id, self.second.id})
        self.assertEqual(ids(search=self.second.distribution_number.lower()), {self.second.id})
        self.assertEqual(ids(search="hill view"), {self.other.id})

    def test_awaiting_review_filter(self):
        approvals.approve_as_asset_manager(self.first.id, self.fx.asset_manager)
        queue = queries.get_all_distributions(queries.DistributionFilters(awaiting_review_by=self.fx.compliance))
        self.assertEqual([d.id for d in queue], [self.first.id])

    def test_unknown_status_filter(self):
        with self.assertRaises(DistributionValidationError):
            queries.get_all_distributions(queries.DistributionFilters(status="paid"))

    def test_investor_can_view(self):
        self.assertTrue(queries.investor_can_view(self.first, self.fx.investor_b))
        self.assertFalse(queries.investor_can_view(self.first, self.outsider))


class PaymentHistoryQueryTests(TestCase):
    def setUp(self):
        self.fx = DistributionFixture()
        self.earlier = self.fx.approved()
        self.later = self.fx.approved()
        investor = self.fx.investor_a.pk
        payments.mark_investor_paid(self.earlier.id, investor, self.fx.admin, utr="UTR-E")
        payments.mark_investor_payment_failed(self.later.id, investor, self.fx.admin, "account frozen")
        payments.mark_investor_paid(self.later.id, investor, self.fx.admin, transaction_id="TXN-L")

    def test_all_distributions_for_investor(self):
        history = queries.get_payment_history(self.fx.investor_a.pk)
        self.assertEqual(history.count(), 3)
        self.assertFalse(queries.get_payment_history(self.fx.investor_b.pk).exists())

    def test_limited_to_one_distribution(self):
        history = list(queries.get_payment_history(self.fx.investor_a.pk, self.later.id).order_by("id"))
        self.assertEqual(
            [a.outcome for a in history],
            [PaymentAttempt.Outcome.FAILED, PaymentAttempt.Outcome.COMPLETED],
        )
        self.assertEqual(history[0].failure_reason, "account frozen")
        self.assertEqual(history[1].transaction_id, "TXN-L")

    def test_investor_outside_distribution(self):
        with self.assertRaises(InvestorNotFoundError):
            queries.get_payment_history(self.fx.compliance.pk, self.later.id)

    def test_unknown_distribution(self):
        with self.assertRaises(DistributionNotFoundError):
            queries.get_payment_history(self.fx.investor_a.pk, uuid.uuid4())

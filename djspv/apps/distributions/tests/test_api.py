import csv
import io
import uuid

from django.test import TestCase
from rest_framework.test import APIClient

from apps.distributions.models import Distribution, DistributionStatus
from apps.holdings.models import BankAccount

from .helpers import DistributionFixture, make_user

API = "/api/v1"


class DistributionApiTestCase(TestCase):
    def setUp(self):
        self.fx = DistributionFixture()
        self.client = APIClient()

    def as_user(self, user):
        self.client.force_authenticate(user=user)
        return self.client


class CalculateEndpointTests(DistributionApiTestCase):
    def _payload(self, **overrides):
        body = {
            "projectId": str(self.fx.project.pk),
            "spvId": str(self.fx.spv.pk),
            "distributionType": "sale_proceeds",
            "grossProceeds": "1000000.00",
            "deductions": [{"label": "Brokerage", "amount": "50000.00"}],
            "platformFees": [{"label": "Platform fee", "amount": "20000.00"}],
            "tdsRate": "20",
        }
        body.update(overrides)
        return body

    def test_calculate_returns_detail(self):
        resp = self.as_user(self.fx.asset_manager).post(f"{API}/distributions/calculate", self._payload(), format="json")

        self.assertEqual(resp.status_code, 201, resp.content)
        body = resp.json()
        self.assertEqual(body["status"], "calculated")
        self.assertEqual(body["stage"], "awaiting_asset_manager")
        self.assertEqual(body["netDistributableAmount"], "930000.00")
        self.assertTrue(body["awaitingMyReview"])
        self.assertEqual(len(body["investorDistributions"]), 2)
        self.assertEqual(body["investorDistributions"][0]["netAmount"], "446400.00")
        self.assertEqual(body["paymentStats"]["totalInvestors"], 2)
        self.assertFalse(body["approvals"]["asset_manager"]["approved"])

    def test_allocation_failure_is_400(self):
        resp = self.as_user(self.fx.admin).post(
            f"{API}/distributions/calculate",
            self._payload(deductions=[{"label": "Everything", "amount": "5000000.00"}]),
            format="json",
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["code"], "INSUFFICIENT_PROCEEDS")
        self.assertFalse(Distribution.objects.exists())

    def test_investor_cannot_calculate(self):
        resp = self.as_user(self.fx.investor_a).post(f"{API}/distributions/calculate", self._payload(), format="json")
        self.assertEqual(resp.status_code, 403)

    def test_unknown_spv_is_404(self):
        resp = self.as_user(self.fx.admin).post(
            f"{API}/distributions/calculate", self._payload(spvId=str(uuid.uuid4())), format="json"
        )
        self.assertEqual(resp.status_code, 404)

    def test_requires_authentication(self):
        resp = self.client.post(f"{API}/distributions/calculate", self._payload(), format="json")
        self.assertEqual(resp.status_code, 401)


class ApprovalEndpointTests(DistributionApiTestCase):
    def setUp(self):
        super().setUp()
        self.distribution = self.fx.calculated()
        self.base = f"{API}/distributions/{self.distribution.id}"

    def test_out_of_order_approval_is_409(self):
        resp = self.as_user(self.fx.compliance).post(f"{self.base}/approve-compliance", {}, format="json")

        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["code"], "OUT_OF_ORDER")
        self.assertEqual(resp.json()["missingStage"], "asset_manager")
        self.assertEqual(Distribution.objects.get(pk=self.distribution.id).status, "calculated")

    def test_full_approval_flow(self):
        r1 = self.as_user(self.fx.asset_manager).post(f"{self.base}/approve-asset-manager", {"comments": "ok"}, format="json")
        r2 = self.as_user(self.fx.compliance).post(f"{self.base}/approve-compliance/", {}, format="json")
        r3 = self.as_user(self.fx.admin).post(f"{self.base}/approve-admin", {"comments": "go"}, format="json")

        self.assertEqual([r.status_code for r in (r1, r2, r3)], [200, 200, 200])
        self.assertEqual(r2.json()["status"], "calculated")
        self.assertEqual(r3.json()["status"], "approved")
        self.assertEqual(r3.json()["approvals"]["admin"]["approvedBy"]["id"], str(self.fx.admin.pk))

    def test_wrong_role_is_403(self):
        resp = self.as_user(self.fx.investor_a).post(f"{self.base}/approve-admin", {}, format="json")
        self.assertEqual(resp.status_code, 403)

    def test_duplicate_is_409_with_record(self):
        self.as_user(self.fx.asset_manager).post(f"{self.base}/approve-asset-manager", {"comments": "a"}, format="json")
        resp = self.client.post(f"{self.base}/approve-asset-manager", {"comments": "b"}, format="json")
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["approval"]["comments"], "a")

    def test_cancel(self):
        resp = self.as_user(self.fx.admin).post(f"{self.base}/cancel", {"reason": "duplicate"}, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["status"], "cancelled")
        self.assertEqual(resp.json()["cancellationReason"], "duplicate")

    def test_patch_schedule_admin_only(self):
        resp = self.as_user(self.fx.compliance).patch(self.base, {"recordDate": "2024-06-01"}, format="json")
        self.assertEqual(resp.status_code, 403)

        resp = self.as_user(self.fx.admin).patch(
            self.base, {"recordDate": "2024-06-01", "paymentDate": "2024-06-20"}, format="json"
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["paymentDate"], "2024-06-20")

    def test_unknown_distribution_is_404(self):
        resp = self.as_user(self.fx.admin).post(f"{API}/distributions/{uuid.uuid4()}/approve-admin", {}, format="json")
        self.assertEqual(resp.status_code, 404)


class DetailVisibilityTests(DistributionApiTestCase):
    def setUp(self):
        super().setUp()
        self.distribution = self.fx.calculated()
        self.url = f"{API}/distributions/{self.distribution.id}"

    def test_investor_sees_only_own_row(self):
        resp = self.as_user(self.fx.investor_b).get(self.url)
        self.assertEqual(resp.status_code, 200)
        rows = resp.json()["investorDistributions"]
        self.assertEqual([r["investor"]["id"] for r in rows], [str(self.fx.investor_b.pk)])
        self.assertIsNone(resp.json()["paymentStats"])

    def test_non_member_gets_404(self):
        resp = self.as_user(make_user("investor")).get(self.url)
        self.assertEqual(resp.status_code, 404)

    def test_staff_sees_every_row(self):
        resp = self.as_user(self.fx.compliance).get(self.url)
        self.assertEqual(len(resp.json()["investorDistributions"]), 2)


class ListEndpointTests(DistributionApiTestCase):
    def test_my_distributions(self):
        self.fx.calculated()
        resp = self.as_user(self.fx.investor_a).get(f"{API}/distributions/my-distributions")

        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(len(body["items"]), 1)
        self.assertEqual(body["items"][0]["myDistribution"]["netAmount"], "446400.00")
        self.assertFalse(body["pageInfo"]["hasMore"])

    def test_staff_list_paginates(self):
        for _ in range(3):
            self.fx.calculated()
        client = self.as_user(self.fx.admin)
        first = client.get(f"{API}/distributions", {"limit": 2}).json()
        self.assertEqual(len(first["items"]), 2)
        self.assertTrue(first["pageInfo"]["hasMore"])

        second = client.get(f"{API}/distributions", {"limit": 2, "cursor": first["pageInfo"]["nextCursor"]}).json()
        self.assertEqual(len(second["items"]), 1)
        seen = {i["id"] for i in first["items"]} | {i["id"] for i in second["items"]}
        self.assertEqual(len(seen), 3)

    def test_investor_cannot_list_all(self):
        resp = self.as_user(self.fx.investor_a).get(f"{API}/distributions")
        self.assertEqual(resp.status_code, 403)

    def test_awaiting_my_review(self):
        d = self.fx.calculated()
        resp = self.as_user(self.fx.compliance).get(f"{API}/distributions", {"awaitingMyReview": "true"})
        self.assertEqual(resp.json()["items"], [])

        self.as_user(self.fx.asset_manager).post(f"{API}/distributions/{d.id}/approve-asset-manager", {}, format="json")
        resp = self.as_user(self.fx.compliance).get(f"{API}/distributions", {"awaitingMyReview": "1"})
        self.assertEqual([i["id"] for i in resp.json()["items"]], [str(d.id)])

    def test_bad_status_filter_is_400(self):
        resp = self.as_user(self.fx.admin).get(f"{API}/distributions", {"status": "paid"})
        self.assertEqual(resp.status_code, 400)

    def test_other_asset_manager_cannot_list_by_manager(self):
        resp = self.as_user(make_user("asset_manager")).get(
            f"{API}/distributions/by-asset-manager/{self.fx.asset_manager.pk}"
        )
        self.assertEqual(resp.status_code, 403)

    def test_by_spv(self):
        d = self.fx.calculated()
        resp = self.as_user(self.fx.compliance).get(f"{API}/distributions/spv/{self.fx.spv.pk}")
        self.assertEqual([i["id"] for i in resp.json()["items"]], [str(d.id)])


class PaymentEndpointTests(DistributionApiTestCase):
    def setUp(self):
        super().setUp()
        self.distribution = self.fx.approved()
        self.base = f"{API}/distributions/{self.distribution.id}"

    def _mark_paid(self, investor, body):
        return self.as_user(self.fx.admin).post(f"{self.base}/investors/{investor.pk}/mark-paid", body, format="json")

    def test_mark_paid_with_utr_only(self):
        resp = self._mark_paid(self.fx.investor_a, {"utr": "UTR123", "paymentMethod": "rtgs"})

        self.assertEqual(resp.status_code, 200, resp.content)
        body = resp.json()
        self.assertFalse(body["replayed"])
        self.assertEqual(body["distributionStatus"], "processing")
        self.assertEqual(body["investorDistribution"]["paymentStatus"], "completed")

    def test_replay_and_conflict(self):
        self._mark_paid(self.fx.investor_a, {"transactionId": "T1"})
        replay = self._mark_paid(self.fx.investor_a, {"transactionId": "T1"})
        conflict = self._mark_paid(self.fx.investor_a, {"transactionId": "T2"})

        self.assertEqual(replay.status_code, 200)
        self.assertTrue(replay.json()["replayed"])
        self.assertEqual(conflict.status_code, 409)
        self.assertEqual(conflict.json()["code"], "ALREADY_PAID")

    def test_missing_reference_is_400(self):
        resp = self._mark_paid(self.fx.investor_a, {})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["code"], "PAYMENT_REFERENCE_REQUIRED")

    def test_completion(self):
        self._mark_paid(self.fx.investor_a, {"utr": "A"})
        resp = self._mark_paid(self.fx.investor_b, {"utr": "B"})
        self.assertTrue(resp.json()["distributionCompleted"])
        self.assertEqual(Distribution.objects.get(pk=self.distribution.id).status, DistributionStatus.COMPLETED)

    def test_unknown_investor_is_404(self):
        resp = self._mark_paid(self.fx.compliance, {"utr": "X"})
        self.assertEqual(resp.status_code, 404)

    def test_mark_failed(self):
        resp = self.as_user(self.fx.admin).post(
            f"{self.base}/investors/{self.fx.investor_b.pk}/mark-failed", {"reason": "account closed"}, format="json"
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["investorDistribution"]["paymentStatus"], "failed")

    def test_process_payments(self):
        resp = self.as_user(self.fx.admin).post(f"{self.base}/process-payments", {}, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["status"], "processing")
        self.assertEqual(resp.json()["paymentStats"]["byStatus"]["initiated"], 2)

    def test_bank_payments_csv(self):
        BankAccount.objects.create(
            user=self.fx.investor_a,
            account_holder_name="Asha Rao",
            account_number="001122334455",
            ifsc_code="HDFC0001234",
            bank_name="HDFC Bank",
            branch_name="Indiranagar",
        )
        resp = self.as_user(self.fx.admin).get(f"{self.base}/bank-payments.csv")

        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp["Content-Type"].startswith("text/csv"))
        self.assertEqual(resp["X-Skipped-Investors"], "1")
        rows = list(csv.reader(io.StringIO(resp.content.decode("utf-8"))))
        self.assertEqual(rows[0][0], "Beneficiary Name")
        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[1][0], "Asha Rao")
        self.assertEqual(rows[1][5], "446400.00")
        self.assertEqual(rows[1][6], self.distribution.distribution_number)

    def test_bank_payments_csv_admin_only(self):
        resp = self.as_user(self.fx.compliance).get(f"{self.base}/bank-payments.csv")
        self.assertEqual(resp.status_code, 403)


class PaymentHistoryEndpointTests(DistributionApiTestCase):
    def setUp(self):
        super().setUp()
        self.distribution = self.fx.approved()
        base = f"{API}/distributions/{self.distribution.id}/investors/{self.fx.investor_b.pk}"
        admin = self.as_user(self.fx.admin)
        admin.post(f"{base}/mark-failed", {"reason": "IFSC mismatch"}, format="json")
        admin.post(f"{base}/mark-paid", {"utr": "UTR-B2", "paymentMethod": "neft"}, format="json")
        self.url = f"{base}/payments"

    def test_admin_sees_newest_first(self):
        resp = self.as_user(self.fx.admin).get(self.url)

        self.assertEqual(resp.status_code, 200, resp.content)
        body = resp.json()
        self.assertEqual([i["outcome"] for i in body["items"]], ["completed", "failed"])
        latest = body["items"][0]
        self.assertEqual(latest["utr"], "UTR-B2")
        self.assertEqual(latest["paymentMethod"], "neft")
        self.assertEqual(latest["netAmount"], "297600.00")
        self.assertEqual(latest["distributionNumber"], self.distribution.distribution_number)
        self.assertEqual(latest["recordedBy"]["id"], str(self.fx.admin.pk))
        self.assertEqual(body["items"][1]["failureReason"], "IFSC mismatch")
        self.assertFalse(body["pageInfo"]["hasMore"])

    def test_cursor_pages_through_history(self):
        first = self.as_user(self.fx.admin).get(self.url, {"limit": 1}).json()
        self.assertTrue(first["pageInfo"]["hasMore"])
        second = self.client.get(self.url, {"limit": 1, "cursor": first["pageInfo"]["nextCursor"]}).json()
        self.assertEqual([i["outcome"] for i in second["items"]], ["failed"])
        self.assertFalse(second["pageInfo"]["hasMore"])

    def test_investor_reads_own_history_across_distributions(self):
        resp = self.as_user(self.fx.investor_b).get(f"{API}/distributions/payment-history/{self.fx.investor_b.pk}/")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(len(resp.json()["items"]), 2)

    def test_other_investor_is_forbidden(self):
        resp = self.as_user(self.fx.investor_a).get(self.url)
        self.assertEqual(resp.status_code, 403)

    def test_compliance_is_forbidden(self):
        resp = self.as_user(self.fx.compliance).get(self.url)
        self.assertEqual(resp.status_code, 403)

    def test_investor_outside_distribution_is_404(self):
        outsider = make_user("investor")
        resp = self.as_user(self.fx.admin).get(
            f"{API}/distributions/{self.distribution.id}/investors/{outsider.pk}/payments"
        )
        self.assertEqual(resp.status_code, 404)

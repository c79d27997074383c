from decimal import Decimal

from django.test import SimpleTestCase

from apps.distributions.allocation import (
    AllocationError,
    Holding,
    ShareholdingSnapshot,
    compute_allocation,
    sum_items,
)


def _allocate(gross, shares, *, deductions="0", fees="0", rate="0", total_shares=None):
    snapshot = ShareholdingSnapshot(
        holdings=[Holding(investor_id=k, shares=v) for k, v in shares],
        total_shares=total_shares,
    )
    return compute_allocation(
        gross_proceeds=gross,
        total_deductions=deductions,
        total_platform_fees=fees,
        tds_rate=rate,
        snapshot=snapshot,
    )


class AllocationScenarioTests(SimpleTestCase):
    def test_sixty_forty_split_with_deductions_fees_and_tds(self):
        result = _allocate(
            "1000000.00", [("a", 60), ("b", 40)], deductions="50000", fees="20000", rate="20"
        )

        self.assertEqual(result.net_distributable_amount, Decimal("930000.00"))
        self.assertEqual(result.total_tds, Decimal("186000.00"))
        self.assertEqual(result.total_net, Decimal("744000.00"))
        self.assertEqual(result.distribution_per_share, Decimal("9300.000000"))

        a, b = result.rows
        self.assertEqual((a.gross_amount, a.tds_amount, a.net_amount),
                         (Decimal("558000.00"), Decimal("111600.00"), Decimal("446400.00")))
        self.assertEqual((b.gross_amount, b.tds_amount, b.net_amount),
                         (Decimal("372000.00"), Decimal("74400.00"), Decimal("297600.00")))
        self.assertEqual(a.ownership_percentage, Decimal("60.000000"))
        self.assertEqual(result.gross_remainder_minor, 0)

    def test_near_thirds_sum_exactly_to_the_pool(self):
        result = _allocate("100.00", [("a", 3333), ("b", 3333), ("c", 3334)])

        self.assertEqual([r.gross_amount for r in result.rows],
                         [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")])
        self.assertEqual(sum(r.gross_amount for r in result.rows), Decimal("100.00"))

    def test_remainder_goes_to_largest_holder(self):
        result = _allocate("1.00", [("a", 3333), ("b", 3333), ("c", 3334)])

        self.assertEqual([r.gross_amount for r in result.rows],
                         [Decimal("0.33"), Decimal("0.33"), Decimal("0.34")])
        self.assertEqual(result.remainder_investor_id, "c")
        self.assertEqual(result.gross_remainder_minor, 1)
        self.assertTrue(result.rows[2].receives_remainder)

    def test_tie_for_largest_holder_goes_to_first_in_snapshot(self):
        result = _allocate("100.00", [("a", 1), ("b", 1), ("c", 1)], rate="10")

        self.assertEqual([r.gross_amount for r in result.rows],
                         [Decimal("33.34"), Decimal("33.33"), Decimal("33.33")])
        self.assertEqual([r.tds_amount for r in result.rows],
                         [Decimal("3.34"), Decimal("3.33"), Decimal("3.33")])
        self.assertEqual([r.net_amount for r in result.rows],
                         [Decimal("30.00"), Decimal("30.00"), Decimal("30.00")])
        self.assertEqual(result.total_tds, Decimal("10.00"))
        self.assertEqual(result.remainder_investor_id, "a")

    def test_few_paise_over_many_equal_holders(self):
        result = _allocate("0.03", [(f"i{n}", 1) for n in range(5)])

        self.assertEqual([r.gross_amount for r in result.rows],
                         [Decimal("0.03")] + [Decimal("0.00")] * 4)
        self.assertEqual(result.gross_remainder_minor, 3)
        self.assertEqual(result.remainder_investor_id, "i0")

    def test_tds_remainder_spills_past_a_saturated_designated_row(self):
        result = _allocate("0.05", [(f"i{n}", 1) for n in range(5)], rate="50")

        self.assertEqual([r.gross_amount for r in result.rows], [Decimal("0.01")] * 5)
        self.assertEqual([r.tds_amount for r in result.rows],
                         [Decimal("0.01"), Decimal("0.01"), Decimal("0.01"), Decimal("0.00"), Decimal("0.00")])
        self.assertEqual(result.total_tds, Decimal("0.03"))
        self.assertEqual(result.total_net, Decimal("0.02"))
        self.assertEqual(result.tds_remainder_minor, 3)

    def test_thousand_equal_holders_reconcile(self):
        result = _allocate("50.00", [(f"i{n}", 1) for n in range(1000)], rate="10")

        self.assertEqual(len(result.rows), 1000)
        self.assertTrue(all(r.gross_amount == Decimal("0.05") for r in result.rows))
        self.assertTrue(all(Decimal("0") <= r.tds_amount <= r.gross_amount for r in result.rows))
        self.assertEqual(sum(r.tds_amount for r in result.rows), Decimal("5.00"))
        self.assertEqual(sum(r.net_amount for r in result.rows), Decimal("45.00"))
        self.assertEqual(result.total_tds, Decimal("5.00"))

    def test_zero_share_holders_get_no_row(self):
        result = _allocate("10.00", [("a", 5), ("idle", 0), ("b", 5)])

        self.assertEqual([r.investor_id for r in result.rows], ["a", "b"])
        self.assertEqual(result.total_shares, 10)

    def test_pool_can_be_exactly_zero(self):
        result = _allocate("500.00", [("a", 1)], deductions="400", fees="100")

        self.assertEqual(result.net_distributable_amount, Decimal("0.00"))
        self.assertEqual(result.rows[0].net_amount, Decimal("0.00"))

    def test_full_tds_leaves_no_net(self):
        result = _allocate("10.00", [("a", 1), ("b", 2)], rate="100")

        self.assertEqual(result.total_net, Decimal("0.00"))
        self.assertEqual(result.total_tds, Decimal("10.00"))


class AllocationErrorTests(SimpleTestCase):
    def assertCode(self, code, **kwargs):
        params = {"gross": "100.00", "shares": [("a", 1)]}
        params.update(kwargs)
        gross = params.pop("gross")
        shares = params.pop("shares")
        with self.assertRaises(AllocationError) as ctx:
            _allocate(gross, shares, **params)
        self.assertEqual(ctx.exception.code, code)

    def test_empty_snapshot(self):
        self.assertCode("ZERO_TOTAL_SHARES", shares=[])

    def test_only_zero_holdings(self):
        self.assertCode("ZERO_TOTAL_SHARES", shares=[("a", 0)])

    def test_negative_shares(self):
        self.assertCode("NEGATIVE_SHARES", shares=[("a", 5), ("b", -1)])

    def test_duplicate_investor(self):
        self.assertCode("DUPLICATE_INVESTOR", shares=[("a", 5), ("a", 1)])

    def test_stated_total_disagrees_with_holdings(self):
        self.assertCode("SNAPSHOT_TOTAL_MISMATCH", shares=[("a", 5)], total_shares=6)

    def test_costs_exceed_gross(self):
        self.assertCode("INSUFFICIENT_PROCEEDS", deductions="90", fees="20")

    def test_negative_gross(self):
        self.assertCode("NEGATIVE_AMOUNT", gross="-1")

    def test_sub_paisa_precision(self):
        self.assertCode("AMOUNT_PRECISION", gross="10.001")

    def test_non_numeric_amount(self):
        self.assertCode("INVALID_AMOUNT", gross="ten")

    def test_rate_out_of_range(self):
        self.assertCode("INVALID_TDS_RATE", rate="100.5")

    def test_malformed_payload(self):
        with self.assertRaises(AllocationError) as ctx:
            ShareholdingSnapshot.from_payload({"holdings": [{"shares": 3}]})
        self.assertEqual(ctx.exception.code, "SNAPSHOT_MALFORMED")


class SumItemsTests(SimpleTestCase):
    def test_totals_itemised_list(self):
        items = [{"label": "Stamp duty", "amount": "1200.50"}, {"label": "Legal", "amount": "99.50"}]
        self.assertEqual(sum_items(items, "deductions"), Decimal("1300.00"))

    def test_none_is_zero(self):
        self.assertEqual(sum_items(None, "platformFees"), Decimal("0.00"))

    def test_rejects_negative_item(self):
        with self.assertRaises(AllocationError) as ctx:
            sum_items([{"label": "Refund", "amount": "-5"}], "deductions")
        self.assertEqual(ctx.exception.code, "NEGATIVE_AMOUNT")

"""
Pro-rata allocation of a distribution pool across a shareholding snapshot.

Pure computation: no database access and no side effects. Every amount is
converted to integer minor units (paise) before any division so that the
per-investor rows reconcile exactly with the pool they were carved from.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_FLOOR, ROUND_HALF_UP
from typing import Any, Iterable, Mapping, Optional, Sequence

MINOR_PER_UNIT = 100
MONEY_QUANT = Decimal("0.01")
PERCENT_QUANT = Decimal("0.000001")
PER_SHARE_QUANT = Decimal("0.000001")
HUNDRED = Decimal("100")


class AllocationError(Exception):
    """Raised when a distribution cannot be allocated. Never retried automatically."""

    def __init__(self, code: str, detail: Optional[str] = None):
        self.code = code
        self.detail = detail or code
        super().__init__(f"{code}: {detail}" if detail else code)


@dataclass(frozen=True)
class Holding:
    investor_id: str
    shares: int


@dataclass
class ShareholdingSnapshot:
    holdings: list[Holding]
    total_shares: Optional[int] = None

    @classmethod
    def from_mapping(cls, shares_by_investor: Mapping[Any, int], total_shares: Optional[int] = None) -> "ShareholdingSnapshot":
        return cls(
            holdings=[Holding(investor_id=str(k), shares=int(v)) for k, v in shares_by_investor.items()],
            total_shares=total_shares,
        )

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ShareholdingSnapshot":
        try:
            holdings = [
                Holding(investor_id=str(item["investorId"]), shares=int(item["shares"]))
                for item in (payload.get("holdings") or [])
            ]
            total = payload.get("totalShares")
            return cls(holdings=holdings, total_shares=int(total) if total is not None else None)
        except (KeyError, TypeError, ValueError) as exc:
            raise AllocationError("SNAPSHOT_MALFORMED", str(exc)) from exc

    def to_payload(self) -> dict[str, Any]:
        return {
            "holdings": [{"investorId": h.investor_id, "shares": h.shares} for h in self.holdings],
            "totalShares": self.total_shares,
        }


@dataclass
class InvestorAllocation:
    investor_id: str
    number_of_shares: int
    ownership_percentage: Decimal
    gross_amount: Decimal
    tds_amount: Decimal
    net_amount: Decimal
    receives_remainder: bool = False


@dataclass
class AllocationResult:
    gross_proceeds: Decimal
    total_deductions: Decimal
    total_platform_fees: Decimal
    tds_rate: Decimal
    net_distributable_amount: Decimal
    total_tds: Decimal
    total_net: Decimal
    total_shares: int
    distribution_per_share: Decimal
    rows: list[InvestorAllocation] = field(default_factory=list)
    remainder_investor_id: Optional[str] = None
    gross_remainder_minor: int = 0
    tds_remainder_minor: int = 0


def as_money(value: object, name: str) -> Decimal:
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise AllocationError("INVALID_AMOUNT", f"{name} is not a number") from exc
    if not amount.is_finite():
        raise AllocationError("INVALID_AMOUNT", f"{name} is not finite")
    if amount < 0:
        raise AllocationError("NEGATIVE_AMOUNT", f"{name} must not be negative")
    if amount != amount.quantize(MONEY_QUANT):
        raise AllocationError("AMOUNT_PRECISION", f"{name} has more than two decimal places")
    return amount


def to_minor(amount: Decimal) -> int:
    return int((amount * MINOR_PER_UNIT).to_integral_value(rounding=ROUND_HALF_UP))


def from_minor(value: int) -> Decimal:
    return (Decimal(value) / MINOR_PER_UNIT).quantize(MONEY_QUANT)


def _percent_of(amount_minor: int, rate: Decimal) -> int:
    return int((Decimal(amount_minor) * rate / HUNDRED).to_integral_value(rounding=ROUND_HALF_UP))


def _percent_floor(amount_minor: int, rate: Decimal) -> tuple[int, Decimal]:
    """Whole paise of ``rate`` percent rounded down, plus the dropped fraction."""
    exact = Decimal(amount_minor) * rate / HUNDRED
    whole = exact.to_integral_value(rounding=ROUND_FLOOR)
    return int(whole), exact - whole


def _spread_tds(
    tds_minor: list[int],
    gross_minor: Sequence[int],
    fractions: Sequence[Decimal],
    designated: int,
    remainder: int,
) -> None:
    """
    Hand the TDS rounding remainder to the designated investor.

    TDS never exceeds an investor's gross amount, so whatever the designated
    row cannot take goes one paisa at a time to the other rows, largest
    dropped fraction first, earliest in snapshot order on ties.
    """
    take = min(remainder, gross_minor[designated] - tds_minor[designated])
    tds_minor[designated] += take
    left = remainder - take
    if not left:
        return
    order = sorted(
        (i for i in range(len(tds_minor)) if i != designated),
        key=lambda i: (-fractions[i], i),
    )
    # total TDS never exceeds the pool, so headroom always exists somewhere
    while left:
        for i in order:
            if not left:
                break
            if tds_minor[i] < gross_minor[i]:
                tds_minor[i] += 1
                left -= 1


def _validate_holdings(snapshot: ShareholdingSnapshot) -> list[Holding]:
    seen: set[str] = set()
    eligible: list[Holding] = []
    for h in snapshot.holdings:
        if h.shares < 0:
            raise AllocationError("NEGATIVE_SHARES", f"investor {h.investor_id} holds a negative share count")
        if h.investor_id in seen:
            raise AllocationError("DUPLICATE_INVESTOR", f"investor {h.investor_id} appears twice in the snapshot")
        seen.add(h.investor_id)
        if h.shares > 0:
            eligible.append(h)
    return eligible


def _designated_index(holdings: Sequence[Holding]) -> int:
    """Largest holder; the earliest one in snapshot order wins ties."""
    best = 0
    for idx, h in enumerate(holdings):
        if h.shares > holdings[best].shares:
            best = idx
    return best


def compute_allocation(
    *,
    gross_proceeds: object,
    total_deductions: object,
    total_platform_fees: object,
    tds_rate: object,
    snapshot: ShareholdingSnapshot,
) -> AllocationResult:
    gross = as_money(gross_proceeds, "grossProceeds")
    deductions = as_money(total_deductions, "totalDeductions")
    fees = as_money(total_platform_fees, "totalPlatformFees")
    try:
        rate = Decimal(str(tds_rate))
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise AllocationError("INVALID_TDS_RATE", "tdsRate is not a number") from exc
    if not rate.is_finite() or rate < 0 or rate > HUNDRED:
        raise AllocationError("INVALID_TDS_RATE", "tdsRate must be between 0 and 100")

    holdings = _validate_holdings(snapshot)
    total_shares = sum(h.shares for h in holdings)
    if total_shares <= 0:
        raise AllocationError("ZERO_TOTAL_SHARES", "shareholding snapshot has no shares")
    if snapshot.total_shares is not None and int(snapshot.total_shares) != total_shares:
        raise AllocationError(
            "SNAPSHOT_TOTAL_MISMATCH",
            f"stated total {snapshot.total_shares} differs from held shares {total_shares}",
        )
    if gross < deductions + fees:
        raise AllocationError("INSUFFICIENT_PROCEEDS", "grossProceeds is below deductions plus platform fees")

    pool_minor = to_minor(gross) - to_minor(deductions) - to_minor(fees)

    # floored shares leave a remainder between 0 and len(holdings) - 1 paise
    gross_minor = [pool_minor * h.shares // total_shares for h in holdings]
    designated = _designated_index(holdings)
    gross_remainder = pool_minor - sum(gross_minor)
    gross_minor[designated] += gross_remainder

    tds_target = _percent_of(pool_minor, rate)
    floored = [_percent_floor(g, rate) for g in gross_minor]
    tds_minor = [whole for whole, _ in floored]
    tds_remainder = tds_target - sum(tds_minor)
    _spread_tds(tds_minor, gross_minor, [frac for _, frac in floored], designated, tds_remainder)

    net_minor = [g - t for g, t in zip(gross_minor, tds_minor)]

    # totals must reconcile exactly in minor units
    if sum(gross_minor) != pool_minor or sum(tds_minor) != tds_target or sum(net_minor) != pool_minor - tds_target:
        raise AllocationError("RECONCILIATION_MISMATCH", "investor rows do not reconcile with the pool")

    rows = []
    for idx, h in enumerate(holdings):
        rows.append(
            InvestorAllocation(
                investor_id=h.investor_id,
                number_of_shares=h.shares,
                ownership_percentage=(Decimal(h.shares) * HUNDRED / Decimal(total_shares)).quantize(PERCENT_QUANT),
                gross_amount=from_minor(gross_minor[idx]),
                tds_amount=from_minor(tds_minor[idx]),
                net_amount=from_minor(net_minor[idx]),
                receives_remainder=idx == designated,
            )
        )

    net_pool = from_minor(pool_minor)
    return AllocationResult(
        gross_proceeds=gross,
        total_deductions=deductions,
        total_platform_fees=fees,
        tds_rate=rate,
        net_distributable_amount=net_pool,
        total_tds=from_minor(tds_target),
        total_net=from_minor(sum(net_minor)),
        total_shares=total_shares,
        distribution_per_share=(net_pool / Decimal(total_shares)).quantize(PER_SHARE_QUANT),
        rows=rows,
        remainder_investor_id=holdings[designated].investor_id,
        gross_remainder_minor=gross_remainder,
        tds_remainder_minor=tds_remainder,
    )


def sum_items(items: Iterable[Mapping[str, Any]] | None, name: str) -> Decimal:
    """Total an itemised ``[{label, amount}]`` list of deductions or fees."""
    total = Decimal("0.00")
    for idx, item in enumerate(items or []):
        total += as_money(item.get("amount", 0), f"{name}[{idx}].amount")
    return total.quantize(MONEY_QUANT)

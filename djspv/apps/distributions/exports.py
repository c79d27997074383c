from __future__ import annotations

import csv
import logging
from dataclasses import dataclass, field
from typing import IO

from apps.holdings.models import BankAccount

from .models import Distribution, InvestorDistribution, PaymentStatus

logger = logging.getLogger(__name__)

BANK_PAYMENT_HEADERS = [
    "Beneficiary Name",
    "Account Number",
    "IFSC Code",
    "Bank Name",
    "Branch Name",
    "Amount",
    "Payment Reference",
    "Remarks",
]


@dataclass
class BankPaymentExport:
    rows: list[list[str]] = field(default_factory=list)
    skipped_investor_ids: list[str] = field(default_factory=list)


def build_bank_payment_rows(distribution: Distribution) -> BankPaymentExport:
    """One row per unpaid investor that has an active bank account on file."""
    unpaid = list(
        InvestorDistribution.objects.filter(distribution=distribution)
        .exclude(payment_status=PaymentStatus.COMPLETED)
        .select_related("investor")
        .order_by("position", "id")
    )
    accounts: dict = {}
    for account in BankAccount.objects.filter(
        user_id__in=[r.investor_id for r in unpaid], is_active=True
    ).order_by("user_id", "-created_at"):
        accounts.setdefault(account.user_id, account)

    remarks = f"Distribution payment - {distribution.get_distribution_type_display().lower()}"
    export = BankPaymentExport()
    for row in unpaid:
        account = accounts.get(row.investor_id)
        if account is None:
            export.skipped_investor_ids.append(str(row.investor_id))
            continue
        export.rows.append(
            [
                account.account_holder_name or row.investor.display_name,
                account.account_number,
                account.ifsc_code,
                account.bank_name,
                account.branch_name,
                f"{row.net_amount:.2f}",
                distribution.distribution_number,
                remarks,
            ]
        )
    if export.skipped_investor_ids:
        logger.warning(
            "Bank details missing for investors",
            extra={"distribution_id": str(distribution.pk), "investor_ids": export.skipped_investor_ids},
        )
    return export


def write_bank_payments_csv(distribution: Distribution, stream: IO[str]) -> BankPaymentExport:
    export = build_bank_payment_rows(distribution)
    writer = csv.writer(stream)
    writer.writerow(BANK_PAYMENT_HEADERS)
    writer.writerows(export.rows)
    return export

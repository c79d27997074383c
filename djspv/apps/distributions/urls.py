from django.urls import path

from .views import (
    ApproveAdminView,
    ApproveAssetManagerView,
    ApproveComplianceView,
    BankPaymentsCsvView,
    CancelDistributionView,
    DistributionCalculateView,
    DistributionDetailView,
    DistributionsByAssetManagerView,
    DistributionsBySpvView,
    DistributionsListView,
    MarkInvestorFailedView,
    MarkInvestorPaidView,
    MyDistributionsView,
    PaymentHistoryView,
    ProcessPaymentsView,
    SubmitForReviewView,
)


def _both(route: str, view, name: str):
    return [
        path(route, view, name=name),
        path(f"{route}/", view, name=f"{name}-slash"),
    ]


urlpatterns = [
    *_both("distributions", DistributionsListView.as_view(), "distributions-list"),
    *_both("distributions/my-distributions", MyDistributionsView.as_view(), "distributions-my"),
    *_both("distributions/calculate", DistributionCalculateView.as_view(), "distributions-calculate"),
    *_both(
        "distributions/by-asset-manager/<uuid:manager_id>",
        DistributionsByAssetManagerView.as_view(),
        "distributions-by-asset-manager",
    ),
    *_both("distributions/spv/<uuid:spv_id>", DistributionsBySpvView.as_view(), "distributions-by-spv"),
    *_both("distributions/<uuid:distribution_id>", DistributionDetailView.as_view(), "distributions-detail"),
    *_both(
        "distributions/<uuid:distribution_id>/submit-review",
        SubmitForReviewView.as_view(),
        "distributions-submit-review",
    ),
    *_both("distributions/<uuid:distribution_id>/cancel", CancelDistributionView.as_view(), "distributions-cancel"),
    *_both(
        "distributions/<uuid:distribution_id>/approve-asset-manager",
        ApproveAssetManagerView.as_view(),
        "distributions-approve-asset-manager",
    ),
    *_both(
        "distributions/<uuid:distribution_id>/approve-compliance",
        ApproveComplianceView.as_view(),
        "distributions-approve-compliance",
    ),
    *_both(
        "distributions/<uuid:distribution_id>/approve-admin",
        ApproveAdminView.as_view(),
        "distributions-approve-admin",
    ),
    *_both(
        "distributions/<uuid:distribution_id>/process-payments",
        ProcessPaymentsView.as_view(),
        "distributions-process-payments",
    ),
    *_both(
        "distributions/<uuid:distribution_id>/investors/<uuid:investor_id>/mark-paid",
        MarkInvestorPaidView.as_view(),
        "distributions-mark-paid",
    ),
    *_both(
        "distributions/<uuid:distribution_id>/investors/<uuid:investor_id>/mark-failed",
        MarkInvestorFailedView.as_view(),
        "distributions-mark-failed",
    ),
    *_both(
        "distributions/<uuid:distribution_id>/investors/<uuid:investor_id>/payments",
        PaymentHistoryView.as_view(),
        "distributions-investor-payments",
    ),
    *_both(
        "distributions/payment-history/<uuid:investor_id>",
        PaymentHistoryView.as_view(),
        "distributions-payment-history",
    ),
    path(
        "distributions/<uuid:distribution_id>/bank-payments.csv",
        BankPaymentsCsvView.as_view(),
        name="distributions-bank-payments-csv",
    ),
]

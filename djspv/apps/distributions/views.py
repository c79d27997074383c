from __future__ import annotations

import logging
from contextlib import contextmanager
from uuid import UUID

from django.db.models import Q
from django.http import HttpResponse
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status
from rest_framework.exceptions import APIException, NotFound, PermissionDenied, ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.core.pagination import decode_cursor, page_payload, paginate, parse_limit
from apps.holdings.models import Project, SPV
from apps.users.permissions import RequireAdminRole, RequireAssetManagerRole, RequireStaffRole

from . import approvals, payments, queries, services
from .errors import (
    AllocationError,
    DistributionConflictError,
    DistributionError,
    DistributionNotFoundError,
    DistributionValidationError,
    InvestorNotFoundError,
    RoleForbiddenError,
)
from .exports import write_bank_payments_csv
from .serializers import (
    ApprovalRequestSerializer,
    CalculateDistributionRequestSerializer,
    CancelRequestSerializer,
    DistributionDetailSerializer,
    DistributionSummarySerializer,
    MarkFailedRequestSerializer,
    MarkPaidRequestSerializer,
    MyDistributionSerializer,
    PaymentAttemptSerializer,
    PaymentResultSerializer,
    UpdateDistributionRequestSerializer,
)

logger = logging.getLogger(__name__)

STAFF_ROLES = ("admin", "compliance_officer", "asset_manager")


class Conflict(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Conflict."
    default_code = "conflict"


@contextmanager
def _domain_errors(**log_extra):
    try:
        yield
    except AllocationError as exc:
        raise ValidationError({"code": exc.code, "detail": exc.detail})
    except (DistributionNotFoundError, InvestorNotFoundError) as exc:
        raise NotFound(exc.as_payload())
    except RoleForbiddenError as exc:
        raise PermissionDenied(exc.as_payload())
    except DistributionValidationError as exc:
        raise ValidationError(exc.as_payload())
    except DistributionConflictError as exc:
        raise Conflict(exc.as_payload())
    except DistributionError as exc:
        logger.exception("Unmapped distribution error", extra=log_extra)
        raise ValidationError(exc.as_payload())


def _is_staff(user) -> bool:
    return getattr(user, "role", None) in STAFF_ROLES


def _parse_uuid(value, name: str) -> UUID | None:
    if value in (None, ""):
        return None
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise ValidationError({"code": "VALIDATION_ERROR", "detail": f"{name} must be a UUID"})


def _scope_for_staff(qs, user):
    # asset managers only see projects assigned to them or not yet assigned
    if getattr(user, "role", None) == "asset_manager":
        return qs.filter(Q(project__asset_manager__isnull=True) | Q(project__asset_manager=user))
    return qs


def _page(request, qs, serializer_class):
    limit = parse_limit(request.query_params.get("limit"))
    cursor = decode_cursor(request.query_params.get("cursor"))
    rows, has_more, next_cursor = paginate(qs, limit, cursor)
    items = serializer_class(rows, many=True, context={"user": request.user}).data
    return Response(page_payload(items, limit, has_more, next_cursor))


def _detail_response(request, distribution, *, status_code=status.HTTP_200_OK):
    user = request.user
    context = {"user": user}
    if _is_staff(user):
        context["payment_stats"] = payments.payment_stats(distribution)
    else:
        context["only_investor_id"] = user.pk
    return Response(DistributionDetailSerializer(distribution, context=context).data, status=status_code)


def _reload(distribution_id):
    return queries.get_distribution_by_id(distribution_id)


class MyDistributionsView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Distributions"], responses={200: MyDistributionSerializer(many=True)})
    def get(self, request):
        return _page(request, queries.get_my_distributions(request.user.pk), MyDistributionSerializer)


class DistributionsListView(APIView):
    permission_classes = [IsAuthenticated, RequireStaffRole]

    @extend_schema(
        tags=["Distributions"],
        parameters=[
            OpenApiParameter("assetManager", str, required=False),
            OpenApiParameter("status", str, required=False),
            OpenApiParameter("type", str, required=False),
            OpenApiParameter("spv", str, required=False),
            OpenApiParameter("project", str, required=False),
            OpenApiParameter("awaitingMyReview", bool, required=False),
            OpenApiParameter("q", str, required=False),
            OpenApiParameter("limit", int, required=False),
            OpenApiParameter("cursor", str, required=False),
        ],
        responses={200: DistributionSummarySerializer(many=True)},
    )
    def get(self, request):
        params = request.query_params
        filters = queries.DistributionFilters(
            status=params.get("status") or None,
            distribution_type=params.get("type") or None,
            spv_id=_parse_uuid(params.get("spv"), "spv"),
            project_id=_parse_uuid(params.get("project"), "project"),
            asset_manager_id=_parse_uuid(params.get("assetManager"), "assetManager"),
            awaiting_review_by=request.user if params.get("awaitingMyReview") in ("1", "true") else None,
            search=params.get("q") or None,
        )
        with _domain_errors():
            qs = queries.get_all_distributions(filters)
        return _page(request, _scope_for_staff(qs, request.user), DistributionSummarySerializer)


class DistributionsByAssetManagerView(APIView):
    permission_classes = [IsAuthenticated, RequireStaffRole]

    @extend_schema(tags=["Distributions"], responses={200: DistributionSummarySerializer(many=True)})
    def get(self, request, manager_id: UUID):
        if request.user.role == "asset_manager" and request.user.pk != manager_id:
            raise PermissionDenied({"code": "ROLE_FORBIDDEN", "detail": "asset managers may only list their own projects"})
        return _page(request, queries.get_distributions_by_asset_manager(manager_id), DistributionSummarySerializer)


class DistributionsBySpvView(APIView):
    permission_classes = [IsAuthenticated, RequireStaffRole]

    @extend_schema(tags=["Distributions"], responses={200: DistributionSummarySerializer(many=True)})
    def get(self, request, spv_id: UUID):
        qs = _scope_for_staff(queries.get_distributions_by_spv(spv_id), request.user)
        return _page(request, qs, DistributionSummarySerializer)


class DistributionCalculateView(APIView):
    permission_classes = [IsAuthenticated, RequireAssetManagerRole]

    @extend_schema(
        tags=["Distributions"],
        request=CalculateDistributionRequestSerializer,
        responses={201: DistributionDetailSerializer},
    )
    def post(self, request):
        serializer = CalculateDistributionRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        spv = SPV.objects.select_related("project").filter(pk=data["spvId"]).first()
        if spv is None:
            raise NotFound({"code": "SPV_NOT_FOUND", "detail": "spv not found"})
        project = Project.objects.filter(pk=data["projectId"]).first()
        if project is None:
            raise NotFound({"code": "PROJECT_NOT_FOUND", "detail": "project not found"})

        with _domain_errors(spv_id=str(spv.pk)):
            distribution = services.create_calculated_distribution(
                project=project,
                spv=spv,
                distribution_type=data["distributionType"],
                gross_proceeds=data["grossProceeds"],
                snapshot=data.get("shareholdingSnapshot"),
                actor=request.user,
                deduction_items=data.get("deductions"),
                platform_fee_items=data.get("platformFees"),
                tds_rate=data.get("tdsRate"),
                record_date=data.get("recordDate"),
                payment_date=data.get("paymentDate"),
                notes=data.get("notes"),
            )
        return _detail_response(request, _reload(distribution.pk), status_code=status.HTTP_201_CREATED)


class DistributionDetailView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Distributions"], responses={200: DistributionDetailSerializer})
    def get(self, request, distribution_id: UUID):
        with _domain_errors(distribution_id=str(distribution_id)):
            distribution = queries.get_distribution_by_id(distribution_id)
        if not _is_staff(request.user) and not queries.investor_can_view(distribution, request.user):
            # non-members cannot tell a hidden distribution from a missing one
            raise NotFound({"code": "DISTRIBUTION_NOT_FOUND", "detail": "distribution not found"})
        return _detail_response(request, distribution)

    @extend_schema(
        tags=["Distributions"],
        request=UpdateDistributionRequestSerializer,
        responses={200: DistributionDetailSerializer},
    )
    def patch(self, request, distribution_id: UUID):
        if not RequireAdminRole().has_permission(request, self):
            raise PermissionDenied({"code": "ROLE_FORBIDDEN", "detail": "only admins may edit distributions"})
        serializer = UpdateDistributionRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        changes = {}
        if "recordDate" in data:
            changes["record_date"] = data["recordDate"]
        if "paymentDate" in data:
            changes["payment_date"] = data["paymentDate"]
        with _domain_errors(distribution_id=str(distribution_id)):
            approvals.update_distribution(distribution_id, request.user, note=data.get("note"), **changes)
            distribution = _reload(distribution_id)
        return _detail_response(request, distribution)


class _DistributionActionView(APIView):
    permission_classes = [IsAuthenticated]
    request_serializer = None

    def perform(self, request, distribution_id: UUID, data: dict):
        raise NotImplementedError

    def post(self, request, distribution_id: UUID):
        data = {}
        if self.request_serializer is not None:
            serializer = self.request_serializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            data = serializer.validated_data
        with _domain_errors(distribution_id=str(distribution_id), action=self.__class__.__name__):
            self.perform(request, distribution_id, data)
            distribution = _reload(distribution_id)
        return _detail_response(request, distribution)


@extend_schema(tags=["Distribution approvals"], responses={200: DistributionDetailSerializer})
class SubmitForReviewView(_DistributionActionView):
    def perform(self, request, distribution_id, data):
        approvals.submit_for_review(distribution_id, request.user)


@extend_schema(tags=["Distribution approvals"], request=CancelRequestSerializer, responses={200: DistributionDetailSerializer})
class CancelDistributionView(_DistributionActionView):
    request_serializer = CancelRequestSerializer

    def perform(self, request, distribution_id, data):
        approvals.cancel_distribution(distribution_id, request.user, data["reason"])


@extend_schema(tags=["Distribution approvals"], request=ApprovalRequestSerializer, responses={200: DistributionDetailSerializer})
class ApproveAssetManagerView(_DistributionActionView):
    request_serializer = ApprovalRequestSerializer

    def perform(self, request, distribution_id, data):
        approvals.approve_as_asset_manager(distribution_id, request.user, data.get("comments"))


@extend_schema(tags=["Distribution approvals"], request=ApprovalRequestSerializer, responses={200: DistributionDetailSerializer})
class ApproveComplianceView(_DistributionActionView):
    request_serializer = ApprovalRequestSerializer

    def perform(self, request, distribution_id, data):
        approvals.approve_as_compliance(distribution_id, request.user, data.get("comments"))


@extend_schema(tags=["Distribution approvals"], request=ApprovalRequestSerializer, responses={200: DistributionDetailSerializer})
class ApproveAdminView(_DistributionActionView):
    request_serializer = ApprovalRequestSerializer

    def perform(self, request, distribution_id, data):
        approvals.approve_as_admin(distribution_id, request.user, data.get("comments"))


@extend_schema(tags=["Distribution payments"], responses={200: DistributionDetailSerializer})
class ProcessPaymentsView(_DistributionActionView):
    def perform(self, request, distribution_id, data):
        payments.start_payment_processing(distribution_id, request.user)


class MarkInvestorPaidView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        tags=["Distribution payments"],
        request=MarkPaidRequestSerializer,
        responses={200: PaymentResultSerializer},
    )
    def post(self, request, distribution_id: UUID, investor_id: UUID):
        serializer = MarkPaidRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        with _domain_errors(distribution_id=str(distribution_id), investor_id=str(investor_id)):
            result = payments.mark_investor_paid(
                distribution_id,
                investor_id,
                request.user,
                transaction_id=data.get("transactionId"),
                utr=data.get("utr"),
                payment_date=data.get("paymentDate"),
                payment_method=data.get("paymentMethod"),
            )
        return Response(PaymentResultSerializer(result).data)


class MarkInvestorFailedView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        tags=["Distribution payments"],
        request=MarkFailedRequestSerializer,
        responses={200: PaymentResultSerializer},
    )
    def post(self, request, distribution_id: UUID, investor_id: UUID):
        serializer = MarkFailedRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        with _domain_errors(distribution_id=str(distribution_id), investor_id=str(investor_id)):
            result = payments.mark_investor_payment_failed(
                distribution_id, investor_id, request.user, serializer.validated_data["reason"]
            )
        return Response(PaymentResultSerializer(result).data)


class BankPaymentsCsvView(APIView):
    permission_classes = [IsAuthenticated, RequireAdminRole]

    @extend_schema(tags=["Distribution payments"], responses={(200, "text/csv"): str})
    def get(self, request, distribution_id: UUID):
        with _domain_errors(distribution_id=str(distribution_id)):
            distribution = services.get_distribution_or_raise(distribution_id)
        resp = HttpResponse(content_type="text/csv; charset=utf-8")
        resp["Content-Disposition"] = f'attachment; filename="bank_payments_{distribution.distribution_number}.csv"'
        export = write_bank_payments_csv(distribution, resp)
        resp["X-Skipped-Investors"] = str(len(export.skipped_investor_ids))
        return resp


class PaymentHistoryView(APIView):
    """Payment outcomes recorded for one investor; admins see anyone's, investors their own."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        tags=["Distribution payments"],
        parameters=[
            OpenApiParameter("limit", int, required=False),
            OpenApiParameter("cursor", str, required=False),
        ],
        responses={200: PaymentAttemptSerializer(many=True)},
    )
    def get(self, request, investor_id: UUID, distribution_id: UUID | None = None):
        user = request.user
        if getattr(user, "role", None) != "admin" and user.pk != investor_id:
            raise PermissionDenied({"code": "ROLE_FORBIDDEN", "detail": "payment history is limited to admins and the investor"})
        with _domain_errors(distribution_id=str(distribution_id), investor_id=str(investor_id)):
            qs = queries.get_payment_history(investor_id, distribution_id)
        return _page(request, qs, PaymentAttemptSerializer)

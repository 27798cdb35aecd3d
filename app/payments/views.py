"""
DRF views for refund settlement.

This module provides API views for:
- Initiating order refunds and manual admin refunds
- Refund detail
- Admin actions: process, approve, cancel, retry
- The failed-refund sweep and refund statistics

Related files:
    - services/refund_service.py: RefundService
    - serializers.py: Request/response serializers
    - urls.py: URL routing

Endpoints:
    POST /api/v1/payments/refunds/ - Initiate a refund for an order (admin)
    POST /api/v1/payments/refunds/manual/ - Manual refund (admin)
    GET  /api/v1/payments/refunds/{id}/ - Refund detail (owner or admin)
    POST /api/v1/payments/refunds/{id}/process/ - Send to the gateway (admin)
    POST /api/v1/payments/refunds/{id}/approve/ - Approve a PENDING refund (admin)
    POST /api/v1/payments/refunds/{id}/cancel/ - Cancel (admin)
    POST /api/v1/payments/refunds/{id}/retry/ - Manual retry of a FAILED refund (admin)
    POST /api/v1/payments/refunds/sweep/ - Retry due FAILED refunds (admin)
    GET  /api/v1/payments/refunds/stats/ - Refund statistics (admin)

Security:
    - All endpoints require authentication
    - Everything except the detail view requires staff
"""

from __future__ import annotations

from django.db import transaction
from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import BaseApplicationError, NotFoundError
from core.views import error_response
from payments.serializers import (
    CancelRefundSerializer,
    InitiateRefundSerializer,
    ManualRefundSerializer,
    RefundInitiationSerializer,
    RefundProcessingSerializer,
    RefundSerializer,
    RefundStatsQuerySerializer,
    RefundSweepResultSerializer,
)
from payments.services import RefundService
from payments.state_machines import RefundInitiator
from payments.tasks import process_refund


def processing_response(result) -> Response:
    """Serialise a processing ServiceResult as {success, refund, error, error_code}."""
    payload = {
        "success": result.success,
        "refund": result.data.refund,
        "error": result.error,
        "error_code": result.error_code,
    }
    return Response(RefundProcessingSerializer(payload).data)


class InitiateRefundView(APIView):
    """
    Initiate a refund for an order.

    POST /api/v1/payments/refunds/

    Request body:
        {"order_id": "uuid", "reason": "ORDER_REJECTED",
         "refund_type": "FULL", "process_immediately": true}

    Returns:
        201 {"refund": {...} | null, "vouchers_restored": [...]}
        409 REFUND_IN_PROGRESS if the order already has a live refund
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="initiate_refund",
        summary="Initiate refund",
        description=(
            "Creates an INITIATED refund for the order's remaining refundable "
            "amount (or the given partial amount) and restores any vouchers "
            "spent on it. Voucher-only orders get their vouchers back and no "
            "refund record."
        ),
        request=InitiateRefundSerializer,
        responses={
            201: RefundInitiationSerializer,
            400: OpenApiResponse(description="Nothing refundable or bad amount"),
            404: OpenApiResponse(description="Order not found"),
            409: OpenApiResponse(description="Refund already in progress"),
        },
        tags=["Refunds"],
    )
    def post(self, request):
        serializer = InitiateRefundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            initiation = RefundService.initiate(
                data["order_id"],
                reason=data["reason"],
                refund_type=data["refund_type"],
                amount_cents=data["amount_cents"],
                reason_details=data["reason_details"],
                initiated_by=RefundInitiator.ADMIN,
            )
        except BaseApplicationError as e:
            return error_response(e)

        if initiation.refund is not None and data["process_immediately"]:
            refund_id = str(initiation.refund.id)
            transaction.on_commit(lambda: process_refund.delay(refund_id))

        return Response(
            RefundInitiationSerializer(initiation).data,
            status=status.HTTP_201_CREATED,
        )


class ManualRefundView(APIView):
    """
    Create an admin refund for a specific amount.

    POST /api/v1/payments/refunds/manual/

    Request body:
        {"order_id": "uuid", "amount_cents": 5000,
         "reason": "QUALITY_ISSUE", "requires_approval": true}
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="manual_refund",
        summary="Manual refund",
        request=ManualRefundSerializer,
        responses={
            201: RefundSerializer,
            400: OpenApiResponse(description="Amount not refundable"),
            404: OpenApiResponse(description="Order not found"),
            409: OpenApiResponse(description="Refund already in progress"),
        },
        tags=["Refunds"],
    )
    def post(self, request):
        serializer = ManualRefundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            refund = RefundService.initiate_manual(
                data["order_id"],
                amount_cents=data["amount_cents"],
                reason=data["reason"],
                reason_details=data["reason_details"],
                notes=data["notes"],
                admin=request.user,
                requires_approval=data["requires_approval"],
            )
        except BaseApplicationError as e:
            return error_response(e)

        return Response(RefundSerializer(refund).data, status=status.HTTP_201_CREATED)


class RefundDetailView(APIView):
    """
    Refund detail.

    GET /api/v1/payments/refunds/{refund_id}/

    Customers can see their own refunds; staff can see every refund.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_refund",
        summary="Refund detail",
        responses={
            200: RefundSerializer,
            404: OpenApiResponse(description="Refund not found"),
        },
        tags=["Refunds"],
    )
    def get(self, request, refund_id):
        try:
            refund = RefundService.get_refund(refund_id)
            if not request.user.is_staff and refund.user_id != request.user.pk:
                # Someone else's refund looks exactly like a missing one
                raise NotFoundError(
                    f"Refund {refund_id} not found",
                    error_code="REFUND_NOT_FOUND",
                )
        except BaseApplicationError as e:
            return error_response(e)

        return Response(RefundSerializer(refund).data)


class ProcessRefundView(APIView):
    """
    Send a refund to the gateway now.

    POST /api/v1/payments/refunds/{refund_id}/process/

    Returns:
        {"success": bool, "refund": {...}, "error": ..., "error_code": ...}
        A gateway failure is reported with success=false; the refund is
        left FAILED with its retry scheduled.
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="process_refund",
        summary="Process refund",
        request=None,
        responses={
            200: RefundProcessingSerializer,
            400: OpenApiResponse(description="Refund not processable"),
            404: OpenApiResponse(description="Refund not found"),
            409: OpenApiResponse(description="Refund locked by another process"),
        },
        tags=["Refunds"],
    )
    def post(self, request, refund_id):
        try:
            result = RefundService.process(refund_id)
        except BaseApplicationError as e:
            return error_response(e)

        return processing_response(result)


class ApproveRefundView(APIView):
    """
    Approve a PENDING manual refund and process it.

    POST /api/v1/payments/refunds/{refund_id}/approve/
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="approve_refund",
        summary="Approve refund",
        request=None,
        responses={
            200: RefundProcessingSerializer,
            400: OpenApiResponse(description="Refund is not PENDING"),
            404: OpenApiResponse(description="Refund not found"),
        },
        tags=["Refunds"],
    )
    def post(self, request, refund_id):
        try:
            result = RefundService.approve(refund_id, admin=request.user)
        except BaseApplicationError as e:
            return error_response(e)

        return processing_response(result)


class CancelRefundView(APIView):
    """
    Cancel a refund that has not completed.

    POST /api/v1/payments/refunds/{refund_id}/cancel/

    Request body:
        {"reason": "Customer accepted a replacement meal"}
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="cancel_refund",
        summary="Cancel refund",
        request=CancelRefundSerializer,
        responses={
            200: RefundSerializer,
            400: OpenApiResponse(description="Refund already COMPLETED or CANCELLED"),
            404: OpenApiResponse(description="Refund not found"),
        },
        tags=["Refunds"],
    )
    def post(self, request, refund_id):
        serializer = CancelRefundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            refund = RefundService.cancel(
                refund_id,
                reason=serializer.validated_data["reason"],
                admin=request.user,
            )
        except BaseApplicationError as e:
            return error_response(e)

        return Response(RefundSerializer(refund).data)


class RetryRefundView(APIView):
    """
    Manually retry a FAILED refund.

    POST /api/v1/payments/refunds/{refund_id}/retry/

    Resets the automatic retry budget and processes immediately.
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="retry_refund",
        summary="Retry refund",
        request=None,
        responses={
            200: RefundProcessingSerializer,
            400: OpenApiResponse(description="Refund is not FAILED"),
            404: OpenApiResponse(description="Refund not found"),
        },
        tags=["Refunds"],
    )
    def post(self, request, refund_id):
        try:
            result = RefundService.retry(refund_id, admin=request.user)
        except BaseApplicationError as e:
            return error_response(e)

        return processing_response(result)


class RefundSweepView(APIView):
    """
    Retry every FAILED refund whose retry is due.

    POST /api/v1/payments/refunds/sweep/

    Returns:
        {"processed": n, "succeeded": n, "failed": n}
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="sweep_failed_refunds",
        summary="Retry due refunds",
        request=None,
        responses={200: RefundSweepResultSerializer},
        tags=["Refunds"],
    )
    def post(self, request):
        stats = RefundService.sweep_failed()
        return Response(RefundSweepResultSerializer(stats).data)


class RefundStatsView(APIView):
    """
    Refund statistics.

    GET /api/v1/payments/refunds/stats/?start=2026-03-01T00:00:00Z

    Returns:
        Totals, counts by status and reason, success rate and
        average processing hours
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="refund_stats",
        summary="Refund statistics",
        parameters=[RefundStatsQuerySerializer],
        responses={200: OpenApiResponse(description="Refund statistics")},
        tags=["Refunds"],
    )
    def get(self, request):
        query = RefundStatsQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        stats = RefundService.get_stats(
            start=query.validated_data.get("start"),
            end=query.validated_data.get("end"),
        )
        return Response(stats.to_dict())

"""
DRF views for the voucher ledger.

This module provides API views for:
- Listing vouchers and the balance summary
- Eligibility checks, redemption and restoration
- The expiry sweep and cutoff configuration (admin)
- Subscription purchase and cancellation

Related files:
    - services/: VoucherService, SubscriptionService, cutoff policy
    - serializers.py: Request/response serializers
    - urls.py: URL routing

Endpoints:
    GET  /api/v1/vouchers/ - List own vouchers
    GET  /api/v1/vouchers/balance/ - Balance summary
    POST /api/v1/vouchers/eligibility/ - Can this order use vouchers?
    POST /api/v1/vouchers/redeem/ - Redeem vouchers for an order
    POST /api/v1/vouchers/restore/ - Restore an order's vouchers (admin)
    POST /api/v1/vouchers/admin/expire/ - Run the expiry sweep (admin)
    GET  /api/v1/vouchers/cutoff/ - Current cutoff times
    PUT  /api/v1/vouchers/cutoff/ - Change cutoff times (admin)
    POST /api/v1/vouchers/subscriptions/ - Purchase a plan
    POST /api/v1/vouchers/subscriptions/{id}/cancel/ - Cancel a subscription

Security:
    - All endpoints require authentication
    - Restore, expire and cutoff writes require staff
"""

from __future__ import annotations

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import BaseApplicationError
from core.views import error_response
from vouchers.models import Voucher
from vouchers.serializers import (
    CancelSubscriptionSerializer,
    CutoffUpdateSerializer,
    EligibilityCheckSerializer,
    PurchaseSubscriptionSerializer,
    RedeemResultSerializer,
    RedeemVouchersSerializer,
    RestoreResultSerializer,
    RestoreVouchersSerializer,
    SubscriptionCancellationSerializer,
    SubscriptionSerializer,
    VoucherListQuerySerializer,
    VoucherSerializer,
)
from vouchers.services import (
    SubscriptionService,
    VoucherService,
    get_cutoff_store,
)
from vouchers.state_machines import CancellationInitiator, MealWindow


class VoucherListView(APIView):
    """
    List the current user's vouchers.

    GET /api/v1/vouchers/?status=AVAILABLE

    Returns:
        Vouchers ordered by expiry (soonest first)
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="list_vouchers",
        summary="List own vouchers",
        parameters=[VoucherListQuerySerializer],
        responses={200: VoucherSerializer(many=True)},
        tags=["Vouchers"],
    )
    def get(self, request):
        query = VoucherListQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        vouchers = Voucher.objects.filter(user=request.user)
        if query.validated_data.get("status"):
            vouchers = vouchers.filter(status=query.validated_data["status"])
        vouchers = vouchers.order_by("expiry_date", "issued_at", "id")

        return Response(VoucherSerializer(vouchers, many=True).data)


class VoucherBalanceView(APIView):
    """
    Balance summary for the current user.

    GET /api/v1/vouchers/balance/

    Returns:
        {"balance": {"available": n, ..., "usable": n}, "expiring_next": {...}}
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="voucher_balance",
        summary="Voucher balance",
        responses={200: OpenApiResponse(description="Counts per status")},
        tags=["Vouchers"],
    )
    def get(self, request):
        balance = VoucherService.get_balance(request.user)
        return Response(balance.to_dict())


class EligibilityCheckView(APIView):
    """
    Check whether an order can be paid with vouchers.

    POST /api/v1/vouchers/eligibility/

    Request body:
        {
            "kitchen_id": "uuid",
            "menu_type": "MEAL_MENU",
            "meal_window": "LUNCH",
            "main_course_quantity": 2
        }
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="check_voucher_eligibility",
        summary="Check voucher eligibility",
        request=EligibilityCheckSerializer,
        responses={
            200: OpenApiResponse(description="Eligibility result"),
            400: OpenApiResponse(description="Invalid request"),
        },
        tags=["Vouchers"],
    )
    def post(self, request):
        serializer = EligibilityCheckSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            eligibility = VoucherService.check_eligibility(
                request.user,
                menu_type=data["menu_type"],
                meal_window=data["meal_window"],
                requested_count=data["main_course_quantity"],
                kitchen_id=data["kitchen_id"],
            )
        except BaseApplicationError as e:
            return error_response(e)

        return Response(eligibility.to_dict())


class RedeemVouchersView(APIView):
    """
    Redeem vouchers for an order.

    POST /api/v1/vouchers/redeem/

    Request body:
        {"order_id": "uuid", "kitchen_id": "uuid",
         "meal_window": "LUNCH", "voucher_count": 2}

    Returns:
        {"redeemed_voucher_ids": [...], "count": 2}
        409 INSUFFICIENT_VOUCHERS when fewer usable vouchers exist
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="redeem_vouchers",
        summary="Redeem vouchers",
        description=(
            "Atomically claims exactly voucher_count usable vouchers, "
            "soonest expiry first. Either all are redeemed or none."
        ),
        request=RedeemVouchersSerializer,
        responses={
            200: RedeemResultSerializer,
            400: OpenApiResponse(description="Validation error or cutoff passed"),
            409: OpenApiResponse(description="Insufficient vouchers"),
        },
        tags=["Vouchers"],
    )
    def post(self, request):
        serializer = RedeemVouchersSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            voucher_ids = VoucherService.redeem(
                request.user,
                count=data["voucher_count"],
                meal_window=data["meal_window"],
                order_id=data["order_id"],
                kitchen_id=data["kitchen_id"],
            )
        except BaseApplicationError as e:
            return error_response(e)

        return Response(
            RedeemResultSerializer(
                {"redeemed_voucher_ids": voucher_ids, "count": len(voucher_ids)}
            ).data
        )


class RestoreVouchersView(APIView):
    """
    Restore the vouchers redeemed against an order.

    POST /api/v1/vouchers/restore/

    Request body:
        {"order_id": "uuid", "reason": "Order cancelled by kitchen"}
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="restore_vouchers",
        summary="Restore vouchers (admin)",
        request=RestoreVouchersSerializer,
        responses={200: RestoreResultSerializer},
        tags=["Vouchers - Admin"],
    )
    def post(self, request):
        serializer = RestoreVouchersSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            restored = VoucherService.restore_for_order(
                data["order_id"],
                reason=data["reason"],
                force=data["force"],
            )
        except BaseApplicationError as e:
            return error_response(e)

        return Response(
            RestoreResultSerializer(
                {"restored_voucher_ids": restored, "count": len(restored)}
            ).data
        )


class ExpireVouchersView(APIView):
    """
    Run the voucher expiry sweep now.

    POST /api/v1/vouchers/admin/expire/

    Returns:
        {"expired_count": n}
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="expire_vouchers",
        summary="Run expiry sweep (admin)",
        request=None,
        responses={200: OpenApiResponse(description="Number of vouchers expired")},
        tags=["Vouchers - Admin"],
    )
    def post(self, request):
        result = VoucherService.sweep_expiry()
        return Response(result)


class CutoffView(APIView):
    """
    Read or change meal cutoff times.

    GET /api/v1/vouchers/cutoff/
        Current config plus the open/closed status of each window.

    PUT /api/v1/vouchers/cutoff/ (admin)
        {"lunch": "11:30", "dinner": "21:00"}
    """

    def get_permissions(self):
        if self.request.method == "PUT":
            return [IsAdminUser()]
        return [IsAuthenticated()]

    def _payload(self, config) -> dict:
        policy = get_cutoff_store().policy()
        return {
            "config": config.to_dict(),
            "windows": [
                policy.describe(window).to_dict() for window in MealWindow.values
            ],
        }

    @extend_schema(
        operation_id="get_cutoff",
        summary="Get cutoff times",
        responses={200: OpenApiResponse(description="Cutoff config and status")},
        tags=["Vouchers"],
    )
    def get(self, request):
        return Response(self._payload(get_cutoff_store().current))

    @extend_schema(
        operation_id="update_cutoff",
        summary="Update cutoff times (admin)",
        request=CutoffUpdateSerializer,
        responses={
            200: OpenApiResponse(description="Updated cutoff config"),
            400: OpenApiResponse(description="Malformed time"),
        },
        tags=["Vouchers - Admin"],
    )
    def put(self, request):
        serializer = CutoffUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            config = get_cutoff_store().update(**serializer.validated_data)
        except BaseApplicationError as e:
            return error_response(e)

        return Response(self._payload(config))


class PurchaseSubscriptionView(APIView):
    """
    Purchase a subscription plan.

    POST /api/v1/vouchers/subscriptions/

    Request body:
        {"plan_id": "uuid", "payment_id": "pi_xxx"}

    Returns:
        201 with the new subscription
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="purchase_subscription",
        summary="Purchase subscription",
        request=PurchaseSubscriptionSerializer,
        responses={
            201: SubscriptionSerializer,
            400: OpenApiResponse(description="Plan not purchasable"),
            404: OpenApiResponse(description="Plan not found"),
        },
        tags=["Subscriptions"],
    )
    def post(self, request):
        serializer = PurchaseSubscriptionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            subscription = SubscriptionService.purchase(
                request.user,
                data["plan_id"],
                payment_id=data["payment_id"],
            )
        except BaseApplicationError as e:
            return error_response(e)

        return Response(
            SubscriptionSerializer(subscription).data,
            status=status.HTTP_201_CREATED,
        )


class CancelSubscriptionView(APIView):
    """
    Cancel a subscription.

    POST /api/v1/vouchers/subscriptions/{subscription_id}/cancel/

    Request body:
        {"reason": "Moving city"}

    Returns:
        Cancellation outcome including refund eligibility and amount
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="cancel_subscription",
        summary="Cancel subscription",
        request=CancelSubscriptionSerializer,
        responses={
            200: SubscriptionCancellationSerializer,
            400: OpenApiResponse(description="Subscription not active"),
            403: OpenApiResponse(description="Not your subscription"),
            404: OpenApiResponse(description="Subscription not found"),
        },
        tags=["Subscriptions"],
    )
    def post(self, request, subscription_id):
        serializer = CancelSubscriptionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        initiator = (
            CancellationInitiator.ADMIN
            if request.user.is_staff
            else CancellationInitiator.USER
        )

        try:
            outcome = SubscriptionService.cancel(
                subscription_id,
                reason=serializer.validated_data["reason"],
                initiator=initiator,
                user=request.user,
            )
        except BaseApplicationError as e:
            return error_response(e)

        return Response(SubscriptionCancellationSerializer(outcome).data)

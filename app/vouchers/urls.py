"""
URL configuration for vouchers app.

Routes:
    /                                  - List own vouchers
    /balance/                          - Balance summary
    /eligibility/                      - Eligibility check
    /redeem/                           - Redeem vouchers
    /restore/                          - Restore an order's vouchers (admin)
    /admin/expire/                     - Expiry sweep (admin)
    /cutoff/                           - Read/update cutoff times
    /subscriptions/                    - Purchase a plan
    /subscriptions/<id>/cancel/        - Cancel a subscription
"""

from django.urls import path

from . import views

app_name = "vouchers"

urlpatterns = [
    path("", views.VoucherListView.as_view(), name="list"),
    path("balance/", views.VoucherBalanceView.as_view(), name="balance"),
    path("eligibility/", views.EligibilityCheckView.as_view(), name="eligibility"),
    path("redeem/", views.RedeemVouchersView.as_view(), name="redeem"),
    path("restore/", views.RestoreVouchersView.as_view(), name="restore"),
    path("admin/expire/", views.ExpireVouchersView.as_view(), name="expire"),
    path("cutoff/", views.CutoffView.as_view(), name="cutoff"),
    path(
        "subscriptions/",
        views.PurchaseSubscriptionView.as_view(),
        name="subscription-purchase",
    ),
    path(
        "subscriptions/<uuid:subscription_id>/cancel/",
        views.CancelSubscriptionView.as_view(),
        name="subscription-cancel",
    ),
]

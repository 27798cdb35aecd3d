"""
URL configuration for payments app.

Routes:
    /refunds/                      - Initiate an order refund (admin)
    /refunds/manual/               - Manual refund (admin)
    /refunds/sweep/                - Retry due FAILED refunds (admin)
    /refunds/stats/                - Refund statistics (admin)
    /refunds/<id>/                 - Refund detail
    /refunds/<id>/process/         - Process (admin)
    /refunds/<id>/approve/         - Approve (admin)
    /refunds/<id>/cancel/          - Cancel (admin)
    /refunds/<id>/retry/           - Manual retry (admin)
"""

from django.urls import path

from . import views

app_name = "payments"

urlpatterns = [
    path("refunds/", views.InitiateRefundView.as_view(), name="refund-initiate"),
    path("refunds/manual/", views.ManualRefundView.as_view(), name="refund-manual"),
    path("refunds/sweep/", views.RefundSweepView.as_view(), name="refund-sweep"),
    path("refunds/stats/", views.RefundStatsView.as_view(), name="refund-stats"),
    path(
        "refunds/<uuid:refund_id>/",
        views.RefundDetailView.as_view(),
        name="refund-detail",
    ),
    path(
        "refunds/<uuid:refund_id>/process/",
        views.ProcessRefundView.as_view(),
        name="refund-process",
    ),
    path(
        "refunds/<uuid:refund_id>/approve/",
        views.ApproveRefundView.as_view(),
        name="refund-approve",
    ),
    path(
        "refunds/<uuid:refund_id>/cancel/",
        views.CancelRefundView.as_view(),
        name="refund-cancel",
    ),
    path(
        "refunds/<uuid:refund_id>/retry/",
        views.RetryRefundView.as_view(),
        name="refund-retry",
    ),
]

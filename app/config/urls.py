"""
URL configuration for the meal voucher ledger.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/vouchers/              - Voucher ledger endpoints
        balance/                   - Balance summary
        eligibility/               - Redemption eligibility check
        redeem/                    - Redeem vouchers for an order
        restore/                   - Restore vouchers of an order (admin)
        admin/expire/              - Run the expiry sweep (admin)
        cutoff/                    - Read / update meal cutoff times
        subscriptions/             - Purchase a subscription
        subscriptions/{id}/cancel/ - Cancel a subscription
    /api/v1/payments/              - Refund settlement endpoints
        refunds/                   - Initiate an order refund (admin)
        refunds/manual/            - Manual refund (admin)
        refunds/sweep/             - Retry due FAILED refunds (admin)
        refunds/stats/             - Refund statistics (admin)
        refunds/{id}/              - Refund detail
        refunds/{id}/process/      - Process (admin)
        refunds/{id}/approve/      - Approve a PENDING refund (admin)
        refunds/{id}/cancel/       - Cancel (admin)
        refunds/{id}/retry/        - Manual retry of a FAILED refund (admin)

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
# All routes here are prefixed with /api/v1/ automatically
api_v1_patterns = [
    path("vouchers/", include("vouchers.urls")),
    path("payments/", include("payments.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Meal Voucher Ledger Admin"
admin.site.site_title = "Voucher Ledger"
admin.site.index_title = "Vouchers, subscriptions and refunds"

"""
URL configuration for the marketplace escrow backend.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/auth/token/            - Obtain JWT pair (email/password)
    /api/v1/auth/token/refresh/    - Refresh JWT access token
    /api/v1/cart/                  - Current cart (GET/DELETE)
        items/                     - Add item to cart (POST)
    /api/v1/orders/                - Buyer order list/create
        {id}/                      - Order detail
        {id}/confirm-payment/      - Drive the order's holds to paid
        {id}/cancel/               - Cancel a pending order
        {id}/seller-status/        - Seller fulfilment status update
        seller/                    - Seller's sub-orders
    /api/v1/escrow/                - Escrow endpoints
        orders/{id}/release/       - Manual release (buyer/admin)
        orders/{id}/disputes/      - Raise dispute
        orders/{id}/disputes/resolve/ - Resolve dispute (admin)
        process-releases/          - Internal release sweep trigger
    /api/v1/notifications/         - Notification list
        {id}/read/                 - Mark read
        {id}/                      - Delete
    /api/v1/payments/
        webhooks/stripe/           - Stripe webhook endpoint (POST)
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
api_v1_patterns = [
    path("auth/", include("authentication.urls")),
    path("cart/", include("catalog.urls")),
    path("orders/", include("orders.urls")),
    path("escrow/", include("orders.escrow_urls")),
    path("notifications/", include("notifications.urls")),
    path("payments/", include("payments.urls")),
]

urlpatterns = [
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    path("admin/", admin.site.urls),
    path("health/", health_check, name="health_check"),
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Marketplace Admin"
admin.site.site_title = "Marketplace Admin Portal"
admin.site.index_title = "Orders, escrow and disputes"

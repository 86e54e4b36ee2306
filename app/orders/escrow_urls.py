"""
URL configuration for the escrow API.

Routes:
    /orders/{id}/release/             - Manual release (buyer or admin)
    /orders/{id}/disputes/            - Raise a dispute (buyer or seller)
    /orders/{id}/disputes/resolve/    - Resolve a dispute (admin)
    /process-releases/                - Internal release sweep trigger
"""

from django.urls import path

from orders.views import ProcessReleasesView, RaiseDisputeView, ReleaseEscrowView, ResolveDisputeView

app_name = "escrow"

urlpatterns = [
    path("orders/<uuid:order_id>/release/", ReleaseEscrowView.as_view(), name="release"),
    path("orders/<uuid:order_id>/disputes/", RaiseDisputeView.as_view(), name="raise-dispute"),
    path("orders/<uuid:order_id>/disputes/resolve/", ResolveDisputeView.as_view(), name="resolve-dispute"),
    path("process-releases/", ProcessReleasesView.as_view(), name="process-releases"),
]

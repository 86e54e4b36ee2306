"""
Permission classes for the orders and escrow API.

- IsSeller: user may act as a seller
- HasInternalAPISecret: internal scheduler trigger authenticated by a
  shared secret (``Authorization: Bearer <INTERNAL_API_SECRET>``)

Object-level rules (buyer of the order, seller on the order, admin) are
enforced by the services, which raise ``OrderAccessDeniedError``.
"""

from __future__ import annotations

import hmac
from typing import TYPE_CHECKING

from django.conf import settings
from rest_framework import permissions

if TYPE_CHECKING:
    from rest_framework.request import Request
    from rest_framework.views import APIView


class IsSeller(permissions.BasePermission):
    message = "Only sellers can access this endpoint."

    def has_permission(self, request: Request, view: APIView) -> bool:
        user = request.user
        return bool(user and user.is_authenticated and (user.role == user.Role.SELLER or user.is_admin))


class HasInternalAPISecret(permissions.BasePermission):
    """
    Allows access only with the shared internal secret.

    Denies everything while ``INTERNAL_API_SECRET`` is unset, so the
    endpoint is never open by misconfiguration.
    """

    message = "Invalid or missing internal API secret."

    def has_permission(self, request: Request, view: APIView) -> bool:
        secret = getattr(settings, "INTERNAL_API_SECRET", "")
        if not secret:
            return False

        header = request.headers.get("Authorization", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token:
            return False

        return hmac.compare_digest(token.strip().encode(), secret.encode())

"""
DRF exception handler for application errors.

Registered as ``REST_FRAMEWORK["EXCEPTION_HANDLER"]``. Service code raises
``BaseApplicationError`` subclasses and this handler turns them into the same
``{"error", "error_code", "details"}`` body the rest of the API uses.
Provider diagnostics attached to ``ExternalServiceError`` are only returned
while ``DEBUG`` is on.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.conf import settings
from rest_framework.response import Response
from rest_framework.views import exception_handler

from core.exceptions import BaseApplicationError, ExternalServiceError

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


def application_exception_handler(exc: Exception, context: dict[str, Any]) -> Response | None:
    if not isinstance(exc, BaseApplicationError):
        return exception_handler(exc, context)

    view = context.get("view")
    log_extra = {
        "error_code": exc.error_code,
        "view": view.__class__.__name__ if view else None,
    }
    if exc.http_status >= 500:
        logger.error(f"Application error: {exc}", extra=log_extra)
    else:
        logger.info(f"Application error: {exc}", extra=log_extra)

    include_details = settings.DEBUG or not isinstance(exc, ExternalServiceError)
    return Response(exc.to_dict(include_details=include_details), status=exc.http_status)

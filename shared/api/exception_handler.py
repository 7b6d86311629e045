"""DRF exception handler that understands the domain error taxonomy."""

from __future__ import annotations

import logging

from rest_framework.response import Response  # type: ignore
from rest_framework.views import exception_handler as drf_exception_handler  # type: ignore

from shared.domain.exceptions import DomainError, GatewayError

logger = logging.getLogger(__name__)


def domain_exception_handler(exc, context):  # type: ignore
    """Map domain errors to HTTP responses, delegate everything else to DRF."""

    if isinstance(exc, DomainError):
        if isinstance(exc, GatewayError):
            logger.error(f"Gateway failure surfaced to client: {exc.detail}")
        return Response({"detail": exc.message, "code": exc.code}, status=exc.status_code)

    return drf_exception_handler(exc, context)

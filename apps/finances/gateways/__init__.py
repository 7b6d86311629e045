"""Payment gateway selection by payment method."""

import logging

from django.conf import settings  # type: ignore

from apps.finances.gateways.base import GatewayResult, PaymentGateway, WebhookNotice
from apps.finances.gateways.providers import BkashGateway, NagadGateway, RocketGateway
from apps.finances.gateways.stub import StubGateway
from shared.domain.exceptions import GatewayError, InvalidOperationError

logger = logging.getLogger(__name__)

PROVIDERS: dict[str, type[PaymentGateway]] = {
    "bkash": BkashGateway,
    "nagad": NagadGateway,
    "rocket": RocketGateway,
}


def get_gateway(method: str) -> PaymentGateway:
    """
    Gateway for a payment method.

    Providers without credentials fall back to the stub gateway when
    ``PAYMENT_GATEWAYS['USE_STUB_WITHOUT_CREDENTIALS']`` is on.
    """
    config = settings.PAYMENT_GATEWAYS
    timeout = float(settings.MARKETPLACE["PAYMENT_GATEWAY_TIMEOUT"])
    method = str(method).lower()

    if method == "stub":
        return StubGateway("stub", config.get("STUB", {}), timeout)

    provider_cls = PROVIDERS.get(method)
    if provider_cls is None:
        raise InvalidOperationError(f"Unsupported payment method: {method}", code="unsupported_method")

    provider_config = config.get(method.upper(), {})
    if provider_cls.has_credentials(provider_config):
        return provider_cls(method, provider_config, timeout)
    if config.get("USE_STUB_WITHOUT_CREDENTIALS"):
        logger.warning(f"{method} gateway has no credentials, using the stub gateway")
        return StubGateway(method, provider_config, timeout)
    raise GatewayError(f"{method} gateway is not configured")


__all__ = [
    "GatewayResult",
    "PaymentGateway",
    "WebhookNotice",
    "StubGateway",
    "get_gateway",
]

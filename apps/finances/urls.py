"""URL routing for the finance domain."""

from __future__ import annotations

from django.urls import include, path  # type: ignore
from rest_framework.routers import DefaultRouter  # type: ignore

from .views import (
    CommissionSettingViewSet,
    PaymentViewSet,
    PaymentWebhookView,
    PayoutViewSet,
    RefundViewSet,
    SettlementViewSet,
)

router = DefaultRouter()
router.register(r"payments", PaymentViewSet, basename="payment")
router.register(r"commission-settings", CommissionSettingViewSet, basename="commission-setting")
router.register(r"refunds", RefundViewSet, basename="refund")
router.register(r"settlements", SettlementViewSet, basename="settlement")
router.register(r"payouts", PayoutViewSet, basename="payout")

urlpatterns = [
    path("webhooks/<str:provider>/", PaymentWebhookView.as_view(), name="payment-webhook"),
    path("", include(router.urls)),
]

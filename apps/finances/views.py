"""API views for payments, commission, refunds, settlements and payouts.

Payments are opened by the booking customer and captured through the
payment gateway; providers report back through the webhook endpoint.
Everything that moves platform money by hand (refund processing,
settlement and payout administration) is restricted to administrators.
"""

from __future__ import annotations

import logging

from django.utils import timezone  # type: ignore
from rest_framework import mixins, permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import APIView  # type: ignore

from apps.bookings.services import actor_role, load_booking
from apps.users.permissions import IsPlatformAdmin, is_admin_user
from shared.domain.exceptions import ForbiddenError

from . import commission, payouts, refunds
from .commission import CommissionResolver
from .ledger import SettlementLedger
from .payments import PaymentCoordinator, payments_for_user
from .serializers import (
    BackfillSerializer,
    BookingSettlementSerializer,
    CommissionBreakdownSerializer,
    CommissionQuoteSerializer,
    CommissionSettingSerializer,
    DailySettlementSerializer,
    DateRangeQuerySerializer,
    ManualSettlementSerializer,
    OptionalDateRangeQuerySerializer,
    PaymentIntentSerializer,
    PaymentRefundSerializer,
    PaymentSerializer,
    PayoutCreateSerializer,
    PayoutGenerateSerializer,
    PayoutSerializer,
    RefundCompleteSerializer,
    RefundFailSerializer,
    RefundProcessSerializer,
    RefundSerializer,
    SettlementDaySerializer,
)

logger = logging.getLogger(__name__)


def _validated(serializer_class, data) -> dict:  # type: ignore
    serializer = serializer_class(data=data)
    serializer.is_valid(raise_exception=True)
    return serializer.validated_data


class PaymentViewSet(viewsets.ReadOnlyModelViewSet):
    """Payments of the acting user; customers open and capture them here."""

    serializer_class = PaymentSerializer
    permission_classes = [permissions.IsAuthenticated]
    filterset_fields = ["status", "method", "booking"]
    lookup_value_regex = r"\d+"

    def get_queryset(self):  # type: ignore
        return payments_for_user(self.request.user)

    def _payment_response(self, payment, status_code=status.HTTP_200_OK):  # type: ignore
        payment = payments_for_user(self.request.user).get(pk=payment.pk)
        return Response(PaymentSerializer(payment).data, status=status_code)

    @action(detail=False, methods=["post"])
    def intent(self, request):  # type: ignore
        data = _validated(PaymentIntentSerializer, request.data)
        payment = PaymentCoordinator().create_intent(data["booking_id"], request.user, method=data["method"])
        return Response(PaymentSerializer(payment).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"])
    def capture(self, request, pk=None):  # type: ignore
        payment = PaymentCoordinator().capture(int(pk), actor=request.user)
        return self._payment_response(payment)

    @action(detail=True, methods=["post"], permission_classes=[IsPlatformAdmin])
    def refund(self, request, pk=None):  # type: ignore
        data = _validated(PaymentRefundSerializer, request.data)
        payment = PaymentCoordinator().refund(int(pk), data["reason"], actor=request.user)
        return self._payment_response(payment)


class PaymentWebhookView(APIView):
    """
    Provider notifications. The body is verified against the provider's
    HMAC signature header and the answer is always HTTP 200 so providers
    stop redelivering; ``success`` tells whether it was applied.
    """

    authentication_classes: list = []
    permission_classes = [permissions.AllowAny]

    def post(self, request, provider: str):  # type: ignore
        signature = request.headers.get("X-Signature", "")
        result = PaymentCoordinator().process_webhook(provider.lower(), request.body, signature)
        if not result["success"]:
            logger.warning(f"Webhook from {provider} rejected: {result.get('error')}")
        return Response(result, status=status.HTTP_200_OK)


class CommissionSettingViewSet(viewsets.ModelViewSet):
    """Category and global commission rates (admin only), plus quotes."""

    serializer_class = CommissionSettingSerializer
    permission_classes = [IsPlatformAdmin]

    def get_queryset(self):  # type: ignore
        return commission.list_settings()

    def create(self, request, *args, **kwargs):  # type: ignore
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        setting = commission.create_setting(
            serializer.validated_data["percent"],
            category=serializer.validated_data.get("category"),
        )
        return Response(self.get_serializer(setting).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):  # type: ignore
        setting = self.get_object()
        serializer = self.get_serializer(setting, data=request.data, partial=kwargs.get("partial", False))
        serializer.is_valid(raise_exception=True)
        percent = serializer.validated_data.get("percent", setting.percent)
        setting = commission.update_setting(setting.pk, percent)
        return Response(self.get_serializer(setting).data)

    def perform_destroy(self, instance):  # type: ignore
        commission.delete_setting(instance.pk)

    @action(detail=False, methods=["post"], permission_classes=[permissions.IsAuthenticated])
    def quote(self, request):  # type: ignore
        """Commission split for a booking (its final or quoted amount) or for a plain amount."""
        data = _validated(CommissionQuoteSerializer, request.data)
        resolver = CommissionResolver()
        if data.get("booking_id") is not None:
            booking = load_booking(data["booking_id"])
            if actor_role(booking, request.user) is None:
                raise ForbiddenError("Access denied to this booking")
            breakdown = resolver.calculate_for_booking(booking)
        else:
            breakdown = resolver.calculate(data["amount"], data.get("category_id"))
        return Response(CommissionBreakdownSerializer(breakdown).data)


class RefundViewSet(viewsets.ReadOnlyModelViewSet):
    """Refund administration."""

    serializer_class = RefundSerializer
    permission_classes = [IsPlatformAdmin]
    lookup_value_regex = r"\d+"

    def get_queryset(self):  # type: ignore
        params = self.request.query_params
        return refunds.list_refunds(
            status=params.get("status"),
            start=params.get("start"),
            end=params.get("end"),
        )

    @action(detail=True, methods=["post"])
    def process(self, request, pk=None):  # type: ignore
        data = _validated(RefundProcessSerializer, request.data)
        refund = refunds.process_refund(int(pk), request.user, data["method"], data["notes"])
        return Response(RefundSerializer(refund).data)

    @action(detail=True, methods=["post"])
    def complete(self, request, pk=None):  # type: ignore
        data = _validated(RefundCompleteSerializer, request.data)
        refund = refunds.complete_refund(int(pk), gateway_ref=data["gateway_ref"], notes=data["notes"])
        return Response(RefundSerializer(refund).data)

    @action(detail=True, methods=["post"])
    def fail(self, request, pk=None):  # type: ignore
        data = _validated(RefundFailSerializer, request.data)
        refund = refunds.fail_refund(int(pk), data["notes"])
        return Response(RefundSerializer(refund).data)

    @action(detail=True, methods=["post"])
    def execute(self, request, pk=None):  # type: ignore
        refund = refunds.execute_refund(int(pk), request.user)
        return Response(RefundSerializer(refund).data)

    @action(detail=False, methods=["get"])
    def stats(self, request):  # type: ignore
        stats = refunds.refund_stats()
        return Response(
            {
                "by_status": {
                    key: {"count": value["count"], "amount": str(value["amount"])}
                    for key, value in stats["by_status"].items()
                },
                "total_count": stats["total_count"],
                "pending_amount": str(stats["pending_amount"]),
            }
        )


class SettlementViewSet(viewsets.ViewSet):
    """Settlement ledger administration; professionals may read their own earnings."""

    permission_classes = [IsPlatformAdmin]
    lookup_value_regex = r"\d+"

    def _ledger(self) -> SettlementLedger:
        return SettlementLedger()

    @action(detail=False, methods=["get"])
    def summary(self, request):  # type: ignore
        params = request.query_params
        day = _validated(SettlementDaySerializer, params)["date"] if "date" in params else timezone.localdate()
        summary = self._ledger().daily_summary(day)
        return Response(
            {
                **summary,
                "total_amount": str(summary["total_amount"]),
                "total_commission": str(summary["total_commission"]),
                "total_payouts": str(summary["total_payouts"]),
                "by_status": {
                    key: {"count": value["count"], "professional_amount": str(value["professional_amount"])}
                    for key, value in summary["by_status"].items()
                },
            }
        )

    @action(detail=False, methods=["get"])
    def history(self, request):  # type: ignore
        data = _validated(DateRangeQuerySerializer, request.query_params)
        days = self._ledger().history(data["start"], data["end"])
        return Response(DailySettlementSerializer(days, many=True).data)

    @action(detail=False, methods=["get"])
    def due(self, request):  # type: ignore
        professional_id = request.query_params.get("professional_id")
        settlements = self._ledger().due_settlements(int(professional_id) if professional_id else None)
        return Response(BookingSettlementSerializer(settlements, many=True).data)

    @action(detail=False, methods=["get"], permission_classes=[permissions.IsAuthenticated])
    def earnings(self, request):  # type: ignore
        user = request.user
        if is_admin_user(user) and request.query_params.get("professional_id"):
            professional_id = int(request.query_params["professional_id"])
        elif user.is_professional():
            professional_id = user.pk
        else:
            raise ForbiddenError("Only professionals and administrators can view earnings")
        data = _validated(OptionalDateRangeQuerySerializer, request.query_params)
        earnings = self._ledger().professional_earnings(professional_id, data.get("start"), data.get("end"))
        return Response(
            {
                **earnings,
                "total_paid": str(earnings["total_paid"]),
                "total_due": str(earnings["total_due"]),
            }
        )

    @action(detail=False, methods=["post"])
    def manual(self, request):  # type: ignore
        data = _validated(ManualSettlementSerializer, request.data)
        settlement = self._ledger().create_manual_settlement(data["booking_id"])
        return Response(BookingSettlementSerializer(settlement).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["post"])
    def backfill(self, request):  # type: ignore
        data = _validated(BackfillSerializer, request.data)
        result = self._ledger().backfill(limit=data.get("limit"))
        return Response(result.as_dict())

    @action(detail=True, methods=["post"], url_path="mark-paid")
    def mark_paid(self, request, pk=None):  # type: ignore
        settlement = self._ledger().mark_paid(int(pk))
        return Response(BookingSettlementSerializer(settlement).data)

    @action(detail=False, methods=["post"], url_path="process-day")
    def process_day(self, request):  # type: ignore
        data = _validated(SettlementDaySerializer, request.data)
        daily = self._ledger().process_day(data["date"])
        return Response(DailySettlementSerializer(daily).data)


class PayoutViewSet(mixins.CreateModelMixin, viewsets.ReadOnlyModelViewSet):
    """Payouts of the acting professional, or all of them for administrators."""

    serializer_class = PayoutSerializer
    permission_classes = [permissions.IsAuthenticated]
    filterset_fields = ["status"]
    lookup_value_regex = r"\d+"

    def get_queryset(self):  # type: ignore
        return payouts.payouts_for_user(self.request.user)

    def get_permissions(self):  # type: ignore
        if self.action in ("create", "generate"):
            return [IsPlatformAdmin()]
        return super().get_permissions()

    def create(self, request, *args, **kwargs):  # type: ignore
        data = _validated(PayoutCreateSerializer, request.data)
        payout = payouts.create_payout(
            data["professional_id"],
            data["period_start"],
            data["period_end"],
            data["amount"],
            metadata=data.get("metadata"),
        )
        return Response(PayoutSerializer(payout).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], url_path="mark-paid")
    def mark_paid(self, request, pk=None):  # type: ignore
        payout = payouts.mark_payout_paid(int(pk), request.user)
        return Response(PayoutSerializer(payout).data)

    @action(detail=False, methods=["post"])
    def generate(self, request):  # type: ignore
        data = _validated(PayoutGenerateSerializer, request.data)
        result = payouts.generate_for_period(data["period_start"], data["period_end"])
        return Response(
            {
                **result,
                "total_amount": str(result["total_amount"]),
            },
            status=status.HTTP_201_CREATED,
        )

    @action(detail=False, methods=["get"])
    def stats(self, request):  # type: ignore
        stats = payouts.payout_stats(request.user)
        return Response(
            {
                key: str(value) if key.endswith("amount") else value
                for key, value in stats.items()
            }
        )

"""API views for the booking domain.

Reads are scoped to the acting user. Lifecycle actions are addressed by
primary key and handed to the command handlers, which tell "not your
booking" (403) apart from "not allowed in this status" (400).
"""

from __future__ import annotations

from rest_framework import mixins, permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore

from apps.bookings.application.command_handlers import (
    AcceptBookingCommand,
    AcceptBookingHandler,
    CancelBookingCommand,
    CancelBookingHandler,
    CheckInBookingCommand,
    CheckInBookingHandler,
    CheckOutBookingCommand,
    CheckOutBookingHandler,
    CompleteBookingCommand,
    CompleteBookingHandler,
    CreateBookingCommand,
    CreateBookingHandler,
    RejectBookingCommand,
    RejectBookingHandler,
)
from apps.users.permissions import is_admin_user

from .models import Booking
from .serializers import (
    BookingCheckOutSerializer,
    BookingCompleteSerializer,
    BookingCreateSerializer,
    BookingListSerializer,
    BookingNoteSerializer,
    BookingReasonSerializer,
    BookingSerializer,
)


class BookingViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """Viewset for creating bookings and driving their lifecycle."""

    queryset = Booking.objects.select_related("customer", "professional", "category").all()
    permission_classes = [permissions.IsAuthenticated]
    filterset_fields = ["status", "pricing_model", "category"]
    lookup_value_regex = r"\d+"

    def get_serializer_class(self):  # type: ignore
        if self.action == "list":
            return BookingListSerializer
        if self.action == "create":
            return BookingCreateSerializer
        return BookingSerializer

    def get_queryset(self):  # type: ignore
        user = self.request.user
        qs = super().get_queryset()
        if self.action == "retrieve":
            qs = qs.prefetch_related("events")
        if is_admin_user(user):
            return qs
        if hasattr(user, "is_professional") and user.is_professional():
            return qs.filter(professional=user)
        return qs.filter(customer=user)

    def create(self, request, *args, **kwargs):  # type: ignore
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = CreateBookingHandler().handle(
            CreateBookingCommand(customer_id=request.user.pk, **serializer.validated_data)
        )
        return self._booking_response(booking, status.HTTP_201_CREATED)

    def _booking_response(self, booking: Booking, status_code=status.HTTP_200_OK):  # type: ignore
        booking = Booking.objects.prefetch_related("events").select_related("category").get(pk=booking.pk)
        return Response(BookingSerializer(booking, context=self.get_serializer_context()).data, status=status_code)

    def _payload(self, serializer_class, request) -> dict:  # type: ignore
        serializer = serializer_class(data=request.data)
        serializer.is_valid(raise_exception=True)
        return serializer.validated_data

    @action(detail=True, methods=["post"])
    def accept(self, request, pk=None):  # type: ignore
        data = self._payload(BookingNoteSerializer, request)
        booking = AcceptBookingHandler().handle(
            AcceptBookingCommand(booking_id=int(pk), actor_id=request.user.pk, note=data["note"])
        )
        return self._booking_response(booking)

    @action(detail=True, methods=["post"])
    def reject(self, request, pk=None):  # type: ignore
        data = self._payload(BookingReasonSerializer, request)
        booking = RejectBookingHandler().handle(
            RejectBookingCommand(booking_id=int(pk), actor_id=request.user.pk, reason=data["reason"])
        )
        return self._booking_response(booking)

    @action(detail=True, methods=["post"], url_path="check-in")
    def check_in(self, request, pk=None):  # type: ignore
        booking = CheckInBookingHandler().handle(
            CheckInBookingCommand(booking_id=int(pk), actor_id=request.user.pk)
        )
        return self._booking_response(booking)

    @action(detail=True, methods=["post"], url_path="check-out")
    def check_out(self, request, pk=None):  # type: ignore
        data = self._payload(BookingCheckOutSerializer, request)
        booking = CheckOutBookingHandler().handle(
            CheckOutBookingCommand(
                booking_id=int(pk),
                actor_id=request.user.pk,
                actual_hours=data.get("actual_hours"),
            )
        )
        return self._booking_response(booking)

    @action(detail=True, methods=["post"])
    def complete(self, request, pk=None):  # type: ignore
        data = self._payload(BookingCompleteSerializer, request)
        booking = CompleteBookingHandler().handle(
            CompleteBookingCommand(
                booking_id=int(pk),
                actor_id=request.user.pk,
                actual_hours=data.get("actual_hours"),
                final_amount=data.get("final_amount"),
            )
        )
        return self._booking_response(booking)

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):  # type: ignore
        data = self._payload(BookingReasonSerializer, request)
        booking = CancelBookingHandler().handle(
            CancelBookingCommand(booking_id=int(pk), actor_id=request.user.pk, reason=data["reason"])
        )
        return self._booking_response(booking)

"""Factories shared by the test suites of the domain apps."""

from __future__ import annotations

import itertools
from datetime import timedelta
from decimal import Decimal

from django.utils import timezone  # type: ignore

_sequence = itertools.count(1)


def make_customer(**extra):  # type: ignore
    from apps.users.models import User

    return User.objects.create_user(email=f"customer{next(_sequence)}@example.com", **extra)


def make_professional(**extra):  # type: ignore
    from apps.users.models import User

    return User.objects.create_professional(email=f"pro{next(_sequence)}@example.com", **extra)


def make_admin(**extra):  # type: ignore
    from apps.users.models import User

    return User.objects.create_superuser(email=f"admin{next(_sequence)}@example.com", **extra)


def make_category(**extra):  # type: ignore
    from apps.catalog.models import ServiceCategory

    number = next(_sequence)
    extra.setdefault("name", f"Category {number}")
    extra.setdefault("slug", f"category-{number}")
    return ServiceCategory.objects.create(**extra)


def make_booking(customer, professional, category, *, pricing_model="fixed", quoted_price="1000.00", **extra):  # type: ignore
    """A PENDING booking created through the regular command handler."""
    from apps.bookings.application.command_handlers import CreateBookingCommand, CreateBookingHandler

    return CreateBookingHandler().handle(
        CreateBookingCommand(
            customer_id=customer.pk,
            professional_id=professional.pk,
            category_id=category.pk,
            scheduled_at=extra.pop("scheduled_at", timezone.now() + timedelta(days=1)),
            address=extra.pop("address", "House 12, Road 5, Dhanmondi, Dhaka"),
            quoted_price=Decimal(str(quoted_price)),
            pricing_model=pricing_model,
            **extra,
        )
    )


def accept_booking(booking):  # type: ignore
    from apps.bookings.application.command_handlers import AcceptBookingCommand, AcceptBookingHandler

    return AcceptBookingHandler().handle(
        AcceptBookingCommand(booking_id=booking.pk, actor_id=booking.professional_id)
    )


def start_booking(booking):  # type: ignore
    """Accept and check in."""
    from apps.bookings.application.command_handlers import CheckInBookingCommand, CheckInBookingHandler

    accept_booking(booking)
    return CheckInBookingHandler().handle(
        CheckInBookingCommand(booking_id=booking.pk, actor_id=booking.professional_id)
    )


def complete_booking(booking, *, actual_hours=None, final_amount=None):  # type: ignore
    from apps.bookings.application.command_handlers import CompleteBookingCommand, CompleteBookingHandler

    return CompleteBookingHandler().handle(
        CompleteBookingCommand(
            booking_id=booking.pk,
            actor_id=booking.professional_id,
            actual_hours=Decimal(str(actual_hours)) if actual_hours is not None else None,
            final_amount=Decimal(str(final_amount)) if final_amount is not None else None,
        )
    )

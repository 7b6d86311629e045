"""Commission resolution and the booking amount split.

The commission rate for a category is the category's own setting when
one exists, otherwise the global setting (a row with no category),
otherwise ``MARKETPLACE['DEFAULT_COMMISSION_PERCENT']``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from django.conf import settings  # type: ignore
from django.db import IntegrityError, transaction  # type: ignore

from apps.finances.models import CommissionSetting
from shared.domain.exceptions import DuplicateRequestError, InvalidOperationError, NotFoundError
from shared.domain.value_objects import Percent, quantize_money

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommissionBreakdown:
    amount: Decimal
    percent: Decimal
    commission_amount: Decimal
    net_amount: Decimal

    def as_metadata(self) -> dict:
        return {
            "amount": str(self.amount),
            "percent": str(self.percent),
            "commission_amount": str(self.commission_amount),
            "net_amount": str(self.net_amount),
        }


def split_amount(amount, percent) -> CommissionBreakdown:
    """
    Split ``amount`` into platform commission and professional net.

    The commission is rounded half up to cents and the net is whatever is
    left, so ``commission_amount + net_amount == amount`` always holds.
    """
    amount = quantize_money(amount)
    if amount < 0:
        raise InvalidOperationError(f"Amount must not be negative, got {amount}", code="invalid_amount")
    rate = _validated_rate(percent)
    commission = quantize_money(amount * rate / Decimal("100"))
    return CommissionBreakdown(
        amount=amount,
        percent=rate,
        commission_amount=commission,
        net_amount=amount - commission,
    )


def _validated_rate(percent) -> Decimal:
    try:
        return Percent(Decimal(str(percent))).value
    except (ValueError, ArithmeticError) as e:
        raise InvalidOperationError(str(e), code="invalid_percent") from None


def default_commission_percent() -> Decimal:
    return Decimal(str(settings.MARKETPLACE["DEFAULT_COMMISSION_PERCENT"]))


class CommissionResolver:
    """Resolves commission rates and splits amounts."""

    def __init__(self, default_percent: Decimal | None = None):
        self.default_percent = default_percent

    def resolve(self, category_id: int | None = None) -> Decimal:
        if category_id is not None:
            category_percent = (
                CommissionSetting.objects.filter(category_id=category_id)
                .values_list("percent", flat=True)
                .first()
            )
            if category_percent is not None:
                return category_percent

        global_percent = (
            CommissionSetting.objects.filter(category__isnull=True)
            .values_list("percent", flat=True)
            .first()
        )
        if global_percent is not None:
            return global_percent

        if self.default_percent is not None:
            return Decimal(str(self.default_percent))
        return default_commission_percent()

    def calculate(self, amount, category_id: int | None = None) -> CommissionBreakdown:
        return split_amount(amount, self.resolve(category_id))

    def calculate_for_booking(self, booking) -> CommissionBreakdown:  # type: ignore
        """Split the final amount (quoted price until completed) at the category's current rate."""
        return self.calculate(booking.chargeable_amount(), booking.category_id)


# ===== Commission settings administration =====

def list_settings():  # type: ignore
    return CommissionSetting.objects.select_related("category").all()


def get_setting(setting_id: int) -> CommissionSetting:
    try:
        return CommissionSetting.objects.select_related("category").get(pk=setting_id)
    except CommissionSetting.DoesNotExist:
        raise NotFoundError(f"Commission setting {setting_id} not found") from None


@transaction.atomic
def create_setting(percent: Decimal, category=None) -> CommissionSetting:  # type: ignore
    """Create a category or global setting. Each scope may have only one."""
    rate = _validated_rate(percent)
    scope = {"category": category} if category is not None else {"category__isnull": True}
    if CommissionSetting.objects.select_for_update().filter(**scope).exists():
        label = f"category {category.pk}" if category is not None else "global default"
        raise DuplicateRequestError(f"Commission setting for {label} already exists")
    try:
        setting = CommissionSetting.objects.create(category=category, percent=rate)
    except IntegrityError:
        raise DuplicateRequestError("Commission setting for this category already exists") from None
    logger.info(f"Commission setting {setting.pk} created: {setting}")
    return setting


def update_setting(setting_id: int, percent: Decimal) -> CommissionSetting:
    setting = get_setting(setting_id)
    setting.percent = _validated_rate(percent)
    setting.save(update_fields=["percent", "updated_at"])
    logger.info(f"Commission setting {setting.pk} updated: {setting}")
    return setting


def delete_setting(setting_id: int) -> None:
    setting = get_setting(setting_id)
    setting.delete()
    logger.info(f"Commission setting {setting_id} deleted")

"""Commission resolution and amount split."""

from decimal import Decimal

import pytest
from django.test import TestCase, override_settings

from apps.finances import commission
from apps.finances.commission import CommissionResolver, split_amount
from apps.finances.models import CommissionSetting
from shared.domain.exceptions import DuplicateRequestError, InvalidOperationError
from shared.testing import make_booking, make_category, make_customer, make_professional


@pytest.mark.parametrize(
    "amount,percent,commission_amount,net_amount",
    [
        ("1000.00", "15", "150.00", "850.00"),
        ("1250.00", "15", "187.50", "1062.50"),
        ("99.99", "12.5", "12.50", "87.49"),
        ("0.01", "50", "0.01", "0.00"),
        ("333.33", "0", "0.00", "333.33"),
        ("333.33", "100", "333.33", "0.00"),
    ],
)
def test_split_conserves_the_amount(amount, percent, commission_amount, net_amount) -> None:
    breakdown = split_amount(Decimal(amount), Decimal(percent))

    assert breakdown.commission_amount == Decimal(commission_amount)
    assert breakdown.net_amount == Decimal(net_amount)
    assert breakdown.commission_amount + breakdown.net_amount == breakdown.amount


def test_split_rejects_out_of_range_percent() -> None:
    with pytest.raises(InvalidOperationError):
        split_amount(Decimal("100.00"), Decimal("100.01"))
    with pytest.raises(InvalidOperationError):
        split_amount(Decimal("100.00"), Decimal("-1"))


def test_split_rejects_negative_amount() -> None:
    with pytest.raises(InvalidOperationError):
        split_amount(Decimal("-5.00"), Decimal("10"))


def test_breakdown_metadata_is_strings() -> None:
    assert split_amount(Decimal("200"), Decimal("10")).as_metadata() == {
        "amount": "200.00",
        "percent": "10.00",
        "commission_amount": "20.00",
        "net_amount": "180.00",
    }


class CommissionResolverTests(TestCase):
    def setUp(self) -> None:
        self.category = make_category()
        self.resolver = CommissionResolver()

    @override_settings(MARKETPLACE={
        "DEFAULT_COMMISSION_PERCENT": Decimal("15.00"),
        "CURRENCY": "BDT",
        "PAYMENT_GATEWAY_TIMEOUT": 1.0,
        "SIDE_EFFECT_MAX_RETRIES": 0,
    })
    def test_falls_back_to_configured_default(self) -> None:
        self.assertEqual(self.resolver.resolve(self.category.pk), Decimal("15.00"))
        self.assertEqual(self.resolver.resolve(None), Decimal("15.00"))

    def test_explicit_default_overrides_settings(self) -> None:
        self.assertEqual(CommissionResolver(default_percent=Decimal("7.5")).resolve(), Decimal("7.5"))

    def test_global_setting_beats_default(self) -> None:
        CommissionSetting.objects.create(category=None, percent=Decimal("10.00"))

        self.assertEqual(self.resolver.resolve(self.category.pk), Decimal("10.00"))

    def test_category_setting_beats_global(self) -> None:
        CommissionSetting.objects.create(category=None, percent=Decimal("10.00"))
        CommissionSetting.objects.create(category=self.category, percent=Decimal("20.00"))

        self.assertEqual(self.resolver.resolve(self.category.pk), Decimal("20.00"))
        self.assertEqual(self.resolver.resolve(make_category().pk), Decimal("10.00"))

    def test_calculate_for_booking_uses_quoted_price_until_completed(self) -> None:
        CommissionSetting.objects.create(category=self.category, percent=Decimal("20.00"))
        booking = make_booking(make_customer(), make_professional(), self.category, quoted_price="450.00")

        breakdown = self.resolver.calculate_for_booking(booking)

        self.assertEqual(breakdown.amount, Decimal("450.00"))
        self.assertEqual(breakdown.commission_amount, Decimal("90.00"))
        self.assertEqual(breakdown.net_amount, Decimal("360.00"))


class CommissionSettingAdministrationTests(TestCase):
    def test_one_global_setting(self) -> None:
        commission.create_setting(Decimal("12"))

        with self.assertRaises(DuplicateRequestError):
            commission.create_setting(Decimal("13"))

    def test_one_setting_per_category(self) -> None:
        category = make_category()
        setting = commission.create_setting(Decimal("12"), category=category)
        self.assertEqual(setting.percent, Decimal("12.00"))

        with self.assertRaises(DuplicateRequestError):
            commission.create_setting(Decimal("14"), category=category)

        # A global row does not collide with the category row
        commission.create_setting(Decimal("14"))
        self.assertEqual(CommissionSetting.objects.count(), 2)

    def test_update_validates_range(self) -> None:
        setting = commission.create_setting(Decimal("12"))

        with self.assertRaises(InvalidOperationError):
            commission.update_setting(setting.pk, Decimal("150"))

        updated = commission.update_setting(setting.pk, Decimal("18.25"))
        self.assertEqual(updated.percent, Decimal("18.25"))

    def test_delete(self) -> None:
        setting = commission.create_setting(Decimal("12"))

        commission.delete_setting(setting.pk)

        self.assertFalse(CommissionSetting.objects.exists())

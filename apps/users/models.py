"""User domain models for ServiceHub.

The marketplace distinguishes three roles: customers who request jobs,
independent professionals who perform them and platform administrators.
Professionals additionally own a profile with the account balance that
settled earnings are credited to.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from django.contrib.auth.models import AbstractUser, BaseUserManager  # type: ignore
from django.core.validators import RegexValidator  # type: ignore
from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


PHONE_VALIDATOR = RegexValidator(
    regex=r"^\+?\d{7,15}$",
    message=_("Invalid phone number. Use the international format without spaces."),
)


class UserManager(BaseUserManager):
    """User manager that uses the email address as the login."""

    use_in_migrations = True

    def _create_user(self, email: str, password: str | None, **extra_fields: Any):
        if not email:
            raise ValueError("Email is required to create a user.")
        email = self.normalize_email(email)

        phone = extra_fields.get("phone")
        if phone:
            extra_fields["phone"] = self.normalize_phone(phone)

        user = self.model(email=email, **extra_fields)
        if password:
            user.set_password(password)
        else:
            user.set_unusable_password()
        user.save(using=self._db)
        return user

    def create_user(self, email: str, password: str | None = None, **extra_fields: Any):
        extra_fields.setdefault("is_staff", False)
        extra_fields.setdefault("is_superuser", False)
        extra_fields.setdefault("role", User.Role.CUSTOMER)
        return self._create_user(email, password, **extra_fields)

    def create_superuser(self, email: str, password: str | None = None, **extra_fields: Any):
        extra_fields.setdefault("is_staff", True)
        extra_fields.setdefault("is_superuser", True)
        extra_fields.setdefault("role", User.Role.ADMIN)

        if extra_fields.get("is_staff") is not True:
            raise ValueError("Superuser must have is_staff=True.")
        if extra_fields.get("is_superuser") is not True:
            raise ValueError("Superuser must have is_superuser=True.")

        return self._create_user(email, password, **extra_fields)

    def create_professional(self, email: str, password: str | None = None, **extra_fields: Any):
        """Create a PROFESSIONAL user together with an empty profile."""
        extra_fields["role"] = User.Role.PROFESSIONAL
        user = self.create_user(email, password, **extra_fields)
        ProfessionalProfile.objects.create(user=user)
        return user

    @staticmethod
    def normalize_phone(phone: str) -> str:
        """Strip spaces and dashes so phone numbers are stored uniformly."""
        return phone.replace(" ", "").replace("-", "")


class User(AbstractUser):
    """Marketplace user with a role."""

    class Role(models.TextChoices):
        CUSTOMER = "customer", _("Customer")
        PROFESSIONAL = "professional", _("Professional")
        ADMIN = "admin", _("Administrator")

    username = models.CharField(
        _("Display name"),
        max_length=150,
        blank=True,
        help_text=_("Optional, shown in interfaces and notifications."),
    )
    email = models.EmailField(_("Email"), unique=True)
    phone = models.CharField(
        _("Phone"),
        max_length=20,
        unique=True,
        null=True,
        blank=True,
        validators=[PHONE_VALIDATOR],
    )
    role = models.CharField(
        _("Role"),
        max_length=20,
        choices=Role.choices,
        default=Role.CUSTOMER,
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = UserManager()

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS: list[str] = []

    class Meta:
        verbose_name = _("User")
        verbose_name_plural = _("Users")
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.email} ({self.get_role_display()})"

    def is_customer(self) -> bool:
        return self.role == self.Role.CUSTOMER

    def is_professional(self) -> bool:
        return self.role == self.Role.PROFESSIONAL

    def is_platform_admin(self) -> bool:
        return self.role == self.Role.ADMIN or self.is_superuser


class ProfessionalProfile(models.Model):
    """Public profile and running earnings balance of a professional."""

    user = models.OneToOneField(
        User,
        on_delete=models.CASCADE,
        related_name="professional_profile",
    )
    headline = models.CharField(max_length=255, blank=True)
    hourly_rate = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        help_text=_("Default rate suggested for hourly bookings."),
    )
    account_balance = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text=_("Settled earnings credited by the settlement ledger."),
    )
    is_verified = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Professional profile")
        verbose_name_plural = _("Professional profiles")

    def __str__(self) -> str:
        return f"Profile of {self.user_id} (balance {self.account_balance})"

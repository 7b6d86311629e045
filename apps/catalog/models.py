"""Catalog models."""

from __future__ import annotations

from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class ServiceCategory(models.Model):
    """A kind of job professionals offer (plumbing, cleaning, tutoring...)."""

    name = models.CharField(max_length=120)
    slug = models.SlugField(max_length=140, unique=True)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Service category")
        verbose_name_plural = _("Service categories")
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name

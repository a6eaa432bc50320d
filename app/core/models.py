"""
Abstract base model shared by the billing tables.

Usage:
    from core.models import BaseModel
    from core.model_mixins import UUIDPrimaryKeyMixin

    class Tenant(UUIDPrimaryKeyMixin, BaseModel):
        name = models.CharField(max_length=200)

List mixins before BaseModel so their fields come first.
"""

from __future__ import annotations

from django.db import models


class BaseModel(models.Model):
    """
    Insert and last-write timestamps.

    updated_at is indexed: reconciliation selects enrollments whose rows
    changed recently, and the webhook janitor finds events stuck in
    processing by it. Writers that pass update_fields must include it.
    """

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="When the row was inserted",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        db_index=True,
        help_text="When the row was last written; drives reconciliation and stuck-event scans",
    )

    class Meta:
        abstract = True
        ordering = ["-created_at"]

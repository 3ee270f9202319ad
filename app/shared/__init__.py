"""Shared model mixins used across features."""

from app.shared.models import TimestampMixin

__all__ = ["TimestampMixin"]

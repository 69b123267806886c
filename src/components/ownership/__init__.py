"""Ownership guard component - editor ownership checks for newsletters and posts."""

from src.components.ownership.component import OwnershipGuard

__all__ = ["OwnershipGuard"]

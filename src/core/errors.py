"""Error types shared by the core and adapters."""

from __future__ import annotations


class StoreError(RuntimeError):
    """A persisted-store read or write failed."""


class DuplicateNotificationError(StoreError):
    """An immediate notification already exists for the message/recipient pair."""


class AssessmentError(RuntimeError):
    """The external assessment service failed or returned unusable output."""


class DeliveryError(RuntimeError):
    """The delivery channel failed to hand a notification over."""

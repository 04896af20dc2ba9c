from __future__ import annotations

from typing import Any


class SubscriptionSyncError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message: str | None = None, **details: Any):
        self.message = message or self.message
        self.details = details
        super().__init__(self.message)

    def to_body(self) -> dict[str, Any]:
        return {"error": self.message, **self.details}


class MalformedPayload(SubscriptionSyncError):
    status_code = 400
    message = "Invalid payload: missing data"


class MissingIdentifier(SubscriptionSyncError):
    status_code = 400
    message = "Email is required"


class UnconfiguredEnvironment(SubscriptionSyncError):
    status_code = 500
    message = "Server configuration error"


class SubscriptionNotFound(SubscriptionSyncError):
    status_code = 404
    message = "Subscription not found for subscriber_code"


class PersistenceFailure(SubscriptionSyncError):
    status_code = 500
    message = "Upsert failed"


class AccessCheckFailure(SubscriptionSyncError):
    status_code = 500
    message = "Error checking subscription"

    def to_body(self) -> dict[str, Any]:
        return {"hasActiveSubscription": False, **super().to_body()}


class AuditWriteFailure(SubscriptionSyncError):
    """Raised by the event recorder only; never leaves it."""

    message = "Event insert failed"

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class WebhookEnvelope(BaseModel):
    """Outer body of a provider webhook delivery."""

    model_config = ConfigDict(extra="allow")

    event: Optional[Any] = None
    id: Optional[Any] = None
    data: dict[str, Any]

    @property
    def event_id(self) -> Optional[str]:
        if self.id is None or self.id == "":
            return None
        return str(self.id)

    def raw(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_unset=True)


class VerifySubscriptionRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: Optional[Any] = None


class VerifySubscriptionResponse(BaseModel):
    hasActiveSubscription: bool
    plan: Optional[str] = None
    status: Optional[str] = None
    date_next_charge: Optional[str] = None
    cancel_pending: bool = False
    user_id: Optional[str] = None
    message: str = Field(..., min_length=1)

from datetime import datetime

from pydantic import BaseModel, field_serializer

from kenflash.clock import to_iso


class SubscriptionResponse(BaseModel):
    id: int
    email: str
    plan: str
    expiry_time: datetime
    transaction_ref: str
    status: str
    created_at: datetime

    class Config:
        from_attributes = True

    @field_serializer("expiry_time", "created_at")
    def _serialize_utc(self, value: datetime) -> str:
        return to_iso(value)


class ActiveSubscriptionResponse(BaseModel):
    """Answer to "does this email currently hold access?"."""
    email: str
    active: bool
    subscription: SubscriptionResponse | None = None

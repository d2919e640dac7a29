from datetime import datetime

from pydantic import BaseModel, Field, field_serializer

from kenflash.clock import to_iso


class MessageCreate(BaseModel):
    sender_id: str = Field(..., min_length=1, max_length=36)
    receiver_id: str = Field(..., min_length=1, max_length=36)
    message_text: str = Field(..., min_length=1)


class MessageResponse(BaseModel):
    id: int
    sender_id: str
    receiver_id: str
    message_text: str
    sent_at: datetime
    is_read: bool

    class Config:
        from_attributes = True

    @field_serializer("sent_at")
    def _serialize_utc(self, value: datetime) -> str:
        return to_iso(value)

from pydantic import BaseModel


class OutboxEntryResponse(BaseModel):
    id: int
    payment_id: str
    event_type: str
    recipient_user_id: str | None
    payload: dict
    status: str
    attempts: int
    last_error: str | None
    created_at: str
    updated_at: str
    delivered_at: str | None


class DrainRequest(BaseModel):
    entry_ids: list[int] | None = None
    limit: int | None = None

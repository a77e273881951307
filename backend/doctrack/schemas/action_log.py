from pydantic import BaseModel


class ActionLogResponse(BaseModel):
    id: str
    action_type: str
    action_description: str
    entity_type: str | None
    entity_id: str | None
    affected_user_id: str | None
    performed_by: str | None
    performer_type: str | None
    metadata: dict | None
    created_at: str

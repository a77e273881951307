import json

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from doctrack.database import get_db
from doctrack.schemas.action_log import ActionLogResponse
from doctrack.services.audit import list_action_logs

router = APIRouter(prefix="/action-logs", tags=["action-logs"])


@router.get("", response_model=list[ActionLogResponse])
async def get_action_logs(
    entity_id: str | None = None,
    action_type: str | None = None,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return [
        ActionLogResponse(
            id=log.id,
            action_type=log.action_type,
            action_description=log.action_description,
            entity_type=log.entity_type,
            entity_id=log.entity_id,
            affected_user_id=log.affected_user_id,
            performed_by=log.performed_by,
            performer_type=log.performer_type,
            metadata=json.loads(log.metadata_json) if log.metadata_json else None,
            created_at=log.created_at,
        )
        for log in list_action_logs(db, entity_id, action_type, limit)
    ]

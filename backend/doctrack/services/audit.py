"""
Append-only action log.

Writes go through their own session so a failed audit insert can never
roll back, or be rolled back with, the operation being audited.
"""
import json
import logging
import uuid

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from doctrack.database import utcnow
from doctrack.models import ActionLog

logger = logging.getLogger(__name__)


class ActionTypes:
    ZELLE_CONFIRMATION_CODE_SAVED = "zelle_confirmation_code_saved"
    ZELLE_VERIFIED = "zelle_payment_verified"
    ZELLE_REJECTED = "zelle_payment_rejected"
    BULK_REJECTED = "payment_bulk_rejected"


class AuditLog:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def log(
        self,
        action_type: str,
        description: str,
        *,
        entity_type: str | None = None,
        entity_id: str | None = None,
        affected_user_id: str | None = None,
        performer_type: str | None = None,
        performed_by: str | None = None,
        metadata: dict | None = None,
    ) -> bool:
        entry = ActionLog(
            id=str(uuid.uuid4()),
            action_type=action_type,
            action_description=description,
            entity_type=entity_type,
            entity_id=entity_id,
            affected_user_id=affected_user_id,
            performed_by=performed_by,
            performer_type=performer_type,
            metadata_json=json.dumps(metadata, default=str) if metadata else None,
            created_at=utcnow(),
        )
        try:
            db = self._session_factory()
        except SQLAlchemyError as exc:
            logger.error("Audit log unavailable, dropped %s for %s: %s", action_type, entity_id, exc)
            return False
        try:
            db.add(entry)
            db.commit()
            return True
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Failed to write audit entry %s for %s: %s", action_type, entity_id, exc)
            return False
        finally:
            db.close()


def list_action_logs(
    db: Session,
    entity_id: str | None = None,
    action_type: str | None = None,
    limit: int = 100,
) -> list[ActionLog]:
    query = db.query(ActionLog)
    if entity_id:
        query = query.filter(ActionLog.entity_id == entity_id)
    if action_type:
        query = query.filter(ActionLog.action_type == action_type)
    return query.order_by(ActionLog.created_at.desc(), ActionLog.id.asc()).limit(limit).all()

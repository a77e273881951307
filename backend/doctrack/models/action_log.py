from sqlalchemy import Column, Text
from doctrack.database import Base


class ActionLog(Base):
    __tablename__ = "action_logs"

    id = Column(Text, primary_key=True)
    action_type = Column(Text, nullable=False)
    action_description = Column(Text, nullable=False)
    entity_type = Column(Text)
    entity_id = Column(Text)
    affected_user_id = Column(Text)
    performed_by = Column(Text)
    performer_type = Column(Text)
    # "metadata" is reserved on declarative classes
    metadata_json = Column("metadata", Text)
    created_at = Column(Text, nullable=False)

from sqlalchemy import Column, ForeignKey, Integer, Text
from doctrack.database import Base


class OutboxEntry(Base):
    __tablename__ = "side_effect_outbox"

    id = Column(Integer, primary_key=True, autoincrement=True)
    payment_id = Column(Text, ForeignKey("payments.id", ondelete="CASCADE"), nullable=False)
    event_type = Column(Text, nullable=False)
    recipient_user_id = Column(Text)
    payload = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="pending")
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)
    delivered_at = Column(Text)

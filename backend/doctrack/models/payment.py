from sqlalchemy import Column, Float, ForeignKey, Text
from doctrack.database import Base

PENDING_STATUSES = ("pending_verification", "pending_manual_review")
TERMINAL_STATUSES = ("completed", "failed")
VETO_STATUSES = ("refunded", "cancelled")
PAYMENT_STATUSES = PENDING_STATUSES + TERMINAL_STATUSES + VETO_STATUSES


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Text, primary_key=True)
    # documents.id; pipeline orders keep the id of the original upload
    document_id = Column(Text)
    user_id = Column(Text, ForeignKey("profiles.id"), nullable=False)
    amount = Column(Float, nullable=False)
    currency = Column(Text, nullable=False, default="usd")
    status = Column(Text, nullable=False, default="pending_verification")
    payment_method = Column(Text)
    payment_date = Column(Text)
    receipt_url = Column(Text)
    zelle_confirmation_code = Column(Text)
    zelle_verified_at = Column(Text)
    zelle_verified_by = Column(Text)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)

from sqlalchemy import Boolean, Column, Float, ForeignKey, Integer, Text
from doctrack.database import Base


class Document(Base):
    """Intake order as uploaded by the customer."""

    __tablename__ = "documents"

    id = Column(Text, primary_key=True)
    user_id = Column(Text, ForeignKey("profiles.id"), nullable=False)
    filename = Column(Text, nullable=False)
    pages = Column(Integer)
    total_cost = Column(Float)
    status = Column(Text, nullable=False, default="pending")
    is_internal_use = Column(Boolean, nullable=False, default=False)
    payment_method = Column(Text)
    file_url = Column(Text)
    file_size = Column(Integer)
    document_type = Column(Text)
    source_language = Column(Text)
    target_language = Column(Text)
    client_name = Column(Text)
    is_bank_statement = Column(Boolean, nullable=False, default=False)
    source_currency = Column(Text)
    target_currency = Column(Text)
    # Authentications recorded outside the pipeline land here
    authenticated_by_name = Column(Text)
    authenticated_by_email = Column(Text)
    authentication_date = Column(Text)
    created_at = Column(Text, nullable=False)


class VerificationRecord(Base):
    __tablename__ = "documents_to_be_verified"

    id = Column(Text, primary_key=True)
    user_id = Column(Text, ForeignKey("profiles.id"), nullable=False)
    filename = Column(Text, nullable=False)
    original_filename = Column(Text)
    original_document_id = Column(Text, ForeignKey("documents.id", ondelete="SET NULL"))
    status = Column(Text, nullable=False, default="pending")
    pages = Column(Integer)
    total_cost = Column(Float)
    client_name = Column(Text)
    source_language = Column(Text)
    target_language = Column(Text)
    translated_file_url = Column(Text)
    authenticated_by_name = Column(Text)
    authenticated_by_email = Column(Text)
    authentication_date = Column(Text)
    created_at = Column(Text, nullable=False)


class TranslatedRecord(Base):
    __tablename__ = "translated_documents"

    id = Column(Text, primary_key=True)
    # Points at documents_to_be_verified.id, not documents.id
    original_document_id = Column(
        Text, ForeignKey("documents_to_be_verified.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(Text, ForeignKey("profiles.id"), nullable=False)
    filename = Column(Text, nullable=False)
    translated_file_url = Column(Text)
    pages = Column(Integer)
    status = Column(Text, nullable=False, default="completed")
    source_language = Column(Text)
    target_language = Column(Text)
    total_cost = Column(Float)
    is_authenticated = Column(Boolean, nullable=False, default=False)
    authenticated_by_name = Column(Text)
    authenticated_by_email = Column(Text)
    authentication_date = Column(Text)
    created_at = Column(Text, nullable=False)

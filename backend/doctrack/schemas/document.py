from pydantic import BaseModel


class ResolvedDocumentResponse(BaseModel):
    id: str
    source: str
    user_id: str
    filename: str
    original_filename: str | None
    base_document_id: str | None
    verification_id: str | None
    status: str
    payment_status: str | None
    status_overridden: bool
    ambiguous_lineage: bool
    pages: int | None
    total_cost: float | None
    translated_file_url: str | None
    source_language: str | None
    target_language: str | None
    is_authenticated: bool
    authenticated_by_name: str | None
    authenticated_by_email: str | None
    authentication_date: str | None
    created_at: str

from pydantic import BaseModel


class ReportRowResponse(BaseModel):
    order_id: str
    kind: str
    document_id: str
    verification_id: str | None
    user_id: str
    user_name: str | None
    user_email: str | None
    user_role: str | None
    filename: str
    amount: float
    tax: float
    netValue: float
    currency: str
    payment_id: str
    payment_status: str
    payment_method: str | None
    payment_date: str | None
    document_status: str | None
    authenticated_by_name: str | None
    authenticated_by_email: str | None
    authentication_date: str | None
    source_language: str | None
    target_language: str | None
    pages: int | None
    created_at: str


class StatusBucket(BaseModel):
    count: int
    gross: float
    net: float


class ReportSummary(BaseModel):
    count: int
    gross: float
    tax: float
    net: float
    by_payment_status: dict[str, StatusBucket]


class LinkageIssueResponse(BaseModel):
    order_id: str
    filename: str
    reason: str


class LedgerReportResponse(BaseModel):
    rows: list[ReportRowResponse]
    summary: ReportSummary
    linkage_errors: list[LinkageIssueResponse]

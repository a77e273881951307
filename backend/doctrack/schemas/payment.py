from pydantic import BaseModel, Field


class ApproveRequest(BaseModel):
    confirmation_code: str | None = None


class RejectRequest(BaseModel):
    reason: str
    custom_reason: str | None = None


class BulkRequest(BaseModel):
    payment_ids: list[str] = Field(..., min_length=1)


class DeliverySummary(BaseModel):
    delivered: list[int] = []
    retrying: list[int] = []
    failed: list[int] = []


class VerificationResponse(BaseModel):
    payment_id: str
    status: str
    transitioned: bool
    previous_status: str | None = None
    outbox_ids: list[int] = []
    delivery: DeliverySummary | None = None


class BulkItemResponse(BaseModel):
    payment_id: str
    result: str
    status: str | None = None
    error: str | None = None


class BulkResponse(BaseModel):
    results: list[BulkItemResponse]
    processed: int
    changed: int


class ManualPaymentResponse(BaseModel):
    id: str
    user_id: str
    document_id: str | None
    amount: float
    currency: str
    status: str
    payment_method: str | None
    receipt_url: str | None
    zelle_confirmation_code: str | None
    zelle_verified_at: str | None
    zelle_verified_by: str | None
    verifier_name: str | None
    user_name: str | None
    user_email: str | None
    document_filename: str | None
    document_status: str | None
    client_name: str | None
    created_at: str
    updated_at: str


class ManualPaymentStats(BaseModel):
    total: int
    pending: int
    manual_review: int
    completed: int
    failed: int
    total_amount: float
    avg_amount: float


class ManualPaymentListResponse(BaseModel):
    payments: list[ManualPaymentResponse]
    total: int
    page: int
    per_page: int
    stats: ManualPaymentStats


class VerifyResponse(BaseModel):
    payment_id: str
    verified: bool

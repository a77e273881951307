from fastapi import APIRouter, Depends, HTTPException, Query

from doctrack.dependencies import get_repository, get_verifier, require_operator
from doctrack.schemas.payment import (
    ApproveRequest,
    BulkItemResponse,
    BulkRequest,
    BulkResponse,
    DeliverySummary,
    ManualPaymentListResponse,
    ManualPaymentResponse,
    ManualPaymentStats,
    RejectRequest,
    VerificationResponse,
    VerifyResponse,
)
from doctrack.services.errors import CodeRequiredError, NotFoundError, ValidationError
from doctrack.services.repository import ManualPaymentFilters, OrderRepository
from doctrack.services.verification import ManualPaymentVerifier, VerificationOutcome

router = APIRouter(prefix="/payments", tags=["payments"])

VALID_TABS = {"pending_verification", "pending_manual_review", "completed", "failed"}
VALID_SORTS = {"created_at", "amount", "user_name", "status"}


def _outcome_to_response(outcome: VerificationOutcome) -> VerificationResponse:
    delivery = None
    if outcome.delivery is not None:
        delivery = DeliverySummary(
            delivered=outcome.delivery.delivered,
            retrying=outcome.delivery.retrying,
            failed=outcome.delivery.failed,
        )
    return VerificationResponse(
        payment_id=outcome.payment_id,
        status=outcome.status,
        transitioned=outcome.transitioned,
        previous_status=outcome.previous_status,
        outbox_ids=outcome.outbox_ids,
        delivery=delivery,
    )


def _bulk_response(results) -> BulkResponse:
    items = [BulkItemResponse(payment_id=r.payment_id, result=r.result, status=r.status, error=r.error) for r in results]
    return BulkResponse(
        results=items,
        processed=len(items),
        changed=sum(1 for r in results if r.result in ("approved", "rejected")),
    )


@router.get("/manual", response_model=ManualPaymentListResponse)
async def list_manual_payments(
    status: str | None = "pending_verification",
    q: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    min_amount: float | None = Query(None, ge=0),
    max_amount: float | None = Query(None, ge=0),
    sort_by: str = "created_at",
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    repository: OrderRepository = Depends(get_repository),
):
    if status and status not in VALID_TABS:
        raise HTTPException(status_code=400, detail=f"Invalid status. Must be one of: {VALID_TABS}")
    if sort_by not in VALID_SORTS:
        raise HTTPException(status_code=400, detail=f"Invalid sort_by. Must be one of: {VALID_SORTS}")

    filters = ManualPaymentFilters(
        status=status,
        search=q,
        start_date=start_date,
        end_date=f"{end_date}T23:59:59Z" if end_date and len(end_date) == 10 else end_date,
        min_amount=min_amount,
        max_amount=max_amount,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        per_page=per_page,
    )
    rows, total = repository.list_manual_payments(filters)

    payments = [
        ManualPaymentResponse(
            id=p.id,
            user_id=p.user_id,
            document_id=p.document_id,
            amount=p.amount,
            currency=p.currency,
            status=p.status,
            payment_method=p.payment_method,
            receipt_url=p.receipt_url,
            zelle_confirmation_code=p.zelle_confirmation_code,
            zelle_verified_at=p.zelle_verified_at,
            zelle_verified_by=p.zelle_verified_by,
            verifier_name=verifier.name if verifier else None,
            user_name=payer.name if payer else None,
            user_email=payer.email if payer else None,
            document_filename=doc.filename if doc else None,
            document_status=doc.status if doc else None,
            client_name=doc.client_name if doc else None,
            created_at=p.created_at,
            updated_at=p.updated_at,
        )
        for p, payer, doc, verifier in rows
    ]
    return ManualPaymentListResponse(
        payments=payments,
        total=total,
        page=page,
        per_page=per_page,
        stats=ManualPaymentStats(**repository.manual_payment_stats()),
    )


@router.post("/bulk-approve", response_model=BulkResponse)
def bulk_approve(
    req: BulkRequest,
    operator_id: str = Depends(require_operator),
    verifier: ManualPaymentVerifier = Depends(get_verifier),
):
    return _bulk_response(verifier.bulk_approve(req.payment_ids, verified_by=operator_id))


@router.post("/bulk-reject", response_model=BulkResponse)
def bulk_reject(
    req: BulkRequest,
    operator_id: str = Depends(require_operator),
    verifier: ManualPaymentVerifier = Depends(get_verifier),
):
    return _bulk_response(verifier.bulk_reject(req.payment_ids, rejected_by=operator_id))


@router.post("/{payment_id}/approve", response_model=VerificationResponse)
def approve_payment(
    payment_id: str,
    req: ApproveRequest,
    operator_id: str = Depends(require_operator),
    verifier: ManualPaymentVerifier = Depends(get_verifier),
):
    try:
        outcome = verifier.approve(payment_id, req.confirmation_code, verified_by=operator_id)
    except CodeRequiredError as exc:
        raise HTTPException(status_code=422, detail={"message": str(exc), "state": exc.sub_state})
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Payment not found")
    return _outcome_to_response(outcome)


@router.post("/{payment_id}/reject", response_model=VerificationResponse)
def reject_payment(
    payment_id: str,
    req: RejectRequest,
    operator_id: str = Depends(require_operator),
    verifier: ManualPaymentVerifier = Depends(get_verifier),
):
    try:
        outcome = verifier.reject(payment_id, req.reason, req.custom_reason, rejected_by=operator_id)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Payment not found")
    return _outcome_to_response(outcome)


@router.post("/{payment_id}/verify", response_model=VerifyResponse)
def verify_payment(
    payment_id: str,
    operator_id: str = Depends(require_operator),
    verifier: ManualPaymentVerifier = Depends(get_verifier),
):
    """Idempotent completion: verified stays true on every repeat call."""
    try:
        verified = verifier.verify_payment(payment_id, verified_by=operator_id)
    except CodeRequiredError as exc:
        raise HTTPException(status_code=422, detail={"message": str(exc), "state": exc.sub_state})
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Payment not found")
    return VerifyResponse(payment_id=payment_id, verified=verified)

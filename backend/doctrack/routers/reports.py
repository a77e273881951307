from datetime import date

from fastapi import APIRouter, Depends, HTTPException

from doctrack.dependencies import get_reconciler
from doctrack.schemas.report import (
    LedgerReportResponse,
    LinkageIssueResponse,
    ReportRowResponse,
    ReportSummary,
    StatusBucket,
)
from doctrack.services.errors import LinkageError
from doctrack.services.reconciler import PaymentLedgerReconciler, ReportFilters

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/payments", response_model=LedgerReportResponse)
async def payments_report(
    start_date: date | None = None,
    end_date: date | None = None,
    payment_status: str | None = None,
    user_role: str | None = None,
    strict: bool = False,
    reconciler: PaymentLedgerReconciler = Depends(get_reconciler),
):
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=400, detail="start_date must not be after end_date")

    filters = ReportFilters(
        start_date=start_date,
        end_date=end_date,
        payment_status=payment_status,
        user_role=user_role,
        strict=strict,
    )
    try:
        report = reconciler.build_report(filters)
    except LinkageError as exc:
        raise HTTPException(status_code=409, detail={"order_id": exc.order_id, "reason": exc.reason})

    summary = report.summary()
    return LedgerReportResponse(
        rows=[
            ReportRowResponse(
                order_id=r.order_id,
                kind=r.kind,
                document_id=r.document_id,
                verification_id=r.verification_id,
                user_id=r.user_id,
                user_name=r.user_name,
                user_email=r.user_email,
                user_role=r.user_role,
                filename=r.filename,
                amount=float(r.amount),
                tax=float(r.tax),
                netValue=float(r.net_value),
                currency=r.currency,
                payment_id=r.payment_id,
                payment_status=r.payment_status,
                payment_method=r.payment_method,
                payment_date=r.payment_date,
                document_status=r.document_status,
                authenticated_by_name=r.authenticated_by_name,
                authenticated_by_email=r.authenticated_by_email,
                authentication_date=r.authentication_date,
                source_language=r.source_language,
                target_language=r.target_language,
                pages=r.pages,
                created_at=r.created_at,
            )
            for r in report.rows
        ],
        summary=ReportSummary(
            count=summary["count"],
            gross=float(summary["gross"]),
            tax=float(summary["tax"]),
            net=float(summary["net"]),
            by_payment_status={
                status: StatusBucket(count=b["count"], gross=float(b["gross"]), net=float(b["net"]))
                for status, b in summary["by_payment_status"].items()
            },
        ),
        linkage_errors=[
            LinkageIssueResponse(order_id=i.order_id, filename=i.filename, reason=i.reason)
            for i in report.linkage_errors
        ],
    )

"""
Payment ledger reconciliation for finance reporting.

Two kinds of order reach the ledger:

* pipeline orders, driven by a documents_to_be_verified record. Their payment
  references the ORIGINAL upload (verification.original_document_id, or
  failing that the same user's newest upload of that filename), never the
  verification record's own id.
* self-service orders, driven by a documents row whose payment references
  documents.id directly.

Each order becomes one ReportRow with gross/fee/net figures and the identity
of whoever authenticated it. Orders whose payment cannot be found by document
id are reported as linkage errors instead of being matched by user.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from doctrack.models import Document, Payment, Profile, TranslatedRecord, VerificationRecord
from doctrack.services.errors import LinkageError
from doctrack.services.repository import OrderRepository

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
KIND_PIPELINE = "pipeline"
KIND_SELF_SERVICE = "self_service"


def to_money(value) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class FeeBreakdown:
    gross: Decimal
    fee: Decimal
    net: Decimal


def compute_fee(gross, net) -> FeeBreakdown:
    """fee = gross - net; unknown gross means no fee was taken."""
    net_amount = to_money(net) or Decimal("0.00")
    gross_amount = to_money(gross)
    if gross_amount is None:
        return FeeBreakdown(gross=net_amount, fee=Decimal("0.00"), net=net_amount)

    fee = gross_amount - net_amount
    if fee < 0:
        logger.warning("Net %s exceeds gross %s; reporting fee as 0", net_amount, gross_amount)
        fee = Decimal("0.00")
    return FeeBreakdown(gross=gross_amount, fee=fee, net=net_amount)


@dataclass(frozen=True)
class AuthenticationInfo:
    name: str | None = None
    email: str | None = None
    date: str | None = None

    @property
    def present(self) -> bool:
        return bool(self.name or self.email)


def resolve_authentication(translated: TranslatedRecord | None, base: Document | None) -> AuthenticationInfo:
    """Deliverable first, then the manual override on the upload, then nothing."""
    for record in (translated, base):
        if record is None:
            continue
        info = AuthenticationInfo(
            name=record.authenticated_by_name,
            email=record.authenticated_by_email,
            date=record.authentication_date,
        )
        if info.present:
            return info
    return AuthenticationInfo()


@dataclass
class ReportFilters:
    start_date: date | None = None
    end_date: date | None = None
    payment_status: str | None = None
    user_role: str | None = None
    strict: bool = False

    @property
    def start_bound(self) -> str | None:
        return f"{self.start_date.isoformat()}T00:00:00Z" if self.start_date else None

    @property
    def end_bound(self) -> str | None:
        return f"{self.end_date.isoformat()}T23:59:59Z" if self.end_date else None


@dataclass(frozen=True)
class ReportRow:
    order_id: str
    kind: str
    document_id: str
    verification_id: str | None
    user_id: str
    user_name: str | None
    user_email: str | None
    user_role: str | None
    filename: str
    amount: Decimal
    tax: Decimal
    net_value: Decimal
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


@dataclass(frozen=True)
class LinkageIssue:
    order_id: str
    filename: str
    reason: str


@dataclass
class LedgerReport:
    rows: list[ReportRow] = field(default_factory=list)
    linkage_errors: list[LinkageIssue] = field(default_factory=list)

    def summary(self) -> dict:
        totals = {"count": 0, "gross": Decimal("0.00"), "tax": Decimal("0.00"), "net": Decimal("0.00")}
        by_status: dict[str, dict] = defaultdict(
            lambda: {"count": 0, "gross": Decimal("0.00"), "net": Decimal("0.00")}
        )
        for row in self.rows:
            totals["count"] += 1
            totals["gross"] += row.amount
            totals["tax"] += row.tax
            totals["net"] += row.net_value
            bucket = by_status[row.payment_status]
            bucket["count"] += 1
            bucket["gross"] += row.amount
            bucket["net"] += row.net_value
        return {**totals, "by_payment_status": dict(by_status)}


def _latest_by(records, key) -> dict:
    latest = {}
    for record in records:
        k = key(record)
        if k is None:
            continue
        current = latest.get(k)
        if current is None or (record.created_at or "") > (current.created_at or ""):
            latest[k] = record
    return latest


class PaymentLedgerReconciler:
    def __init__(self, repository: OrderRepository):
        self.repository = repository

    def build_report(self, filters: ReportFilters | None = None) -> LedgerReport:
        filters = filters or ReportFilters()
        repo = self.repository

        documents = repo.documents_created_between(filters.start_bound, filters.end_bound)
        verifications = repo.verification_records_created_between(filters.start_bound, filters.end_bound)

        # Uploads behind the pipeline records, regardless of the date window
        originals = {
            d.id: d
            for d in repo.documents_by_ids(
                v.original_document_id for v in verifications if v.original_document_id
            )
        }
        # Filename fallback stays within the uploader's own documents
        by_filename = _latest_by(
            repo.documents_by_filenames(v.filename for v in verifications if not v.original_document_id),
            key=lambda d: (d.user_id, d.filename),
        )

        chain_verifications = _latest_by(
            repo.verification_records_for_documents(d.id for d in documents),
            key=lambda v: v.original_document_id,
        )
        translated = _latest_by(
            repo.translated_records_for_verifications(
                [v.id for v in verifications] + [v.id for v in chain_verifications.values()]
            ),
            key=lambda t: t.original_document_id,
        )
        payments = _latest_by(
            repo.payments_for_documents(
                [d.id for d in documents] + list(originals) + [d.id for d in by_filename.values()]
            ),
            key=lambda p: p.document_id,
        )
        profiles = repo.profiles_by_ids(
            [d.user_id for d in documents] + [v.user_id for v in verifications]
        )

        report = LedgerReport()
        reported_documents: set[str] = set()

        for v in verifications:
            if v.original_document_id:
                base = originals.get(v.original_document_id)
                document_id = v.original_document_id
            else:
                base = by_filename.get((v.user_id, v.filename))
                document_id = base.id if base is not None else None

            if document_id is None:
                self._linkage_error(
                    report, filters, v.id, v.filename,
                    "pipeline record has no original_document_id and no upload of that name",
                )
                continue
            if base is not None and base.is_internal_use:
                continue
            if document_id in reported_documents:
                logger.info("Skipping resubmitted pipeline record %s for %s", v.id, document_id)
                continue
            # The self-service pass would look up the same payment
            reported_documents.add(document_id)

            payment = payments.get(document_id)
            if payment is None:
                self._linkage_error(
                    report, filters, v.id, v.filename,
                    f"no payment references document {document_id}",
                )
                continue

            gross = base.total_cost if base is not None and base.total_cost is not None else v.total_cost
            authenticated = bool(v.authenticated_by_name) or v.status == "completed"
            report.rows.append(
                self._row(
                    kind=KIND_PIPELINE,
                    document_id=document_id,
                    verification=v,
                    payment=payment,
                    profile=profiles.get(v.user_id),
                    user_id=v.user_id,
                    filename=v.filename,
                    gross=gross,
                    document_status="completed" if authenticated else v.status,
                    auth=resolve_authentication(translated.get(v.id), base),
                    source_language=v.source_language,
                    target_language=v.target_language,
                    pages=v.pages,
                    created_at=v.created_at,
                )
            )

        for d in documents:
            if d.is_internal_use or d.id in reported_documents or d.status == "draft":
                continue

            chain = chain_verifications.get(d.id)
            deliverable = translated.get(chain.id) if chain is not None else None
            payment = payments.get(d.id)
            if payment is None and not d.total_cost:
                continue
            if payment is None:
                self._linkage_error(report, filters, d.id, d.filename, f"no payment references document {d.id}")
                continue

            done = deliverable is not None and (deliverable.is_authenticated or deliverable.status == "completed")
            report.rows.append(
                self._row(
                    kind=KIND_SELF_SERVICE,
                    document_id=d.id,
                    verification=chain,
                    payment=payment,
                    profile=profiles.get(d.user_id),
                    user_id=d.user_id,
                    filename=d.filename,
                    gross=d.total_cost,
                    document_status="completed" if done else d.status,
                    auth=resolve_authentication(deliverable, d),
                    source_language=d.source_language,
                    target_language=d.target_language,
                    pages=d.pages,
                    created_at=d.created_at,
                )
            )

        report.rows = [r for r in report.rows if self._matches(r, filters)]
        report.rows.sort(key=lambda r: r.created_at or "", reverse=True)
        logger.info(
            "Ledger report: %d rows, %d linkage errors", len(report.rows), len(report.linkage_errors)
        )
        return report

    @staticmethod
    def _matches(row: ReportRow, filters: ReportFilters) -> bool:
        if filters.payment_status and row.payment_status != filters.payment_status:
            return False
        if filters.user_role and row.user_role != filters.user_role:
            return False
        return True

    @staticmethod
    def _linkage_error(report: LedgerReport, filters: ReportFilters, order_id: str, filename: str, reason: str):
        if filters.strict:
            raise LinkageError(order_id, reason)
        logger.warning("Unlinked order %s (%s): %s", order_id, filename, reason)
        report.linkage_errors.append(LinkageIssue(order_id=order_id, filename=filename, reason=reason))

    @staticmethod
    def _row(
        *,
        kind: str,
        document_id: str,
        verification: VerificationRecord | None,
        payment: Payment,
        profile: Profile | None,
        user_id: str,
        filename: str,
        gross,
        document_status: str | None,
        auth: AuthenticationInfo,
        source_language: str | None,
        target_language: str | None,
        pages: int | None,
        created_at: str,
    ) -> ReportRow:
        fees = compute_fee(gross, payment.amount)
        return ReportRow(
            order_id=payment.id,
            kind=kind,
            document_id=document_id,
            verification_id=verification.id if verification is not None else None,
            user_id=user_id,
            user_name=profile.name if profile else None,
            user_email=profile.email if profile else None,
            user_role=profile.role if profile else None,
            filename=filename,
            amount=fees.gross,
            tax=fees.fee,
            net_value=fees.net,
            currency=payment.currency or "usd",
            payment_id=payment.id,
            payment_status=payment.status,
            payment_method=payment.payment_method,
            payment_date=payment.payment_date,
            document_status=document_status,
            authenticated_by_name=auth.name,
            authenticated_by_email=auth.email,
            authentication_date=auth.date,
            source_language=source_language,
            target_language=target_language,
            pages=pages,
            created_at=created_at,
        )

"""
Document state resolution.

An order's current state lives in three tables: the intake record
(documents), the pipeline record (documents_to_be_verified) and the
deliverable (translated_documents). The most advanced record wins:

    documents  ->  documents_to_be_verified  ->  translated_documents

Each order is first reduced to one lineage variant (Base, Verified or
Translated), then projected to a uniform ResolvedDocument. Payment status is
applied afterwards as a separate overlay: a refunded or cancelled payment
replaces whatever status the records report.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, replace

from sqlalchemy.exc import SQLAlchemyError

from doctrack.models import Document, Payment, TranslatedRecord, VerificationRecord
from doctrack.models.payment import VETO_STATUSES
from doctrack.services.repository import OrderRepository

logger = logging.getLogger(__name__)

SOURCE_BASE = "base"
SOURCE_VERIFIED = "verified"
SOURCE_TRANSLATED = "translated"


@dataclass(frozen=True)
class BaseLineage:
    document: Document


@dataclass(frozen=True)
class VerifiedLineage:
    verification: VerificationRecord
    base: Document | None = None


@dataclass(frozen=True)
class TranslatedLineage:
    translated: TranslatedRecord
    verification: VerificationRecord
    base: Document | None = None


Lineage = BaseLineage | VerifiedLineage | TranslatedLineage


@dataclass(frozen=True)
class ResolvedDocument:
    id: str
    source: str
    user_id: str
    filename: str
    original_filename: str | None
    base_document_id: str | None
    verification_id: str | None
    status: str
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
    payment_status: str | None = None
    status_overridden: bool = False
    ambiguous_lineage: bool = False


def _project_base(lineage: BaseLineage) -> ResolvedDocument:
    d = lineage.document
    return ResolvedDocument(
        id=d.id,
        source=SOURCE_BASE,
        user_id=d.user_id,
        filename=d.filename,
        original_filename=None,
        base_document_id=d.id,
        verification_id=None,
        status=d.status,
        pages=d.pages,
        total_cost=d.total_cost,
        translated_file_url=None,
        source_language=d.source_language,
        target_language=d.target_language,
        is_authenticated=bool(d.authenticated_by_name),
        authenticated_by_name=d.authenticated_by_name,
        authenticated_by_email=d.authenticated_by_email,
        authentication_date=d.authentication_date,
        created_at=d.created_at,
    )


def _project_verified(lineage: VerifiedLineage) -> ResolvedDocument:
    v = lineage.verification
    return ResolvedDocument(
        id=v.id,
        source=SOURCE_VERIFIED,
        user_id=v.user_id,
        filename=v.filename,
        original_filename=v.original_filename or v.filename,
        base_document_id=lineage.base.id if lineage.base else v.original_document_id,
        verification_id=v.id,
        status=v.status,
        pages=v.pages,
        total_cost=v.total_cost,
        translated_file_url=v.translated_file_url,
        source_language=v.source_language,
        target_language=v.target_language,
        is_authenticated=bool(v.authenticated_by_name),
        authenticated_by_name=v.authenticated_by_name,
        authenticated_by_email=v.authenticated_by_email,
        authentication_date=v.authentication_date,
        created_at=v.created_at,
    )


def _project_translated(lineage: TranslatedLineage) -> ResolvedDocument:
    t = lineage.translated
    v = lineage.verification
    return ResolvedDocument(
        id=t.id,
        source=SOURCE_TRANSLATED,
        user_id=t.user_id,
        filename=t.filename,
        original_filename=v.original_filename or v.filename,
        base_document_id=lineage.base.id if lineage.base else v.original_document_id,
        verification_id=v.id,
        status=t.status,
        pages=t.pages,
        total_cost=t.total_cost,
        translated_file_url=t.translated_file_url,
        source_language=t.source_language,
        target_language=t.target_language,
        is_authenticated=bool(t.is_authenticated),
        authenticated_by_name=t.authenticated_by_name,
        authenticated_by_email=t.authenticated_by_email,
        authentication_date=t.authentication_date,
        created_at=t.created_at,
    )


_PROJECTIONS = {
    BaseLineage: _project_base,
    VerifiedLineage: _project_verified,
    TranslatedLineage: _project_translated,
}


def project(lineage: Lineage, ambiguous: bool = False) -> ResolvedDocument:
    resolved = _PROJECTIONS[type(lineage)](lineage)
    if ambiguous:
        resolved = replace(resolved, ambiguous_lineage=True)
    return resolved


def lineage_document_ids(resolved: ResolvedDocument) -> list[str]:
    """Ids a payment may reference for this order, most relevant first."""
    ids = []
    for candidate in (resolved.base_document_id, resolved.verification_id, resolved.id):
        if candidate and candidate not in ids:
            ids.append(candidate)
    return ids


def index_payments(payments: list[Payment]) -> dict[str, list[Payment]]:
    by_document: dict[str, list[Payment]] = defaultdict(list)
    for payment in payments:
        if payment.document_id:
            by_document[payment.document_id].append(payment)
    for bucket in by_document.values():
        bucket.sort(key=lambda p: p.created_at or "", reverse=True)
    return by_document


def apply_payment_override(
    resolved: ResolvedDocument, payments_by_document: dict[str, list[Payment]]
) -> ResolvedDocument:
    """Overlay payment status: refunded/cancelled anywhere in the lineage wins."""
    lineage_payments = [
        p for doc_id in lineage_document_ids(resolved) for p in payments_by_document.get(doc_id, [])
    ]
    if not lineage_payments:
        return resolved

    veto = next((p for p in lineage_payments if p.status in VETO_STATUSES), None)
    if veto is not None:
        return replace(resolved, status=veto.status, payment_status=veto.status, status_overridden=True)
    return replace(resolved, payment_status=lineage_payments[0].status)


def _latest(records: list):
    return max(records, key=lambda r: r.created_at or "")


def build_lineages(
    documents: list[Document],
    verifications: list[VerificationRecord],
    translations: list[TranslatedRecord],
) -> list[tuple[Lineage, bool]]:
    """Reduce the three record sets to one (lineage, ambiguous) pair per order."""
    by_original: dict[str, list[VerificationRecord]] = defaultdict(list)
    by_filename: dict[str, list[VerificationRecord]] = defaultdict(list)
    for v in verifications:
        if v.original_document_id:
            by_original[v.original_document_id].append(v)
        else:
            by_filename[v.filename].append(v)

    translated_by_verification: dict[str, list[TranslatedRecord]] = defaultdict(list)
    for t in translations:
        translated_by_verification[t.original_document_id].append(t)

    def _advance(v: VerificationRecord, base: Document | None) -> Lineage:
        candidates = translated_by_verification.get(v.id)
        if candidates:
            return TranslatedLineage(translated=_latest(candidates), verification=v, base=base)
        return VerifiedLineage(verification=v, base=base)

    # A filename-only record belongs to the newest same-name upload without an explicit link
    filename_owner: dict[str, Document] = {}
    filename_contenders: dict[str, int] = defaultdict(int)
    for d in documents:
        if d.id in by_original:
            continue
        filename_contenders[d.filename] += 1
        current = filename_owner.get(d.filename)
        if current is None or (d.created_at or "") > (current.created_at or ""):
            filename_owner[d.filename] = d

    lineages: list[tuple[Lineage, bool]] = []
    claimed: set[str] = set()

    for d in documents:
        candidates = by_original.get(d.id, [])
        contested = False
        if not candidates and filename_owner.get(d.filename) is d:
            candidates = by_filename.get(d.filename, [])
            contested = filename_contenders[d.filename] > 1
        if not candidates:
            lineages.append((BaseLineage(document=d), False))
            continue

        claimed.update(v.id for v in candidates)
        chosen = _latest(candidates)
        ambiguous = len(candidates) > 1 or contested
        if ambiguous:
            logger.warning(
                "Document %s (%s) matches %d pipeline records; using the newest (%s)",
                d.id, d.filename, len(candidates), chosen.id,
            )
        lineages.append((_advance(chosen, d), ambiguous))

    # Pipeline records with no intake record for this user
    for v in verifications:
        if v.id in claimed:
            continue
        lineages.append((_advance(v, None), False))

    return lineages


def resolve_documents(
    documents: list[Document],
    verifications: list[VerificationRecord],
    translations: list[TranslatedRecord],
    payments: list[Payment] | None,
) -> list[ResolvedDocument]:
    resolved = [
        project(lineage, ambiguous)
        for lineage, ambiguous in build_lineages(documents, verifications, translations)
    ]
    if payments is not None:
        payments_by_document = index_payments(payments)
        resolved = [apply_payment_override(r, payments_by_document) for r in resolved]
    resolved.sort(key=lambda r: r.created_at or "", reverse=True)
    return resolved


class DocumentStateResolver:
    def __init__(self, repository: OrderRepository):
        self.repository = repository

    def _payment_overlay(self, user_id: str) -> list[Payment] | None:
        try:
            return self.repository.payments_for_user(user_id)
        except SQLAlchemyError as exc:
            # Overlay only; the documents are still shown with their own status
            logger.warning("Payment status lookup failed for user %s: %s", user_id, exc)
            self.repository.rollback()
            return None

    def resolve(self, user_id: str) -> list[ResolvedDocument]:
        documents = self.repository.base_documents_for_user(user_id)
        verifications = self.repository.verification_records_for_user(user_id)
        translations = self.repository.translated_records_for_user(user_id)
        payments = self._payment_overlay(user_id)

        resolved = resolve_documents(documents, verifications, translations, payments)
        logger.debug(
            "Resolved %d documents for user %s (%d overridden by payment status)",
            len(resolved), user_id, sum(1 for r in resolved if r.status_overridden),
        )
        return resolved

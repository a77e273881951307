"""
Data access for the order lifecycle tables.

One OrderRepository is built per request around a SQLAlchemy Session and
handed to the resolver, the reconciler and the payment verifier. Reads never
commit; the conditional payment transitions are single UPDATE statements so
that two operators racing on the same payment cannot both win.
"""
import json
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, aliased

from doctrack.database import utcnow
from doctrack.models import (
    Document,
    OutboxEntry,
    Payment,
    Profile,
    TranslatedRecord,
    VerificationRecord,
)
from doctrack.models.payment import PENDING_STATUSES
from doctrack.services.errors import ConflictError, NotFoundError

MANUAL_PAYMENT_METHOD = "zelle"

_SORT_COLUMNS = {
    "created_at": Payment.created_at,
    "amount": Payment.amount,
    "status": Payment.status,
}


@dataclass
class ManualPaymentFilters:
    status: str | None = "pending_verification"
    search: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    min_amount: float | None = None
    max_amount: float | None = None
    sort_by: str = "created_at"
    sort_order: str = "desc"
    page: int = 1
    per_page: int = 10


class OrderRepository:
    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Per-user reads (resolver)
    # ------------------------------------------------------------------

    def base_documents_for_user(self, user_id: str) -> list[Document]:
        return (
            self.db.query(Document)
            .filter(Document.user_id == user_id)
            .order_by(Document.created_at.desc())
            .all()
        )

    def verification_records_for_user(self, user_id: str) -> list[VerificationRecord]:
        return (
            self.db.query(VerificationRecord)
            .filter(VerificationRecord.user_id == user_id)
            .order_by(VerificationRecord.created_at.desc())
            .all()
        )

    def translated_records_for_user(self, user_id: str) -> list[TranslatedRecord]:
        return (
            self.db.query(TranslatedRecord)
            .filter(TranslatedRecord.user_id == user_id)
            .order_by(TranslatedRecord.created_at.desc())
            .all()
        )

    def payments_for_user(self, user_id: str) -> list[Payment]:
        return (
            self.db.query(Payment)
            .filter(Payment.user_id == user_id)
            .order_by(Payment.created_at.desc())
            .all()
        )

    # ------------------------------------------------------------------
    # Cross-user reads (reconciler)
    # ------------------------------------------------------------------

    def documents_created_between(self, start: str | None, end: str | None) -> list[Document]:
        query = self.db.query(Document)
        if start:
            query = query.filter(Document.created_at >= start)
        if end:
            query = query.filter(Document.created_at <= end)
        return query.order_by(Document.created_at.desc()).all()

    def verification_records_created_between(
        self, start: str | None, end: str | None
    ) -> list[VerificationRecord]:
        query = self.db.query(VerificationRecord)
        if start:
            query = query.filter(VerificationRecord.created_at >= start)
        if end:
            query = query.filter(VerificationRecord.created_at <= end)
        return query.order_by(VerificationRecord.created_at.desc()).all()

    def documents_by_ids(self, ids: Iterable[str]) -> list[Document]:
        ids = list(set(ids))
        if not ids:
            return []
        return self.db.query(Document).filter(Document.id.in_(ids)).all()

    def documents_by_filenames(self, filenames: Iterable[str]) -> list[Document]:
        filenames = list(set(filenames))
        if not filenames:
            return []
        return self.db.query(Document).filter(Document.filename.in_(filenames)).all()

    def verification_records_for_documents(self, document_ids: Iterable[str]) -> list[VerificationRecord]:
        document_ids = list(set(document_ids))
        if not document_ids:
            return []
        return (
            self.db.query(VerificationRecord)
            .filter(VerificationRecord.original_document_id.in_(document_ids))
            .order_by(VerificationRecord.created_at.desc())
            .all()
        )

    def translated_records_for_verifications(self, verification_ids: Iterable[str]) -> list[TranslatedRecord]:
        verification_ids = list(set(verification_ids))
        if not verification_ids:
            return []
        return (
            self.db.query(TranslatedRecord)
            .filter(TranslatedRecord.original_document_id.in_(verification_ids))
            .order_by(TranslatedRecord.created_at.desc())
            .all()
        )

    def payments_for_documents(self, document_ids: Iterable[str]) -> list[Payment]:
        document_ids = list(set(document_ids))
        if not document_ids:
            return []
        # No date filter: a payment made after the upload still belongs to it
        return (
            self.db.query(Payment)
            .filter(Payment.document_id.in_(document_ids))
            .order_by(Payment.created_at.desc())
            .all()
        )

    def profiles_by_ids(self, ids: Iterable[str]) -> dict[str, Profile]:
        ids = list(set(ids))
        if not ids:
            return {}
        return {p.id: p for p in self.db.query(Profile).filter(Profile.id.in_(ids)).all()}

    # ------------------------------------------------------------------
    # Single-entity reads
    # ------------------------------------------------------------------

    def get_payment(self, payment_id: str) -> Payment:
        payment = self.db.query(Payment).filter(Payment.id == payment_id).first()
        if not payment:
            raise NotFoundError("Payment", payment_id)
        return payment

    def get_document(self, document_id: str | None) -> Document | None:
        if not document_id:
            return None
        return self.db.query(Document).filter(Document.id == document_id).first()

    def get_profile(self, profile_id: str | None) -> Profile | None:
        if not profile_id:
            return None
        return self.db.query(Profile).filter(Profile.id == profile_id).first()

    def profiles_with_role(self, role: str) -> list[Profile]:
        return self.db.query(Profile).filter(Profile.role == role).order_by(Profile.name.asc()).all()

    # ------------------------------------------------------------------
    # Manual payment queue
    # ------------------------------------------------------------------

    def list_manual_payments(self, filters: ManualPaymentFilters) -> tuple[list[tuple], int]:
        """Rows are (Payment, payer Profile | None, Document | None, verifier Profile | None)."""
        verifier = aliased(Profile)
        query = (
            self.db.query(Payment, Profile, Document, verifier)
            .outerjoin(Profile, Profile.id == Payment.user_id)
            .outerjoin(Document, Document.id == Payment.document_id)
            .outerjoin(verifier, verifier.id == Payment.zelle_verified_by)
            .filter(Payment.payment_method == MANUAL_PAYMENT_METHOD)
        )

        if filters.status:
            query = query.filter(Payment.status == filters.status)
        if filters.search:
            term = f"%{filters.search.lower()}%"
            query = query.filter(
                or_(
                    func.lower(Profile.name).like(term),
                    func.lower(Profile.email).like(term),
                    func.lower(Document.filename).like(term),
                    func.lower(Payment.zelle_confirmation_code).like(term),
                )
            )
        if filters.start_date:
            query = query.filter(Payment.created_at >= filters.start_date)
        if filters.end_date:
            query = query.filter(Payment.created_at <= filters.end_date)
        if filters.min_amount is not None:
            query = query.filter(Payment.amount >= filters.min_amount)
        if filters.max_amount is not None:
            query = query.filter(Payment.amount <= filters.max_amount)

        total = query.count()

        column = Profile.name if filters.sort_by == "user_name" else _SORT_COLUMNS.get(
            filters.sort_by, Payment.created_at
        )
        ordering = column.asc() if filters.sort_order == "asc" else column.desc()
        rows = (
            query.order_by(ordering, Payment.id.asc())
            .offset((filters.page - 1) * filters.per_page)
            .limit(filters.per_page)
            .all()
        )
        return [tuple(r) for r in rows], total

    def manual_payment_stats(self) -> dict:
        status_rows = (
            self.db.query(
                Payment.status,
                func.count(Payment.id).label("n"),
                func.coalesce(func.sum(Payment.amount), 0).label("amount"),
            )
            .filter(Payment.payment_method == MANUAL_PAYMENT_METHOD)
            .group_by(Payment.status)
            .all()
        )
        by_status = {row.status: row.n for row in status_rows}
        total = sum(by_status.values())
        total_amount = round(sum(float(row.amount) for row in status_rows), 2)
        return {
            "total": total,
            "pending": by_status.get("pending_verification", 0),
            "manual_review": by_status.get("pending_manual_review", 0),
            "completed": by_status.get("completed", 0),
            "failed": by_status.get("failed", 0),
            "total_amount": total_amount,
            "avg_amount": round(total_amount / total, 2) if total > 0 else 0.0,
        }

    # ------------------------------------------------------------------
    # Payment writes
    # ------------------------------------------------------------------

    def save_confirmation_code(self, payment_id: str, code: str) -> bool:
        """Store the code only where none is on file. Returns True if stored."""
        updated = (
            self.db.query(Payment)
            .filter(
                Payment.id == payment_id,
                or_(Payment.zelle_confirmation_code.is_(None), Payment.zelle_confirmation_code == ""),
            )
            .update(
                {Payment.zelle_confirmation_code: code, Payment.updated_at: utcnow()},
                synchronize_session=False,
            )
        )
        return updated == 1

    def transition_payment(self, payment_id: str, new_status: str, verified_by: str | None = None) -> str:
        """
        Move a pending payment to new_status in one conditional UPDATE.

        Returns the status the payment held before. Raises ConflictError when
        the payment exists but is no longer pending, NotFoundError when absent.
        """
        previous = (
            self.db.query(Payment.status).filter(Payment.id == payment_id).scalar()
        )
        if previous is None:
            raise NotFoundError("Payment", payment_id)

        now = utcnow()
        values = {Payment.status: new_status, Payment.updated_at: now}
        if new_status == "completed":
            values[Payment.zelle_verified_at] = now
            values[Payment.zelle_verified_by] = verified_by

        updated = (
            self.db.query(Payment)
            .filter(Payment.id == payment_id, Payment.status.in_(PENDING_STATUSES))
            .update(values, synchronize_session=False)
        )
        if updated != 1:
            current = self.db.query(Payment.status).filter(Payment.id == payment_id).scalar()
            raise ConflictError(payment_id, current or previous)
        return previous

    # ------------------------------------------------------------------
    # Outbox
    # ------------------------------------------------------------------

    def add_outbox_entry(
        self,
        payment_id: str,
        event_type: str,
        recipient_user_id: str | None,
        payload: dict,
        status: str = "pending",
        last_error: str | None = None,
    ) -> OutboxEntry:
        now = utcnow()
        entry = OutboxEntry(
            payment_id=payment_id,
            event_type=event_type,
            recipient_user_id=recipient_user_id,
            payload=json.dumps(payload, default=str),
            status=status,
            attempts=0,
            last_error=last_error,
            created_at=now,
            updated_at=now,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def pending_outbox_entries(
        self, entry_ids: Iterable[int] | None = None, limit: int | None = None
    ) -> list[OutboxEntry]:
        query = self.db.query(OutboxEntry).filter(OutboxEntry.status == "pending")
        if entry_ids is not None:
            entry_ids = list(entry_ids)
            if not entry_ids:
                return []
            query = query.filter(OutboxEntry.id.in_(entry_ids))
        query = query.order_by(OutboxEntry.id.asc())
        if limit:
            query = query.limit(limit)
        return query.all()

    def list_outbox(self, status: str | None = None, payment_id: str | None = None) -> list[OutboxEntry]:
        query = self.db.query(OutboxEntry)
        if status:
            query = query.filter(OutboxEntry.status == status)
        if payment_id:
            query = query.filter(OutboxEntry.payment_id == payment_id)
        return query.order_by(OutboxEntry.id.asc()).all()

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()

"""
Manual (Zelle) payment verification.

    pending_verification ─┐
                          ├─ approve ─> completed
    pending_manual_review ┘└─ reject ──> failed

Both pending states behave the same. completed and failed are terminal: any
further approve/reject/verify on them is a no-op that reports the current
status. Approval needs a confirmation code on file (or supplied with the
call); without one the payment stays put and the caller gets
CodeRequiredError (sub-state "awaiting_code").

The status change and the webhooks it owes are committed together (see
services/outbox.py); the webhooks are delivered only after that commit, and
their failures never touch the payment.
"""
import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError

from doctrack.config import settings
from doctrack.models import Payment
from doctrack.models.payment import PENDING_STATUSES
from doctrack.services.audit import ActionTypes, AuditLog
from doctrack.services.errors import (
    CodeRequiredError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from doctrack.services.notifications import (
    AUTHENTICATOR_PENDING,
    PAYMENT_APPROVED,
    PAYMENT_REJECTED,
    TRANSLATION_SUBMISSION,
)
from doctrack.services.outbox import (
    APPROVAL_MESSAGE,
    DrainReport,
    OutboxWorker,
    build_authenticator_notification,
    build_translation_payload,
    build_user_notification,
)
from doctrack.services.repository import OrderRepository

logger = logging.getLogger(__name__)

REJECTION_REASONS = (
    "incorrect amount",
    "invalid payment method",
    "duplicate payment",
    "suspicious activity",
    "incomplete information",
    "document quality issues",
)
CUSTOM_REASON = "custom"


def resolve_rejection_reason(reason: str | None, custom_reason: str | None = None) -> str:
    reason = (reason or "").strip()
    if reason == CUSTOM_REASON:
        text = (custom_reason or "").strip()
        if not text:
            raise ValidationError("A custom rejection reason needs a description")
        return text
    if not reason:
        raise ValidationError("A rejection reason is required")
    if reason not in REJECTION_REASONS:
        raise ValidationError(f"Unknown rejection reason. Must be one of: {REJECTION_REASONS + (CUSTOM_REASON,)}")
    return reason


@dataclass
class VerificationOutcome:
    payment_id: str
    status: str
    transitioned: bool
    previous_status: str | None = None
    outbox_ids: list[int] = field(default_factory=list)
    delivery: DrainReport | None = None


@dataclass
class BulkItemResult:
    payment_id: str
    result: str
    status: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class _PaymentSnapshot:
    id: str
    user_id: str
    document_id: str | None
    amount: float
    status: str
    confirmation_code: str | None

    @classmethod
    def of(cls, payment: Payment) -> "_PaymentSnapshot":
        return cls(
            id=payment.id,
            user_id=payment.user_id,
            document_id=payment.document_id,
            amount=payment.amount,
            status=payment.status,
            confirmation_code=payment.zelle_confirmation_code,
        )


class ManualPaymentVerifier:
    def __init__(
        self,
        repository: OrderRepository,
        audit: AuditLog,
        worker: OutboxWorker,
        storage_base_url: str | None = None,
    ):
        self.repository = repository
        self.audit = audit
        self.worker = worker
        self.storage_base_url = storage_base_url or settings.storage_public_base_url

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def verify_payment(self, payment_id: str, verified_by: str | None = None) -> bool:
        """Idempotent: True once the payment is completed, however many calls it took.

        A pending payment still needs its confirmation code on file.
        """
        payment = self.repository.get_payment(payment_id)
        if payment.status in PENDING_STATUSES and not (payment.zelle_confirmation_code or "").strip():
            raise CodeRequiredError(payment_id)
        outcome = self._complete(payment_id, verified_by)
        return outcome.status == "completed"

    def approve(self, payment_id: str, code: str | None = None, verified_by: str | None = None) -> VerificationOutcome:
        payment = self.repository.get_payment(payment_id)
        if payment.status not in PENDING_STATUSES:
            logger.info("Approve on %s payment %s ignored", payment.status, payment_id)
            return VerificationOutcome(payment_id=payment_id, status=payment.status, transitioned=False)

        existing = (payment.zelle_confirmation_code or "").strip()
        supplied = (code or "").strip()
        if not existing and not supplied:
            raise CodeRequiredError(payment_id)

        if supplied and not existing:
            if not self.repository.save_confirmation_code(payment_id, supplied):
                logger.info("Confirmation code for %s was stored concurrently; keeping it", payment_id)
            self.repository.commit()
        elif supplied and supplied != existing:
            logger.warning("Payment %s already has a confirmation code; ignoring the new one", payment_id)

        return self._complete(payment_id, verified_by)

    def reject(
        self,
        payment_id: str,
        reason: str | None,
        custom_reason: str | None = None,
        rejected_by: str | None = None,
    ) -> VerificationOutcome:
        final_reason = resolve_rejection_reason(reason, custom_reason)
        snapshot = _PaymentSnapshot.of(self.repository.get_payment(payment_id))

        try:
            previous = self.repository.transition_payment(payment_id, "failed")
        except ConflictError as exc:
            self.repository.rollback()
            logger.info("Reject on %s payment %s ignored", exc.current_status, payment_id)
            return VerificationOutcome(payment_id=payment_id, status=exc.current_status, transitioned=False)

        payment = self.repository.get_payment(payment_id)
        payer = self.repository.get_profile(snapshot.user_id)
        document = self.repository.get_document(snapshot.document_id)
        entry = self.repository.add_outbox_entry(
            payment_id,
            PAYMENT_REJECTED,
            snapshot.user_id,
            build_user_notification(
                payment, payer, document.filename if document else None,
                "Zelle Payment Rejected", final_reason,
            ),
        )
        self.repository.commit()
        outbox_ids = [entry.id]
        logger.info("Payment %s rejected (%s)", payment_id, final_reason)

        delivery = self._deliver(outbox_ids)

        self.audit.log(
            ActionTypes.ZELLE_REJECTED,
            f"Zelle payment rejected: {snapshot.confirmation_code or payment_id}",
            entity_type="payment",
            entity_id=payment_id,
            affected_user_id=snapshot.user_id,
            performer_type="finance",
            performed_by=rejected_by,
            metadata={
                "amount": snapshot.amount,
                "confirmation_code": snapshot.confirmation_code,
                "rejection_reason": final_reason,
                "document_id": snapshot.document_id,
                "previous_status": previous,
                "new_status": "failed",
            },
        )
        return VerificationOutcome(
            payment_id=payment_id,
            status="failed",
            transitioned=True,
            previous_status=previous,
            outbox_ids=outbox_ids,
            delivery=delivery,
        )

    def bulk_approve(self, payment_ids: list[str], verified_by: str | None = None) -> list[BulkItemResult]:
        """Sequential; payments without a code are skipped, one failure never stops the batch."""
        results = []
        for payment_id in payment_ids:
            try:
                payment = self.repository.get_payment(payment_id)
                if payment.status not in PENDING_STATUSES:
                    results.append(BulkItemResult(payment_id, "unchanged", payment.status))
                    continue
                if not (payment.zelle_confirmation_code or "").strip():
                    results.append(BulkItemResult(payment_id, "skipped_no_code", payment.status))
                    continue
                outcome = self._complete(payment_id, verified_by)
                results.append(
                    BulkItemResult(payment_id, "approved" if outcome.transitioned else "unchanged", outcome.status)
                )
            except NotFoundError as exc:
                results.append(BulkItemResult(payment_id, "error", error=str(exc)))
            except SQLAlchemyError as exc:
                self.repository.rollback()
                logger.error("Bulk approve failed for payment %s: %s", payment_id, exc)
                results.append(BulkItemResult(payment_id, "error", error=str(exc)))
        return results

    def bulk_reject(self, payment_ids: list[str], rejected_by: str | None = None) -> list[BulkItemResult]:
        """Marks each pending payment failed. Sends no per-user notifications."""
        results = []
        for payment_id in payment_ids:
            try:
                snapshot = _PaymentSnapshot.of(self.repository.get_payment(payment_id))
                previous = self.repository.transition_payment(payment_id, "failed")
                self.repository.commit()
            except ConflictError as exc:
                self.repository.rollback()
                results.append(BulkItemResult(payment_id, "unchanged", exc.current_status))
                continue
            except NotFoundError as exc:
                results.append(BulkItemResult(payment_id, "error", error=str(exc)))
                continue
            except SQLAlchemyError as exc:
                self.repository.rollback()
                logger.error("Bulk reject failed for payment %s: %s", payment_id, exc)
                results.append(BulkItemResult(payment_id, "error", error=str(exc)))
                continue

            self.audit.log(
                ActionTypes.BULK_REJECTED,
                f"Zelle payment rejected in bulk: {snapshot.confirmation_code or payment_id}",
                entity_type="payment",
                entity_id=payment_id,
                affected_user_id=snapshot.user_id,
                performer_type="finance",
                performed_by=rejected_by,
                metadata={
                    "amount": snapshot.amount,
                    "document_id": snapshot.document_id,
                    "previous_status": previous,
                    "new_status": "failed",
                },
            )
            results.append(BulkItemResult(payment_id, "rejected", "failed"))
        return results

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _complete(self, payment_id: str, verified_by: str | None) -> VerificationOutcome:
        snapshot = _PaymentSnapshot.of(self.repository.get_payment(payment_id))

        try:
            previous = self.repository.transition_payment(payment_id, "completed", verified_by)
        except ConflictError as exc:
            self.repository.rollback()
            logger.info("Payment %s already %s; nothing to verify", payment_id, exc.current_status)
            return VerificationOutcome(payment_id=payment_id, status=exc.current_status, transitioned=False)

        outbox_ids = self._enqueue_approval_effects(snapshot)
        self.repository.commit()
        logger.info("Payment %s verified (%s -> completed)", payment_id, previous)

        delivery = self._deliver(outbox_ids)
        self._audit_approval(snapshot, previous, verified_by)
        return VerificationOutcome(
            payment_id=payment_id,
            status="completed",
            transitioned=True,
            previous_status=previous,
            outbox_ids=outbox_ids,
            delivery=delivery,
        )

    def _enqueue_approval_effects(self, snapshot: _PaymentSnapshot) -> list[int]:
        repo = self.repository
        payment = repo.get_payment(snapshot.id)
        payer = repo.get_profile(snapshot.user_id)
        document = repo.get_document(snapshot.document_id)
        document_name = document.filename if document else None

        if document is not None:
            translation = repo.add_outbox_entry(
                snapshot.id,
                TRANSLATION_SUBMISSION,
                snapshot.user_id,
                build_translation_payload(payment, document, payer, self.storage_base_url),
            )
        else:
            logger.error("Payment %s references missing document %s", snapshot.id, snapshot.document_id)
            translation = repo.add_outbox_entry(
                snapshot.id,
                TRANSLATION_SUBMISSION,
                snapshot.user_id,
                {"document_id": snapshot.document_id, "user_id": snapshot.user_id},
                status="failed",
                last_error=f"document {snapshot.document_id} not found",
            )

        approval = repo.add_outbox_entry(
            snapshot.id,
            PAYMENT_APPROVED,
            snapshot.user_id,
            build_user_notification(payment, payer, document_name, "Zelle Payment Approved", APPROVAL_MESSAGE),
        )
        staff = repo.add_outbox_entry(
            snapshot.id,
            AUTHENTICATOR_PENDING,
            None,
            build_authenticator_notification(
                payment, payer, document_name, repo.profiles_with_role("authenticator")
            ),
        )
        return [translation.id, approval.id, staff.id]

    def _deliver(self, outbox_ids: list[int]) -> DrainReport | None:
        try:
            return self.worker.drain(outbox_ids)
        except SQLAlchemyError as exc:
            # Entries stay pending and go out with the next drain
            self.repository.rollback()
            logger.error("Could not deliver side effects %s: %s", outbox_ids, exc)
            return None

    def _audit_approval(self, snapshot: _PaymentSnapshot, previous: str, verified_by: str | None):
        payment = self.repository.get_payment(snapshot.id)
        document = self.repository.get_document(snapshot.document_id)
        code = payment.zelle_confirmation_code
        filename = document.filename if document else None

        self.audit.log(
            ActionTypes.ZELLE_CONFIRMATION_CODE_SAVED,
            f"Zelle payment approved with confirmation code: {code}",
            entity_type="payment",
            entity_id=snapshot.id,
            affected_user_id=snapshot.user_id,
            performer_type="finance",
            performed_by=verified_by,
            metadata={
                "amount": snapshot.amount,
                "confirmation_code": code,
                "document_id": snapshot.document_id,
                "document_filename": filename,
                "previous_status": previous,
                "new_status": "completed",
            },
        )
        self.audit.log(
            ActionTypes.ZELLE_VERIFIED,
            "Zelle payment verified successfully",
            entity_type="payment",
            entity_id=snapshot.id,
            affected_user_id=snapshot.user_id,
            performer_type="system",
            performed_by=verified_by,
            metadata={
                "amount": snapshot.amount,
                "confirmation_code": code,
                "document_id": snapshot.document_id,
                "document_filename": filename,
                "payment_method": payment.payment_method,
                "previous_status": previous,
                "new_status": "completed",
            },
        )

"""
Side-effect outbox.

Payment transitions record the webhooks they owe in side_effect_outbox in the
same commit as the status change. OutboxWorker delivers them afterwards, in
sequence order, and keeps failed ones for retry until max_attempts.
"""
import json
import logging
from dataclasses import dataclass, field

from doctrack.database import utcnow
from doctrack.models import Document, OutboxEntry, Payment, Profile
from doctrack.services.errors import DownstreamError
from doctrack.services.notifications import NotificationDispatcher
from doctrack.services.repository import OrderRepository

logger = logging.getLogger(__name__)

APPROVAL_MESSAGE = "Your Zelle payment has been approved and your document is now being processed."


def build_translation_payload(
    payment: Payment, document: Document, payer: Profile | None, storage_base_url: str
) -> dict:
    url = document.file_url or f"{storage_base_url.rstrip('/')}/{payment.user_id}/{document.filename}"
    return {
        "filename": document.filename,
        "url": url,
        "mimetype": "application/pdf",
        "size": document.file_size or 0,
        "user_id": payment.user_id,
        "pages": document.pages or 1,
        "document_type": document.document_type or "Certificado",
        "total_cost": payment.amount,
        "source_language": document.source_language or "Portuguese",
        "target_language": document.target_language or "English",
        "document_id": payment.document_id,
        "client_name": document.client_name or (payer.name if payer else None),
        "is_bank_statement": bool(document.is_bank_statement),
        "source_currency": document.source_currency,
        "target_currency": document.target_currency,
    }


def build_user_notification(
    payment: Payment, payer: Profile | None, document_name: str | None, notification_type: str, message: str
) -> dict:
    return {
        "user_email": payer.email if payer else None,
        "message": message,
        "notification_type": notification_type,
        "user_name": payer.name if payer else None,
        "document_name": document_name,
        "amount": payment.amount,
        "timestamp": utcnow(),
    }


def build_authenticator_notification(
    payment: Payment, payer: Profile | None, document_name: str | None, authenticators: list[Profile]
) -> dict:
    return {
        "notification_type": "Document Pending Authentication",
        "document_id": payment.document_id,
        "document_name": document_name or "Documento",
        "client_name": (payer.name if payer else None) or "Cliente",
        "user_id": payment.user_id,
        "authenticator_emails": [a.email for a in authenticators if a.email],
        "timestamp": utcnow(),
    }


@dataclass
class DrainReport:
    delivered: list[int] = field(default_factory=list)
    retrying: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)


class OutboxWorker:
    def __init__(self, repository: OrderRepository, dispatcher: NotificationDispatcher, max_attempts: int = 5):
        self.repository = repository
        self.dispatcher = dispatcher
        self.max_attempts = max_attempts

    def _deliver(self, entry: OutboxEntry) -> None:
        try:
            payload = json.loads(entry.payload)
            delivered = self.dispatcher.notify(entry.event_type, entry.recipient_user_id, payload)
        except Exception as exc:
            logger.exception("Outbox entry %s raised during delivery", entry.id)
            raise DownstreamError(str(exc)) from exc
        if not delivered:
            raise DownstreamError(f"{entry.event_type} delivery failed")

    def drain(self, entry_ids: list[int] | None = None, limit: int | None = None) -> DrainReport:
        report = DrainReport()
        for entry in self.repository.pending_outbox_entries(entry_ids, limit):
            entry.attempts += 1
            entry.updated_at = utcnow()
            try:
                self._deliver(entry)
            except DownstreamError as exc:
                entry.last_error = str(exc)
                if entry.attempts >= self.max_attempts:
                    entry.status = "failed"
                    report.failed.append(entry.id)
                    logger.error(
                        "Giving up on outbox entry %s (%s) after %d attempts",
                        entry.id, entry.event_type, entry.attempts,
                    )
                else:
                    report.retrying.append(entry.id)
            else:
                entry.status = "delivered"
                entry.last_error = None
                entry.delivered_at = entry.updated_at
                report.delivered.append(entry.id)
            # Commit per entry so one bad webhook doesn't undo the others
            self.repository.commit()
        return report

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from doctrack.config import settings
from doctrack.database import get_db, get_session_factory
from doctrack.services.audit import AuditLog
from doctrack.services.notifications import NotificationDispatcher
from doctrack.services.outbox import OutboxWorker
from doctrack.services.reconciler import PaymentLedgerReconciler
from doctrack.services.repository import OrderRepository
from doctrack.services.resolver import DocumentStateResolver
from doctrack.services.verification import ManualPaymentVerifier


def get_dispatcher():
    dispatcher = NotificationDispatcher.from_settings(settings)
    try:
        yield dispatcher
    finally:
        dispatcher.close()


def get_repository(db: Session = Depends(get_db)) -> OrderRepository:
    return OrderRepository(db)


def get_resolver(repository: OrderRepository = Depends(get_repository)) -> DocumentStateResolver:
    return DocumentStateResolver(repository)


def get_reconciler(repository: OrderRepository = Depends(get_repository)) -> PaymentLedgerReconciler:
    return PaymentLedgerReconciler(repository)


def get_outbox_worker(
    repository: OrderRepository = Depends(get_repository),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> OutboxWorker:
    return OutboxWorker(repository, dispatcher, max_attempts=settings.outbox_max_attempts)


def get_verifier(
    repository: OrderRepository = Depends(get_repository),
    worker: OutboxWorker = Depends(get_outbox_worker),
    session_factory=Depends(get_session_factory),
) -> ManualPaymentVerifier:
    return ManualPaymentVerifier(repository, AuditLog(session_factory), worker)


async def require_operator(
    x_operator_id: str | None = Header(None),
    repository: OrderRepository = Depends(get_repository),
) -> str:
    if not x_operator_id:
        raise HTTPException(status_code=401, detail="Missing X-Operator-Id header")
    profile = repository.get_profile(x_operator_id)
    if not profile or profile.role not in settings.operator_roles:
        raise HTTPException(status_code=403, detail="Operator is not allowed to verify payments")
    return profile.id

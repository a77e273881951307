import json

from fastapi import APIRouter, Depends, HTTPException

from doctrack.dependencies import get_outbox_worker, get_repository, require_operator
from doctrack.models import OutboxEntry
from doctrack.schemas.outbox import DrainRequest, OutboxEntryResponse
from doctrack.schemas.payment import DeliverySummary
from doctrack.services.outbox import OutboxWorker
from doctrack.services.repository import OrderRepository

router = APIRouter(prefix="/outbox", tags=["outbox"])

VALID_STATUSES = {"pending", "delivered", "failed"}


def _entry_to_response(entry: OutboxEntry) -> OutboxEntryResponse:
    return OutboxEntryResponse(
        id=entry.id,
        payment_id=entry.payment_id,
        event_type=entry.event_type,
        recipient_user_id=entry.recipient_user_id,
        payload=json.loads(entry.payload),
        status=entry.status,
        attempts=entry.attempts,
        last_error=entry.last_error,
        created_at=entry.created_at,
        updated_at=entry.updated_at,
        delivered_at=entry.delivered_at,
    )


@router.get("", response_model=list[OutboxEntryResponse])
async def list_outbox(
    status: str | None = None,
    payment_id: str | None = None,
    repository: OrderRepository = Depends(get_repository),
):
    if status and status not in VALID_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status. Must be one of: {VALID_STATUSES}")
    return [_entry_to_response(e) for e in repository.list_outbox(status, payment_id)]


@router.post("/drain", response_model=DeliverySummary, dependencies=[Depends(require_operator)])
def drain_outbox(req: DrainRequest | None = None, worker: OutboxWorker = Depends(get_outbox_worker)):
    """Retry every pending side effect (or just the given entries)."""
    req = req or DrainRequest()
    report = worker.drain(req.entry_ids, req.limit)
    return DeliverySummary(delivered=report.delivered, retrying=report.retrying, failed=report.failed)

from dataclasses import asdict

from fastapi import APIRouter, Depends

from doctrack.dependencies import get_resolver
from doctrack.schemas.document import ResolvedDocumentResponse
from doctrack.services.resolver import DocumentStateResolver

router = APIRouter(prefix="/users/{user_id}/documents", tags=["documents"])


@router.get("", response_model=list[ResolvedDocumentResponse])
async def list_resolved_documents(user_id: str, resolver: DocumentStateResolver = Depends(get_resolver)):
    """Every order of the user in its most advanced state, newest first."""
    return [ResolvedDocumentResponse(**asdict(doc)) for doc in resolver.resolve(user_id)]

"""
Document Browsing Endpoints.
List, search and remove indexed documents.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Request, Query

from nova.core.exceptions import RecordNotFoundException

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
async def list_documents(
    request: Request,
    q: Optional[str] = None,
    user_id: Optional[str] = None,
    connector_id: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=500)
):
    """List documents newest first, optionally filtered by a substring."""
    repository = request.app.state.document_repository

    if q:
        documents = await repository.search(
            q, owner_user_id=user_id, limit=limit, connector_id=connector_id
        )
    else:
        documents = await repository.fetch_all(
            owner_user_id=user_id, limit=limit, connector_id=connector_id
        )

    return {
        "documents": [d.to_dict() for d in documents],
        "count": len(documents)
    }


@router.get("/{document_id}")
async def get_document(request: Request, document_id: str):
    repository = request.app.state.document_repository
    document = await repository.get_by_id(document_id)
    if document is None:
        raise RecordNotFoundException("Document", document_id)
    return document.to_dict()


@router.delete("/{document_id}")
async def delete_document(request: Request, document_id: str):
    repository = request.app.state.document_repository
    if not await repository.delete(document_id):
        raise RecordNotFoundException("Document", document_id)

    logger.info(f"Deleted document {document_id}")
    return {"id": document_id, "status": "deleted"}

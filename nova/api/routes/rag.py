"""
RAG Service Endpoint.
Single action-dispatched endpoint for indexing, searching and deleting
connector documents.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from nova.core.exceptions import NovaException, ValidationException

logger = logging.getLogger(__name__)

router = APIRouter()


class RagRequest(BaseModel):
    """Request body. Keys are camelCase on the wire."""
    action: str
    connectorId: Optional[str] = None
    sourceType: Optional[str] = None
    documents: Optional[List[Dict[str, Any]]] = None
    userId: Optional[str] = None
    query: Optional[str] = None
    limit: Optional[int] = Field(default=None, ge=1)


def _error_response(exc: NovaException) -> JSONResponse:
    status_code = 400 if isinstance(exc, ValidationException) else 500
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": exc.message, "error_code": exc.error_code}
    )


@router.post("")
async def rag_service(request: Request):
    """
    Dispatch a RAG action.

    - index: {connectorId, sourceType, documents, userId?}
    - search: {query, connectorId?, userId?, limit?}
    - delete: {connectorId, userId?}
    """
    try:
        body = RagRequest(**await request.json())
    except (ValueError, TypeError) as e:
        return _error_response(ValidationException(f"Invalid request body: {e}"))

    logger.info(f"RAG service: {body.action} for {body.connectorId}/{body.sourceType}")

    try:
        if body.action == "index":
            return await _index(request, body)
        if body.action == "search":
            return await _search(request, body)
        if body.action == "delete":
            return await _delete(request, body)
        raise ValidationException(f"Unknown action: {body.action}")
    except NovaException as e:
        logger.error(f"RAG service error: {e.message}")
        return _error_response(e)


async def _index(request: Request, body: RagRequest) -> Dict[str, Any]:
    pipeline = request.app.state.indexing_pipeline
    results = await pipeline.index(
        body.connectorId,
        body.sourceType,
        body.documents or [],
        owner_user_id=body.userId
    )
    return {"success": True, "results": [r.to_dict() for r in results]}


async def _search(request: Request, body: RagRequest) -> Dict[str, Any]:
    if not body.query or not body.query.strip():
        raise ValidationException("query is required for search")

    engine = request.app.state.search_engine
    response = await engine.search(
        body.query,
        limit=body.limit,
        connector_id=body.connectorId,
        owner_user_id=body.userId
    )
    return {"success": True, **response.to_dict()}


async def _delete(request: Request, body: RagRequest) -> Dict[str, Any]:
    if not body.connectorId:
        raise ValidationException("connectorId is required for delete")

    repository = request.app.state.document_repository
    deleted = await repository.delete_by_connector(body.connectorId, owner_user_id=body.userId)
    logger.info(f"Deleted {deleted} documents for {body.connectorId}")
    return {"success": True, "message": f"Deleted all documents for {body.connectorId}"}

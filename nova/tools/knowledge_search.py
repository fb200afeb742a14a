"""
Knowledge Search Tools.
Enables the LLM to search and list indexed connector documents.
"""

import logging
from typing import Any, Dict

from nova.config import CONNECTOR_NAMES
from nova.tools.registry import Tool, ToolRegistry

logger = logging.getLogger(__name__)

SNIPPET_CHARS = 500


def _snippet(content: str) -> str:
    if len(content) > SNIPPET_CHARS:
        return content[:SNIPPET_CHARS] + "..."
    return content


async def search_documents_handler(
    args: Dict[str, Any],
    session: Any = None,
    services: Dict[str, Any] = None
) -> Dict[str, Any]:
    """
    Search indexed documents.

    Args:
        args: {
            "query": str,          # Search keywords
            "connector_id": str,   # Optional connector filter
            "limit": int           # Optional result count
        }
    """
    query = (args.get("query") or "").strip()
    if not query:
        return {"error": "Search query is required"}

    engine = services["search_engine"]
    owner = session.user_id if session else None

    response = await engine.search(
        query,
        limit=int(args.get("limit") or 5),
        connector_id=args.get("connector_id"),
        owner_user_id=owner
    )

    if not response.results:
        return {
            "query": query,
            "results": [],
            "message": f"No documents found matching \"{query}\"."
        }

    if session:
        session.context.merge(last_article_id=response.results[0].id)

    return {
        "query": query,
        "search_type": response.search_type,
        "results": [
            {
                "id": r.id,
                "title": r.title,
                "snippet": _snippet(r.content),
                "source": r.connector_id,
                "type": r.source_type,
                "relevance": round(r.score, 4)
            }
            for r in response.results
        ],
        "total": len(response.results),
        "message": f"Found {len(response.results)} document(s) matching \"{query}\""
    }


async def list_documents_handler(
    args: Dict[str, Any],
    session: Any = None,
    services: Dict[str, Any] = None
) -> Dict[str, Any]:
    """
    List the newest documents of a connector.

    Args:
        args: {
            "connector_id": str,   # Connector, default "file"
            "limit": int           # Max documents, default 20
        }
    """
    repository = services["document_repository"]
    connector_id = args.get("connector_id") or "file"
    limit = int(args.get("limit") or 20)
    owner = session.user_id if session else None

    documents = await repository.fetch_all(
        owner_user_id=owner, limit=limit, connector_id=connector_id
    )

    return {
        "connector_id": connector_id,
        "documents": [
            {
                "id": d.id,
                "title": d.title,
                "type": d.source_type,
                "uploaded_at": d.created_at.isoformat() if d.created_at else None,
                "metadata": d.doc_metadata or {}
            }
            for d in documents
        ],
        "total": len(documents),
        "message": f"Found {len(documents)} document(s) from {connector_id}"
    }


async def register_knowledge_tools(registry: ToolRegistry):
    """Register all document knowledge tools."""

    registry.register(Tool(
        name="search_documents",
        description=(
            "Search indexed documents from uploaded files, web pages, email, ServiceNow "
            "and other connected sources. Use whenever the user asks a question that the "
            "connected knowledge might answer."
        ),
        parameters={
            "query": {
                "type": "string",
                "description": "Search keywords"
            },
            "connector_id": {
                "type": "string",
                "description": "Restrict to one source",
                "enum": list(CONNECTOR_NAMES)
            },
            "limit": {
                "type": "integer",
                "description": "Maximum number of results (default 5)"
            }
        },
        handler=search_documents_handler,
        required_params=["query"]
    ))

    registry.register(Tool(
        name="list_documents",
        description=(
            "List indexed documents, newest first. Use when the user asks which files "
            "or documents are available."
        ),
        parameters={
            "connector_id": {
                "type": "string",
                "description": "Source to list (default file)"
            },
            "limit": {
                "type": "integer",
                "description": "Max number of documents to return (default 20)"
            }
        },
        handler=list_documents_handler,
        required_params=[]
    ))
